"""FastAPI application exposing lesson creation, generation and module delivery."""

import hmac
import logging
import time

from fastapi import BackgroundTasks, FastAPI, Header, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.middleware.base import BaseHTTPMiddleware

from lessonforge import __version__, safety
from lessonforge.config import ForgeConfig, load_config
from lessonforge.errors import LessonForgeError, LessonNotFoundError
from lessonforge.generation.protocols import GenerationCapability
from lessonforge.lessons import LessonService
from lessonforge.models import (
    BundleDescriptor,
    GenerationReport,
    Lesson,
    LessonDetails,
    PedagogyConfig,
)
from lessonforge.orchestrator import GenerationOrchestrator
from lessonforge.persistence import FileSystemLessonRepository, LessonRepository
from lessonforge.server.config import ServerConfig

logger = logging.getLogger(__name__)

MODULE_HEADERS = {
    "Cache-Control": "no-store",
    "X-Content-Type-Options": "nosniff",
}


class CreateLessonRequest(BaseModel):
    topic: str = Field(min_length=1, max_length=10_000)
    pedagogy: PedagogyConfig | None = None
    generate: bool = True


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and duration of every request."""

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "%s %s -> %d (%.1fms)",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - start) * 1000,
        )
        return response


class AppState:
    """Collaborators shared by the route handlers."""

    def __init__(
        self,
        repository: LessonRepository,
        forge_config: ForgeConfig,
        generator: GenerationCapability | None,
        signing_key: str | None,
    ) -> None:
        self.repository = repository
        self.forge_config = forge_config
        self.lessons = LessonService(repository)
        self.signing_key = signing_key
        self._generator = generator

    def orchestrator(self) -> GenerationOrchestrator:
        if self._generator is None:
            # Imported lazily so the API key is only required once generation runs.
            from lessonforge.generation.anthropic_generator import AnthropicGenerator

            self._generator = AnthropicGenerator(self.forge_config.model)
        return GenerationOrchestrator(self.repository, self._generator, self.forge_config)


async def _generate_in_background(state: AppState, lesson_id: str) -> None:
    try:
        report = await state.orchestrator().kickoff(lesson_id)
    except Exception:
        logger.exception("Background generation for lesson %s crashed", lesson_id)
        return
    logger.info(
        "Background generation for lesson %s finished: %s after %d attempt(s)",
        lesson_id,
        report.status.value,
        report.attempt_count,
    )


def create_app(
    config: ServerConfig | None = None,
    repository: LessonRepository | None = None,
    generator: GenerationCapability | None = None,
    forge_config: ForgeConfig | None = None,
) -> FastAPI:
    """Create the LessonForge API.

    Args:
        config: Server configuration (loads from env vars if None).
        repository: Lesson repository (filesystem under config.data_dir if None).
        generator: Generation capability (Anthropic client created on first use if None).
        forge_config: Pipeline configuration (loaded from config.project_root if None).

    Returns:
        Configured FastAPI application.
    """
    if config is None:
        config = ServerConfig()
    if forge_config is None:
        forge_config = load_config(config.project_root)
    if repository is None:
        repository = FileSystemLessonRepository(config.data_dir)

    state = AppState(repository, forge_config, generator, config.signing_key)

    app = FastAPI(title=config.title, version=config.version)
    app.state.lessonforge = state

    if config.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.cors_origins,
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        )
    app.add_middleware(RequestLoggingMiddleware)

    @app.exception_handler(LessonNotFoundError)
    async def lesson_not_found(request: Request, exc: LessonNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": exc.message})

    @app.exception_handler(LessonForgeError)
    async def lessonforge_error(request: Request, exc: LessonForgeError) -> JSONResponse:
        logger.error("Request failed: %s", exc.message)
        return JSONResponse(status_code=500, content={"detail": exc.message})

    @app.get("/health", tags=["operational"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    @app.post("/lessons", status_code=201, response_model=Lesson)
    async def create_lesson(body: CreateLessonRequest, background: BackgroundTasks) -> Lesson:
        lesson = await state.lessons.create_lesson(body.topic, body.pedagogy)
        if body.generate:
            background.add_task(_generate_in_background, state, lesson.id)
        return lesson

    @app.get("/lessons", response_model=list[Lesson])
    async def list_lessons(limit: int = Query(default=50, ge=1, le=500)) -> list[Lesson]:
        return await state.lessons.list_lessons(limit)

    @app.get("/lessons/{lesson_id}", response_model=LessonDetails)
    async def get_lesson(lesson_id: str) -> LessonDetails:
        return await state.lessons.get_details(lesson_id)

    @app.post("/internal/generate/{lesson_id}", response_model=GenerationReport)
    async def internal_generate(
        lesson_id: str, x_sign_key: str | None = Header(default=None)
    ) -> GenerationReport:
        if not state.signing_key:
            raise HTTPException(status_code=503, detail="Signing key not configured")
        if x_sign_key is None or not hmac.compare_digest(x_sign_key, state.signing_key):
            raise HTTPException(status_code=401, detail="Invalid signing key")
        return await state.orchestrator().kickoff(lesson_id)

    @app.get("/lessons/{lesson_id}/bundle", response_model=BundleDescriptor)
    async def get_bundle(lesson_id: str) -> BundleDescriptor:
        bundle = await state.lessons.bundle(lesson_id)
        if bundle is None:
            raise HTTPException(status_code=404, detail="Lesson has no compiled content")
        return bundle

    @app.get("/lessons/{lesson_id}/module")
    async def get_module(lesson_id: str) -> Response:
        content = await state.lessons.latest_content(lesson_id)
        if content is None:
            raise HTTPException(status_code=404, detail="Lesson has no compiled content")
        if safety.check(content.source_text) or safety.check(content.module_text):
            logger.error(
                "Refusing to serve lesson %s: stored content fails safety check", lesson_id
            )
            raise HTTPException(status_code=409, detail="Stored content failed safety check")
        return Response(
            content=content.module_text,
            media_type="text/javascript",
            headers=MODULE_HEADERS,
        )

    logger.info(
        "LessonForge API created (signing key %s)", "set" if config.signing_key else "unset"
    )
    return app
