"""In-process lesson repository."""

from datetime import datetime, timezone

from lessonforge.errors import LessonNotFoundError
from lessonforge.models import ContentVersion, Lesson, LessonStatus, TraceRecord


class InMemoryLessonRepository:
    """Repository holding everything in dictionaries.

    Returned models are copies, so callers cannot mutate stored state.
    No method awaits between reading and writing, which makes each call
    atomic on a single event loop.
    """

    def __init__(self) -> None:
        self._lessons: dict[str, Lesson] = {}
        self._contents: dict[str, list[ContentVersion]] = {}
        self._traces: dict[str, list[TraceRecord]] = {}

    async def create_lesson(self, lesson: Lesson) -> Lesson:
        self._lessons[lesson.id] = lesson.model_copy(deep=True)
        return lesson

    async def get_lesson(self, lesson_id: str) -> Lesson | None:
        lesson = self._lessons.get(lesson_id)
        return lesson.model_copy(deep=True) if lesson else None

    async def list_lessons(self, limit: int = 50) -> list[Lesson]:
        lessons = sorted(self._lessons.values(), key=lambda lesson: lesson.created_at, reverse=True)
        return [lesson.model_copy(deep=True) for lesson in lessons[:limit]]

    async def claim_for_generation(self, lesson_id: str) -> bool:
        lesson = self._lessons.get(lesson_id)
        if lesson is None or lesson.status != LessonStatus.QUEUED:
            return False
        self._set_status(lesson, LessonStatus.GENERATING)
        return True

    async def claim_next_queued(self) -> Lesson | None:
        queued = [
            lesson for lesson in self._lessons.values() if lesson.status == LessonStatus.QUEUED
        ]
        if not queued:
            return None
        lesson = min(queued, key=lambda lesson: lesson.created_at)
        self._set_status(lesson, LessonStatus.GENERATING)
        return lesson.model_copy(deep=True)

    async def update_status(self, lesson_id: str, status: LessonStatus) -> Lesson:
        lesson = self._lessons.get(lesson_id)
        if lesson is None:
            raise LessonNotFoundError(lesson_id)
        self._set_status(lesson, status)
        return lesson.model_copy(deep=True)

    async def add_content_version(
        self, lesson_id: str, source_text: str, module_text: str, source_hash: str
    ) -> ContentVersion:
        if lesson_id not in self._lessons:
            raise LessonNotFoundError(lesson_id)
        versions = self._contents.setdefault(lesson_id, [])
        content = ContentVersion(
            lesson_id=lesson_id,
            version=len(versions) + 1,
            source_text=source_text,
            module_text=module_text,
            source_hash=source_hash,
        )
        versions.append(content)
        return content

    async def latest_content(self, lesson_id: str) -> ContentVersion | None:
        versions = self._contents.get(lesson_id)
        return versions[-1] if versions else None

    async def append_trace(self, trace: TraceRecord) -> None:
        self._traces.setdefault(trace.lesson_id, []).append(trace)

    async def list_traces(self, lesson_id: str) -> list[TraceRecord]:
        return list(self._traces.get(lesson_id, []))

    def _set_status(self, lesson: Lesson, status: LessonStatus) -> None:
        lesson.status = status
        lesson.updated_at = datetime.now(timezone.utc)
