"""Generation orchestrator - drives generate → lint → compile → repair attempts per lesson."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from lessonforge import safety
from lessonforge.compiler import CompileService
from lessonforge.config import BudgetConfig, ForgeConfig
from lessonforge.errors import (
    CompileError,
    ErrorRoute,
    GenerationCapabilityError,
    GenerationTimeoutError,
    LessonNotFoundError,
    SafetyViolation,
    route_error,
)
from lessonforge.generation.pedagogy import infer_pedagogy
from lessonforge.generation.prompts import PromptBuilder
from lessonforge.generation.protocols import GenerationCapability, Prompt
from lessonforge.models import (
    AttemptOutcome,
    CompiledArtifact,
    ContentVersion,
    GenerationAttempt,
    GenerationReport,
    Lesson,
    LessonStatus,
    PedagogyConfig,
    SafetyIssue,
    TraceRecord,
)
from lessonforge.persistence.protocols import LessonRepository
from lessonforge.repair import RepairEngine

logger = logging.getLogger(__name__)


def backoff_delay(failed_attempts: int, budgets: BudgetConfig) -> float:
    """Delay before the next attempt: base * 2^(n-1), capped."""
    delay = budgets.backoff_base_seconds * (2 ** (failed_attempts - 1))
    return min(delay, budgets.backoff_max_seconds)


class GenerationOrchestrator:
    """Run the bounded attempt loop for one lesson at a time.

    Every side effect goes through the repository: the generating claim,
    one trace per attempt in attempt order, the content version on success,
    and finally the terminal status. The status write is always last.

    Time is bounded by one wall-clock ceiling (budgets.max_minutes). Each
    generation call is awaited for at most min(attempt_timeout_seconds,
    time remaining), so per-attempt timeouts consume the ceiling rather
    than extending it.
    """

    def __init__(
        self,
        repository: LessonRepository,
        generator: GenerationCapability,
        config: ForgeConfig | None = None,
        compiler: CompileService | None = None,
        repair_engine: RepairEngine | None = None,
        prompts: PromptBuilder | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.repository = repository
        self.generator = generator
        self.config = config or ForgeConfig()
        self.compiler = compiler or CompileService()
        self.repair_engine = repair_engine or RepairEngine()
        self.prompts = prompts or PromptBuilder()
        self._clock = clock
        self._sleep = sleep

    @property
    def budgets(self) -> BudgetConfig:
        return self.config.budgets

    async def kickoff(
        self, lesson_id: str, pedagogy: PedagogyConfig | None = None
    ) -> GenerationReport:
        """Generate content for a queued lesson.

        A lesson that is not exactly "queued" is left alone: the call returns
        a skipped report without generating anything.

        Args:
            lesson_id: Lesson to generate
            pedagogy: Overrides the lesson's stored pedagogy

        Returns:
            GenerationReport describing the run (or the skip)

        Raises:
            LessonNotFoundError: If the lesson does not exist
        """
        lesson = await self.repository.get_lesson(lesson_id)
        if lesson is None:
            raise LessonNotFoundError(lesson_id)

        if not await self.repository.claim_for_generation(lesson_id):
            current = await self.repository.get_lesson(lesson_id)
            status = current.status if current else lesson.status
            reason = f"Lesson status is '{status.value}', not 'queued'"
            logger.info("Skipping lesson %s: %s", lesson_id, reason)
            return GenerationReport(
                lesson_id=lesson_id, success=False, status=status, skipped=True, reason=reason
            )

        return await self._run(lesson, pedagogy)

    async def process_next(self) -> GenerationReport | None:
        """Claim and generate the oldest queued lesson.

        Returns:
            Report for the processed lesson, or None if the queue is empty
        """
        lesson = await self.repository.claim_next_queued()
        if lesson is None:
            return None
        return await self._run(lesson, None)

    async def process_queue(self, max_lessons: int | None = None) -> list[GenerationReport]:
        """Process queued lessons one after another until the queue is empty."""
        reports: list[GenerationReport] = []
        while max_lessons is None or len(reports) < max_lessons:
            report = await self.process_next()
            if report is None:
                break
            reports.append(report)
        return reports

    async def _run(self, lesson: Lesson, pedagogy: PedagogyConfig | None) -> GenerationReport:
        pedagogy = pedagogy or lesson.pedagogy or infer_pedagogy(lesson.topic)
        limit_seconds = self.budgets.max_minutes * 60
        started = self._clock()
        deadline = started + limit_seconds

        logger.info("Generating lesson %s (max %d attempts)", lesson.id, self.budgets.max_attempts)

        previous: GenerationAttempt | None = None
        attempt_number = 0
        try:
            for attempt_number in range(1, self.budgets.max_attempts + 1):
                if previous is not None:
                    await self._backoff(attempt_number - 1, deadline)

                attempt, trace = await self._attempt(
                    lesson, pedagogy, attempt_number, previous, deadline, started
                )

                if attempt.outcome == AttemptOutcome.SUCCEEDED:
                    content = await self._persist(lesson.id, attempt)
                    await self.repository.append_trace(trace)
                    await self.repository.update_status(lesson.id, LessonStatus.GENERATED)
                    logger.info(
                        "Lesson %s generated (version %d, attempt %d)",
                        lesson.id,
                        content.version,
                        attempt_number,
                    )
                    return GenerationReport(
                        lesson_id=lesson.id,
                        success=True,
                        status=LessonStatus.GENERATED,
                        attempt_count=attempt_number,
                        version=content.version,
                    )

                await self.repository.append_trace(trace)
                logger.warning(
                    "Lesson %s attempt %d failed at %s: %s",
                    lesson.id,
                    attempt_number,
                    attempt.failure_stage,
                    "; ".join(attempt.errors[:3]),
                )
                previous = attempt
                if attempt.failure_stage == "timeout":
                    break
        except Exception as e:
            logger.exception("Lesson %s generation crashed", lesson.id)
            await self.repository.append_trace(
                TraceRecord(
                    lesson_id=lesson.id,
                    attempt_number=attempt_number,
                    error=f"{type(e).__name__}: {e}",
                )
            )
            await self.repository.update_status(lesson.id, LessonStatus.FAILED)
            raise

        await self.repository.update_status(lesson.id, LessonStatus.FAILED)
        assert previous is not None
        logger.error("Lesson %s failed after %d attempt(s)", lesson.id, attempt_number)
        return GenerationReport(
            lesson_id=lesson.id,
            success=False,
            status=LessonStatus.FAILED,
            attempt_count=attempt_number,
            issues=previous.safety_issues,
            compile_errors=(
                previous.errors if previous.failure_stage in ("syntax", "transform") else []
            ),
            reason="; ".join(previous.errors) or None,
        )

    async def _backoff(self, failed_attempts: int, deadline: float) -> None:
        delay = min(backoff_delay(failed_attempts, self.budgets), max(deadline - self._clock(), 0))
        if delay > 0:
            logger.debug("Backing off %.1fs before next attempt", delay)
            await self._sleep(delay)

    def _prompt_for(
        self, lesson: Lesson, pedagogy: PedagogyConfig, previous: GenerationAttempt | None
    ) -> Prompt:
        if previous is None or previous.raw_source is None:
            return self.prompts.initial(lesson.topic, pedagogy)
        return self.prompts.fix(lesson.topic, previous.raw_source, previous.errors)

    async def _attempt(
        self,
        lesson: Lesson,
        pedagogy: PedagogyConfig,
        number: int,
        previous: GenerationAttempt | None,
        deadline: float,
        started: float,
    ) -> tuple[GenerationAttempt, TraceRecord]:
        prompt = self._prompt_for(lesson, pedagogy, previous)
        model_name = getattr(self.generator, "model_name", None)

        def trace(attempt: GenerationAttempt, response: str | None) -> TraceRecord:
            return _trace_for(lesson.id, prompt, model_name, response, attempt)

        remaining = deadline - self._clock()
        limit = self.budgets.max_minutes * 60
        if remaining <= 0:
            timeout = GenerationTimeoutError(self._clock() - started, limit)
            attempt = _failed(number, None, "timeout", [timeout.message])
            return attempt, trace(attempt, None)

        call_timeout = min(self.budgets.attempt_timeout_seconds, remaining)
        try:
            raw = await asyncio.wait_for(self.generator.generate(prompt), timeout=call_timeout)
            if not raw or not raw.strip():
                raise GenerationCapabilityError("Generation returned an empty response")
        except asyncio.TimeoutError:
            if call_timeout < self.budgets.attempt_timeout_seconds:
                timeout = GenerationTimeoutError(self._clock() - started, limit)
                attempt = _failed(number, None, "timeout", [timeout.message])
            else:
                error = GenerationCapabilityError(f"Generation timed out after {call_timeout:.0f}s")
                attempt = _failed(number, None, "generation", [error.message])
            return attempt, trace(attempt, None)
        except GenerationCapabilityError as e:
            attempt = _failed(number, None, "generation", [e.message])
            return attempt, trace(attempt, None)

        attempt = self._evaluate(number, raw)
        return attempt, trace(attempt, raw)

    def _evaluate(self, number: int, source: str) -> GenerationAttempt:
        """Lint, compile and (once) repair a generated source."""
        issues = safety.check(source)
        if issues:
            return _failed(number, source, "safety", safety.format_issues(issues), issues=issues)

        try:
            artifact = self.compiler.compile(source)
        except CompileError as e:
            if route_error(e) is not ErrorRoute.REPAIR:
                return _failed(number, source, e.stage, e.errors)
            return self._repair_and_recompile(number, source, e.errors)

        return _accept(number, source, artifact)

    def _repair_and_recompile(
        self, number: int, source: str, errors: list[str]
    ) -> GenerationAttempt:
        patch = self.repair_engine.propose(source, errors)
        if patch is None:
            logger.debug("No deterministic repair for %d error(s), escalating", len(errors))
            return _failed(number, source, "syntax", errors)

        repaired = patch.source
        issues = safety.check(repaired)
        if issues:
            return _failed(
                number,
                repaired,
                "safety",
                safety.format_issues(issues),
                issues=issues,
                repair_rules=patch.rules,
            )

        try:
            artifact = self.compiler.compile(repaired)
        except CompileError as e:
            return _failed(number, repaired, e.stage, e.errors, repair_rules=patch.rules)

        return _accept(number, repaired, artifact, repair_rules=patch.rules)

    async def _persist(self, lesson_id: str, attempt: GenerationAttempt) -> ContentVersion:
        """The only place content is written.

        Refuses an attempt whose source or compiled module fails the linter.
        """
        assert attempt.raw_source is not None and attempt.compiled_artifact is not None
        artifact = attempt.compiled_artifact
        issues = safety.check(attempt.raw_source) or safety.check(artifact.module_text)
        if issues:
            raise SafetyViolation(issues)
        return await self.repository.add_content_version(
            lesson_id, attempt.raw_source, artifact.module_text, artifact.source_hash
        )


def _failed(
    number: int,
    source: str | None,
    stage: str,
    errors: list[str],
    issues: list[SafetyIssue] | None = None,
    repair_rules: list[str] | None = None,
) -> GenerationAttempt:
    return GenerationAttempt(
        attempt_number=number,
        raw_source=source,
        errors=errors,
        safety_issues=issues or [],
        outcome=AttemptOutcome.FAILED,
        failure_stage=stage,
        repair_rules=repair_rules or [],
    )


def _accept(
    number: int,
    source: str,
    artifact: CompiledArtifact,
    repair_rules: list[str] | None = None,
) -> GenerationAttempt:
    """Succeed only if the compiled module also passes the linter."""
    issues = safety.check(artifact.module_text)
    if issues:
        return _failed(
            number,
            source,
            "safety",
            safety.format_issues(issues),
            issues=issues,
            repair_rules=repair_rules,
        )
    return GenerationAttempt(
        attempt_number=number,
        raw_source=source,
        compiled_artifact=artifact,
        outcome=AttemptOutcome.SUCCEEDED,
        repair_rules=repair_rules or [],
    )


def _trace_for(
    lesson_id: str,
    prompt: Prompt,
    model_name: str | None,
    response: str | None,
    attempt: GenerationAttempt,
) -> TraceRecord:
    succeeded = attempt.outcome == AttemptOutcome.SUCCEEDED
    compiled = succeeded or attempt.failure_stage in ("syntax", "transform")
    return TraceRecord(
        lesson_id=lesson_id,
        attempt_number=attempt.attempt_number,
        prompt=prompt.as_text(),
        model=model_name,
        response=response,
        validation={
            "passed": response is not None and attempt.failure_stage != "safety",
            "issues": [issue.model_dump(mode="json") for issue in attempt.safety_issues],
        },
        compilation={
            "attempted": compiled,
            "success": succeeded,
            "stage": attempt.failure_stage if compiled and not succeeded else None,
            "errors": attempt.errors if compiled else [],
            "repaired": bool(attempt.repair_rules),
            "repair_rules": attempt.repair_rules,
        },
        error=None if succeeded else f"{attempt.failure_stage}: " + "; ".join(attempt.errors),
    )
