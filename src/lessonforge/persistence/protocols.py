"""LessonRepository protocol definition."""

from typing import Protocol, runtime_checkable

from lessonforge.models import ContentVersion, Lesson, LessonStatus, TraceRecord


@runtime_checkable
class LessonRepository(Protocol):
    """Persistence boundary for lessons, content versions and traces.

    The orchestrator performs every side effect through this protocol.
    Status is the only shared mutable field; the generating transition is a
    compare-and-set so racing triggers cannot both claim a lesson.
    """

    async def create_lesson(self, lesson: Lesson) -> Lesson:
        """Store a new lesson."""
        ...

    async def get_lesson(self, lesson_id: str) -> Lesson | None:
        """Load a lesson, or None if it does not exist."""
        ...

    async def list_lessons(self, limit: int = 50) -> list[Lesson]:
        """Lessons ordered newest first."""
        ...

    async def claim_for_generation(self, lesson_id: str) -> bool:
        """Move a lesson from queued to generating.

        Returns:
            True if this caller won the claim, False if the lesson was not
            queued (or does not exist)
        """
        ...

    async def claim_next_queued(self) -> Lesson | None:
        """Claim the oldest queued lesson, returning it in generating status."""
        ...

    async def update_status(self, lesson_id: str, status: LessonStatus) -> Lesson:
        """Set lesson status.

        Raises:
            LessonNotFoundError: If the lesson does not exist
        """
        ...

    async def add_content_version(
        self, lesson_id: str, source_text: str, module_text: str, source_hash: str
    ) -> ContentVersion:
        """Append a content version numbered one past the latest."""
        ...

    async def latest_content(self, lesson_id: str) -> ContentVersion | None:
        ...

    async def append_trace(self, trace: TraceRecord) -> None:
        """Append a trace; traces are never rewritten."""
        ...

    async def list_traces(self, lesson_id: str) -> list[TraceRecord]:
        """Traces in the order they were appended."""
        ...
