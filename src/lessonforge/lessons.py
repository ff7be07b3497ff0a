"""Lesson use cases: create, inspect, list and describe bundles."""

import logging

from lessonforge.errors import LessonNotFoundError
from lessonforge.models import (
    Accessibility,
    BundleDescriptor,
    ContentVersion,
    Lesson,
    LessonDetails,
    PedagogyConfig,
    integrity_digest,
)
from lessonforge.persistence.protocols import LessonRepository
from lessonforge.sandbox.preset import accessibility_css

logger = logging.getLogger(__name__)

UNTITLED = "Untitled Lesson"
MAX_TITLE_LENGTH = 100


def derive_title(topic: str) -> str:
    """First line of the topic when it is 1 to 100 characters, else a placeholder."""
    lines = topic.strip().splitlines()
    first_line = lines[0].strip() if lines else ""
    if 1 <= len(first_line) <= MAX_TITLE_LENGTH:
        return first_line
    return UNTITLED


def module_ref(lesson_id: str) -> str:
    """Path the module endpoint serves a lesson's compiled module from."""
    return f"/lessons/{lesson_id}/module"


class LessonService:
    """Lesson operations that sit outside the generation loop."""

    def __init__(self, repository: LessonRepository) -> None:
        self.repository = repository

    async def create_lesson(self, topic: str, pedagogy: PedagogyConfig | None = None) -> Lesson:
        """Queue a new lesson.

        Raises:
            ValueError: If the topic is blank
        """
        if not topic.strip():
            raise ValueError("Topic must not be empty")
        lesson = Lesson(title=derive_title(topic), topic=topic.strip(), pedagogy=pedagogy)
        await self.repository.create_lesson(lesson)
        logger.info("Queued lesson %s: %s", lesson.id, lesson.title)
        return lesson

    async def get_details(self, lesson_id: str) -> LessonDetails:
        lesson = await self._require(lesson_id)
        return LessonDetails(
            lesson=lesson,
            content=await self.repository.latest_content(lesson_id),
            traces=await self.repository.list_traces(lesson_id),
        )

    async def list_lessons(self, limit: int = 50) -> list[Lesson]:
        return await self.repository.list_lessons(limit)

    async def latest_content(self, lesson_id: str) -> ContentVersion | None:
        await self._require(lesson_id)
        return await self.repository.latest_content(lesson_id)

    async def bundle(self, lesson_id: str) -> BundleDescriptor | None:
        """Describe the latest compiled module for the rendering layer.

        Style text comes from the lesson's accessibility preferences.

        Returns:
            BundleDescriptor, or None when the lesson has no content yet
        """
        lesson = await self._require(lesson_id)
        content = await self.repository.latest_content(lesson_id)
        if content is None:
            return None
        accessibility = lesson.pedagogy.accessibility if lesson.pedagogy else Accessibility()
        style_text = accessibility_css(accessibility)
        return BundleDescriptor(
            module_ref=module_ref(lesson_id),
            style_text=style_text,
            integrity=integrity_digest(content.module_text),
        )

    async def _require(self, lesson_id: str) -> Lesson:
        lesson = await self.repository.get_lesson(lesson_id)
        if lesson is None:
            raise LessonNotFoundError(lesson_id)
        return lesson
