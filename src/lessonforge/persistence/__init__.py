"""Persistence boundary for lessons, content versions and traces."""

from lessonforge.persistence.filesystem import FileSystemLessonRepository
from lessonforge.persistence.memory import InMemoryLessonRepository
from lessonforge.persistence.protocols import LessonRepository

__all__ = ["FileSystemLessonRepository", "InMemoryLessonRepository", "LessonRepository"]
