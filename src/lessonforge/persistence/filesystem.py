"""Lesson repository on the local filesystem."""

import logging
import re
from datetime import datetime, timezone
from pathlib import Path

from lessonforge.errors import LessonNotFoundError
from lessonforge.models import ContentVersion, Lesson, LessonStatus, TraceRecord

logger = logging.getLogger(__name__)

_VERSION_FILE = re.compile(r"v(\d+)\.json")


def _write_atomic(path: Path, text: str) -> None:
    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.write_text(text)
    tmp_path.replace(path)


class FileSystemLessonRepository:
    """Repository storing one directory per lesson.

    Layout:
    base_path/
      {lesson_id}/
        lesson.json
        contents/
          v0001.json
        traces.jsonl

    Claims are atomic within one event loop: nothing awaits between the
    status read and the status write. Running several worker processes
    against the same directory is not supported.
    """

    def __init__(self, base_path: Path | str | None = None) -> None:
        """Initialize with base storage path.

        Args:
            base_path: Root directory (defaults to .lessonforge/lessons)
        """
        path = base_path or Path.cwd() / ".lessonforge" / "lessons"
        self._base_path = Path(path)
        self._base_path.mkdir(parents=True, exist_ok=True)

    def _lesson_dir(self, lesson_id: str) -> Path:
        return self._base_path / lesson_id

    def _lesson_path(self, lesson_id: str) -> Path:
        return self._lesson_dir(lesson_id) / "lesson.json"

    def _contents_dir(self, lesson_id: str) -> Path:
        return self._lesson_dir(lesson_id) / "contents"

    def _content_files(self, lesson_id: str) -> dict[int, Path]:
        """Map version number to file; names are zero-padded to at least four digits."""
        contents_dir = self._contents_dir(lesson_id)
        if not contents_dir.exists():
            return {}
        files = {}
        for path in contents_dir.iterdir():
            match = _VERSION_FILE.fullmatch(path.name)
            if match:
                files[int(match.group(1))] = path
        return files

    def _read(self, lesson_id: str) -> Lesson | None:
        path = self._lesson_path(lesson_id)
        if not path.exists():
            return None
        return Lesson.model_validate_json(path.read_text())

    def _write(self, lesson: Lesson) -> None:
        path = self._lesson_path(lesson.id)
        path.parent.mkdir(parents=True, exist_ok=True)
        _write_atomic(path, lesson.model_dump_json(indent=2))

    def _set_status(self, lesson: Lesson, status: LessonStatus) -> Lesson:
        lesson.status = status
        lesson.updated_at = datetime.now(timezone.utc)
        self._write(lesson)
        return lesson

    def _all_lessons(self) -> list[Lesson]:
        lessons = []
        for path in self._base_path.glob("*/lesson.json"):
            lessons.append(Lesson.model_validate_json(path.read_text()))
        return lessons

    async def create_lesson(self, lesson: Lesson) -> Lesson:
        self._write(lesson)
        logger.debug("Created lesson %s", lesson.id)
        return lesson

    async def get_lesson(self, lesson_id: str) -> Lesson | None:
        return self._read(lesson_id)

    async def list_lessons(self, limit: int = 50) -> list[Lesson]:
        lessons = sorted(self._all_lessons(), key=lambda lesson: lesson.created_at, reverse=True)
        return lessons[:limit]

    async def claim_for_generation(self, lesson_id: str) -> bool:
        lesson = self._read(lesson_id)
        if lesson is None or lesson.status != LessonStatus.QUEUED:
            return False
        self._set_status(lesson, LessonStatus.GENERATING)
        return True

    async def claim_next_queued(self) -> Lesson | None:
        queued = [lesson for lesson in self._all_lessons() if lesson.status == LessonStatus.QUEUED]
        if not queued:
            return None
        lesson = min(queued, key=lambda lesson: lesson.created_at)
        return self._set_status(lesson, LessonStatus.GENERATING)

    async def update_status(self, lesson_id: str, status: LessonStatus) -> Lesson:
        lesson = self._read(lesson_id)
        if lesson is None:
            raise LessonNotFoundError(lesson_id)
        return self._set_status(lesson, status)

    async def add_content_version(
        self, lesson_id: str, source_text: str, module_text: str, source_hash: str
    ) -> ContentVersion:
        if not self._lesson_path(lesson_id).exists():
            raise LessonNotFoundError(lesson_id)
        contents_dir = self._contents_dir(lesson_id)
        contents_dir.mkdir(parents=True, exist_ok=True)

        version = max(self._content_files(lesson_id), default=0) + 1
        content = ContentVersion(
            lesson_id=lesson_id,
            version=version,
            source_text=source_text,
            module_text=module_text,
            source_hash=source_hash,
        )
        _write_atomic(contents_dir / f"v{version:04d}.json", content.model_dump_json(indent=2))
        return content

    async def latest_content(self, lesson_id: str) -> ContentVersion | None:
        files = self._content_files(lesson_id)
        if not files:
            return None
        return ContentVersion.model_validate_json(files[max(files)].read_text())

    async def append_trace(self, trace: TraceRecord) -> None:
        lesson_dir = self._lesson_dir(trace.lesson_id)
        lesson_dir.mkdir(parents=True, exist_ok=True)
        with open(lesson_dir / "traces.jsonl", "a") as f:
            f.write(trace.model_dump_json() + "\n")

    async def list_traces(self, lesson_id: str) -> list[TraceRecord]:
        path = self._lesson_dir(lesson_id) / "traces.jsonl"
        if not path.exists():
            return []
        traces = []
        with open(path) as f:
            for line in f:
                line = line.strip()
                if line:
                    traces.append(TraceRecord.model_validate_json(line))
        return traces
