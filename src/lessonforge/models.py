"""Data models shared across the pipeline."""

import base64
import hashlib
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _now() -> datetime:
    return datetime.now(timezone.utc)


def source_hash(text: str) -> str:
    """Hex SHA-256 of a source text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def integrity_digest(text: str) -> str:
    """Subresource-Integrity style digest (sha384-<base64>) of a module text."""
    digest = hashlib.sha384(text.encode("utf-8")).digest()
    return "sha384-" + base64.b64encode(digest).decode("ascii")


class LessonStatus(str, Enum):
    """Lesson lifecycle states."""

    QUEUED = "queued"
    GENERATING = "generating"
    GENERATED = "generated"
    FAILED = "failed"


class SafetyRule(str, Enum):
    """Stable identifiers for the safety linter's rules."""

    NETWORK_FETCH = "network-fetch"
    EVAL_USE = "eval-use"
    DYNAMIC_FUNCTION = "dynamic-function"
    RAW_TRANSPORT = "raw-transport"
    URL_IMPORT = "url-import"
    EXTERNAL_URL = "external-url"
    OVERSIZED_PAYLOAD = "oversized-payload"


class AttemptOutcome(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# Pedagogy


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        extra="forbid", alias_generator=to_camel, populate_by_name=True
    )


class Accessibility(_CamelModel):
    """Accessibility preferences applied to generated components."""

    min_font_size_px: int = Field(default=16, ge=12, le=24)
    high_contrast: bool = True
    captions_preferred: bool = False


class PedagogyConfig(_CamelModel):
    """Pedagogical configuration for a lesson.

    Unknown keys are rejected. Accepts both snake_case and camelCase keys.
    """

    grade_band: Literal["K-2", "3-5", "6-8", "9-12"] = "3-5"
    reading_level: Literal["emergent", "basic", "intermediate", "advanced"] = "basic"
    language_tone: Literal["friendly", "neutral", "formal"] = "friendly"
    cognitive_load: Literal["low", "medium", "high"] = "low"
    accessibility: Accessibility = Field(default_factory=Accessibility)


# Pipeline records


class SafetyIssue(BaseModel):
    """A single blocking finding from the safety linter."""

    model_config = ConfigDict(frozen=True)

    rule: SafetyRule
    message: str
    severity: Literal["block"] = "block"
    line: int | None = None
    snippet: str | None = None

    def __str__(self) -> str:
        where = f"line {self.line}: " if self.line is not None else ""
        return f"[{self.rule.value}] {where}{self.message}"


class CompiledArtifact(BaseModel):
    """Browser-loadable module derived from a source text.

    created_at is the only field that varies between compiles of the same source.
    """

    model_config = ConfigDict(frozen=True)

    source_hash: str
    module_text: str
    created_at: datetime = Field(default_factory=_now)


class RepairPatch(BaseModel):
    """Full replacement source plus the repair rules that produced it."""

    source: str
    rules: list[str]


class GenerationAttempt(BaseModel):
    """One generate, validate, compile cycle.

    Frozen once the iteration ends; the next attempt is a new object.
    """

    model_config = ConfigDict(frozen=True)

    attempt_number: int = Field(ge=1)
    raw_source: str | None = None
    errors: list[str] = Field(default_factory=list)
    safety_issues: list[SafetyIssue] = Field(default_factory=list)
    compiled_artifact: CompiledArtifact | None = None
    outcome: AttemptOutcome = AttemptOutcome.PENDING
    repair_rules: list[str] = Field(default_factory=list)
    failure_stage: Literal["generation", "safety", "syntax", "transform", "timeout"] | None = None


# Persistence shapes


class Lesson(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    title: str
    topic: str
    status: LessonStatus = LessonStatus.QUEUED
    pedagogy: PedagogyConfig | None = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class ContentVersion(BaseModel):
    """Persisted source and compiled module for one successful attempt."""

    lesson_id: str
    version: int = Field(ge=1)
    source_text: str
    module_text: str
    source_hash: str
    created_at: datetime = Field(default_factory=_now)


class TraceRecord(BaseModel):
    """Audit record written for every attempt."""

    lesson_id: str
    attempt_number: int = Field(ge=0)
    prompt: str | None = None
    model: str | None = None
    response: str | None = None
    validation: dict[str, Any] = Field(default_factory=dict)
    compilation: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None
    created_at: datetime = Field(default_factory=_now)


# Outward-facing results


class GenerationReport(BaseModel):
    """Outcome of a kickoff."""

    lesson_id: str
    success: bool
    status: LessonStatus
    attempt_count: int = 0
    issues: list[SafetyIssue] = Field(default_factory=list)
    compile_errors: list[str] = Field(default_factory=list)
    version: int | None = None
    skipped: bool = False
    reason: str | None = None


class BundleDescriptor(BaseModel):
    """What the rendering layer needs to mount a lesson."""

    module_ref: str
    style_text: str = ""
    integrity: str


class LessonDetails(BaseModel):
    lesson: Lesson
    content: ContentVersion | None = None
    traces: list[TraceRecord] = Field(default_factory=list)
