"""LessonForge exception hierarchy.

Every pipeline stage raises a subclass of LessonForgeError so callers can
distinguish generation-time failures from presentation-time faults:

- GenerationCapabilityError: the model call failed or returned nothing
- SafetyViolation: the source tripped one or more linter rules
- CompileSyntaxError / TransformError: the two compile stages
- RepairExhausted: deterministic repair had nothing to offer
- GenerationTimeoutError: the overall wall-clock ceiling was reached
- SandboxRuntimeError: a mount or render failed inside the sandbox

Usage:
    from lessonforge.errors import CompileSyntaxError, LessonForgeError

    try:
        artifact = compile_source(source)
    except CompileSyntaxError as e:
        source = repair(source, e.errors)
    except LessonForgeError as e:
        print(f"Pipeline error: {e.message}")
"""

from enum import Enum, auto
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from lessonforge.models import SafetyIssue


class LessonForgeError(Exception):
    """Base exception for all LessonForge errors."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        self.message = message
        self.cause = cause
        super().__init__(message)


class ConfigurationError(LessonForgeError):
    """Invalid or unreadable configuration."""


class LessonNotFoundError(LessonForgeError):
    """Lesson does not exist in the repository."""

    def __init__(self, lesson_id: str) -> None:
        self.lesson_id = lesson_id
        super().__init__(f"Lesson not found: {lesson_id}")


# Generation errors


class GenerationCapabilityError(LessonForgeError):
    """The generation capability failed or returned empty output.

    Retryable within the attempt budget; fatal once the budget is spent.
    """


class GenerationTimeoutError(LessonForgeError):
    """The overall wall-clock ceiling for a lesson was exceeded.

    Never retried.
    """

    def __init__(self, elapsed_seconds: float, limit_seconds: float) -> None:
        self.elapsed_seconds = elapsed_seconds
        self.limit_seconds = limit_seconds
        super().__init__(
            f"Generation exceeded {limit_seconds:.0f}s wall-clock limit "
            f"(elapsed {elapsed_seconds:.1f}s)"
        )


class SafetyViolation(LessonForgeError):
    """Source carries one or more blocking safety issues."""

    def __init__(self, issues: "list[SafetyIssue]") -> None:
        self.issues = list(issues)
        rules = ", ".join(issue.rule.value for issue in self.issues)
        super().__init__(f"Safety check failed: {rules}")


# Compile errors


class CompileError(LessonForgeError):
    """Base class for compile failures.

    Attributes:
        errors: Diagnostic messages, one per problem found
        stage: "syntax" or "transform"
    """

    stage = "compile"

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        summary = self.errors[0] if self.errors else "unknown error"
        if len(self.errors) > 1:
            summary += f" (+{len(self.errors) - 1} more)"
        super().__init__(f"{self.stage} error: {summary}")


class CompileSyntaxError(CompileError):
    """Stage 1 failure: the source does not parse or does not resolve.

    The repair engine's primary target.
    """

    stage = "syntax"


class TransformError(CompileError):
    """Stage 2 failure: the source uses a construct the lowering pass does not support.

    Routed straight to regeneration.
    """

    stage = "transform"


class RepairExhausted(LessonForgeError):
    """No repair rule changed the source.

    Signals escalation to a fix-request, not a terminal failure.
    """

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__(f"No deterministic repair for {len(self.errors)} error(s)")


# Presentation-time errors


class SandboxRuntimeError(LessonForgeError):
    """Mount or render failure inside the sandbox.

    Contained by the executor; never changes lesson status.
    """

    def __init__(
        self, message: str, mount_version: int | None = None, cause: Exception | None = None
    ) -> None:
        self.mount_version = mount_version
        super().__init__(message, cause)


class ErrorRoute(Enum):
    """Where the orchestrator sends a failed attempt."""

    REPAIR = auto()
    REGENERATE = auto()
    FAIL = auto()


def route_error(error: Exception) -> ErrorRoute:
    """Decide how the attempt loop handles an error.

    Args:
        error: Exception raised while producing or compiling a source

    Returns:
        REPAIR for syntax errors, REGENERATE for errors a new prompt may fix,
        FAIL for everything else
    """
    if isinstance(error, CompileSyntaxError):
        return ErrorRoute.REPAIR
    if isinstance(
        error, (TransformError, SafetyViolation, GenerationCapabilityError, RepairExhausted)
    ):
        return ErrorRoute.REGENERATE
    return ErrorRoute.FAIL
