"""LessonForge - generated interactive lessons, vetted, compiled and sandboxed.

Lessons are authored by a language model as TSX components, checked against a
shared safety rule table, compiled into self-contained browser modules and
mounted inside an isolated sandbox.
"""

from lessonforge.errors import (
    CompileError,
    CompileSyntaxError,
    ConfigurationError,
    GenerationCapabilityError,
    GenerationTimeoutError,
    LessonForgeError,
    LessonNotFoundError,
    RepairExhausted,
    SafetyViolation,
    SandboxRuntimeError,
    TransformError,
)

__version__ = "0.1.0"

__all__ = [
    # Base exception
    "LessonForgeError",
    # Lessons
    "LessonNotFoundError",
    "ConfigurationError",
    # Generation
    "GenerationCapabilityError",
    "GenerationTimeoutError",
    # Validation and compilation
    "SafetyViolation",
    "CompileError",
    "CompileSyntaxError",
    "TransformError",
    "RepairExhausted",
    # Sandbox
    "SandboxRuntimeError",
]
