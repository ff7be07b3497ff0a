"""Source-to-module compiler for generated components."""

from lessonforge.compiler.host import BANNER_NAMES, HOST_LIBRARY_MEMBERS, binding_statement
from lessonforge.compiler.service import METADATA_LABEL, CompileService, compile_source

__all__ = [
    "BANNER_NAMES",
    "HOST_LIBRARY_MEMBERS",
    "METADATA_LABEL",
    "CompileService",
    "binding_statement",
    "compile_source",
]
