"""Sandbox executor and isolation strategies for mounting compiled lessons."""

from lessonforge.sandbox.dom import Element
from lessonforge.sandbox.executor import (
    HttpModuleFetcher,
    ModuleFetcher,
    RepositoryModuleFetcher,
    SandboxExecutor,
)
from lessonforge.sandbox.isolation import (
    FrameIsolation,
    IsolationStrategy,
    LoadedModule,
    SandboxSession,
    ShadowIsolation,
    select_isolation,
)
from lessonforge.sandbox.resources import ResourceRegistry

__all__ = [
    "Element",
    "FrameIsolation",
    "HttpModuleFetcher",
    "IsolationStrategy",
    "LoadedModule",
    "ModuleFetcher",
    "RepositoryModuleFetcher",
    "ResourceRegistry",
    "SandboxExecutor",
    "SandboxSession",
    "ShadowIsolation",
    "select_isolation",
]
