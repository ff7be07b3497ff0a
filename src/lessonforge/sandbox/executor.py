"""Sandbox executor: fetch, verify and mount compiled modules on a host element."""

import asyncio
import logging
import re
from typing import Protocol, runtime_checkable

import httpx

from lessonforge import safety
from lessonforge.errors import SafetyViolation, SandboxRuntimeError
from lessonforge.models import BundleDescriptor, integrity_digest
from lessonforge.persistence.protocols import LessonRepository
from lessonforge.sandbox.dom import Element
from lessonforge.sandbox.isolation import IsolationStrategy, LoadedModule, SandboxSession

logger = logging.getLogger(__name__)

_MODULE_REF = re.compile(r"/lessons/([^/]+)/module$")


@runtime_checkable
class ModuleFetcher(Protocol):
    """Resolve a bundle's module reference to module text."""

    async def fetch(self, bundle: BundleDescriptor) -> str:
        ...


class RepositoryModuleFetcher:
    """Read modules straight from the lesson repository."""

    def __init__(self, repository: LessonRepository) -> None:
        self._repository = repository

    async def fetch(self, bundle: BundleDescriptor) -> str:
        match = _MODULE_REF.search(bundle.module_ref)
        if match is None:
            raise SandboxRuntimeError(f"Unrecognized module reference: {bundle.module_ref}")
        content = await self._repository.latest_content(match.group(1))
        if content is None:
            raise SandboxRuntimeError(f"No compiled module for lesson {match.group(1)}")
        return content.module_text


class HttpModuleFetcher:
    """Fetch modules from the HTTP API."""

    def __init__(
        self,
        base_url: str,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client
        self._timeout = timeout_seconds

    async def fetch(self, bundle: BundleDescriptor) -> str:
        url = bundle.module_ref
        if not url.startswith(("http://", "https://")):
            url = self._base_url + "/" + url.lstrip("/")
        try:
            if self._client is not None:
                response = await self._client.get(url, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise SandboxRuntimeError(f"Module fetch failed: {e}", cause=e) from e
        return response.text


class SandboxExecutor:
    """Mount compiled lessons on one host element.

    Mounts are ordered by a version counter. Every await is followed by a
    version check, and a superseded mount releases what it acquired and
    returns quietly. Failures are contained: they are logged, kept in
    `last_error` and rendered as an inline diagnostic in the host element.
    Nothing raises to the caller and nothing touches lesson status.
    """

    def __init__(
        self,
        host: Element,
        strategy: IsolationStrategy,
        fetcher: ModuleFetcher,
    ) -> None:
        self.host = host
        self.strategy = strategy
        self.fetcher = fetcher
        self.last_error: SandboxRuntimeError | None = None
        self._version = 0
        self._session: SandboxSession | None = None
        self._diagnostic: Element | None = None

    @property
    def mount_version(self) -> int:
        return self._version

    @property
    def session(self) -> SandboxSession | None:
        return self._session

    def is_current(self, version: int) -> bool:
        return version == self._version

    async def mount(self, bundle: BundleDescriptor) -> SandboxSession | None:
        """Fetch, verify and mount a bundle, superseding any earlier mount.

        Returns:
            The new session, or None if the mount failed or was superseded
        """
        self._version += 1
        version = self._version
        logger.debug("Mount %d: %s", version, bundle.module_ref)

        try:
            module_text = await self.fetcher.fetch(bundle)
            if not self.is_current(version):
                logger.debug("Mount %d superseded during fetch", version)
                return None

            if integrity_digest(module_text) != bundle.integrity:
                raise SandboxRuntimeError("Module integrity check failed", version)
            issues = safety.check(module_text)
            if issues:
                violation = SafetyViolation(issues)
                raise SandboxRuntimeError(violation.message, version, cause=violation)

            module = LoadedModule(
                module_text=module_text, style_text=bundle.style_text, integrity=bundle.integrity
            )
            session = await self.strategy.mount(
                module,
                self.host,
                mount_version=version,
                is_current=lambda: self.is_current(version),
            )
        except SandboxRuntimeError as e:
            self._contain(e, version)
            return None
        except Exception as e:
            self._contain(SandboxRuntimeError(f"Mount failed: {e}", version, cause=e), version)
            return None

        if session is None:
            return None
        if not self.is_current(version):
            session.dispose()
            return None

        previous, self._session = self._session, session
        if previous is not None:
            previous.dispose()
        self._clear_diagnostic()
        self.last_error = None
        logger.info("Mounted version %d with %s isolation", version, self.strategy.name)
        return session

    def unmount(self) -> None:
        """Invalidate in-flight mounts and tear down on the next loop tick.

        Must be called from a running event loop.
        """
        self._version += 1
        session, self._session = self._session, None
        asyncio.get_running_loop().call_soon(self._teardown, session)

    def report_runtime_error(self, mount_version: int, message: str) -> None:
        """Record an error reported by the mounted component's error boundary."""
        if not self.is_current(mount_version):
            logger.debug("Ignoring error from superseded mount %d", mount_version)
            return
        self.last_error = SandboxRuntimeError(message, mount_version)
        logger.warning("Runtime error in mount %d: %s", mount_version, message)

    def _teardown(self, session: SandboxSession | None) -> None:
        if session is not None:
            session.dispose()
        self._clear_diagnostic()

    def _contain(self, error: SandboxRuntimeError, version: int) -> None:
        if not self.is_current(version):
            logger.debug("Discarding failure of superseded mount %d: %s", version, error.message)
            return
        logger.error("Sandbox mount %d failed: %s", version, error.message)
        self.last_error = error
        previous, self._session = self._session, None
        if previous is not None:
            previous.dispose()
        self._render_diagnostic(error.message)

    def _render_diagnostic(self, message: str) -> None:
        self._clear_diagnostic()
        target = self.host.shadow_root or self.host
        self._diagnostic = target.append(
            Element(
                "div",
                {"role": "alert", "data-lf-diagnostic": ""},
                text=f"Generated component error: {message}",
            )
        )

    def _clear_diagnostic(self) -> None:
        if self._diagnostic is not None:
            self._diagnostic.detach()
            self._diagnostic = None
