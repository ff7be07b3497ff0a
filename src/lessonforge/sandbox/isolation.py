"""Isolation strategies: separate browsing context or shadow DOM boundary.

Both implement the same contract, `mount(module, container) -> session`, and
are chosen by deployment context through `select_isolation`.
"""

import asyncio
import logging
import weakref
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from jinja2 import Environment, FileSystemLoader

from lessonforge.config import SandboxConfig
from lessonforge.sandbox.dom import Element, raw_text
from lessonforge.sandbox.preset import PRESET_CSS, PRESET_VERSION
from lessonforge.sandbox.resources import ResourceRegistry

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"

# Never add allow-top-navigation, allow-popups or allow-forms.
FRAME_SANDBOX = "allow-scripts allow-same-origin"

FRAME_CSP = (
    "default-src 'none'; "
    "script-src 'self' 'unsafe-inline' blob:; "
    "style-src 'unsafe-inline'; "
    "img-src data: blob:; "
    "font-src data:; "
    "connect-src 'none'; "
    "form-action 'none'; "
    "base-uri 'none'"
)

# Awaited after the isolation context is attached, resolving when it has loaded.
ContextLoader = Callable[[Element], Awaitable[None]]


async def _next_tick(element: Element) -> None:
    await asyncio.sleep(0)


def _get_environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        keep_trailing_newline=True,
    )
    env.filters["raw_text"] = raw_text
    return env


@dataclass(frozen=True)
class LoadedModule:
    """A fetched, verified module ready to mount."""

    module_text: str
    style_text: str
    integrity: str


class SandboxSession:
    """Everything one mount acquired: attached nodes and resource handles.

    dispose() detaches every node and revokes every handle. It is idempotent
    and safe to call on any exit path.
    """

    def __init__(self, mount_version: int, container: Element, registry: ResourceRegistry) -> None:
        self.mount_version = mount_version
        self.container = container
        self.root: Element | None = None
        self.handles: list[str] = []
        self.nodes: list[Element] = []
        self._registry = registry
        self._finalizers: list[Callable[[], None]] = []
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def mint(self, content: str, media_type: str) -> str:
        handle = self._registry.create(content, media_type)
        self.handles.append(handle)
        return handle

    def attach(self, parent: Element, node: Element) -> Element:
        parent.append(node)
        self.nodes.append(node)
        return node

    def on_dispose(self, callback: Callable[[], None]) -> None:
        """Run callback once, after nodes are detached and handles revoked."""
        self._finalizers.append(callback)

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        for node in reversed(self.nodes):
            node.detach()
        for handle in self.handles:
            self._registry.revoke(handle)
        for callback in self._finalizers:
            callback()
        logger.debug(
            "Disposed mount %d (%d nodes, %d handles)",
            self.mount_version,
            len(self.nodes),
            len(self.handles),
        )


@runtime_checkable
class IsolationStrategy(Protocol):
    """Mount a module inside an isolation boundary attached to a container."""

    name: str

    async def mount(
        self,
        module: LoadedModule,
        container: Element,
        *,
        mount_version: int,
        is_current: Callable[[], bool],
    ) -> SandboxSession | None:
        """Mount and return the session, or None if superseded while loading.

        A superseded mount must release everything it acquired before
        returning None.
        """
        ...


class FrameIsolation:
    """Run the module in a sandboxed frame with its own global scope.

    The module and the frame document are delivered as ephemeral handles.
    The document removes network primitives, swaps web storage for in-memory
    substitutes and renders the component inside an error boundary that
    reports to the parent instead of rethrowing.
    """

    name = "frame"

    def __init__(
        self,
        registry: ResourceRegistry,
        config: SandboxConfig | None = None,
        loader: ContextLoader | None = None,
    ) -> None:
        self._registry = registry
        self._config = config or SandboxConfig()
        self._loader = loader or _next_tick
        self._env = _get_environment()

    def render_document(self, module_handle: str, style_text: str, mount_version: int) -> str:
        template = self._env.get_template("frame.html.j2")
        return template.render(
            csp=FRAME_CSP,
            preset_version=PRESET_VERSION,
            preset_css=PRESET_CSS,
            style_text=style_text,
            runtime_script_url=self._config.runtime_script_url,
            dom_script_url=self._config.dom_script_url,
            module_handle=module_handle,
            mount_version=mount_version,
        )

    async def mount(
        self,
        module: LoadedModule,
        container: Element,
        *,
        mount_version: int,
        is_current: Callable[[], bool],
    ) -> SandboxSession | None:
        session = SandboxSession(mount_version, container, self._registry)
        try:
            module_handle = session.mint(module.module_text, "text/javascript")
            document = self.render_document(module_handle, module.style_text, mount_version)
            document_handle = session.mint(document, "text/html")

            frame = Element(
                "iframe",
                {
                    "src": document_handle,
                    "sandbox": FRAME_SANDBOX,
                    "referrerpolicy": "no-referrer",
                    "title": "Interactive lesson",
                    "data-lf-mount": str(mount_version),
                    "style": f"width:100%;height:{self._config.frame_height_px}px;border:0",
                },
            )
            session.root = session.attach(container, frame)

            await self._loader(frame)
        except BaseException:
            session.dispose()
            raise

        if not is_current():
            logger.debug("Frame mount %d superseded while loading", mount_version)
            session.dispose()
            return None
        return session


class ShadowIsolation:
    """Mount into a shadow root on the host element.

    The versioned preset stylesheet goes in first, then the lesson style,
    then the host containers and a module bootstrap script.

    Old and new mounts share the shadow root until the old session is
    disposed, so every host container carries its mount version and the
    bootstrap selects by version, never by id. The container's
    `data-lf-mount` marker names the newest live mount and is removed once
    no mount is live.
    """

    name = "shadow"

    def __init__(self, registry: ResourceRegistry, loader: ContextLoader | None = None) -> None:
        self._registry = registry
        self._loader = loader or _next_tick
        self._env = _get_environment()
        self._live: weakref.WeakKeyDictionary[Element, set[int]] = weakref.WeakKeyDictionary()

    def render_bootstrap(self, module_handle: str, mount_version: int) -> str:
        template = self._env.get_template("shadow_bootstrap.js.j2")
        return template.render(
            mount_selector=f'[data-lf-mount="{mount_version}"]',
            host_selector=f'[data-lf-version="{mount_version}"]',
            module_handle=module_handle,
            mount_version=mount_version,
        )

    async def mount(
        self,
        module: LoadedModule,
        container: Element,
        *,
        mount_version: int,
        is_current: Callable[[], bool],
    ) -> SandboxSession | None:
        shadow = container.attach_shadow()
        session = SandboxSession(mount_version, container, self._registry)
        try:
            module_handle = session.mint(module.module_text, "text/javascript")
            session.attach(
                shadow, Element("style", {"data-lf-preset": PRESET_VERSION}, text=PRESET_CSS)
            )
            session.attach(shadow, Element("style", {"data-lf-bundle": ""}, text=module.style_text))
            session.root = session.attach(
                shadow, Element("div", {"id": "lf-host", "data-lf-version": str(mount_version)})
            )
            session.attach(
                shadow,
                Element("div", {"id": "lf-portal-root", "data-lf-version": str(mount_version)}),
            )
            self._mark(container, mount_version, session)
            script = session.attach(
                shadow,
                Element(
                    "script",
                    {"type": "module"},
                    text=self.render_bootstrap(module_handle, mount_version),
                ),
            )

            await self._loader(script)
        except BaseException:
            session.dispose()
            raise

        if not is_current():
            logger.debug("Shadow mount %d superseded while loading", mount_version)
            session.dispose()
            return None
        return session

    def _mark(self, container: Element, mount_version: int, session: SandboxSession) -> None:
        live = self._live.setdefault(container, set())
        live.add(mount_version)
        container.attributes["data-lf-mount"] = str(mount_version)
        session.on_dispose(lambda: self._unmark(container, mount_version))

    def _unmark(self, container: Element, mount_version: int) -> None:
        live = self._live.get(container, set())
        live.discard(mount_version)
        if live:
            container.attributes["data-lf-mount"] = str(max(live))
        else:
            container.attributes.pop("data-lf-mount", None)


def select_isolation(
    config: SandboxConfig,
    registry: ResourceRegistry,
    loader: ContextLoader | None = None,
) -> IsolationStrategy:
    """Pick the isolation strategy named in the sandbox config."""
    if config.isolation == "shadow":
        return ShadowIsolation(registry, loader)
    return FrameIsolation(registry, config, loader)
