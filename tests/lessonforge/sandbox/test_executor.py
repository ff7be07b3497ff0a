"""Tests for the sandbox executor and isolation strategies."""

import asyncio

import httpx
import pytest

from lessonforge.compiler import compile_source
from lessonforge.config import SandboxConfig
from lessonforge.errors import SafetyViolation, SandboxRuntimeError
from lessonforge.models import BundleDescriptor, Lesson, integrity_digest
from lessonforge.sandbox import (
    Element,
    FrameIsolation,
    HttpModuleFetcher,
    RepositoryModuleFetcher,
    ResourceRegistry,
    SandboxExecutor,
    ShadowIsolation,
    select_isolation,
)
from lessonforge.sandbox.isolation import FRAME_SANDBOX
from lessonforge.sandbox.preset import PRESET_VERSION


class DictFetcher:
    """Module fetcher backed by a dict of module_ref -> text."""

    def __init__(self, modules: dict[str, str]) -> None:
        self.modules = modules

    async def fetch(self, bundle: BundleDescriptor) -> str:
        try:
            return self.modules[bundle.module_ref]
        except KeyError:
            raise SandboxRuntimeError(f"No module at {bundle.module_ref}") from None


class GatedLoader:
    """Context loader whose Nth call (the first by default) waits until released."""

    def __init__(self, gated_call: int = 1) -> None:
        self.gated_call = gated_call
        self.gate = asyncio.Event()
        self.started = asyncio.Event()
        self.calls = 0

    async def __call__(self, element: Element) -> None:
        self.calls += 1
        if self.calls == self.gated_call:
            self.started.set()
            await self.gate.wait()


def _bundle(ref: str, module_text: str, style_text: str = "") -> BundleDescriptor:
    return BundleDescriptor(
        module_ref=ref, style_text=style_text, integrity=integrity_digest(module_text)
    )


@pytest.fixture
def module_text(valid_source: str) -> str:
    return compile_source(valid_source).module_text


@pytest.fixture
def registry() -> ResourceRegistry:
    return ResourceRegistry()


@pytest.fixture
def host() -> Element:
    page = Element("body")
    return page.append(Element("div", {"id": "lesson"}))


class TestFrameMount:
    @pytest.mark.asyncio
    async def test_mount_attaches_sandboxed_frame(self, host, registry, module_text) -> None:
        executor = SandboxExecutor(
            host, FrameIsolation(registry), DictFetcher({"/m/a": module_text})
        )

        session = await executor.mount(_bundle("/m/a", module_text))

        assert session is not None
        frame = host.find("iframe")
        assert frame is not None
        assert frame.attributes["sandbox"] == FRAME_SANDBOX
        assert "allow-top-navigation" not in frame.attributes["sandbox"]
        assert frame.attributes["data-lf-mount"] == "1"
        assert registry.media_type(frame.attributes["src"]) == "text/html"
        assert len(registry) == 2
        assert executor.last_error is None

    @pytest.mark.asyncio
    async def test_document_contents(self, host, registry, module_text) -> None:
        executor = SandboxExecutor(
            host, FrameIsolation(registry), DictFetcher({"/m/a": module_text})
        )
        session = await executor.mount(_bundle("/m/a", module_text, "#lf-host { color: red; }"))

        document = registry.read(session.root.attributes["src"])
        module_handle = session.handles[0]
        assert registry.read(module_handle) == module_text
        assert f'import("{module_handle}")' in document
        assert "connect-src 'none'" in document
        assert f'data-lf-preset="{PRESET_VERSION}"' in document
        assert "#lf-host { color: red; }" in document
        assert document.index("data-lf-preset") < document.index("data-lf-bundle")
        assert '["fetch", "XMLHttpRequest", "WebSocket", "EventSource"]' in document
        assert "lessonforge:error" in document

    def test_style_cannot_close_its_tag(self, registry) -> None:
        document = FrameIsolation(registry).render_document(
            "blob:lessonforge/x", "</style><script>alert(1)</script>", 1
        )
        assert "</style><script>alert(1)" not in document


class TestShadowMount:
    @pytest.mark.asyncio
    async def test_preset_injected_first(self, host, registry, module_text) -> None:
        executor = SandboxExecutor(
            host, ShadowIsolation(registry), DictFetcher({"/m/a": module_text})
        )

        await executor.mount(_bundle("/m/a", module_text, "#lf-host { font-size: 18px; }"))

        children = host.shadow_root.children
        assert children[0].tag == "style"
        assert children[0].attributes == {"data-lf-preset": PRESET_VERSION}
        assert children[1].attributes == {"data-lf-bundle": ""}
        assert children[1].text == "#lf-host { font-size: 18px; }"
        assert host.find("div", id="lf-host").attributes["data-lf-version"] == "1"
        assert host.find("div", id="lf-portal-root") is not None
        assert host.attributes["data-lf-mount"] == "1"

    @pytest.mark.asyncio
    async def test_bootstrap_targets_mount(self, host, registry, module_text) -> None:
        executor = SandboxExecutor(
            host, ShadowIsolation(registry), DictFetcher({"/m/a": module_text})
        )
        session = await executor.mount(_bundle("/m/a", module_text))

        script = host.find("script", type="module")
        assert '[data-lf-mount=\\"1\\"]' in script.text
        assert session.handles[0] in script.text

    @pytest.mark.asyncio
    async def test_remount_bootstrap_selects_its_own_host(
        self, host, registry, module_text
    ) -> None:
        seen: list[list[str]] = []

        def lesson_hosts() -> list[Element]:
            return [e for e in host.find_all("div") if e.attributes.get("id") == "lf-host"]

        async def recording_loader(script: Element) -> None:
            seen.append([e.attributes["data-lf-version"] for e in lesson_hosts()])

        executor = SandboxExecutor(
            host,
            ShadowIsolation(registry, loader=recording_loader),
            DictFetcher({"/m/a": module_text}),
        )
        await executor.mount(_bundle("/m/a", module_text))
        await executor.mount(_bundle("/m/a", module_text))

        assert seen == [["1"], ["1", "2"]]
        (script,) = host.find_all("script")
        assert '[data-lf-version=\\"2\\"]' in script.text
        assert "getElementById" not in script.text
        (current,) = lesson_hosts()
        assert current.attributes["data-lf-version"] == "2"
        assert current.is_connected

    @pytest.mark.asyncio
    async def test_unmount_clears_mount_marker(self, host, registry, module_text) -> None:
        executor = SandboxExecutor(
            host, ShadowIsolation(registry), DictFetcher({"/m/a": module_text})
        )
        await executor.mount(_bundle("/m/a", module_text))

        executor.unmount()
        await asyncio.sleep(0)

        assert "data-lf-mount" not in host.attributes
        assert host.shadow_root.children == []

    @pytest.mark.asyncio
    async def test_superseded_mount_keeps_live_marker(self, host, registry, module_text) -> None:
        loader = GatedLoader(gated_call=2)
        executor = SandboxExecutor(
            host, ShadowIsolation(registry, loader=loader), DictFetcher({"/m/a": module_text})
        )
        await executor.mount(_bundle("/m/a", module_text))
        stale = asyncio.create_task(executor.mount(_bundle("/m/a", module_text)))
        await loader.started.wait()
        latest = await executor.mount(_bundle("/m/a", module_text))
        loader.gate.set()

        assert await stale is None
        assert latest.mount_version == 3
        assert host.attributes["data-lf-mount"] == "3"
        versions = {
            e.attributes["data-lf-version"]
            for e in host.shadow_root.children
            if "data-lf-version" in e.attributes
        }
        assert versions == {"3"}


class TestSupersession:
    """Rapid successive mounts: only the latest survives."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("strategy_class", [FrameIsolation, ShadowIsolation])
    async def test_stale_mount_releases_everything(
        self, host, registry, module_text, strategy_class
    ) -> None:
        loader = GatedLoader()
        fetcher = DictFetcher({"/m/a": module_text, "/m/b": module_text})
        executor = SandboxExecutor(host, strategy_class(registry, loader=loader), fetcher)

        first = asyncio.create_task(executor.mount(_bundle("/m/a", module_text)))
        await loader.started.wait()
        second = await executor.mount(_bundle("/m/b", module_text))
        loader.gate.set()
        stale = await first

        assert stale is None
        assert second is not None
        assert second.mount_version == 2
        assert executor.session is second
        assert registry.live == frozenset(second.handles)
        mounted = [element for element in host.iter() if "data-lf-mount" in element.attributes]
        assert [element.attributes["data-lf-mount"] for element in mounted] == ["2"]
        assert executor.last_error is None

    @pytest.mark.asyncio
    async def test_remount_disposes_previous(self, host, registry, module_text) -> None:
        fetcher = DictFetcher({"/m/a": module_text})
        executor = SandboxExecutor(host, FrameIsolation(registry), fetcher)

        first = await executor.mount(_bundle("/m/a", module_text))
        second = await executor.mount(_bundle("/m/a", module_text))

        assert first.disposed
        assert not second.disposed
        assert len(host.find_all("iframe")) == 1
        assert registry.live == frozenset(second.handles)


class TestUnmount:
    @pytest.mark.asyncio
    async def test_teardown_deferred_to_next_tick(self, host, registry, module_text) -> None:
        executor = SandboxExecutor(
            host, FrameIsolation(registry), DictFetcher({"/m/a": module_text})
        )
        session = await executor.mount(_bundle("/m/a", module_text))

        executor.unmount()

        assert executor.session is None
        assert not session.disposed
        await asyncio.sleep(0)
        assert session.disposed
        assert host.find("iframe") is None
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_unmount_cancels_in_flight_mount(self, host, registry, module_text) -> None:
        loader = GatedLoader()
        executor = SandboxExecutor(
            host, FrameIsolation(registry, loader=loader), DictFetcher({"/m/a": module_text})
        )

        pending = asyncio.create_task(executor.mount(_bundle("/m/a", module_text)))
        await loader.started.wait()
        executor.unmount()
        loader.gate.set()

        assert await pending is None
        assert len(registry) == 0
        assert host.find("iframe") is None


class TestContainment:
    """Failures render a diagnostic and never raise."""

    @pytest.mark.asyncio
    async def test_integrity_mismatch(self, host, registry, module_text) -> None:
        executor = SandboxExecutor(
            host, FrameIsolation(registry), DictFetcher({"/m/a": module_text + "// tampered\n"})
        )

        assert await executor.mount(_bundle("/m/a", module_text)) is None

        assert executor.last_error.message == "Module integrity check failed"
        assert executor.last_error.mount_version == 1
        diagnostic = host.find("div", role="alert")
        assert diagnostic.text == "Generated component error: Module integrity check failed"
        assert host.find("iframe") is None
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_unsafe_module_refused(self, host, registry) -> None:
        unsafe = "export default function A() { eval('1'); return null; }\n"
        executor = SandboxExecutor(host, ShadowIsolation(registry), DictFetcher({"/m/a": unsafe}))

        assert await executor.mount(_bundle("/m/a", unsafe)) is None

        assert isinstance(executor.last_error.cause, SafetyViolation)
        assert executor.last_error.message == "Safety check failed: eval-use"
        assert host.find("script") is None
        assert host.find("div", role="alert") is not None

    @pytest.mark.asyncio
    async def test_fetch_failure(self, host, registry, module_text) -> None:
        executor = SandboxExecutor(host, FrameIsolation(registry), DictFetcher({}))

        assert await executor.mount(_bundle("/m/missing", module_text)) is None
        assert executor.last_error.message == "No module at /m/missing"

    @pytest.mark.asyncio
    async def test_loader_failure_disposes_session(self, host, registry, module_text) -> None:
        async def broken_loader(element: Element) -> None:
            raise ValueError("frame crashed")

        executor = SandboxExecutor(
            host,
            FrameIsolation(registry, loader=broken_loader),
            DictFetcher({"/m/a": module_text}),
        )

        assert await executor.mount(_bundle("/m/a", module_text)) is None
        assert executor.last_error.message == "Mount failed: frame crashed"
        assert len(registry) == 0
        assert host.find("iframe") is None

    @pytest.mark.asyncio
    async def test_successful_mount_clears_diagnostic(self, host, registry, module_text) -> None:
        fetcher = DictFetcher({"/m/a": module_text})
        executor = SandboxExecutor(host, FrameIsolation(registry), fetcher)

        await executor.mount(_bundle("/m/a", "something else"))
        assert host.find("div", role="alert") is not None

        await executor.mount(_bundle("/m/a", module_text))
        assert host.find("div", role="alert") is None
        assert executor.last_error is None

    @pytest.mark.asyncio
    async def test_runtime_errors_from_stale_mounts_ignored(
        self, host, registry, module_text
    ) -> None:
        executor = SandboxExecutor(
            host, FrameIsolation(registry), DictFetcher({"/m/a": module_text})
        )
        await executor.mount(_bundle("/m/a", module_text))
        await executor.mount(_bundle("/m/a", module_text))

        executor.report_runtime_error(1, "old boom")
        assert executor.last_error is None

        executor.report_runtime_error(2, "boom")
        assert executor.last_error.message == "boom"


class TestFetchers:
    @pytest.mark.asyncio
    async def test_repository_fetcher(self, repository, module_text) -> None:
        await repository.create_lesson(Lesson(id="abc", title="Shapes", topic="Shapes"))
        await repository.add_content_version("abc", "src", module_text, "hash")
        fetcher = RepositoryModuleFetcher(repository)

        assert await fetcher.fetch(_bundle("/lessons/abc/module", module_text)) == module_text

        with pytest.raises(SandboxRuntimeError, match="Unrecognized module reference"):
            await fetcher.fetch(_bundle("/elsewhere", module_text))
        with pytest.raises(SandboxRuntimeError, match="No compiled module"):
            await fetcher.fetch(_bundle("/lessons/zzz/module", module_text))

    @pytest.mark.asyncio
    async def test_http_fetcher(self, module_text) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/lessons/abc/module":
                return httpx.Response(200, text=module_text)
            return httpx.Response(404)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            fetcher = HttpModuleFetcher("http://api.test/", client=client)
            assert await fetcher.fetch(_bundle("/lessons/abc/module", module_text)) == module_text
            with pytest.raises(SandboxRuntimeError, match="Module fetch failed"):
                await fetcher.fetch(_bundle("/lessons/zzz/module", module_text))


class TestSelectIsolation:
    def test_by_config(self, registry) -> None:
        assert select_isolation(SandboxConfig(), registry).name == "frame"
        assert select_isolation(SandboxConfig(isolation="shadow"), registry).name == "shadow"
