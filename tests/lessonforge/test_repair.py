"""Tests for deterministic repair."""

import pytest

from lessonforge.compiler import CompileService
from lessonforge.errors import CompileSyntaxError
from lessonforge.repair import RULES, RepairEngine, repair


@pytest.fixture
def engine() -> RepairEngine:
    return RepairEngine()


def _compile_errors(source: str) -> list[str]:
    with pytest.raises(CompileSyntaxError) as exc_info:
        CompileService().compile(source)
    return exc_info.value.errors


class TestHostGlobalBinding:
    def test_prepends_binding(self, engine: RepairEngine, unbound_hook_source: str) -> None:
        patch = engine.propose(unbound_hook_source, _compile_errors(unbound_hook_source))
        assert patch is not None
        assert patch.rules == ["host-global-binding"]
        assert patch.source == "const { useReducer } = React;\n" + unbound_hook_source

    def test_repaired_source_compiles(self, engine: RepairEngine, unbound_hook_source: str) -> None:
        patch = engine.propose(unbound_hook_source, _compile_errors(unbound_hook_source))
        module_text = CompileService().compile(patch.source).module_text
        assert "const { useReducer } = React;" in module_text

    def test_idempotent(self, engine: RepairEngine, unbound_hook_source: str) -> None:
        errors = ["Line 2:24: Cannot find name 'useReducer'."]
        once = repair(unbound_hook_source, errors)
        assert repair(once, errors) == once
        assert engine.propose(once, errors) is None

    def test_merges_into_existing_binding(self, engine: RepairEngine) -> None:
        source = "const { useId } = React;\nexport default function A() { return memo(B); }\n"
        patch = engine.propose(source, ["Line 2:38: Cannot find name 'memo'."])
        assert patch is not None
        assert patch.source == (
            "const { useId, memo } = React;\nexport default function A() { return memo(B); }\n"
        )

    def test_sorted_and_deduplicated(self, engine: RepairEngine) -> None:
        errors = [
            "Line 1:1: Cannot find name 'useId'.",
            "Line 2:1: Cannot find name 'memo'.",
            "Line 3:1: Cannot find name 'useId'.",
        ]
        patch = engine.propose("x\n", errors)
        assert patch.source.splitlines()[0] == "const { memo, useId } = React;"

    def test_unknown_names_ignored(self, engine: RepairEngine) -> None:
        assert engine.propose("x\n", ["Line 1:1: Cannot find name 'lodash'."]) is None

    def test_banner_names_ignored(self, engine: RepairEngine) -> None:
        assert engine.propose("x\n", ["Line 1:1: Cannot find name 'useState'."]) is None


class TestMarkdownFence:
    def test_strips_fence_and_prose(self, engine: RepairEngine, valid_source: str) -> None:
        wrapped = "Here is your lesson:\n\n```tsx\n" + valid_source + "```\n\nEnjoy!\n"
        patch = engine.propose(wrapped, _compile_errors(wrapped))
        assert patch is not None
        assert patch.rules[0] == "strip-markdown-fence"
        assert patch.source == valid_source

    def test_fully_fenced_response(self, engine: RepairEngine, valid_source: str) -> None:
        wrapped = "```tsx\n" + valid_source + "```"
        patch = engine.propose(wrapped, ["Module has no default export."])
        assert patch is not None
        assert patch.rules == ["strip-markdown-fence"]
        assert patch.source == valid_source

    def test_unterminated_fence(self, engine: RepairEngine) -> None:
        source = "```jsx\nexport default function A() { return null; }\n"
        patch = engine.propose(source, ["Line 1:1: Unexpected token '```jsx'"])
        assert patch.source == "export default function A() { return null; }\n"

    def test_no_fence(self, engine: RepairEngine) -> None:
        assert engine.propose("const x = ;\n", ["Line 1:11: Unexpected token ';'"]) is None


class TestMissingDefaultExport:
    def test_exports_last_component(self, engine: RepairEngine) -> None:
        source = "function Helper() {}\nconst Lesson = () => null;\n"
        patch = engine.propose(source, ["Module has no default export."])
        assert patch.rules == ["missing-default-export"]
        assert patch.source == source.rstrip() + "\n\nexport default Lesson;\n"

    def test_existing_default_export_untouched(self, engine: RepairEngine) -> None:
        source = "function Lesson() {}\nexport default Lesson;\n"
        assert engine.propose(source, ["Module has no default export."]) is None

    def test_no_candidate(self, engine: RepairEngine) -> None:
        assert engine.propose("const lower = 1;\n", ["Module has no default export."]) is None

    def test_repaired_source_compiles(self, engine: RepairEngine) -> None:
        source = "function Lesson() {\n  return <p>Hi</p>;\n}\n"
        patch = engine.propose(source, _compile_errors(source))
        assert "export default Lesson;" in CompileService().compile(patch.source).module_text


class TestEngine:
    def test_rule_order(self) -> None:
        assert [rule.rule_id for rule in RULES] == [
            "strip-markdown-fence",
            "host-global-binding",
            "missing-default-export",
        ]

    def test_no_errors(self, engine: RepairEngine, valid_source: str) -> None:
        assert engine.propose(valid_source, []) is None
        assert repair(valid_source, []) == valid_source
