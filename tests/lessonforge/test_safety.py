"""Tests for the safety linter."""

import pytest

from lessonforge import safety
from lessonforge.models import SafetyRule


def _rules(source: str) -> list[SafetyRule]:
    return [issue.rule for issue in safety.check(source)]


class TestRules:
    """Each rule on its own."""

    @pytest.mark.parametrize(
        ("source", "rule"),
        [
            ('fetch("/api/data")', SafetyRule.NETWORK_FETCH),
            ("window.fetch (url)", SafetyRule.NETWORK_FETCH),
            ("eval('1 + 1')", SafetyRule.EVAL_USE),
            ("const f = new Function('return 1');", SafetyRule.DYNAMIC_FUNCTION),
            ("const xhr = new XMLHttpRequest();", SafetyRule.RAW_TRANSPORT),
            ("const ws = new WebSocket(url);", SafetyRule.RAW_TRANSPORT),
            ("new EventSource(stream)", SafetyRule.RAW_TRANSPORT),
            ("navigator.sendBeacon(url, data)", SafetyRule.RAW_TRANSPORT),
        ],
    )
    def test_detects(self, source: str, rule: SafetyRule) -> None:
        assert _rules(source) == [rule]

    def test_url_import_also_reports_external_url(self) -> None:
        rules = _rules("import confetti from 'https://cdn.example.com/confetti.js';")
        assert rules == [SafetyRule.URL_IMPORT, SafetyRule.EXTERNAL_URL]

    def test_dynamic_url_import(self) -> None:
        rules = _rules("const mod = await import('https://cdn.example.com/x.js');")
        assert SafetyRule.URL_IMPORT in rules

    def test_external_url_in_image(self) -> None:
        issues = safety.check('<img src="http://example.com/cat.png" />')
        assert [issue.rule for issue in issues] == [SafetyRule.EXTERNAL_URL]

    @pytest.mark.parametrize(
        "source",
        [
            "const prefetchData = () => 1;",
            "const refetch = true;",
            "const evaluate = (x) => x;",
            "function MyFunction() {}",
            "const evalScore = 3;",
            "import React from 'react';",
            "const link = '/lessons/next';",
        ],
    )
    def test_ignores_lookalikes(self, source: str) -> None:
        assert safety.check(source) == []


class TestNamespaceAllowList:
    """SVG and friends carry namespace URIs that are never fetched."""

    def test_svg_namespace_allowed(self) -> None:
        source = '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 10 10"></svg>'
        assert safety.check(source) == []

    def test_xlink_namespace_allowed(self) -> None:
        source = '<svg xmlnsXlink="http://www.w3.org/1999/xlink"></svg>'
        assert safety.is_safe(source)

    def test_namespace_prefix_is_not_enough(self) -> None:
        source = '<img src="http://www.w3.org/2000/svg-logo.png" />'
        assert _rules(source) == [SafetyRule.EXTERNAL_URL]

    def test_allowed_namespace_does_not_hide_later_url(self) -> None:
        source = (
            '<svg xmlns="http://www.w3.org/2000/svg"></svg>\n'
            '<a href="https://evil.example.com">x</a>'
        )
        issues = safety.check(source)
        assert len(issues) == 1
        assert issues[0].rule == SafetyRule.EXTERNAL_URL
        assert issues[0].line == 2


class TestReporting:
    def test_multiple_rules_in_table_order(self) -> None:
        source = "eval(code);\nfetch(url);\n"
        assert _rules(source) == [SafetyRule.NETWORK_FETCH, SafetyRule.EVAL_USE]

    def test_first_occurrence_line_and_snippet(self) -> None:
        source = "const a = 1;\n\n  const data = fetch('/x');\nfetch('/y');\n"
        (issue,) = safety.check(source)
        assert issue.line == 3
        assert issue.snippet == "const data = fetch('/x');"
        assert issue.severity == "block"

    def test_issue_string(self) -> None:
        (issue,) = safety.check("eval(x)")
        assert str(issue) == "[eval-use] line 1: eval is forbidden"

    def test_format_issues(self) -> None:
        lines = safety.format_issues(safety.check("eval(x)\nfetch(y)"))
        assert lines == [
            "[network-fetch] line 2: Network calls are not allowed",
            "[eval-use] line 1: eval is forbidden",
        ]

    def test_clean_source(self, valid_source: str) -> None:
        assert safety.check(valid_source) == []
        assert safety.is_safe(valid_source)


class TestOversized:
    def test_oversized_reported_alone(self) -> None:
        source = "fetch(x);\n" + "a" * safety.MAX_SOURCE_BYTES
        issues = safety.check(source)
        assert [issue.rule for issue in issues] == [SafetyRule.OVERSIZED_PAYLOAD]
        assert str(safety.MAX_SOURCE_BYTES) in issues[0].message
        assert issues[0].line is None

    def test_limit_counts_bytes_not_characters(self) -> None:
        # Two bytes per character in UTF-8.
        source = "é" * (safety.MAX_SOURCE_BYTES // 2 + 1)
        assert _rules(source) == [SafetyRule.OVERSIZED_PAYLOAD]

    def test_exactly_at_limit_is_scanned(self) -> None:
        source = "a" * safety.MAX_SOURCE_BYTES
        assert safety.check(source) == []
