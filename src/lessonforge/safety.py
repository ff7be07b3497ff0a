"""Static safety linter for generated component source.

A single rule table shared by the orchestrator (before persisting) and the
sandbox executor (before mounting). Every rule is a linear-time regex scan;
no pattern contains nested quantifiers.
"""

import re
from dataclasses import dataclass
from typing import Callable

from lessonforge.models import SafetyIssue, SafetyRule

MAX_SOURCE_BYTES = 200 * 1024

# Namespace URIs used for markup namespacing, never fetched.
ALLOWED_NAMESPACE_URIS = frozenset(
    {
        "http://www.w3.org/2000/svg",
        "http://www.w3.org/1999/xlink",
        "http://www.w3.org/XML/1998/namespace",
        "http://www.w3.org/1999/xhtml",
        "http://www.w3.org/1998/Math/MathML",
    }
)

_URL_PATTERN = re.compile(r"https?://[^\s'\"`<>)\]}]+")
_URL_TRAILING = ".,;:!?"
_SNIPPET_LIMIT = 200


@dataclass(frozen=True)
class SafetyCheck:
    """One forbidden pattern.

    Attributes:
        rule: Stable rule identifier
        pattern: Compiled regex searched across the whole source
        message: Human-readable explanation
        allow: Optional predicate; matches for which it returns True are ignored
    """

    rule: SafetyRule
    pattern: re.Pattern[str]
    message: str
    allow: Callable[[str], bool] | None = None


def _is_namespace_uri(match_text: str) -> bool:
    return match_text.rstrip(_URL_TRAILING) in ALLOWED_NAMESPACE_URIS


RULES: tuple[SafetyCheck, ...] = (
    SafetyCheck(
        SafetyRule.NETWORK_FETCH,
        re.compile(r"\bfetch\s*\("),
        "Network calls are not allowed",
    ),
    SafetyCheck(
        SafetyRule.EVAL_USE,
        re.compile(r"\beval\s*\("),
        "eval is forbidden",
    ),
    SafetyCheck(
        SafetyRule.DYNAMIC_FUNCTION,
        re.compile(r"\bFunction\s*\("),
        "Dynamically constructed functions are not allowed",
    ),
    SafetyCheck(
        SafetyRule.RAW_TRANSPORT,
        re.compile(r"\b(?:XMLHttpRequest|WebSocket|EventSource|sendBeacon)\b"),
        "Low-level network transports are not allowed",
    ),
    SafetyCheck(
        SafetyRule.URL_IMPORT,
        re.compile(
            r"\bimport\s*\(\s*['\"`]https?:"
            r"|\bfrom\s*['\"]https?:"
            r"|\bimport\s*['\"]https?:"
        ),
        "Importing code from a URL is not allowed",
    ),
    SafetyCheck(
        SafetyRule.EXTERNAL_URL,
        _URL_PATTERN,
        "External URLs are not allowed",
        allow=_is_namespace_uri,
    ),
)


def _line_of(source: str, offset: int) -> tuple[int, str]:
    line_start = source.rfind("\n", 0, offset) + 1
    line_end = source.find("\n", offset)
    if line_end == -1:
        line_end = len(source)
    line_number = source.count("\n", 0, offset) + 1
    return line_number, source[line_start:line_end].strip()[:_SNIPPET_LIMIT]


def _first_violation(check: SafetyCheck, source: str) -> SafetyIssue | None:
    for match in check.pattern.finditer(source):
        if check.allow is not None and check.allow(match.group(0)):
            continue
        line, snippet = _line_of(source, match.start())
        return SafetyIssue(rule=check.rule, message=check.message, line=line, snippet=snippet)
    return None


def check(source: str) -> list[SafetyIssue]:
    """Scan source for forbidden capabilities.

    Reports at most one issue per rule (its first occurrence), in rule-table
    order. An oversized source is reported alone without scanning further.

    Args:
        source: Untrusted component source or compiled module text

    Returns:
        Blocking issues; empty when the source is clean
    """
    size = len(source.encode("utf-8"))
    if size > MAX_SOURCE_BYTES:
        return [
            SafetyIssue(
                rule=SafetyRule.OVERSIZED_PAYLOAD,
                message=f"Source is {size} bytes, limit is {MAX_SOURCE_BYTES}",
            )
        ]

    issues = []
    for rule_check in RULES:
        issue = _first_violation(rule_check, source)
        if issue is not None:
            issues.append(issue)
    return issues


def is_safe(source: str) -> bool:
    return not check(source)


def format_issues(issues: list[SafetyIssue]) -> list[str]:
    """Render issues as error lines for a fix-request prompt."""
    return [str(issue) for issue in issues]
