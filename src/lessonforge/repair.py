"""Deterministic repair of common compile failures.

Rules are keyed on diagnostic text, not on re-analysing the source. Each rule
either returns a full replacement source or leaves the source unchanged; an
unchanged result tells the orchestrator to escalate to a fix-request.
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass

from lessonforge.compiler.host import (
    BANNER_NAMES,
    HOST_LIBRARY_MEMBERS,
    HOST_OBJECT,
    binding_statement,
)
from lessonforge.models import RepairPatch

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"```[^\n]*\n(.*?)(?:```|\Z)", re.DOTALL)
_BINDING_LINE = re.compile(r"const \{ ([\w$, ]*) \} = " + HOST_OBJECT + r";")
_COMPONENT_DECLARATION = re.compile(
    r"^(?:export\s+)?(?:async\s+)?function\s*\*?\s*([A-Z][\w$]*)"
    r"|^(?:export\s+)?(?:const|let|var|class)\s+([A-Z][\w$]*)",
    re.MULTILINE,
)
_DEFAULT_EXPORT = re.compile(r"^\s*export\s+default\b", re.MULTILINE)


@dataclass(frozen=True)
class RepairRule:
    """One mechanical fix.

    Attributes:
        rule_id: Stable identifier reported in RepairPatch.rules
        trigger: Regex searched in each diagnostic message
        fix: Called with the source and every trigger match; returns new source
    """

    rule_id: str
    trigger: re.Pattern[str]
    fix: Callable[[str, list[re.Match[str]]], str]


def _strip_markdown_fence(source: str, matches: list[re.Match[str]]) -> str:
    fence = _FENCE.search(source)
    if fence is None:
        return source
    body = fence.group(1).strip("\n")
    return body + "\n" if body else source


def _bind_host_members(source: str, matches: list[re.Match[str]]) -> str:
    wanted = []
    for match in matches:
        name = match.group(1)
        if name in HOST_LIBRARY_MEMBERS and name not in BANNER_NAMES and name not in wanted:
            wanted.append(name)
    if not wanted:
        return source

    first_line, newline, rest = source.partition("\n")
    existing = _BINDING_LINE.fullmatch(first_line.strip())
    if existing is None:
        return binding_statement(sorted(wanted)) + "\n" + source

    bound = [name.strip() for name in existing.group(1).split(",") if name.strip()]
    missing = sorted(name for name in wanted if name not in bound)
    if not missing:
        return source
    return binding_statement(bound + missing) + newline + rest


def _add_default_export(source: str, matches: list[re.Match[str]]) -> str:
    if _DEFAULT_EXPORT.search(source):
        return source
    candidates = [m.group(1) or m.group(2) for m in _COMPONENT_DECLARATION.finditer(source)]
    if not candidates:
        return source
    return source.rstrip() + f"\n\nexport default {candidates[-1]};\n"


RULES: tuple[RepairRule, ...] = (
    RepairRule(
        "strip-markdown-fence",
        # A fully fenced response parses as chained template literals, so the
        # only diagnostic is the missing default export.
        re.compile(r"^Line \d+:\d+: (?:Unexpected token|Missing) |has no default export"),
        _strip_markdown_fence,
    ),
    RepairRule(
        "host-global-binding",
        re.compile(r"Cannot find name '([A-Za-z_$][\w$]*)'"),
        _bind_host_members,
    ),
    RepairRule(
        "missing-default-export",
        re.compile(r"has no default export"),
        _add_default_export,
    ),
)


class RepairEngine:
    """Apply the rule table to a source and its diagnostics."""

    def __init__(self, rules: tuple[RepairRule, ...] = RULES) -> None:
        self._rules = rules

    def propose(self, source: str, errors: list[str]) -> RepairPatch | None:
        """Apply every rule whose trigger matches a diagnostic.

        Args:
            source: Source that failed to compile
            errors: Diagnostic messages from the compile service

        Returns:
            RepairPatch with the replacement source, or None when no rule
            changed anything
        """
        current = source
        applied = []
        for rule in self._rules:
            matches = [m for error in errors if (m := rule.trigger.search(error))]
            if not matches:
                continue
            updated = rule.fix(current, matches)
            if updated != current:
                applied.append(rule.rule_id)
                current = updated

        if not applied:
            logger.debug("No repair rule applies to %d error(s)", len(errors))
            return None

        logger.info("Repaired source with rules: %s", ", ".join(applied))
        return RepairPatch(source=current, rules=applied)


def repair(source: str, errors: list[str]) -> str:
    """Return the repaired source, or the input unchanged when no rule applies."""
    patch = RepairEngine().propose(source, errors)
    return patch.source if patch is not None else source
