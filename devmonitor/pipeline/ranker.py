"""Severity Ranker: priority scores, fixability and grouping for diagnostics."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Callable, Optional

from devmonitor.models import (
    Diagnostic,
    DiagnosticCategory,
    FixCapability,
    RankedDiagnostic,
    Severity,
)

ERROR_BASE_PRIORITY = 50
WARNING_BASE_PRIORITY = 25
BLOCKING_BOOST = 10           # build failures and syntax errors stop the dev server
WARNING_PENALTY = 20
DEFAULT_PRIORITY = 50


@dataclass(frozen=True)
class RankingRule:
    """Per-category scoring, fixability and grouping."""

    priorities: tuple[tuple[re.Pattern[str], int], ...]
    auto_fixable: tuple[re.Pattern[str], ...]
    group_key: Callable[[Diagnostic], str]
    suggest: Optional[Callable[[Diagnostic], str]] = field(default=None)


def _p(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)


def suggest_typescript_fix(diagnostic: Diagnostic) -> str:
    message = diagnostic.message
    if "Cannot find module" in message:
        match = re.search(r"Cannot find module '([^']+)'", message)
        if match:
            return f"Install missing module: npm install {match.group(1)}"
    if "Property" in message and "does not exist" in message:
        return "Check property name spelling or add property to type definition"
    if "is not assignable to type" in message:
        return "Fix type mismatch by updating type annotations or value"
    if "Missing return statement" in message:
        return "Add return statement or change function return type to void"
    return "Review TypeScript error and fix type-related issues"


def suggest_eslint_fix(diagnostic: Diagnostic) -> str:
    message = diagnostic.message
    if "Missing semicolon" in message:
        return "Add semicolon at end of statement"
    if "is not defined" in message:
        return "Import the undefined variable or check spelling"
    if "Trailing comma" in message:
        return "Remove or add trailing comma according to ESLint config"
    if "Expected indentation" in message:
        return "Fix indentation to match ESLint configuration"
    return "Run ESLint auto-fix: eslint --fix"


def suggest_import_fix(diagnostic: Diagnostic) -> str:
    match = re.search(r"Can't resolve '([^']+)'", diagnostic.message)
    if "Module not found" in diagnostic.message and match:
        module = match.group(1)
        if module.startswith(("./", "../")):
            return f"Check file path: {module} exists and spelling is correct"
        return f"Install missing package: npm install {module}"
    return "Fix import path or install missing dependency"


def _first_token(message: str) -> str:
    parts = message.split()
    return parts[0].rstrip(":") if parts else "unknown"


RULES: dict[DiagnosticCategory, RankingRule] = {
    DiagnosticCategory.TYPESCRIPT: RankingRule(
        priorities=(
            (_p(r"Cannot find module|Module .+ not found"), 90),
            (_p(r"Property .+ does not exist"), 80),
            (_p(r"Type .+ is not assignable to type"), 70),
            (_p(r"Missing return statement"), 60),
            (_p(r"Unused variable|is declared but (?:its value is )?never (?:read|used)"), 30),
        ),
        auto_fixable=(
            _p(r"Cannot find module"),
            _p(r"Unused variable"),
            _p(r"Missing return statement in function"),
            _p(r"Property .+ does not exist on type .+ Did you mean"),
        ),
        group_key=lambda d: f"ts-{d.code or 'unknown'}",
        suggest=suggest_typescript_fix,
    ),
    DiagnosticCategory.ESLINT: RankingRule(
        priorities=(
            (_p(r"is not defined"), 85),
            (_p(r"Unexpected token"), 80),
            (_p(r"Missing semicolon"), 20),
            (_p(r"Trailing comma"), 15),
            (_p(r"Expected indentation"), 10),
        ),
        auto_fixable=(
            _p(r"Missing semicolon"),
            _p(r"Trailing comma"),
            _p(r"Expected indentation"),
            _p(r"Missing space"),
            _p(r"Quotes must be"),
        ),
        group_key=lambda d: f"eslint-{d.rule or 'unknown'}",
        suggest=suggest_eslint_fix,
    ),
    DiagnosticCategory.BUILD: RankingRule(
        priorities=(
            (_p(r"Failed to compile"), 95),
            (_p(r"Module build failed"), 90),
            (_p(r"SyntaxError"), 85),
            (_p(r"ReferenceError"), 80),
        ),
        auto_fixable=(
            _p(r"Missing dependency"),
            _p(r"Incorrect file extension"),
        ),
        group_key=lambda d: f"build-{d.location.file}",
    ),
    DiagnosticCategory.RUNTIME: RankingRule(
        priorities=(
            (_p(r"TypeError"), 85),
            (_p(r"ReferenceError"), 80),
            (_p(r"Cannot read propert(?:y|ies)"), 75),
            (_p(r"is not a function"), 70),
        ),
        auto_fixable=(),
        group_key=lambda d: f"runtime-{_first_token(d.message)}",
    ),
    DiagnosticCategory.IMPORT: RankingRule(
        priorities=(
            (_p(r"Module not found"), 90),
            (_p(r"Cannot resolve"), 85),
            (_p(r"Invalid import"), 80),
        ),
        auto_fixable=(
            _p(r"Module not found"),
            _p(r"Cannot resolve"),
        ),
        group_key=lambda d: f"import-{d.location.file}",
        suggest=suggest_import_fix,
    ),
    DiagnosticCategory.SYNTAX: RankingRule(
        priorities=(
            (_p(r"Unexpected token"), 95),
            (_p(r"Missing"), 80),
            (_p(r"Expected"), 75),
        ),
        auto_fixable=(
            _p(r"Missing semicolon"),
            _p(r"Missing comma"),
        ),
        group_key=lambda d: f"syntax-{d.location.file}-{d.location.line}",
    ),
}


class SeverityRanker:
    """Assigns priority, auto-fixability and group keys; relates group members."""

    def __init__(self, rules: Optional[dict[DiagnosticCategory, RankingRule]] = None) -> None:
        self._rules = RULES if rules is None else rules

    def rank(self, diagnostic: Diagnostic) -> RankedDiagnostic:
        rule = self._rules.get(diagnostic.category)
        if rule is None:
            return RankedDiagnostic.from_diagnostic(
                diagnostic,
                priority=DEFAULT_PRIORITY,
                auto_fixable=diagnostic.capability == FixCapability.AUTO_FIXABLE,
            )

        return RankedDiagnostic.from_diagnostic(
            diagnostic,
            priority=self.priority(diagnostic, rule),
            group_key=rule.group_key(diagnostic),
            auto_fixable=self._is_auto_fixable(diagnostic, rule),
            suggested_fix=rule.suggest(diagnostic) if rule.suggest else None,
        )

    def rank_all(self, diagnostics: list[Diagnostic]) -> list[RankedDiagnostic]:
        """Rank, link group members to each other, and sort by descending priority."""
        ranked = [self.rank(d) for d in diagnostics]

        groups: dict[str, list[int]] = {}
        for index, item in enumerate(ranked):
            if item.group_key:
                groups.setdefault(item.group_key, []).append(index)

        for members in groups.values():
            if len(members) < 2:
                continue
            ids = [ranked[i].id for i in members]
            for i in members:
                own = ranked[i].id
                ranked[i] = replace(ranked[i], related_ids=tuple(x for x in ids if x != own))

        # sorted() is stable, so equal priorities keep input order
        return sorted(ranked, key=lambda d: d.priority, reverse=True)

    @staticmethod
    def priority(diagnostic: Diagnostic, rule: RankingRule) -> int:
        score = ERROR_BASE_PRIORITY if diagnostic.severity == Severity.ERROR else WARNING_BASE_PRIORITY

        for pattern, value in rule.priorities:
            if pattern.search(diagnostic.message):
                score = max(score, value)
                break

        if diagnostic.category in (DiagnosticCategory.BUILD, DiagnosticCategory.SYNTAX):
            score += BLOCKING_BOOST
        if diagnostic.severity == Severity.WARNING:
            score -= WARNING_PENALTY

        return min(100, max(1, score))

    @staticmethod
    def _is_auto_fixable(diagnostic: Diagnostic, rule: RankingRule) -> bool:
        if diagnostic.capability == FixCapability.AUTO_FIXABLE:
            return True
        return any(p.search(diagnostic.message) for p in rule.auto_fixable)
