"""Tests for the severity ranker."""

from __future__ import annotations

import pytest

from devmonitor.models import DiagnosticCategory, FixCapability, Severity
from devmonitor.pipeline import LogClassifier, SeverityRanker


@pytest.fixture
def ranker() -> SeverityRanker:
    return SeverityRanker()


class TestPriority:
    """Tests for priority scoring."""

    def test_type_mismatch_example(self, ranker: SeverityRanker) -> None:
        diagnostic = LogClassifier().classify_line(
            "Button.tsx(10,15): error TS2322: Type 'string' is not assignable to type 'number'."
        )
        ranked = ranker.rank(diagnostic)
        assert ranked.priority == 70
        assert ranked.group_key == "ts-TS2322"
        assert ranked.suggested_fix == "Fix type mismatch by updating type annotations or value"

    def test_missing_module_scores_highest(self, ranker: SeverityRanker, make_diagnostic) -> None:
        ranked = ranker.rank(make_diagnostic("Cannot find module 'lodash'", code="TS2307"))
        assert ranked.priority == 90
        assert ranked.suggested_fix == "Install missing module: npm install lodash"

    def test_plain_error_and_warning_bases(self, ranker: SeverityRanker, make_diagnostic) -> None:
        error = ranker.rank(make_diagnostic("something odd", category=DiagnosticCategory.RUNTIME))
        warning = ranker.rank(make_diagnostic(
            "something odd", category=DiagnosticCategory.RUNTIME, severity=Severity.WARNING,
        ))
        assert error.priority == 50
        assert warning.priority == 5

    def test_blocking_categories_get_boost(self, ranker: SeverityRanker, make_diagnostic) -> None:
        ranked = ranker.rank(make_diagnostic("Failed to compile", category=DiagnosticCategory.BUILD))
        assert ranked.priority == 100

    def test_syntax_boost(self, ranker: SeverityRanker, make_diagnostic) -> None:
        ranked = ranker.rank(make_diagnostic("Unexpected token '<'", category=DiagnosticCategory.SYNTAX))
        assert ranked.priority == 100

    @pytest.mark.parametrize("category,message", [
        (DiagnosticCategory.TYPESCRIPT, "Property 'x' does not exist on type 'Y'"),
        (DiagnosticCategory.ESLINT, "Trailing comma"),
        (DiagnosticCategory.ESLINT, "'x' is not defined"),
        (DiagnosticCategory.BUILD, "Module build failed"),
        (DiagnosticCategory.RUNTIME, "TypeError: x is not a function"),
        (DiagnosticCategory.IMPORT, "Module not found: Can't resolve 'x'"),
        (DiagnosticCategory.SYNTAX, "Expected ';'"),
        (DiagnosticCategory.UNKNOWN, "boom"),
    ])
    def test_warning_never_outranks_error(
        self, ranker: SeverityRanker, make_diagnostic, category: DiagnosticCategory, message: str,
    ) -> None:
        error = ranker.rank(make_diagnostic(message, category=category))
        warning = ranker.rank(make_diagnostic(message, category=category, severity=Severity.WARNING))
        assert warning.priority <= error.priority
        assert 1 <= warning.priority <= 100
        assert 1 <= error.priority <= 100

    def test_trailing_comma_warning(self, ranker: SeverityRanker, make_diagnostic) -> None:
        ranked = ranker.rank(make_diagnostic(
            "Trailing comma", category=DiagnosticCategory.ESLINT, severity=Severity.WARNING,
        ))
        assert ranked.priority == 5


class TestFixabilityAndGroups:
    """Tests for auto-fixability and group keys."""

    def test_capability_tag_wins(self, ranker: SeverityRanker, make_diagnostic) -> None:
        ranked = ranker.rank(make_diagnostic("whatever", category=DiagnosticCategory.RUNTIME))
        assert ranked.auto_fixable

    def test_pattern_makes_fixable(self, ranker: SeverityRanker, make_diagnostic) -> None:
        ranked = ranker.rank(make_diagnostic(
            "Missing semicolon",
            category=DiagnosticCategory.ESLINT,
            capability=FixCapability.MANUAL_REQUIRED,
        ))
        assert ranked.auto_fixable

    def test_manual_runtime_not_fixable(self, ranker: SeverityRanker, make_diagnostic) -> None:
        ranked = ranker.rank(make_diagnostic(
            "TypeError: boom",
            category=DiagnosticCategory.RUNTIME,
            capability=FixCapability.MANUAL_REQUIRED,
        ))
        assert not ranked.auto_fixable
        assert ranked.group_key == "runtime-TypeError"

    def test_unknown_category_defaults(self, ranker: SeverityRanker, make_diagnostic) -> None:
        ranked = ranker.rank(make_diagnostic(
            "odd", category=DiagnosticCategory.UNKNOWN, severity=Severity.WARNING,
            capability=FixCapability.NO_FIX,
        ))
        assert ranked.priority == 50
        assert ranked.group_key is None
        assert not ranked.auto_fixable

    def test_missing_code_and_rule_map_to_unknown(self, ranker: SeverityRanker, make_diagnostic) -> None:
        assert ranker.rank(make_diagnostic("x")).group_key == "ts-unknown"
        assert ranker.rank(make_diagnostic("x", category=DiagnosticCategory.ESLINT)).group_key == "eslint-unknown"

    def test_syntax_group_by_file_and_line(self, ranker: SeverityRanker, make_diagnostic) -> None:
        ranked = ranker.rank(make_diagnostic(
            "Missing comma", category=DiagnosticCategory.SYNTAX, file="a.ts", line=4,
        ))
        assert ranked.group_key == "syntax-a.ts-4"


class TestRankAll:
    """Tests for batch ranking."""

    def test_related_ids_are_symmetric(self, ranker: SeverityRanker, make_diagnostic) -> None:
        a = make_diagnostic("Type 'a' is not assignable to type 'b'", code="TS2322", line=1)
        b = make_diagnostic("Type 'c' is not assignable to type 'd'", code="TS2322", line=2)
        c = make_diagnostic("Type 'e' is not assignable to type 'f'", code="TS2322", line=3)
        lone = make_diagnostic("Missing semicolon", category=DiagnosticCategory.ESLINT, rule="semi")

        ranked = {d.id: d for d in ranker.rank_all([a, b, lone, c])}
        for item in (a, b, c):
            others = {x.id for x in (a, b, c)} - {item.id}
            assert set(ranked[item.id].related_ids) == others
        assert ranked[lone.id].related_ids == ()

    def test_sorted_descending_and_stable(self, ranker: SeverityRanker, make_diagnostic) -> None:
        low = make_diagnostic(
            "Missing semicolon", category=DiagnosticCategory.ESLINT, rule="semi", severity=Severity.WARNING,
        )
        first = make_diagnostic("odd one", category=DiagnosticCategory.RUNTIME)
        high = make_diagnostic("Failed to compile", category=DiagnosticCategory.BUILD)
        second = make_diagnostic("odd two", category=DiagnosticCategory.RUNTIME)

        ordered = ranker.rank_all([low, first, high, second])
        assert [d.id for d in ordered] == [high.id, first.id, second.id, low.id]

    def test_empty_input(self, ranker: SeverityRanker) -> None:
        assert ranker.rank_all([]) == []
