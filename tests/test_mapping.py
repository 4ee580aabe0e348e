"""Tests for record field mapping and the XP formula evaluator."""

import pytest

from questlog.integrations.mapping import (
    FormulaError,
    compile_formula,
    estimate_xp,
    evaluate_formula,
    resolve_path,
)
from questlog.errors import ValidationError
from questlog.models.constants import MAX_ESTIMATED_XP


RECORD = {
    "id": "evt-1",
    "summary": "Standup",
    "start": {"dateTime": "2026-02-01T09:00:00Z"},
    "duration": 45,
    "priority": "high",
    "tags": [{"name": "work"}, {"name": "daily"}],
    "done": False,
}


class TestResolvePath:
    def test_top_level_and_nested(self):
        assert resolve_path(RECORD, "summary") == "Standup"
        assert resolve_path(RECORD, "start.dateTime") == "2026-02-01T09:00:00Z"

    def test_list_index(self):
        assert resolve_path(RECORD, "tags.1.name") == "daily"

    @pytest.mark.parametrize("path", ["missing", "start.missing", "tags.5.name", "summary.length", "", None])
    def test_missing_segments_yield_none(self, path):
        assert resolve_path(RECORD, path) is None

    def test_falsy_values_are_returned(self):
        assert resolve_path(RECORD, "done") is False


class TestEvaluateFormula:
    @pytest.mark.parametrize("formula,expected", [
        ("25", 25),
        ("duration * 2", 90),
        ("duration / 60 * 3", 2.25),
        ("duration % 10", 5),
        ("-duration + 100", 55),
        ("(duration + 15) * 2", 120),
        ("floor(duration / 60 * 100)", 75),
        ("Math.floor(duration / 60) * 3", 0),
        ("Math.ceil(duration / 60) * 3", 3),
        ("round(2.5)", 3),
        ("max(duration, 60)", 60),
        ("min(duration, 60, 30)", 30),
        ("abs(10 - duration)", 35),
        ("duration > 30 ? 50 : 10", 50),
        ("priority == 'high' ? 40 : 20", 40),
        ("priority === \"low\" ? 40 : 20", 20),
        ("duration >= 45 && priority != 'low' ? 1 : 0", 1),
        ("!done || duration < 10 ? 7 : 3", 7),
        ("true ? 5 : 6", 5),
    ])
    def test_grammar(self, formula, expected):
        assert evaluate_formula(formula, RECORD) == expected

    def test_nested_path_in_formula(self):
        record = {"stats": {"minutes": 30}}
        assert evaluate_formula("stats.minutes * 2", record) == 60

    @pytest.mark.parametrize("formula", [
        "duration *",
        "(duration + 1",
        "duration ? 1",
        "__import__('os')",
        "duration; 1",
        "open(1)",
        "1 2",
    ])
    def test_syntax_errors(self, formula):
        with pytest.raises(FormulaError):
            compile_formula(formula)

    def test_formula_error_is_a_validation_error(self):
        with pytest.raises(ValidationError):
            compile_formula("")

    def test_overlong_formula_is_rejected(self):
        with pytest.raises(FormulaError):
            compile_formula("1 + " * 100 + "1")

    def test_missing_field(self):
        with pytest.raises(FormulaError):
            evaluate_formula("missing * 2", RECORD)

    def test_division_by_zero(self):
        with pytest.raises(FormulaError):
            evaluate_formula("duration / 0", RECORD)

    def test_compiled_formula_is_reusable(self):
        formula = compile_formula("minutes * 2")
        assert formula({"minutes": 1}) == 2
        assert formula({"minutes": 5}) == 10


class TestEstimateXp:
    def test_constant(self):
        assert estimate_xp(30, RECORD) == 30

    def test_formula(self):
        assert estimate_xp("duration * 2", RECORD) == 90

    def test_rounds_half_up(self):
        assert estimate_xp("duration / 10", RECORD) == 5  # 4.5

    def test_never_negative(self):
        assert estimate_xp("0 - duration", RECORD) == 0

    def test_missing_formula_uses_default(self):
        assert estimate_xp(None, RECORD) == 25
        assert estimate_xp("  ", RECORD, default=10) == 10

    @pytest.mark.parametrize("formula", ["missing * 2", "duration *", "duration / 0", "priority * 2"])
    def test_failures_fall_back_to_default(self, formula):
        assert estimate_xp(formula, RECORD) == 25

    @pytest.mark.parametrize("value", [10**400, float("inf"), float("nan")])
    def test_unrepresentable_values_fall_back_to_default(self, value):
        assert estimate_xp("points", {"points": value}) == 25
        assert estimate_xp(value, RECORD) == 25

    def test_overflowing_arithmetic_falls_back_to_default(self):
        assert estimate_xp("points * points", {"points": 1e300}) == 25

    def test_large_values_are_capped(self):
        assert estimate_xp("points", {"points": 10**20}) == MAX_ESTIMATED_XP
        assert estimate_xp(MAX_ESTIMATED_XP + 1, RECORD) == MAX_ESTIMATED_XP
