"""
Tests for grade-scale parsing and nearest-threshold equivalents.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.grade_scale import (
    GradeScale,
    get_scale_equivalent,
    parse_grade_scale,
    resolve_subject_scale,
    scale_thresholds,
)

SIMPLE = {0: "F", 5: "C", 7: "B", 10: "A"}


class TestParseGradeScale:

    def test_stored_form(self, grade_scale):
        scale = parse_grade_scale(grade_scale)
        assert scale.name == "Cualitativa"
        assert scale.scale_id == "GS1"
        assert scale.entries == ((0.0, "F"), (5.0, "C"), (7.0, "B"), (10.0, "A"))

    def test_entries_sorted_ascending(self):
        scale = parse_grade_scale({10: "A", 0: "F", 7: "B"})
        assert [t for t, _ in scale.entries] == [0.0, 7.0, 10.0]

    def test_list_of_pairs(self):
        scale = parse_grade_scale([("9", "Excelente"), ("7", "Bueno")])
        assert scale.entries == ((7.0, "Bueno"), (9.0, "Excelente"))

    def test_skips_non_numeric_thresholds(self):
        scale = parse_grade_scale({"x": "?", 5: "C"})
        assert scale.entries == ((5.0, "C"),)

    def test_none(self):
        assert parse_grade_scale(None) is None
        assert parse_grade_scale("not a scale") is None

    def test_already_parsed(self):
        scale = GradeScale(entries=((5.0, "C"),))
        assert parse_grade_scale(scale) is scale


class TestGetScaleEquivalent:

    def test_nearest_threshold(self):
        assert get_scale_equivalent(SIMPLE, 8.4) == "B"
        assert get_scale_equivalent(SIMPLE, 9.0) == "A"

    def test_above_highest(self):
        assert get_scale_equivalent(SIMPLE, 11) == "A"

    def test_below_lowest(self):
        assert get_scale_equivalent({5: "C", 7: "B"}, 1.0) == "C"

    def test_exact_match(self):
        assert get_scale_equivalent(SIMPLE, 7.0) == "B"
        assert get_scale_equivalent(SIMPLE, 0) == "F"

    def test_tie_goes_to_lower_threshold(self):
        assert get_scale_equivalent(SIMPLE, 6.0) == "C"

    def test_stored_form(self, grade_scale):
        assert get_scale_equivalent(grade_scale, 7.18) == "B"

    @pytest.mark.parametrize("average", [None, float("nan"), "n/a"])
    def test_no_average(self, average):
        assert get_scale_equivalent(SIMPLE, average) is None

    def test_no_scale(self):
        assert get_scale_equivalent(None, 8.0) is None
        assert get_scale_equivalent({}, 8.0) is None


class TestScaleThresholds:

    def test_bands(self):
        rows = scale_thresholds(SIMPLE)
        assert rows[0] == {"min": 0.0, "max": 4.99, "label": "F"}
        assert rows[2] == {"min": 7.0, "max": 9.99, "label": "B"}
        assert rows[-1] == {"min": 10.0, "max": None, "label": "A"}

    def test_no_scale(self):
        assert scale_thresholds(None) == []


class TestResolveSubjectScale:

    def test_scale_for_subject(self, grade_scale):
        scale = resolve_subject_scale({"M1": grade_scale}, "M1")
        assert scale.name == "Cualitativa"

    def test_subject_without_scale(self, grade_scale):
        assert resolve_subject_scale({"M1": grade_scale}, "L1") is None
        assert resolve_subject_scale(None, "M1") is None
