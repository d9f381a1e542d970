"""
Tests for the weighted-average pipeline: truncation, sub-period means,
period roll-up and the general average.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.calculations import (
    PeriodAverage,
    SubPeriodAverage,
    build_period_average,
    general_average,
    general_average_from_periods,
    is_passing,
    order_periods,
    overall_average,
    period_roll_up,
    sub_period_average,
    truncate,
)

# Largest amount truncate() may exceed its input by, at two decimals
NOISE_BOUND = 5e-12


class TestTruncate:
    """Truncation drops digits, it never rounds."""

    def test_drops_third_decimal(self):
        assert truncate(7.999) == 7.99

    def test_never_rounds_up(self):
        assert truncate(8.996) == 8.99
        assert truncate(5.875) == 5.87

    def test_exact_values_unchanged(self):
        assert truncate(8.0) == 8.0
        assert truncate(8.8) == 8.8
        assert truncate(0.0) == 0.0

    def test_custom_decimals(self):
        assert truncate(1.23456, 3) == 1.234

    def test_stays_within_a_cent_below_input(self):
        for i in range(0, 701):
            x = i / 7
            t = truncate(x)
            assert t <= x + NOISE_BOUND
            assert x - t < 0.01
            assert round(t, 2) == t

    def test_values_within_noise_bound_land_on_the_boundary(self):
        # 1e-12 below 8.0 is inside the 5e-12 bound, 1e-8 below is not
        assert truncate(7.999999999999) == 8.0
        assert truncate(7.999999999999) - 7.999999999999 <= NOISE_BOUND
        assert truncate(7.99999999) == 7.99


class TestSubPeriodAverage:

    def test_mean_of_scores(self):
        assert sub_period_average([8, 9, 10]) == 9.0

    def test_mean_is_truncated(self):
        assert sub_period_average([7, 7, 8]) == 7.33

    def test_no_scores(self):
        assert sub_period_average([]) is None

    def test_non_numeric_scores_ignored(self):
        assert sub_period_average([8, None, float("nan"), "x", 9]) == 8.5


class TestPeriodRollUp:

    def test_weighted_example(self):
        average, contribution = period_roll_up([(8.5, 40), (9.0, 60)], 100)
        assert average == 8.8
        assert contribution == pytest.approx(8.8)

    def test_normalises_against_present_weights(self):
        # Only one of two sub-periods graded: its average is the period's
        average, contribution = period_roll_up([(8.0, 40), (None, 60)], 50)
        assert average == 8.0
        assert contribution == pytest.approx(4.0)

    def test_zero_weights_give_zero(self):
        assert period_roll_up([(8.0, 0), (9.0, None)], 100) == (0.0, 0.0)

    def test_contribution_is_not_truncated(self):
        average, contribution = period_roll_up([(5.87, 100)], 50)
        assert average == 5.87
        assert contribution == pytest.approx(2.935)

    def test_period_average_is_truncated(self):
        average, _ = period_roll_up([(6.5, 75), (4.0, 25)], 50)
        assert average == 5.87


class TestGeneralAverage:

    def test_sum_of_contributions(self):
        assert general_average([4.25, 2.935]) == 7.18

    def test_truncated_once_at_the_end(self):
        # Truncating each 3.125 first would give 6.24
        assert general_average([3.125, 3.125]) == 6.25

    def test_no_periods(self):
        assert general_average([]) is None
        assert general_average([None, None]) is None

    def test_graded_zero_is_not_missing(self):
        assert general_average([0.0]) == 0.0


class TestBuildPeriodAverage:

    def _subs(self):
        return [
            SubPeriodAverage("S1A", "Tareas", 9.0, 75, period_id="P1", order=1),
            SubPeriodAverage("S1B", "Examen", 7.0, 25, period_id="P1", order=2),
        ]

    def test_regular_period(self):
        period = build_period_average("P1", "Primer Trimestre", self._subs(), 50, minimum_score=7.0)
        assert period.average == 8.5
        assert period.weighted_contribution == pytest.approx(4.25)
        assert len(period.sub_periods) == 2

    def test_empty_period(self):
        assert build_period_average("P1", "Primer Trimestre", [], 50) is None

    def test_supplementary_period_contributes_nothing(self):
        period = build_period_average("PS", "Supletorio", self._subs(), 50, is_supplementary=True)
        assert period.average == 8.5
        assert period.weighted_contribution == 0.0

    def test_general_ignores_supplementary_periods(self):
        regular = PeriodAverage("P1", "Primer", 8.0, 100, 8.0)
        supplementary = PeriodAverage("PS", "Supletorio", 10.0, 100, 10.0, is_supplementary=True)
        assert general_average_from_periods([regular, supplementary]) == 8.0

    def test_sub_period_contribution(self):
        sub = SubPeriodAverage("S1A", "Tareas", 9.0, 75)
        assert sub.weighted_contribution == pytest.approx(6.75)


class TestOverallAverage:

    def test_mean_of_subjects(self):
        assert overall_average([7.18, 5.0]) == 6.09

    def test_skips_subjects_without_grades(self):
        assert overall_average([8.0, None, 6.0]) == 7.0

    def test_nothing_graded(self):
        assert overall_average([None, None]) is None
        assert overall_average([]) is None


class TestIsPassing:

    def _periods(self):
        return [
            PeriodAverage("P1", "Primer", 8.5, 50, 4.25, minimum_score=7.0),
            PeriodAverage("P2", "Segundo", 5.87, 50, 2.935, minimum_score=7.0),
            PeriodAverage("PS", "Supletorio", 9.0, 0, 0.0, minimum_score=7.0, is_supplementary=True),
        ]

    def test_above_weighted_minimum(self):
        assert is_passing(7.18, self._periods()) is True

    def test_below_weighted_minimum(self):
        assert is_passing(6.99, self._periods()) is False

    def test_equal_to_minimum_passes(self):
        assert is_passing(7.0, self._periods()) is True

    def test_default_minimum_used_when_unset(self):
        periods = [PeriodAverage("P1", "Primer", 6.0, 100, 6.0)]
        assert is_passing(6.0, periods, default_minimum=6.0) is True
        assert is_passing(6.0, periods, default_minimum=7.0) is False

    def test_no_average(self):
        assert is_passing(None, self._periods()) is None


class TestOrderPeriods:

    def test_by_order_then_id(self):
        periods = [
            PeriodAverage("B", "b", 1.0, 50, 0.5, order=2),
            PeriodAverage("C", "c", 1.0, 50, 0.5, order=1),
            PeriodAverage("A", "a", 1.0, 50, 0.5, order=2),
        ]
        assert [p.period_id for p in order_periods(periods)] == ["C", "A", "B"]
