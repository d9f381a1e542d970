"""
calculations.py — The single weighted-average pipeline.

Every report (individual view, class report card, historical report, pivot
table) goes through these functions:

  truncate            → 2-decimal truncation, never rounding
  sub_period_average  → mean of raw scores in one sub-period, truncated
  period_roll_up      → weighted sub-period averages → period average
  general_average     → sum of period contributions, truncated once

Weighted contributions are carried at full precision and only the final sum
is truncated. Pure functions, no I/O and no shared state.
"""

import math
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

DECIMALS = 2
# Binary noise left after scaling (8.8 * 100 == 879.9999999999999) is
# removed at this precision before flooring.
_SCALE_PRECISION = 9


def truncate(value: float, decimals: int = DECIMALS) -> float:
    """
    Drop digits beyond `decimals` (7.999 -> 7.99), never rounding up.

    The scaled value is first rounded to `_SCALE_PRECISION` places, so an
    input less than 0.5e-9 / 10**decimals below a boundary (5e-12 for two
    decimals) lands on that boundary: truncate(7.999999999999) == 8.0.
    The result therefore never exceeds `value` by more than that bound.
    """
    factor = 10 ** decimals
    return math.floor(round(value * factor, _SCALE_PRECISION)) / factor


# ── Typed aggregates ────────────────────────────────────────────────

@dataclass(frozen=True)
class SubPeriodAverage:
    sub_period_id: str
    name: str
    average: float
    weight: float
    period_id: Optional[str] = None
    order: int = 0

    @property
    def weighted_contribution(self) -> float:
        return self.average * (self.weight / 100)


@dataclass(frozen=True)
class PeriodAverage:
    period_id: str
    name: str
    average: float
    weight: float
    weighted_contribution: float
    minimum_score: Optional[float] = None
    is_supplementary: bool = False
    order: int = 0
    sub_periods: Tuple[SubPeriodAverage, ...] = field(default_factory=tuple)


# ── Pipeline ────────────────────────────────────────────────────────

def _valid(value) -> bool:
    if value is None:
        return False
    try:
        return not math.isnan(float(value))
    except (TypeError, ValueError):
        return False


def sub_period_average(scores: Iterable[float]) -> Optional[float]:
    """Truncated arithmetic mean; None when there is nothing to average."""
    values = [float(s) for s in scores if _valid(s)]
    if not values:
        return None
    return truncate(sum(values) / len(values))


def period_roll_up(
    sub_averages: Sequence[Tuple[float, Optional[float]]],
    period_weight: float,
) -> Tuple[float, float]:
    """
    Combine (sub-period average, sub-period weight) pairs into a period.

    Normalises against the weights actually present, so sub-periods
    without grades must simply be left out. Missing or zero weights add
    nothing to the denominator. Returns (period_average, contribution);
    the contribution is deliberately left untruncated.
    """
    weighted_sum = 0.0
    weight_sum = 0.0
    for average, weight in sub_averages:
        if average is None:
            continue
        w = float(weight or 0)
        weighted_sum += average * (w / 100)
        weight_sum += w / 100

    average = weighted_sum / weight_sum if weight_sum > 0 else 0
    average = truncate(average)
    contribution = average * (float(period_weight or 0) / 100)
    return average, contribution


def general_average(contributions: Iterable[Optional[float]]) -> Optional[float]:
    """Truncated sum of period contributions; None when no period was graded."""
    present = [c for c in contributions if c is not None]
    if not present:
        return None
    return truncate(sum(present))


def build_period_average(
    period_id: str,
    name: str,
    sub_periods: Sequence[SubPeriodAverage],
    weight: float,
    minimum_score: Optional[float] = None,
    is_supplementary: bool = False,
    order: int = 0,
) -> Optional[PeriodAverage]:
    """Roll typed sub-period averages up into a PeriodAverage (None if empty)."""
    if not sub_periods:
        return None
    average, contribution = period_roll_up(
        [(sp.average, sp.weight) for sp in sub_periods], weight
    )
    return PeriodAverage(
        period_id=period_id,
        name=name,
        average=average,
        weight=weight,
        weighted_contribution=0.0 if is_supplementary else contribution,
        minimum_score=minimum_score,
        is_supplementary=is_supplementary,
        order=order,
        sub_periods=tuple(sub_periods),
    )


def general_average_from_periods(periods: Iterable[PeriodAverage]) -> Optional[float]:
    """General average over regular periods only."""
    return general_average(
        p.weighted_contribution for p in periods if not p.is_supplementary
    )


def overall_average(subject_averages: Iterable[Optional[float]]) -> Optional[float]:
    """Mean of subject general averages, skipping subjects with no grades."""
    present = [a for a in subject_averages if _valid(a)]
    if not present:
        return None
    return truncate(sum(present) / len(present))


def is_passing(
    general: Optional[float],
    periods: Iterable[PeriodAverage],
    default_minimum: float = 7.0,
) -> Optional[bool]:
    """Compare against the weighted minimums of the regular periods present."""
    if general is None:
        return None
    threshold = 0.0
    for p in periods:
        if p.is_supplementary:
            continue
        minimum = p.minimum_score if p.minimum_score is not None else default_minimum
        threshold += minimum * (p.weight / 100)
    return general >= threshold


def order_periods(periods: Iterable[PeriodAverage]) -> List[PeriodAverage]:
    return sorted(periods, key=lambda p: (p.order, str(p.period_id)))
