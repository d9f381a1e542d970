"""
averages.py — Per-subject averaging over normalised grade rows.

Groups one student's rows for one subject by sub-period and period, runs
them through core.calculations and shapes the result into the structure
every renderer consumes:

  {
    "promediosSubPeriodo": {subPeriodId: {nombre, promedio, promedioPonderado, ponderacion, ...}},
    "promediosPeriodo":    {periodId:    {nombre, promedio, promedioPonderado, ponderacion, ...}},
    "promedioGeneral": float | None,
    "equivalenteGeneral": str | None,
  }
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from core.calculations import (
    PeriodAverage,
    SubPeriodAverage,
    build_period_average,
    general_average_from_periods,
    order_periods,
    sub_period_average,
)
from core.grade_scale import get_scale_equivalent


# ── Helpers ─────────────────────────────────────────────────────────

def sanitize(obj):
    """Recursively coerce numpy/pandas scalars to JSON-safe Python types."""
    if isinstance(obj, dict):
        return {k: sanitize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [sanitize(v) for v in obj]
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, (np.floating, float)):
        v = float(obj)
        return None if (np.isnan(v) or np.isinf(v)) else v
    if isinstance(obj, pd.Timestamp):
        return None if pd.isna(obj) else obj.isoformat()
    if obj is pd.NaT:
        return None
    return obj


def _str_or_none(value: Any) -> Optional[str]:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    return str(value)


@dataclass(frozen=True)
class SubjectBreakdown:
    """Typed averages of one student in one subject."""
    sub_periods: Tuple[SubPeriodAverage, ...] = field(default_factory=tuple)
    periods: Tuple[PeriodAverage, ...] = field(default_factory=tuple)
    general_average: Optional[float] = None


# ── Pipeline over rows ──────────────────────────────────────────────

def compute_sub_period_averages(df: pd.DataFrame) -> List[SubPeriodAverage]:
    """One SubPeriodAverage per sub-period that has at least one score."""
    graded = df[df["sub_period_id"].notna()]
    averages = []
    for sub_id, group in graded.groupby("sub_period_id", sort=False):
        average = sub_period_average(group["score"].tolist())
        if average is None:
            continue
        first = group.iloc[0]
        averages.append(SubPeriodAverage(
            sub_period_id=str(sub_id),
            name=_str_or_none(first["sub_period_name"]) or str(sub_id),
            average=average,
            weight=float(first["sub_period_weight"] or 0),
            period_id=_str_or_none(first["period_id"]),
            order=int(first["sub_period_order"]),
        ))
    averages.sort(key=lambda s: (s.order, s.sub_period_id))
    return averages


def compute_period_averages(
    df: pd.DataFrame, sub_averages: List[SubPeriodAverage]
) -> List[PeriodAverage]:
    """Roll sub-period averages up into their periods, in period order."""
    with_period = df[df["period_id"].notna() & df["sub_period_id"].notna()]
    if with_period.empty:
        return []
    meta = with_period.drop_duplicates("period_id")
    periods = []
    for _, row in meta.iterrows():
        period_id = str(row["period_id"])
        subs = [s for s in sub_averages if s.period_id == period_id]
        period = build_period_average(
            period_id=period_id,
            name=_str_or_none(row["period_name"]) or period_id,
            sub_periods=subs,
            weight=float(row["period_weight"]),
            minimum_score=float(row["period_min_score"]),
            is_supplementary=bool(row["is_supplementary"]),
            order=int(row["period_order"]),
        )
        if period is not None:
            periods.append(period)
    return order_periods(periods)


def compute_subject_breakdown(df: pd.DataFrame) -> SubjectBreakdown:
    """Sub-period → period → general average for one student/subject."""
    if df.empty:
        return SubjectBreakdown()
    subs = compute_sub_period_averages(df)
    periods = compute_period_averages(df, subs)
    return SubjectBreakdown(
        sub_periods=tuple(subs),
        periods=tuple(periods),
        general_average=general_average_from_periods(periods),
    )


# ── Outbound shape ──────────────────────────────────────────────────

def _ordered_sub_periods(breakdown: SubjectBreakdown) -> List[SubPeriodAverage]:
    period_rank = {p.period_id: i for i, p in enumerate(breakdown.periods)}
    return sorted(
        breakdown.sub_periods,
        key=lambda s: (period_rank.get(s.period_id, len(period_rank)), s.order, s.sub_period_id),
    )


def breakdown_to_dict(
    breakdown: SubjectBreakdown,
    scale: Any = None,
    with_equivalents: bool = False,
) -> Dict[str, Any]:
    """Shape a SubjectBreakdown into the renderer structure."""
    sub_entries: Dict[str, Dict[str, Any]] = {}
    for sub in _ordered_sub_periods(breakdown):
        entry = {
            "nombre": sub.name,
            "promedio": sub.average,
            "promedioPonderado": sub.weighted_contribution,
            "ponderacion": sub.weight,
            "periodoId": sub.period_id,
        }
        if with_equivalents:
            entry["equivalente"] = get_scale_equivalent(scale, sub.average)
        sub_entries[sub.sub_period_id] = entry

    period_entries: Dict[str, Dict[str, Any]] = {}
    for period in breakdown.periods:
        entry = {
            "nombre": period.name,
            "promedio": period.average,
            "promedioPonderado": period.weighted_contribution,
            "ponderacion": period.weight,
            "calificacionMinima": period.minimum_score,
            "esSupletorio": period.is_supplementary,
        }
        if with_equivalents:
            entry["equivalente"] = get_scale_equivalent(scale, period.average)
        period_entries[period.period_id] = entry

    return sanitize({
        "promediosSubPeriodo": sub_entries,
        "promediosPeriodo": period_entries,
        "promedioGeneral": breakdown.general_average,
        "equivalenteGeneral": get_scale_equivalent(scale, breakdown.general_average),
    })


def compute_subject_averages(
    df: pd.DataFrame,
    scale: Any = None,
    with_equivalents: bool = False,
) -> Dict[str, Any]:
    """Outbound averages structure for one student's rows of one subject."""
    return breakdown_to_dict(compute_subject_breakdown(df), scale, with_equivalents)


def empty_subject_averages() -> Dict[str, Any]:
    return {
        "promediosSubPeriodo": {},
        "promediosPeriodo": {},
        "promedioGeneral": None,
        "equivalenteGeneral": None,
    }
