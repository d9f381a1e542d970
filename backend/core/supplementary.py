"""
supplementary.py — Make-up exam (supletorio) qualification and replacement.

A student's standing in a subject is evaluated against the regular periods
of the school year. The student qualifies for the supplementary exam when

    general average (regular periods) < sum of the regular periods' minimum scores

(strict comparison on the sum of minimums, not on a single minimum).
Once a supplementary score exists, every regular period whose average is
below its own minimum is replaced by that score, worst period first, and
the general average is recomputed with the usual single final truncation.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from core.averages import sanitize, compute_sub_period_averages, compute_subject_breakdown
from core.calculations import general_average, period_roll_up
from core.records import Period, filter_records

logger = logging.getLogger(__name__)


class SupplementaryNotAllowedError(ValueError):
    """A supplementary score was submitted for a student who does not qualify."""

    def __init__(self, general_average: Optional[float], minimum_sum: float, message: Optional[str] = None):
        self.general_average = general_average
        self.minimum_sum = minimum_sum
        if message is None:
            message = (
                "Student does not qualify for the supplementary exam: general average "
                f"{general_average} is not below the required minimum sum {minimum_sum}."
            )
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": str(self),
            "promedioGeneral": self.general_average,
            "sumaMinima": self.minimum_sum,
        }


@dataclass(frozen=True)
class PeriodStanding:
    """A regular period's average for one student/subject (None when ungraded)."""
    period_id: str
    name: str
    average: Optional[float]
    weight: float
    minimum_score: float
    order: int = 0

    @property
    def weighted_contribution(self) -> Optional[float]:
        if self.average is None:
            return None
        return self.average * (self.weight / 100)

    @property
    def is_failing(self) -> bool:
        return self.average is not None and self.average < self.minimum_score

    def to_dict(self) -> Dict[str, Any]:
        return {
            "periodoId": self.period_id,
            "periodoNombre": self.name,
            "promedio": self.average,
            "promedioPonderado": self.weighted_contribution,
            "ponderacion": self.weight,
            "calificacionMinima": self.minimum_score,
        }


@dataclass(frozen=True)
class Replacement:
    period_id: str
    name: str
    original_average: float
    replacement_score: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "periodoId": self.period_id,
            "periodoNombre": self.name,
            "promedioOriginal": self.original_average,
            "calificacionSupletorio": self.replacement_score,
        }


@dataclass(frozen=True)
class SupplementaryOutcome:
    general_average: Optional[float]
    original_general_average: Optional[float]
    supplementary_score: float
    replacements: Tuple[Replacement, ...] = field(default_factory=tuple)
    periods: Tuple[PeriodStanding, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        replaced = {r.period_id for r in self.replacements}
        return sanitize({
            "promedioFinal": self.general_average,
            "promedioOriginal": self.original_general_average,
            "calificacionSupletorio": self.supplementary_score,
            "reemplazos": [r.to_dict() for r in self.replacements],
            "periodos": [
                dict(p.to_dict(), reemplazadoPorSupletorio=p.period_id in replaced)
                for p in self.periods
            ],
        })


# ── Standing ────────────────────────────────────────────────────────

def regular_periods(periods: List[Period]) -> List[Period]:
    return [p for p in periods if not p.is_supplementary]


def minimum_score_sum(periods: List[Period]) -> float:
    """Sum of the minimum passing scores of every regular period."""
    return sum(p.minimum_score for p in regular_periods(periods))


def regular_period_averages(df: pd.DataFrame, periods: List[Period]) -> List[PeriodStanding]:
    """
    Per regular period standing for one student's rows of one subject.
    Periods without grades are kept with average None.
    """
    regular = regular_periods(periods)
    ids = {p.id for p in regular}
    rows = df[df["period_id"].isin(ids)] if not df.empty else df
    breakdown = compute_subject_breakdown(rows)
    by_id = {p.period_id: p for p in breakdown.periods}

    standings = []
    for period in regular:
        computed = by_id.get(period.id)
        standings.append(PeriodStanding(
            period_id=period.id,
            name=period.name,
            average=computed.average if computed else None,
            weight=period.weight,
            minimum_score=period.minimum_score,
            order=period.order,
        ))
    return standings


def standing_general_average(standings: List[PeriodStanding]) -> Optional[float]:
    return general_average(s.weighted_contribution for s in standings)


def qualifies_for_supplementary(general: Optional[float], minimum_sum: float) -> bool:
    """Strict comparison; a subject with no grades does not qualify."""
    return general is not None and general < minimum_sum


def lowest_period_averages(standings: List[PeriodStanding]) -> List[PeriodStanding]:
    """Periods below their own minimum, worst first."""
    failing = [s for s in standings if s.is_failing]
    return sorted(failing, key=lambda s: s.average)


# ── Replacement ─────────────────────────────────────────────────────

def apply_supplementary(standings: List[PeriodStanding], score: float) -> SupplementaryOutcome:
    """Replace every failing period with `score` and recompute the average."""
    score = float(score)
    adjusted = {s.period_id: s for s in standings}
    replacements = []
    for standing in lowest_period_averages(standings):
        replacements.append(Replacement(
            period_id=standing.period_id,
            name=standing.name,
            original_average=standing.average,
            replacement_score=score,
        ))
        adjusted[standing.period_id] = replace(standing, average=score)

    periods = [adjusted[s.period_id] for s in standings]
    return SupplementaryOutcome(
        general_average=standing_general_average(periods),
        original_general_average=standing_general_average(standings),
        supplementary_score=score,
        replacements=tuple(replacements),
        periods=tuple(periods),
    )


def supplementary_score(df: pd.DataFrame, periods: List[Period]) -> Optional[float]:
    """
    Score obtained in the supplementary period: its sub-period averages
    rolled up like any period. Without configured sub-period weights every
    sub-period counts equally.
    """
    ids = {p.id for p in periods if p.is_supplementary}
    if not ids or df.empty:
        return None
    subs = compute_sub_period_averages(df[df["period_id"].isin(ids)])
    if not subs:
        return None
    pairs = [(s.average, s.weight) for s in subs]
    if not any(w for _, w in pairs):
        pairs = [(a, 100.0) for a, _ in pairs]
    average, _ = period_roll_up(pairs, 100)
    return average


# ── Operations used by the routes and reports ───────────────────────

def evaluate_supplementary_status(
    df: pd.DataFrame,
    periods: List[Period],
    student_id: Any,
    subject_id: Any,
) -> Dict[str, Any]:
    """Qualification result with both figures and the failing periods."""
    rows = filter_records(df, student_id, subject_id)
    standings = regular_period_averages(rows, periods)
    general = standing_general_average(standings)
    minimum_sum = minimum_score_sum(periods)
    regular_count = len(regular_periods(periods))

    return sanitize({
        "estudianteId": str(student_id),
        "materiaId": str(subject_id),
        "qualifies": qualifies_for_supplementary(general, minimum_sum),
        "promedioGeneral": general,
        "sumaMinima": minimum_sum,
        "promedioMinimoPromedio": minimum_sum / regular_count if regular_count else None,
        "periodosBajos": [s.to_dict() for s in lowest_period_averages(standings)],
        "todosLosPeriodos": [s.to_dict() for s in standings],
    })


def ensure_supplementary_allowed(
    df: pd.DataFrame,
    periods: List[Period],
    student_id: Any,
    subject_id: Any,
) -> Dict[str, Any]:
    """Return the status, or raise SupplementaryNotAllowedError."""
    status = evaluate_supplementary_status(df, periods, student_id, subject_id)
    if not status["qualifies"]:
        logger.info(
            "Supplementary score rejected for student %s in subject %s (average=%s, minimum sum=%s)",
            student_id, subject_id, status["promedioGeneral"], status["sumaMinima"],
        )
        raise SupplementaryNotAllowedError(status["promedioGeneral"], status["sumaMinima"])
    return status


def record_supplementary(
    df: pd.DataFrame,
    periods: List[Period],
    student_id: Any,
    subject_id: Any,
    score: float,
) -> Dict[str, Any]:
    """Validate a new supplementary score and return the resulting outcome."""
    status = ensure_supplementary_allowed(df, periods, student_id, subject_id)
    rows = filter_records(df, student_id, subject_id)
    outcome = apply_supplementary(regular_period_averages(rows, periods), score)
    result = outcome.to_dict()
    result["sumaMinima"] = status["sumaMinima"]
    return result


def supplementary_outcome(df: pd.DataFrame, periods: List[Period]) -> Optional[SupplementaryOutcome]:
    """
    Outcome for one student's rows of one subject, when a supplementary
    score has been recorded and the student qualifies.
    """
    score = supplementary_score(df, periods)
    if score is None:
        return None
    standings = regular_period_averages(df, periods)
    general = standing_general_average(standings)
    if not qualifies_for_supplementary(general, minimum_score_sum(periods)):
        return None
    return apply_supplementary(standings, score)


def find_eligible_students(
    df: pd.DataFrame,
    periods: List[Period],
    subject_id: Any,
) -> Dict[str, Any]:
    """Every student with grades in the subject who qualifies."""
    subject_rows = filter_records(df, subject_id=subject_id)
    eligible = []
    for student_id, group in subject_rows.groupby("student_id", sort=True):
        status = evaluate_supplementary_status(group, periods, student_id, subject_id)
        if not status["qualifies"]:
            continue
        names = group["student_name"].dropna()
        eligible.append({
            "estudiante": {
                "id": str(student_id),
                "nombre": str(names.iloc[0]) if not names.empty else None,
            },
            "promedioGeneral": status["promedioGeneral"],
            "sumaMinima": status["sumaMinima"],
            "promedioMinimoPromedio": status["promedioMinimoPromedio"],
            "periodosBajos": status["periodosBajos"],
        })

    return sanitize({
        "data": eligible,
        "total": len(eligible),
        "sumaMinima": minimum_score_sum(periods),
    })
