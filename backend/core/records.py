"""
records.py — Inbound record normalisation.

The persistence layer hands over grade records as nested JSON. A record
reaches its sub-period either directly ("subPeriodo") or through the task
it was graded on ("insumo" → "subPeriodo"); both paths are flattened into
one DataFrame row so the averaging code never has to care which one was
used.

Handles:
- Field aliases (Spanish camelCase names and English snake_case)
- Sub-period resolution: embedded, via task, or by id against a catalogue
- Period catalogue parsing (weights, minimum scores, supplementary flag)
- Score coercion (non-numeric scores are dropped)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

DEFAULT_MINIMUM_SCORE = 7.0
DEFAULT_PERIOD_WEIGHT = 100.0

FIELD_ALIASES = {
    "id": ["id", "grade_id"],
    "score": ["calificacion", "score", "grade", "value"],
    "student_id": ["estudianteId", "student_id", "studentId"],
    "student": ["estudiante", "student"],
    "subject_id": ["materiaId", "subject_id", "subjectId"],
    "subject": ["materia", "subject"],
    "sub_period_id": ["subPeriodoId", "sub_period_id", "subPeriodId"],
    "sub_period": ["subPeriodo", "sub_period", "subPeriod"],
    "period_id": ["periodoId", "period_id", "periodId"],
    "period": ["periodo", "period"],
    "sub_periods": ["subPeriodos", "sub_periods", "subPeriods"],
    "task_id": ["insumoId", "task_id", "taskId"],
    "task": ["insumo", "task"],
    "partial": ["parcial", "partial"],
    "recorded_at": ["fechaRegistro", "recorded_at", "recordedAt"],
    "name": ["nombre", "name", "titulo"],
    "last_name": ["apellido", "last_name"],
    "order": ["orden", "order"],
    "weight": ["ponderacion", "weight"],
    "minimum_score": ["calificacionMinima", "minimum_score", "minScore"],
    "is_supplementary": ["esSupletorio", "is_supplementary", "isSupplementary"],
}

COLUMNS = [
    "grade_id", "student_id", "student_name", "subject_id", "subject_name",
    "score", "sub_period_id", "sub_period_name", "sub_period_order",
    "sub_period_weight", "period_id", "period_name", "period_order",
    "period_weight", "period_min_score", "is_supplementary", "task_id",
    "task_name", "task_order", "partial", "recorded_at",
]


# ── Catalogue types ─────────────────────────────────────────────────

@dataclass(frozen=True)
class SubPeriod:
    id: str
    name: str
    weight: float
    order: int = 0
    period_id: Optional[str] = None


@dataclass(frozen=True)
class Period:
    id: str
    name: str
    weight: float
    minimum_score: float
    is_supplementary: bool = False
    order: int = 0
    sub_periods: Tuple[SubPeriod, ...] = field(default_factory=tuple)

    @property
    def sub_period_ids(self) -> List[str]:
        return [sp.id for sp in self.sub_periods]


# ── Helpers ─────────────────────────────────────────────────────────

def _pick(obj: Any, key: str) -> Any:
    """Return the first alias of `key` present in `obj`."""
    if not isinstance(obj, dict):
        return None
    for alias in FIELD_ALIASES[key]:
        if alias in obj and obj[alias] is not None:
            return obj[alias]
    return None


def _id(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def to_number(value: Any) -> Optional[float]:
    try:
        v = float(value)
    except (TypeError, ValueError):
        return None
    return None if np.isnan(v) or np.isinf(v) else v


def _order(value: Any, fallback: int = 999) -> int:
    v = to_number(value)
    return int(v) if v is not None else fallback


def _bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "si", "sí"}
    return bool(value)


def _period_weight(value: Any, default: float) -> float:
    # Missing means "not configured"; an explicit 0 is kept.
    v = to_number(value)
    return default if v is None else v


# ── Period catalogue ────────────────────────────────────────────────

def parse_period(
    raw: Dict[str, Any],
    default_period_weight: float = DEFAULT_PERIOD_WEIGHT,
    default_minimum: float = DEFAULT_MINIMUM_SCORE,
) -> Optional[Period]:
    period_id = _id(_pick(raw, "id"))
    if period_id is None:
        return None
    minimum = to_number(_pick(raw, "minimum_score"))
    subs = []
    for sub in _pick(raw, "sub_periods") or []:
        sub_id = _id(_pick(sub, "id"))
        if sub_id is None:
            continue
        subs.append(SubPeriod(
            id=sub_id,
            name=str(_pick(sub, "name") or sub_id),
            weight=to_number(_pick(sub, "weight")) or 0.0,
            order=_order(_pick(sub, "order")),
            period_id=period_id,
        ))
    subs.sort(key=lambda s: (s.order, s.id))
    return Period(
        id=period_id,
        name=str(_pick(raw, "name") or period_id),
        weight=_period_weight(_pick(raw, "weight"), default_period_weight),
        minimum_score=default_minimum if minimum is None else minimum,
        is_supplementary=_bool(_pick(raw, "is_supplementary")),
        order=_order(_pick(raw, "order")),
        sub_periods=tuple(subs),
    )


def parse_periods(
    raw_periods: Optional[Iterable[Dict[str, Any]]],
    default_period_weight: float = DEFAULT_PERIOD_WEIGHT,
    default_minimum: float = DEFAULT_MINIMUM_SCORE,
) -> List[Period]:
    """Parse a period catalogue, ordered by `orden` then id."""
    periods = []
    for raw in raw_periods or []:
        if isinstance(raw, Period):
            periods.append(raw)
            continue
        period = parse_period(raw, default_period_weight, default_minimum)
        if period is None:
            logger.debug("Skipping period without id: %r", raw)
            continue
        periods.append(period)
    periods.sort(key=lambda p: (p.order, p.id))
    return periods


def _catalogue_index(periods: List[Period]) -> Tuple[Dict[str, Period], Dict[str, SubPeriod]]:
    by_period = {p.id: p for p in periods}
    by_sub = {sp.id: sp for p in periods for sp in p.sub_periods}
    return by_period, by_sub


# ── Record flattening ───────────────────────────────────────────────

def resolve_sub_period(record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Embedded sub-period, or the one reached through the task."""
    sub = _pick(record, "sub_period")
    if isinstance(sub, dict):
        return sub
    task = _pick(record, "task")
    if isinstance(task, dict):
        sub = _pick(task, "sub_period")
        if isinstance(sub, dict):
            return sub
    return None


def _person_name(raw: Any) -> Optional[str]:
    if not isinstance(raw, dict):
        return None
    if isinstance(raw.get("user"), dict):
        raw = raw["user"]
    parts = [str(p).strip() for p in (_pick(raw, "name"), _pick(raw, "last_name")) if p]
    return " ".join(parts) or None


def flatten_record(
    record: Dict[str, Any],
    periods: Optional[List[Period]] = None,
    default_period_weight: float = DEFAULT_PERIOD_WEIGHT,
    default_minimum: float = DEFAULT_MINIMUM_SCORE,
) -> Dict[str, Any]:
    """Flatten one nested grade record into a COLUMNS row."""
    by_period, by_sub = _catalogue_index(periods or [])

    task = _pick(record, "task")
    subject = _pick(record, "subject")
    student = _pick(record, "student")

    row: Dict[str, Any] = {
        "grade_id": _id(_pick(record, "id")),
        "student_id": _id(_pick(record, "student_id")) or _id(_pick(student, "id")),
        "student_name": _person_name(student),
        "subject_id": _id(_pick(record, "subject_id")) or _id(_pick(subject, "id")),
        "subject_name": _pick(subject, "name"),
        "score": to_number(_pick(record, "score")),
        "task_id": _id(_pick(record, "task_id")) or _id(_pick(task, "id")),
        "task_name": _pick(task, "name"),
        "task_order": _order(_pick(task, "order")),
        "partial": _pick(record, "partial"),
        "recorded_at": _pick(record, "recorded_at"),
    }

    sub = resolve_sub_period(record)
    sub_id = _id(_pick(sub, "id")) if sub else _id(_pick(record, "sub_period_id"))
    known_sub = by_sub.get(sub_id) if sub_id else None

    if sub is not None:
        period_raw = _pick(sub, "period")
        period_id = _id(_pick(period_raw, "id")) or _id(_pick(sub, "period_id"))
        row.update({
            "sub_period_id": sub_id,
            "sub_period_name": _pick(sub, "name") or sub_id,
            "sub_period_order": _order(_pick(sub, "order")),
            "sub_period_weight": to_number(_pick(sub, "weight")) or 0.0,
        })
    elif known_sub is not None:
        period_raw = None
        period_id = known_sub.period_id
        row.update({
            "sub_period_id": known_sub.id,
            "sub_period_name": known_sub.name,
            "sub_period_order": known_sub.order,
            "sub_period_weight": known_sub.weight,
        })
    else:
        period_raw = None
        period_id = None
        row.update({
            "sub_period_id": sub_id,
            "sub_period_name": None,
            "sub_period_order": 999,
            "sub_period_weight": 0.0,
        })

    known_period = by_period.get(period_id) if period_id else None
    if known_period is not None:
        row.update({
            "period_id": known_period.id,
            "period_name": known_period.name,
            "period_order": known_period.order,
            "period_weight": known_period.weight,
            "period_min_score": known_period.minimum_score,
            "is_supplementary": known_period.is_supplementary,
        })
    elif isinstance(period_raw, dict):
        minimum = to_number(_pick(period_raw, "minimum_score"))
        row.update({
            "period_id": period_id,
            "period_name": _pick(period_raw, "name") or period_id,
            "period_order": _order(_pick(period_raw, "order")),
            "period_weight": _period_weight(_pick(period_raw, "weight"), default_period_weight),
            "period_min_score": default_minimum if minimum is None else minimum,
            "is_supplementary": _bool(_pick(period_raw, "is_supplementary")),
        })
    else:
        row.update({
            "period_id": period_id,
            "period_name": period_id,
            "period_order": 999,
            "period_weight": default_period_weight,
            "period_min_score": default_minimum,
            "is_supplementary": False,
        })
    return row


def normalize_records(
    records: Optional[Iterable[Dict[str, Any]]],
    periods: Optional[List[Period]] = None,
    default_period_weight: float = DEFAULT_PERIOD_WEIGHT,
    default_minimum: float = DEFAULT_MINIMUM_SCORE,
) -> pd.DataFrame:
    """
    Flatten raw grade records into a DataFrame with the COLUMNS layout.
    Rows with a non-numeric score are dropped.
    """
    if isinstance(records, pd.DataFrame):
        return records

    rows = [
        flatten_record(r, periods, default_period_weight, default_minimum)
        for r in (records or [])
        if isinstance(r, dict)
    ]
    df = pd.DataFrame(rows, columns=COLUMNS)
    if df.empty:
        return df

    missing = df["score"].isna()
    if missing.any():
        logger.debug("Dropping %d grade records without a numeric score", int(missing.sum()))
        df = df[~missing].copy()

    df["score"] = df["score"].astype(float)
    # Timestamps arrive in mixed ISO 8601 shapes (date only, with or without
    # milliseconds); parse each one on its own.
    df["recorded_at"] = pd.to_datetime(df["recorded_at"], errors="coerce", utc=True, format="ISO8601")
    df["is_supplementary"] = df["is_supplementary"].fillna(False).astype(bool)
    return df.reset_index(drop=True)


def filter_records(df: pd.DataFrame, student_id: Any = None, subject_id: Any = None) -> pd.DataFrame:
    """Select one student's and/or one subject's rows."""
    mask = pd.Series(True, index=df.index)
    if student_id is not None:
        mask &= df["student_id"].astype(str) == str(student_id)
    if subject_id is not None:
        mask &= df["subject_id"].astype(str) == str(subject_id)
    return df[mask]
