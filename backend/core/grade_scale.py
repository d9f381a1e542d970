"""
grade_scale.py — Grade-scale equivalence lookups.

A grade scale is an ordered list of (threshold, label) pairs attached to a
subject offering. It only provides a display label for a numeric average;
pass/fail decisions never look at it.

Lookup rules (nearest value):
  - no scale, None or NaN average → no label
  - exact threshold match         → that label
  - below the lowest threshold    → lowest label
  - above the highest threshold   → highest label
  - otherwise                     → closest threshold, ties go to the lower one
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class GradeScale:
    entries: Tuple[Tuple[float, str], ...]
    name: Optional[str] = None
    scale_id: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.entries


def _to_float(value: Any) -> Optional[float]:
    try:
        v = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(v) or math.isinf(v) else v


def parse_grade_scale(raw: Any) -> Optional[GradeScale]:
    """
    Build a GradeScale from either the stored form
    {"nombre": ..., "detalles": [{"titulo", "valor", "orden"}]}
    or a plain {threshold: label} mapping. Entries end up ascending.
    """
    if raw is None:
        return None
    if isinstance(raw, GradeScale):
        return raw

    pairs: List[Tuple[float, str]] = []
    name = None
    scale_id = None
    if isinstance(raw, dict) and "detalles" in raw:
        name = raw.get("nombre")
        scale_id = raw.get("id")
        for detail in raw.get("detalles") or []:
            value = _to_float(detail.get("valor"))
            if value is None:
                continue
            pairs.append((value, str(detail.get("titulo") or "")))
    elif isinstance(raw, dict):
        for threshold, label in raw.items():
            value = _to_float(threshold)
            if value is not None:
                pairs.append((value, str(label)))
    elif isinstance(raw, (list, tuple)):
        for item in raw:
            value = _to_float(item[0])
            if value is not None:
                pairs.append((value, str(item[1])))
    else:
        return None

    # Stable sort keeps the stored order for duplicate thresholds.
    pairs.sort(key=lambda p: p[0])
    return GradeScale(entries=tuple(pairs), name=name, scale_id=scale_id)


def get_scale_equivalent(scale: Any, average: Optional[float]) -> Optional[str]:
    """Return the label of the nearest threshold, or None."""
    scale = parse_grade_scale(scale)
    if scale is None or scale.is_empty:
        return None
    value = _to_float(average)
    if value is None:
        return None

    entries = scale.entries
    for threshold, label in entries:
        if threshold == value:
            return label

    if value < entries[0][0]:
        return entries[0][1]
    if value > entries[-1][0]:
        return entries[-1][1]

    best_label = entries[0][1]
    best_distance = abs(entries[0][0] - value)
    for threshold, label in entries[1:]:
        distance = abs(threshold - value)
        if distance < best_distance:
            best_label, best_distance = label, distance
    return best_label


def scale_thresholds(scale: Any) -> List[Dict[str, Any]]:
    """Legend rows ascending: each band runs up to the next threshold - 0.01."""
    scale = parse_grade_scale(scale)
    if scale is None:
        return []
    rows = []
    entries = scale.entries
    for idx, (threshold, label) in enumerate(entries):
        upper = round(entries[idx + 1][0] - 0.01, 2) if idx + 1 < len(entries) else None
        rows.append({"min": threshold, "max": upper, "label": label})
    return rows


def resolve_subject_scale(scales: Optional[Dict[str, Any]], subject_id: Any) -> Optional[GradeScale]:
    """Pick the scale configured for a subject from a {subjectId: scale} mapping."""
    if not scales or subject_id is None:
        return None
    return parse_grade_scale(scales.get(str(subject_id)))
