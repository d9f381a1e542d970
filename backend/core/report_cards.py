"""
report_cards.py — Every report that shows subject averages.

All four call sites run the same core.averages pipeline:
- Individual view: one student's subjects and cross-subject average
- Class report card: one card per student plus a per-subject class summary
- Historical report: a student's year with scale equivalents, raw scores
  and the full period catalogue
- Pivot report: one row per student/subject with a column per
  period|sub-period|task cell

The promotion decision reuses the individual view's per-subject entries.
"""

from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from core.averages import (
    compute_subject_breakdown,
    breakdown_to_dict,
    empty_subject_averages,
    sanitize,
)
from core.calculations import is_passing, overall_average, sub_period_average, truncate
from core.grade_scale import resolve_subject_scale
from core.records import Period, filter_records
from core.supplementary import supplementary_outcome


# ── Helpers ─────────────────────────────────────────────────────────

def _first_text(series: pd.Series) -> Optional[str]:
    values = series.dropna()
    values = values[values.astype(str).str.strip() != ""]
    return str(values.iloc[0]) if not values.empty else None


def _explicit_catalogue(items: List[Any]) -> List[Dict[str, Any]]:
    """Normalise caller-supplied [{id, nombre}] (or bare ids), keeping their order."""
    catalogue = []
    for item in items:
        item_id = item.get("id") if isinstance(item, dict) else item
        if item_id is None:
            continue
        name = (item.get("nombre") or item.get("name")) if isinstance(item, dict) else None
        entry = {"id": str(item_id), "nombre": name or str(item_id)}
        if isinstance(item, dict) and item.get("codigo"):
            entry["codigo"] = item["codigo"]
        catalogue.append(entry)
    return catalogue


def _graded_catalogue(df: pd.DataFrame, id_col: str, name_col: str) -> List[Dict[str, Any]]:
    catalogue = []
    for item_id, group in df.groupby(id_col, sort=False):
        catalogue.append({
            "id": str(item_id),
            "nombre": _first_text(group[name_col]) or str(item_id),
        })
    catalogue.sort(key=lambda s: (s["nombre"].lower(), s["id"]))
    return catalogue


def _subject_catalogue(df: pd.DataFrame, subjects: Optional[List[Any]] = None) -> List[Dict[str, Any]]:
    """Subjects to report, explicit list first, otherwise the ones graded."""
    if subjects:
        return _explicit_catalogue(subjects)
    return _graded_catalogue(df, "subject_id", "subject_name")


def _student_catalogue(df: pd.DataFrame, students: Optional[List[Any]] = None) -> List[Dict[str, Any]]:
    if students:
        return _explicit_catalogue(students)
    return _graded_catalogue(df, "student_id", "student_name")


def _subject_entry(
    rows: pd.DataFrame,
    subject: Dict[str, Any],
    scales: Optional[Dict[str, Any]] = None,
    periods: Optional[List[Period]] = None,
    with_equivalents: bool = False,
    default_minimum: float = 7.0,
) -> Dict[str, Any]:
    """Averages of one student's rows for one subject, plus supplementary outcome."""
    entry: Dict[str, Any] = {"materia": dict(subject)}
    if rows.empty:
        entry.update(empty_subject_averages())
        entry.update({
            "promedioSimple": None,
            "aprobado": None,
            "promedioFinal": None,
            "supletorio": None,
            "totalCalificaciones": 0,
        })
        return entry

    scale = resolve_subject_scale(scales, subject["id"])
    breakdown = compute_subject_breakdown(rows)
    entry.update(breakdown_to_dict(breakdown, scale, with_equivalents))

    outcome = supplementary_outcome(rows, periods) if periods else None
    final = outcome.general_average if outcome else breakdown.general_average
    # Replacement never adds or drops a period, so the same minimums apply.
    entry.update({
        "promedioSimple": sub_period_average(rows["score"].tolist()),
        "aprobado": is_passing(final, breakdown.periods, default_minimum),
        "promedioFinal": final,
        "supletorio": outcome.to_dict() if outcome else None,
        "totalCalificaciones": int(len(rows)),
    })
    return entry


# ── Individual view ─────────────────────────────────────────────────

def compute_student_averages(
    df: pd.DataFrame,
    student_id: Any,
    scales: Optional[Dict[str, Any]] = None,
    periods: Optional[List[Period]] = None,
    subjects: Optional[List[Dict[str, Any]]] = None,
    default_minimum: float = 7.0,
) -> Optional[Dict[str, Any]]:
    """Per-subject averages for one student; None when the student has no grades."""
    rows = filter_records(df, student_id=student_id)
    if rows.empty:
        return None

    materias = [
        _subject_entry(
            filter_records(rows, subject_id=subject["id"]), subject,
            scales, periods, default_minimum=default_minimum,
        )
        for subject in _subject_catalogue(rows, subjects)
    ]
    return sanitize({
        "estudianteId": str(student_id),
        "nombre": _first_text(rows["student_name"]),
        "materias": materias,
        "promedioGeneral": overall_average(m["promedioFinal"] for m in materias),
    })


# ── Promotion ───────────────────────────────────────────────────────

PROMOTED = "Aprobó todas las materias"
NOT_PROMOTED = "No aprobó todas las materias"
NO_SUBJECTS = "No hay materias asignadas al curso"


def compute_promotion_status(
    df: pd.DataFrame,
    student_id: Any,
    subjects: Optional[List[Dict[str, Any]]] = None,
    scales: Optional[Dict[str, Any]] = None,
    periods: Optional[List[Period]] = None,
    passing_grade: float = 7.0,
) -> Dict[str, Any]:
    """
    Promotion decision for one student over every course subject.

    The student is promoted only when each subject's final average (after
    any supplementary replacement) reaches `passing_grade`. A subject with
    no grades keeps a null average and counts as not passed.
    """
    rows = filter_records(df, student_id=student_id)
    catalogue = _subject_catalogue(rows, subjects)
    if not catalogue:
        return {
            "estudianteId": str(student_id),
            "pasa": False,
            "materias": [],
            "materiasReprobadas": [],
            "promedioGeneral": None,
            "motivo": NO_SUBJECTS,
        }

    materias = []
    for subject in catalogue:
        entry = _subject_entry(
            filter_records(rows, subject_id=subject["id"]), subject,
            scales, periods, default_minimum=passing_grade,
        )
        average = entry["promedioFinal"]
        materias.append({
            "materiaId": subject["id"],
            "materiaNombre": subject["nombre"],
            "materiaCodigo": subject.get("codigo"),
            "promedio": average,
            "aprobado": average is not None and average >= passing_grade,
            "calificacionMinima": passing_grade,
        })

    failed = [m["materiaNombre"] for m in materias if not m["aprobado"]]
    return sanitize({
        "estudianteId": str(student_id),
        "pasa": not failed,
        "materias": materias,
        "materiasReprobadas": failed,
        "promedioGeneral": overall_average(m["promedio"] for m in materias),
        "motivo": NOT_PROMOTED if failed else PROMOTED,
    })


# ── Class report cards ──────────────────────────────────────────────

def _class_summary(cards: List[Dict[str, Any]], subjects: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    summary = []
    for idx, subject in enumerate(subjects):
        values = [c["materias"][idx]["promedioFinal"] for c in cards]
        present = np.array([v for v in values if v is not None], dtype=float)
        summary.append({
            "materia": dict(subject),
            "promedioCurso": overall_average(present.tolist()),
            "mediana": truncate(float(np.median(present))) if present.size else None,
            "desviacion": truncate(float(np.std(present))) if present.size else None,
            "estudiantesConNotas": int(present.size),
            "totalEstudiantes": len(cards),
        })
    return summary


def compute_course_report_cards(
    df: pd.DataFrame,
    subjects: Optional[List[Dict[str, Any]]] = None,
    students: Optional[List[Dict[str, Any]]] = None,
    scales: Optional[Dict[str, Any]] = None,
    periods: Optional[List[Period]] = None,
    default_minimum: float = 7.0,
) -> Dict[str, Any]:
    """One report card per student, every course subject on every card."""
    subject_list = _subject_catalogue(df, subjects)
    student_list = _student_catalogue(df, students)

    cards = []
    for student in student_list:
        rows = filter_records(df, student_id=student["id"])
        materias = [
            _subject_entry(
                filter_records(rows, subject_id=subject["id"]), subject,
                scales, periods, default_minimum=default_minimum,
            )
            for subject in subject_list
        ]
        cards.append({
            "estudiante": dict(student),
            "materias": materias,
            "promedioGeneral": overall_average(m["promedioFinal"] for m in materias),
        })

    return sanitize({
        "materias": subject_list,
        "reportCards": cards,
        "resumen": _class_summary(cards, subject_list),
        "total": len(cards),
    })


# ── Historical report ───────────────────────────────────────────────

def _period_catalogue(periods: List[Period]) -> List[Dict[str, Any]]:
    return [
        {
            "id": p.id,
            "nombre": p.name,
            "orden": p.order,
            "ponderacion": p.weight,
            "calificacionMinima": p.minimum_score,
            "esSupletorio": p.is_supplementary,
            "subPeriodos": [
                {"id": sp.id, "nombre": sp.name, "orden": sp.order, "ponderacion": sp.weight}
                for sp in p.sub_periods
            ],
        }
        for p in periods
    ]


def _raw_grades(rows: pd.DataFrame) -> List[Dict[str, Any]]:
    ordered = rows.sort_values("recorded_at", ascending=False, na_position="last", kind="stable")
    return [
        {
            "id": r["grade_id"],
            "calificacion": r["score"],
            "subPeriodo": r["sub_period_name"] if pd.notna(r["sub_period_name"]) else "-",
            "periodo": r["period_name"] if pd.notna(r["period_name"]) else "-",
            "insumo": r["task_name"] if pd.notna(r["task_name"]) else None,
            "fechaRegistro": r["recorded_at"],
        }
        for _, r in ordered.iterrows()
    ]


def compute_historical_report(
    df: pd.DataFrame,
    periods: List[Period],
    student_id: Any,
    scales: Optional[Dict[str, Any]] = None,
    subjects: Optional[List[Dict[str, Any]]] = None,
    default_minimum: float = 7.0,
) -> Optional[Dict[str, Any]]:
    """A student's school year, equivalents on every level."""
    rows = filter_records(df, student_id=student_id)
    if rows.empty and not subjects:
        return None

    materias = []
    for subject in _subject_catalogue(rows, subjects):
        subject_rows = filter_records(rows, subject_id=subject["id"])
        entry = _subject_entry(
            subject_rows, subject, scales, periods,
            with_equivalents=True, default_minimum=default_minimum,
        )
        entry["calificaciones"] = _raw_grades(subject_rows)
        materias.append(entry)

    return sanitize({
        "estudianteId": str(student_id),
        "nombre": _first_text(rows["student_name"]) if not rows.empty else None,
        "periodos": _period_catalogue(periods),
        "materias": materias,
        "promedioGeneral": overall_average(m["promedioFinal"] for m in materias),
    })


# ── Pivot report ────────────────────────────────────────────────────

def _column_key(row: pd.Series) -> str:
    parts = [row["period_name"], row["sub_period_name"], row["task_name"]]
    return "|".join(str(p) if pd.notna(p) and str(p) else "-" for p in parts)


def compute_pivot_report(df: pd.DataFrame) -> Dict[str, Any]:
    """Tabular report: one row per student/subject, one column per grading cell."""
    if df.empty:
        return {"columnas": [], "detalleColumnas": [], "filas": [], "total": 0}

    df = df.copy()
    df["column_key"] = df.apply(_column_key, axis=1)
    df["student_id"] = df["student_id"].fillna("-")
    df["subject_id"] = df["subject_id"].fillna("-")

    columns = (
        df.drop_duplicates("column_key")
        .sort_values(["period_order", "sub_period_order", "task_order", "column_key"], kind="stable")
    )
    column_meta = [
        {
            "key": r["column_key"],
            "periodoId": r["period_id"],
            "periodoNombre": r["period_name"],
            "subPeriodoId": r["sub_period_id"],
            "subPeriodoNombre": r["sub_period_name"],
            "insumoNombre": r["task_name"],
            "subPeriodoPonderacion": r["sub_period_weight"],
            "periodoPonderacion": r["period_weight"],
        }
        for _, r in columns.iterrows()
    ]

    # Latest record wins when a cell was graded more than once.
    ordered = df.sort_values("recorded_at", na_position="first", kind="stable")
    cells = ordered.pivot_table(
        index=["student_id", "subject_id"], columns="column_key",
        values="score", aggfunc="last",
    )

    rows = []
    for (student_id, subject_id), group in df.groupby(["student_id", "subject_id"], sort=False):
        cell_values = cells.loc[(student_id, subject_id)].dropna()
        averages = breakdown_to_dict(compute_subject_breakdown(group))
        rows.append({
            "estudiante": _first_text(group["student_name"]) or str(student_id),
            "estudianteId": str(student_id),
            "materia": _first_text(group["subject_name"]) or str(subject_id),
            "materiaId": str(subject_id),
            "calificaciones": {k: float(v) for k, v in cell_values.items()},
            **averages,
        })
    rows.sort(key=lambda r: (r["estudiante"].lower(), r["materia"].lower()))

    return sanitize({
        "columnas": [c["key"] for c in column_meta],
        "detalleColumnas": column_meta,
        "filas": rows,
        "total": len(rows),
    })
