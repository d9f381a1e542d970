"""
Shared fixtures: a two-trimester school year with a supplementary period,
and a builder for nested grade records as the persistence layer sends them.
"""

import os
import sys
from datetime import datetime, timedelta
from itertools import count

import pytest

# Ensure backend/ is on the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.records import normalize_records, parse_periods

PERIODS_RAW = [
    {
        "id": "P1", "nombre": "Primer Trimestre", "orden": 1, "ponderacion": 50,
        "calificacionMinima": 7.0, "esSupletorio": False,
        "subPeriodos": [
            {"id": "S1A", "nombre": "Tareas", "orden": 1, "ponderacion": 75},
            {"id": "S1B", "nombre": "Examen", "orden": 2, "ponderacion": 25},
        ],
    },
    {
        "id": "P2", "nombre": "Segundo Trimestre", "orden": 2, "ponderacion": 50,
        "calificacionMinima": 7.0, "esSupletorio": False,
        "subPeriodos": [
            {"id": "S2A", "nombre": "Tareas", "orden": 1, "ponderacion": 75},
            {"id": "S2B", "nombre": "Examen", "orden": 2, "ponderacion": 25},
        ],
    },
    {
        "id": "PS", "nombre": "Supletorio", "orden": 3, "ponderacion": 0,
        "calificacionMinima": 7.0, "esSupletorio": True,
        "subPeriodos": [
            {"id": "SS", "nombre": "Examen supletorio", "orden": 1, "ponderacion": 100},
        ],
    },
]

STUDENTS = {
    "A1": {"id": "A1", "nombre": "Ana", "apellido": "Pérez"},
    "B1": {"id": "B1", "nombre": "Bruno", "apellido": "Díaz"},
}
SUBJECTS = {
    "M1": {"id": "M1", "nombre": "Matemáticas", "codigo": "MAT"},
    "L1": {"id": "L1", "nombre": "Lengua", "codigo": "LEN"},
}

_ids = count(1)
_BASE_TIME = datetime(2025, 3, 1, 8, 0, 0)


def embedded_sub_period(sub_id, periods=PERIODS_RAW):
    """Sub-period with its period embedded, the way grades are fetched."""
    for period in periods:
        for sub in period.get("subPeriodos", []):
            if sub["id"] == sub_id:
                parent = {k: v for k, v in period.items() if k != "subPeriodos"}
                return dict(sub, periodoId=period["id"], periodo=parent)
    raise KeyError(sub_id)


def make_grade(student_id, subject_id, sub_id, score, via_task=False, task_name=None,
               periods=PERIODS_RAW, recorded_at=None):
    n = next(_ids)
    record = {
        "id": f"G{n}",
        "calificacion": score,
        "estudianteId": student_id,
        "materiaId": subject_id,
        "estudiante": STUDENTS.get(student_id),
        "materia": SUBJECTS.get(subject_id),
        "fechaRegistro": recorded_at or (_BASE_TIME + timedelta(minutes=n)).isoformat() + "Z",
    }
    sub = embedded_sub_period(sub_id, periods)
    if via_task:
        task_id = f"T{n}"
        record["insumoId"] = task_id
        record["insumo"] = {"id": task_id, "nombre": task_name or f"Deber {n}", "orden": 1, "subPeriodo": sub}
    else:
        record["subPeriodoId"] = sub_id
        record["subPeriodo"] = sub
    return record


def grades_for(student_id, subject_id, scores_by_sub, **kwargs):
    records = []
    for sub_id, scores in scores_by_sub.items():
        for score in scores:
            records.append(make_grade(student_id, subject_id, sub_id, score, **kwargs))
    return records


# Ana / Matemáticas: P1 = 8.5, P2 = 5.87, general 7.18
ANA_MATH = {"S1A": [8, 9, 10], "S1B": [7], "S2A": [6, 7], "S2B": [4]}
# Ana / Lengua: only P1 graded (10.0), general 5.0
ANA_LANG = {"S1A": [10], "S1B": [10]}
# Bruno / Matemáticas: P1 = 5.0, P2 = 4.5, general 4.75, supplementary 8
BRUNO_MATH = {"S1A": [5], "S1B": [5], "S2A": [4], "S2B": [6], "SS": [8]}


@pytest.fixture
def periods():
    return parse_periods(PERIODS_RAW)


@pytest.fixture
def ana_math_records():
    return grades_for("A1", "M1", ANA_MATH)


@pytest.fixture
def school_records():
    return (
        grades_for("A1", "M1", ANA_MATH)
        + grades_for("A1", "L1", ANA_LANG)
        + grades_for("B1", "M1", BRUNO_MATH)
    )


@pytest.fixture
def school_df(school_records, periods):
    return normalize_records(school_records, periods)


@pytest.fixture
def grade_scale():
    return {
        "id": "GS1",
        "nombre": "Cualitativa",
        "detalles": [
            {"titulo": "F", "valor": 0, "orden": 1},
            {"titulo": "C", "valor": 5, "orden": 2},
            {"titulo": "B", "valor": 7, "orden": 3},
            {"titulo": "A", "valor": 10, "orden": 4},
        ],
    }
