"""
Averages routes — subject averages and report card endpoints.
"""

import logging
import os

from fastapi import APIRouter, HTTPException

from core.averages import compute_subject_averages
from core.grade_scale import parse_grade_scale
from core.records import normalize_records, parse_periods
from core.report_cards import (
    compute_course_report_cards,
    compute_historical_report,
    compute_pivot_report,
    compute_promotion_status,
    compute_student_averages,
)

router = APIRouter()
logger = logging.getLogger(__name__)

DEFAULT_MINIMUM_SCORE = float(os.getenv("DEFAULT_MINIMUM_SCORE", "7.0"))
DEFAULT_PERIOD_WEIGHT = float(os.getenv("DEFAULT_PERIOD_WEIGHT", "100"))


def periods_from_payload(payload: dict):
    return parse_periods(
        payload.get("periods") or payload.get("periodos"),
        default_period_weight=DEFAULT_PERIOD_WEIGHT,
        default_minimum=DEFAULT_MINIMUM_SCORE,
    )


def df_from_payload(payload: dict, periods=None):
    """Extract normalised grade rows from request payload."""
    data = payload.get("data")
    if data is None:
        raise HTTPException(400, "No data provided.")
    if not isinstance(data, list):
        raise HTTPException(400, "'data' must be a list of grade records.")
    return normalize_records(
        data, periods,
        default_period_weight=DEFAULT_PERIOD_WEIGHT,
        default_minimum=DEFAULT_MINIMUM_SCORE,
    )


@router.post("/subject")
async def subject_averages(payload: dict):
    """Sub-period, period and general average of one student's grades in one subject."""
    df = df_from_payload(payload, periods_from_payload(payload))
    scale = parse_grade_scale(payload.get("gradeScale"))
    return compute_subject_averages(df, scale, with_equivalents=bool(payload.get("withEquivalents")))


@router.post("/student/{student_id}")
async def student_averages(student_id: str, payload: dict):
    """Individual view: every subject of one student plus the cross-subject average."""
    periods = periods_from_payload(payload)
    df = df_from_payload(payload, periods)
    result = compute_student_averages(
        df, student_id,
        scales=payload.get("gradeScales"),
        periods=periods,
        subjects=payload.get("subjects"),
        default_minimum=DEFAULT_MINIMUM_SCORE,
    )
    if result is None:
        logger.warning("No grades found for student %s", student_id)
        raise HTTPException(404, f"Student '{student_id}' has no grades.")
    return result


@router.post("/promotion/{student_id}")
async def promotion_status(student_id: str, payload: dict):
    """Whether the student passes every course subject and moves up a year."""
    periods = periods_from_payload(payload)
    df = df_from_payload(payload, periods)
    return compute_promotion_status(
        df, student_id,
        subjects=payload.get("subjects"),
        scales=payload.get("gradeScales"),
        periods=periods,
        passing_grade=DEFAULT_MINIMUM_SCORE,
    )


@router.post("/course")
async def course_report_cards(payload: dict):
    """Class-wide report cards with a per-subject summary."""
    periods = periods_from_payload(payload)
    df = df_from_payload(payload, periods)
    return compute_course_report_cards(
        df,
        subjects=payload.get("subjects"),
        students=payload.get("students"),
        scales=payload.get("gradeScales"),
        periods=periods,
        default_minimum=DEFAULT_MINIMUM_SCORE,
    )


@router.post("/historical/{student_id}")
async def historical_report(student_id: str, payload: dict):
    """Historical report card of one student for one school year."""
    periods = periods_from_payload(payload)
    df = df_from_payload(payload, periods)
    result = compute_historical_report(
        df, periods, student_id,
        scales=payload.get("gradeScales"),
        subjects=payload.get("subjects"),
        default_minimum=DEFAULT_MINIMUM_SCORE,
    )
    if result is None:
        logger.warning("No historical grades found for student %s", student_id)
        raise HTTPException(404, f"Student '{student_id}' has no grades.")
    return result


@router.post("/pivot")
async def pivot_report(payload: dict):
    """Pivot table: one row per student/subject, one column per grading cell."""
    df = df_from_payload(payload, periods_from_payload(payload))
    return compute_pivot_report(df)
