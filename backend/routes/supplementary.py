"""
Supplementary routes — make-up exam eligibility and score recording.
"""

import logging

from fastapi import APIRouter, HTTPException

from core.records import to_number
from core.supplementary import (
    evaluate_supplementary_status,
    find_eligible_students,
    record_supplementary,
)
from routes.averages import df_from_payload, periods_from_payload

router = APIRouter()
logger = logging.getLogger(__name__)


def _context(payload: dict):
    subject_id = payload.get("subjectId") or payload.get("materiaId")
    if not subject_id:
        raise HTTPException(400, "subjectId is required.")
    periods = periods_from_payload(payload)
    if not any(not p.is_supplementary for p in periods):
        raise HTTPException(400, "At least one regular period is required.")
    return df_from_payload(payload, periods), periods, subject_id


@router.post("/status/{student_id}")
async def supplementary_status(student_id: str, payload: dict):
    """Whether a student qualifies, with general average, minimum sum and failing periods."""
    df, periods, subject_id = _context(payload)
    return evaluate_supplementary_status(df, periods, student_id, subject_id)


@router.post("/eligible")
async def eligible_students(payload: dict):
    """All students of a subject who qualify for the supplementary exam."""
    df, periods, subject_id = _context(payload)
    return find_eligible_students(df, periods, subject_id)


@router.post("/record/{student_id}")
async def record_supplementary_score(student_id: str, payload: dict):
    """
    Validate a supplementary score and return the replaced general average.
    Non-qualifying students are rejected with 422 (see main.py handler).
    """
    df, periods, subject_id = _context(payload)
    score = to_number(payload.get("score", payload.get("calificacion")))
    if score is None or not 0 <= score <= 10:
        logger.warning("Invalid supplementary score for student %s: %r", student_id, payload.get("score"))
        raise HTTPException(400, "score must be a number between 0 and 10.")
    return record_supplementary(df, periods, student_id, subject_id, score)
