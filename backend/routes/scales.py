"""
Scale routes — grade-scale equivalence lookups.
"""

from fastapi import APIRouter, HTTPException

from core.grade_scale import get_scale_equivalent, parse_grade_scale, scale_thresholds

router = APIRouter()


@router.post("/equivalent")
async def equivalent(payload: dict):
    """Label of the nearest threshold; null when no scale or no average."""
    scale = parse_grade_scale(payload.get("gradeScale"))
    return {
        "promedio": payload.get("average"),
        "equivalente": get_scale_equivalent(scale, payload.get("average")),
    }


@router.post("/thresholds")
async def thresholds(payload: dict):
    """Legend of the scale, ascending."""
    scale = parse_grade_scale(payload.get("gradeScale"))
    if scale is None:
        raise HTTPException(400, "No grade scale provided.")
    return {"nombre": scale.name, "grade_scale": scale_thresholds(scale)}
