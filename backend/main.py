"""
EduGrades — Weighted grade averages for school report cards
FastAPI backend entry point.
"""

import logging
import os

from dotenv import load_dotenv

# Routers read their settings at import time.
load_dotenv()

from fastapi import FastAPI, Request  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from fastapi.responses import JSONResponse  # noqa: E402

from core.supplementary import SupplementaryNotAllowedError  # noqa: E402
from routes.averages import router as averages_router  # noqa: E402
from routes.scales import router as scales_router  # noqa: E402
from routes.supplementary import router as supplementary_router  # noqa: E402

INSTITUTION_NAME = os.getenv("INSTITUTION_NAME", "My School")
DEFAULT_MINIMUM_SCORE = float(os.getenv("DEFAULT_MINIMUM_SCORE", "7.0"))
DEFAULT_PERIOD_WEIGHT = float(os.getenv("DEFAULT_PERIOD_WEIGHT", "100"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
# Comma-separated allowed origins, e.g. http://localhost:5173,https://app.example.com
raw_origins = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000")
ALLOWED_ORIGINS = [o.strip() for o in raw_origins.split(",") if o.strip()]

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="EduGrades API",
    description=(
        "Sub-period, period and general averages with truncation, "
        "supplementary exam replacement and grade-scale equivalents."
    ),
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SupplementaryNotAllowedError)
async def supplementary_not_allowed_handler(request: Request, exc: SupplementaryNotAllowedError):
    logger.warning("Rejected supplementary score on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=422, content=exc.to_dict())


# Register route modules
app.include_router(averages_router, prefix="/api/averages", tags=["Averages"])
app.include_router(supplementary_router, prefix="/api/supplementary", tags=["Supplementary"])
app.include_router(scales_router, prefix="/api/scales", tags=["Grade scales"])


@app.get("/api/health")
async def health_check():
    return {
        "status": "ok",
        "institution_name": INSTITUTION_NAME,
    }


@app.get("/api/config")
async def get_config():
    """Return server configuration to the frontend."""
    return {
        "institution_name": INSTITUTION_NAME,
        "default_minimum_score": DEFAULT_MINIMUM_SCORE,
        "default_period_weight": DEFAULT_PERIOD_WEIGHT,
        "decimals": 2,
    }
