import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import get_settings
from backend.app.core.config import Settings
from backend.app.core.db import get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["system"])

_STARTED_AT = time.monotonic()


def _now() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


@router.get("/health")
async def health(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    try:
        row = (await db.execute(text("SELECT 1"))).scalar()
    except (SQLAlchemyError, OSError):
        logger.exception("Health check failed")
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "timestamp": _now(),
                "error": "Database connection failed",
            },
        )

    return {
        "status": "healthy",
        "timestamp": _now(),
        "environment": settings.ENV,
        "version": settings.APP_VERSION,
        "database": "connected" if row == 1 else "disconnected",
        "uptime": round(time.monotonic() - _STARTED_AT, 3),
    }


@router.get("/api")
async def api_index(settings: Settings = Depends(get_settings)):
    return {
        "name": settings.PROJECT_NAME,
        "version": settings.APP_VERSION,
        "description": "Find mechanics nearby with transparent pricing.",
        "endpoints": {
            "health": "GET /health",
            "auth": "POST /api/auth/login, POST /api/auth/register",
            "mechanics": (
                "GET /api/mechanics/nearby, GET /api/mechanics/:id, POST /api/mechanics, "
                "PATCH /api/mechanics/:id, DELETE /api/mechanics/:id, "
                "PUT /api/mechanics/:id/services/:service_id, GET /api/mechanics/:id/reviews"
            ),
            "reviews": "POST /api/reviews, PATCH /api/reviews/:id",
            "customers": "GET /api/customers/profile",
            "bookings": "POST /api/bookings",
            "services": "GET /api/services, GET /api/services/:id",
        },
    }
