"""
Health check router for AlertCase API.

Provides the readiness endpoint; the liveness probe lives on the app itself.
"""

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.database import get_db
from app.services.scheduler_service import scheduler_service

router = APIRouter()


@router.get("/ready")
async def readiness_check(
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """
    Readiness check endpoint.

    The database is the only hard dependency. The scheduler is reported for
    information; alerts are still ingested while it is stopped.

    Returns:
        dict: Readiness status with component health details.
    """
    settings = get_settings()
    checks: dict[str, str] = {}

    try:
        await db.execute(text("SELECT 1"))
        if settings.pgbouncer_enabled:
            checks["database"] = "healthy (via pgbouncer)"
        else:
            checks["database"] = "healthy (direct)"
    except SQLAlchemyError as e:
        checks["database"] = f"unhealthy: {e!s}"

    if not settings.scheduler_enabled:
        checks["scheduler"] = "disabled"
    elif scheduler_service.scheduler is not None and scheduler_service.scheduler.running:
        checks["scheduler"] = "running"
    else:
        checks["scheduler"] = "stopped"

    db_healthy = checks["database"].startswith("healthy")

    return {
        "status": "ready" if db_healthy else "not_ready",
        "checks": checks,
        "connection_mode": "pgbouncer" if settings.pgbouncer_enabled else "direct",
    }
