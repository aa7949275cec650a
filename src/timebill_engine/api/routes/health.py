"""Health, readiness and liveness checks."""

import logging
from datetime import datetime

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel
from sqlalchemy import func, select, text

from timebill_engine import __version__
from timebill_engine.api.dependencies import AppClock, DbSession
from timebill_engine.models import TimeEntry
from timebill_engine.services.state_machine import TimerStateMachine

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    timestamp: datetime
    database: str
    open_timers: int | None = None


@router.get("/health", response_model=HealthResponse)
async def health_check(db: DbSession, clock: AppClock) -> HealthResponse:
    """Report service version, store reachability and the number of running timers."""
    open_timers = None
    try:
        open_timers = await db.scalar(
            select(func.count())
            .select_from(TimeEntry)
            .where(
                TimeEntry.status.in_([s.value for s in TimerStateMachine.OPEN_STATUSES]),
                TimeEntry.deleted_at.is_(None),
            )
        )
        database = "healthy"
    except Exception:
        logger.warning("Database health check failed", exc_info=True)
        database = "unhealthy"

    return HealthResponse(
        status="healthy" if database == "healthy" else "degraded",
        version=__version__,
        timestamp=clock.now(),
        database=database,
        open_timers=open_timers,
    )


@router.get("/ready")
async def readiness_check(db: DbSession) -> dict[str, str]:
    """Ready once the store answers queries."""
    try:
        await db.execute(text("SELECT 1"))
    except Exception:
        logger.warning("Readiness check failed", exc_info=True)
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database unavailable")
    return {"status": "ready"}


@router.get("/live")
async def liveness_check() -> dict[str, str]:
    return {"status": "alive"}
