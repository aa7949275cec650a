"""Notification API endpoints."""

from fastapi import APIRouter

from timebill_engine.api.dependencies import DbSession
from timebill_engine.api.schemas import NotificationResponse
from timebill_engine.services.notification_service import DatabaseNotificationSink

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationResponse])
async def list_notifications(
    db: DbSession,
    audience: str | None = None,
) -> list[NotificationResponse]:
    """Newest first, optionally for one audience (``ADMIN`` or an employee id)."""
    sink = DatabaseNotificationSink(db)
    return [NotificationResponse.model_validate(n) for n in await sink.list_notifications(audience)]
