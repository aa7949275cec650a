"""Notification sink."""

from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timebill_engine.models import Notification

logger = logging.getLogger(__name__)

ADMIN_AUDIENCE = "ADMIN"


class NotificationSink(Protocol):
    """Anything that can record a notification for an audience."""

    async def add_notification(
        self,
        audience: str,
        title: str,
        message: str,
        dedupe_key: str | None = None,
    ) -> Notification | None: ...


class DatabaseNotificationSink:
    """Stores notifications as rows for the surrounding app to deliver.

    A notification whose ``dedupe_key`` was already written is skipped and
    ``None`` is returned. Does not commit.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add_notification(
        self,
        audience: str,
        title: str,
        message: str,
        dedupe_key: str | None = None,
    ) -> Notification | None:
        if dedupe_key is not None:
            existing = await self.session.execute(
                select(Notification.id).where(Notification.dedupe_key == dedupe_key)
            )
            if existing.first() is not None:
                logger.debug("Notification already sent", extra={"dedupe_key": dedupe_key})
                return None

        notification = Notification(
            audience=audience,
            title=title,
            message=message,
            dedupe_key=dedupe_key,
        )
        self.session.add(notification)
        await self.session.flush()
        return notification

    async def list_notifications(self, audience: str | None = None) -> list[Notification]:
        query = select(Notification).order_by(Notification.created_at.desc(), Notification.id)
        if audience is not None:
            query = query.where(Notification.audience == audience)
        result = await self.session.execute(query)
        return list(result.scalars().all())
