"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from timebill_engine.clock import Clock, SystemClock
from timebill_engine.config import Settings, get_settings
from timebill_engine.database import init_db

_system_clock = SystemClock()


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    _, factory = init_db()
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_clock() -> Clock:
    """Time source for request handlers."""
    return _system_clock


def get_app_settings() -> Settings:
    return get_settings()


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
AppClock = Annotated[Clock, Depends(get_clock)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
