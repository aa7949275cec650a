"""Database connection and session management."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from timebill_engine.config import get_settings
from timebill_engine.models import Base

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


def get_engine(database_url: str | None = None) -> AsyncEngine:
    """Create async database engine."""
    url = database_url or get_settings().database_url
    kwargs: dict[str, Any] = {"echo": False}
    if url.startswith("sqlite"):
        # Single shared connection so in-memory databases survive across sessions
        kwargs.update(poolclass=StaticPool, connect_args={"check_same_thread": False})
    else:
        kwargs.update(pool_pre_ping=True, pool_size=10, max_overflow=20)
    return create_async_engine(url, **kwargs)


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build the session factory used by the API and the services."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Global engine and session factory
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_db(
    database_url: str | None = None,
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Initialize database engine and session factory."""
    global _engine, _session_factory
    if _engine is None:
        _engine = get_engine(database_url)
        _session_factory = make_session_factory(_engine)
    return _engine, _session_factory


async def dispose_db() -> None:
    """Dispose the global engine (application shutdown)."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def is_postgres(session: AsyncSession) -> bool:
    """Check whether the session is bound to PostgreSQL."""
    return session.bind is not None and session.bind.dialect.name == "postgresql"


async def acquire_advisory_xact_lock(session: AsyncSession, key: str) -> None:
    """Take a transaction-scoped advisory lock (PostgreSQL only).

    Blocks until the lock is granted; released automatically at commit or
    rollback.
    """
    if not is_postgres(session):
        return
    await session.execute(
        text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
        {"key": key},
    )
