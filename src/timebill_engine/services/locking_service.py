"""Critical sections and payroll input locking."""

from __future__ import annotations

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any, AsyncIterator
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from timebill_engine.database import acquire_advisory_xact_lock
from timebill_engine.models import PayrollRun, TimeEntry
from timebill_engine.services.state_machine import PayrollRunStatus

logger = logging.getLogger(__name__)

LOCK_SCOPES = ("employee", "project", "period")


class KeyedLockRegistry:
    """Process-wide registry of ``asyncio.Lock`` objects keyed by scope and id.

    Locks are held weakly and disappear once nobody holds or awaits them.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def get(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock


_registry = KeyedLockRegistry()


def lock_key(scope: str, key: Any) -> str:
    if scope not in LOCK_SCOPES:
        raise ValueError(f"Unknown lock scope '{scope}'")
    return f"{scope}:{key}"


class LockingService:
    """Serializes mutations per employee, project and period.

    Inside the process an ``asyncio.Lock`` per key orders concurrent
    coroutines. On PostgreSQL a transaction-scoped advisory lock on the same
    key additionally orders concurrent processes.

    Also locks a period's time entries when its payroll run is locked, so
    they cannot be edited or deleted afterwards.
    """

    def __init__(self, session: AsyncSession, registry: KeyedLockRegistry | None = None):
        self.session = session
        self.registry = registry or _registry

    @asynccontextmanager
    async def hold(self, scope: str, key: Any) -> AsyncIterator[None]:
        """Hold the critical section for ``scope``/``key``."""
        name = lock_key(scope, key)
        lock = self.registry.get(name)
        async with lock:
            await acquire_advisory_xact_lock(self.session, name)
            yield

    async def lock_inputs_for_run(
        self,
        payroll_run_id: UUID,
        employee_ids: list[UUID],
        period_start: date,
        period_end: date,
        locked_at: datetime,
    ) -> int:
        """Lock all in-period time entries of the run's employees.

        Returns count of locked records.
        """
        if not employee_ids:
            return 0

        result = await self.session.execute(
            update(TimeEntry)
            .where(
                TimeEntry.employee_id.in_(employee_ids),
                TimeEntry.date >= period_start,
                TimeEntry.date <= period_end,
                TimeEntry.deleted_at.is_(None),
                TimeEntry.locked_by_payroll_run_id.is_(None),
            )
            .values(locked_by_payroll_run_id=payroll_run_id, locked_at=locked_at)
            .execution_options(synchronize_session=False)
        )
        locked_count = result.rowcount or 0
        logger.info(
            "Locked time entries for payroll run",
            extra={"payroll_run_id": str(payroll_run_id), "locked_count": locked_count},
        )
        return locked_count

    async def get_locked_time_entries(self, payroll_run_id: UUID) -> list[TimeEntry]:
        """Get all time entries locked by a payroll run."""
        result = await self.session.execute(
            select(TimeEntry).where(TimeEntry.locked_by_payroll_run_id == payroll_run_id)
        )
        return list(result.scalars().all())

    async def find_closed_run(self, entry_date: date) -> PayrollRun | None:
        """The LOCKED or PAID payroll run whose period contains ``entry_date``."""
        result = await self.session.execute(
            select(PayrollRun).where(
                PayrollRun.status.in_(
                    [PayrollRunStatus.LOCKED.value, PayrollRunStatus.PAID.value]
                ),
                PayrollRun.period_start <= entry_date,
                PayrollRun.period_end >= entry_date,
            )
        )
        return result.scalars().first()
