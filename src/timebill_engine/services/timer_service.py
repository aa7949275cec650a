"""Timer lifecycle: start, pause, resume, stop, plus edits, deletes and the stale sweep."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timebill_engine.calculators.duration import elapsed_seconds, seconds_to_minutes, total_seconds
from timebill_engine.clock import Clock, SystemClock, ensure_utc
from timebill_engine.config import Settings, get_settings
from timebill_engine.models import TimeEntry
from timebill_engine.services.directory import DirectoryService, EntityNotFoundError
from timebill_engine.services.locking_service import LockingService
from timebill_engine.services.overrun_service import BudgetOverrunAutomator
from timebill_engine.services.payroll_service import PayrollRunLockedError
from timebill_engine.services.state_machine import (
    InvalidTransitionError,
    TimeEntryStatus,
    TimerStateMachine,
)

logger = logging.getLogger(__name__)

REPLACED_NOTE = "Auto-stopped: replaced by a new timer"
EDITABLE_FIELDS = ("description", "is_billable", "duration_minutes", "date", "category_id")


class TimerConflictError(Exception):
    """Raised when an employee already has an open timer."""

    def __init__(self, employee_id: UUID, active_entry_id: UUID):
        self.employee_id = employee_id
        self.active_entry_id = active_entry_id
        super().__init__(
            f"Employee {employee_id} already has an open timer ({active_entry_id})"
        )


class TimeEntryLockedError(Exception):
    """Raised when modifying a time entry locked by a payroll run."""

    def __init__(self, entry_id: UUID, payroll_run_id: UUID):
        self.entry_id = entry_id
        self.payroll_run_id = payroll_run_id
        super().__init__(f"Time entry {entry_id} is locked by payroll run {payroll_run_id}")


class TimerService:
    """Owns the single open time entry per employee.

    Every mutation runs inside the employee's critical section, commits the
    entry, and only then asks the overrun automator to look at the project.
    Automator failures never undo the committed timer change.

    Entries cannot be created in, moved into or restored into the period of
    a LOCKED or PAID payroll run.

    Conflict policy for ``start``:
    - ``reject``: an open entry raises TimerConflictError
    - ``replace``: the open entry is stopped first (last writer wins)
    """

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock | None = None,
        settings: Settings | None = None,
        automator: BudgetOverrunAutomator | None = None,
        locking: LockingService | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings()
        self.locking = locking or LockingService(session)
        self.automator = automator or BudgetOverrunAutomator(
            session, clock=self.clock, settings=self.settings, locking=self.locking
        )
        self.directory = DirectoryService(session)

    # === Queries ===

    async def get_entry(self, entry_id: UUID, include_deleted: bool = False) -> TimeEntry:
        """Load a time entry, raising EntityNotFoundError if missing."""
        entry = await self.session.get(TimeEntry, entry_id, populate_existing=True)
        if entry is None or (entry.is_deleted and not include_deleted):
            raise EntityNotFoundError("TimeEntry", entry_id)
        return entry

    async def get_active(self, employee_id: UUID) -> TimeEntry | None:
        """The employee's open (running or paused) entry, if any."""
        result = await self.session.execute(
            select(TimeEntry)
            .where(
                TimeEntry.employee_id == employee_id,
                TimeEntry.status.in_([s.value for s in TimerStateMachine.OPEN_STATUSES]),
                TimeEntry.deleted_at.is_(None),
            )
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def list_entries(
        self,
        employee_id: UUID | None = None,
        project_id: UUID | None = None,
        include_deleted: bool = False,
    ) -> list[TimeEntry]:
        query = select(TimeEntry).order_by(
            TimeEntry.date.desc(), TimeEntry.started_at.desc(), TimeEntry.id
        )
        if employee_id is not None:
            query = query.where(TimeEntry.employee_id == employee_id)
        if project_id is not None:
            query = query.where(TimeEntry.project_id == project_id)
        if not include_deleted:
            query = query.where(TimeEntry.deleted_at.is_(None))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    # === Lifecycle ===

    async def start(
        self,
        employee_id: UUID,
        project_id: UUID,
        category_id: UUID | None = None,
        is_billable: bool = True,
        description: str | None = None,
        on_conflict: str | None = None,
    ) -> TimeEntry:
        """Open a new running entry for the employee."""
        policy = on_conflict or self.settings.timer_conflict_policy

        async with self.locking.hold("employee", employee_id):
            await self.directory.get_employee(employee_id)
            await self.directory.get_project(project_id)
            await self._ensure_period_open(self.clock.today())
            now = self.clock.now()

            replaced: TimeEntry | None = None
            active = await self.get_active(employee_id)
            if active is not None:
                if policy != "replace":
                    raise TimerConflictError(employee_id, active.id)
                logger.warning(
                    "Replacing open timer",
                    extra={"employee_id": str(employee_id), "entry_id": str(active.id)},
                )
                self._finalize(active, now, note=REPLACED_NOTE)
                replaced = active
                # Flush the stop first so the open-entry index never sees two rows
                await self.session.flush()

            entry = TimeEntry(
                employee_id=employee_id,
                project_id=project_id,
                category_id=category_id,
                date=self.clock.today(),
                start_time=now,
                started_at=now,
                duration_minutes=0,
                status=TimeEntryStatus.PENDING.value,
                is_billable=is_billable,
                description=description,
                activity_log={"accumulated_seconds": 0},
            )
            self.session.add(entry)
            await self.session.commit()

            logger.info(
                "Timer started",
                extra={"employee_id": str(employee_id), "entry_id": str(entry.id)},
            )

            if replaced is not None and replaced.project_id != project_id:
                await self._check_budget(replaced.project_id)
            await self._check_budget(project_id, entry)
        return entry

    async def pause(self, entry_id: UUID) -> TimeEntry:
        """Bank the running session's seconds and clear ``start_time``."""
        entry = await self.get_entry(entry_id)
        async with self.locking.hold("employee", entry.employee_id):
            entry = await self.get_entry(entry_id)
            self._pause(entry, self.clock.now())
            await self.session.commit()
        return entry

    async def resume(self, entry_id: UUID) -> TimeEntry:
        """Start a new running session; banked seconds are untouched."""
        entry = await self.get_entry(entry_id)
        async with self.locking.hold("employee", entry.employee_id):
            entry = await self.get_entry(entry_id)
            self._resume(entry, self.clock.now())
            await self.session.commit()
        return entry

    async def stop(self, entry_id: UUID) -> TimeEntry | None:
        """Finalize the entry's duration.

        Returns None, changing nothing, when the entry is not open.
        """
        entry = await self.get_entry(entry_id)
        async with self.locking.hold("employee", entry.employee_id):
            entry = await self.get_entry(entry_id)
            if not TimerStateMachine.is_open(entry.status):
                return None
            self._finalize(entry, self.clock.now())
            await self.session.commit()
            logger.info(
                "Timer stopped",
                extra={"entry_id": str(entry.id), "duration_minutes": entry.duration_minutes},
            )
            await self._check_budget(entry.project_id, entry)
        return entry

    async def pause_for_employee(self, employee_id: UUID) -> TimeEntry | None:
        active = await self.get_active(employee_id)
        return await self.pause(active.id) if active is not None else None

    async def resume_for_employee(self, employee_id: UUID) -> TimeEntry | None:
        active = await self.get_active(employee_id)
        return await self.resume(active.id) if active is not None else None

    async def stop_for_employee(self, employee_id: UUID) -> TimeEntry | None:
        active = await self.get_active(employee_id)
        return await self.stop(active.id) if active is not None else None

    # === Manual entries, edits, review, delete ===

    async def create_manual_entry(
        self,
        employee_id: UUID,
        project_id: UUID,
        duration_minutes: int,
        entry_date: date | None = None,
        category_id: UUID | None = None,
        is_billable: bool = True,
        description: str | None = None,
    ) -> TimeEntry:
        """Record already-finished work. Never conflicts with the open timer."""
        if duration_minutes < 0:
            raise ValueError("duration_minutes must not be negative")

        async with self.locking.hold("employee", employee_id):
            await self.directory.get_employee(employee_id)
            await self.directory.get_project(project_id)
            entry_date = entry_date or self.clock.today()
            await self._ensure_period_open(entry_date)
            now = self.clock.now()
            entry = TimeEntry(
                employee_id=employee_id,
                project_id=project_id,
                category_id=category_id,
                date=entry_date,
                end_time=now,
                started_at=now,
                duration_minutes=duration_minutes,
                status=TimeEntryStatus.SUBMITTED.value,
                is_billable=is_billable,
                description=description,
                activity_log={"accumulated_seconds": duration_minutes * 60, "manual": True},
            )
            self.session.add(entry)
            await self.session.commit()
            await self._check_budget(project_id, entry)
        return entry

    async def edit(self, entry_id: UUID, **fields: Any) -> TimeEntry:
        """Change descriptive fields or the duration of an entry."""
        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Fields not editable: {', '.join(sorted(unknown))}")

        entry = await self.get_entry(entry_id)
        async with self.locking.hold("employee", entry.employee_id):
            entry = await self.get_entry(entry_id)
            self._ensure_unlocked(entry)
            new_date = fields.get("date")
            if new_date is not None and new_date != entry.date:
                await self._ensure_period_open(new_date)

            duration = fields.get("duration_minutes")
            if duration is not None:
                if duration < 0:
                    raise ValueError("duration_minutes must not be negative")
                if TimerStateMachine.is_open(entry.status):
                    raise InvalidTransitionError(
                        entry.status, entry.status, "stop the timer before editing its duration"
                    )

            for name, value in fields.items():
                setattr(entry, name, value)
            if duration is not None:
                entry.set_accumulated_seconds(duration * 60)
            entry.is_edited = True
            entry.last_edited_at = self.clock.now()
            await self.session.commit()
            await self._check_budget(entry.project_id, entry)
        return entry

    async def review(self, entry_id: UUID, status: str) -> TimeEntry:
        """Approve, reject or resubmit a stopped entry."""
        target = TimeEntryStatus(status)
        entry = await self.get_entry(entry_id)
        async with self.locking.hold("employee", entry.employee_id):
            entry = await self.get_entry(entry_id)
            self._ensure_unlocked(entry)
            if not (TimerStateMachine.is_review(target) or target == TimeEntryStatus.SUBMITTED):
                raise InvalidTransitionError(entry.status, target.value, "not a review decision")
            if target == TimeEntryStatus.SUBMITTED and TimerStateMachine.is_open(entry.status):
                raise InvalidTransitionError(entry.status, target.value, "use stop")
            TimerStateMachine.validate_transition(entry.status, target)
            entry.status = target.value
            await self.session.commit()
        return entry

    async def soft_delete(self, entry_id: UUID) -> TimeEntry:
        """Mark the entry deleted; an open entry is stopped first."""
        entry = await self.get_entry(entry_id)
        async with self.locking.hold("employee", entry.employee_id):
            entry = await self.get_entry(entry_id)
            self._ensure_unlocked(entry)
            now = self.clock.now()
            if TimerStateMachine.is_open(entry.status):
                self._finalize(entry, now)
            entry.deleted_at = now
            await self.session.commit()
            logger.info("Time entry deleted", extra={"entry_id": str(entry.id)})
            await self._check_budget(entry.project_id, entry)
        return entry

    async def restore(self, entry_id: UUID) -> TimeEntry:
        """Undo a soft delete. Restoring a live entry changes nothing."""
        entry = await self.get_entry(entry_id, include_deleted=True)
        async with self.locking.hold("employee", entry.employee_id):
            entry = await self.get_entry(entry_id, include_deleted=True)
            if not entry.is_deleted:
                return entry
            self._ensure_unlocked(entry)
            await self._ensure_period_open(entry.date)
            entry.deleted_at = None
            await self.session.commit()
            logger.info("Time entry restored", extra={"entry_id": str(entry.id)})
            await self._check_budget(entry.project_id, entry)
        return entry

    async def sweep_stale(self) -> list[TimeEntry]:
        """Stop every open entry opened longer ago than the ceiling."""
        hours = self.settings.stale_timer_hours
        now = self.clock.now()
        cutoff = now - timedelta(hours=hours)
        note = f"Auto-stopped after exceeding the {hours}h open-timer limit"

        result = await self.session.execute(
            select(TimeEntry.id, TimeEntry.employee_id, TimeEntry.started_at).where(
                TimeEntry.status.in_([s.value for s in TimerStateMachine.OPEN_STATUSES]),
                TimeEntry.deleted_at.is_(None),
            )
        )
        candidates = [
            (row.id, row.employee_id)
            for row in result.all()
            if row.started_at is not None and ensure_utc(row.started_at) < cutoff
        ]

        stopped: list[TimeEntry] = []
        for entry_id, employee_id in candidates:
            async with self.locking.hold("employee", employee_id):
                entry = await self.get_entry(entry_id)
                if not TimerStateMachine.is_open(entry.status):
                    continue
                self._finalize(entry, now, note=note)
                await self.session.commit()
                stopped.append(entry)
                logger.warning(
                    "Stale timer auto-stopped",
                    extra={
                        "entry_id": str(entry.id),
                        "employee_id": str(entry.employee_id),
                        "duration_minutes": entry.duration_minutes,
                    },
                )

        for project_id in sorted({entry.project_id for entry in stopped}, key=str):
            await self._check_budget(project_id, *stopped)
        return stopped

    # === Transitions ===

    def _pause(self, entry: TimeEntry, now: datetime) -> None:
        TimerStateMachine.validate_transition(entry.status, TimeEntryStatus.PAUSED)
        entry.set_accumulated_seconds(
            entry.accumulated_seconds + elapsed_seconds(entry.start_time, now)
        )
        entry.start_time = None
        entry.status = TimeEntryStatus.PAUSED.value

    def _resume(self, entry: TimeEntry, now: datetime) -> None:
        TimerStateMachine.validate_transition(entry.status, TimeEntryStatus.PENDING)
        entry.start_time = now
        entry.status = TimeEntryStatus.PENDING.value

    def _finalize(self, entry: TimeEntry, now: datetime, note: str | None = None) -> None:
        TimerStateMachine.validate_transition(entry.status, TimeEntryStatus.SUBMITTED)
        running_since = entry.start_time if entry.status == TimeEntryStatus.PENDING else None
        seconds = total_seconds(entry.accumulated_seconds, running_since, now)
        entry.set_accumulated_seconds(seconds)
        entry.duration_minutes = seconds_to_minutes(seconds)
        entry.start_time = None
        entry.end_time = now
        entry.status = TimeEntryStatus.SUBMITTED.value
        if note:
            entry.append_note(note)

    async def _check_budget(self, project_id: UUID, *entries: TimeEntry) -> None:
        """Run the overrun automator after a committed change.

        A failed check rolls the session back, which expires loaded entries,
        so they are reloaded before being handed back to the caller.
        """
        await self.automator.run_safely(project_id)
        for entry in entries:
            await self.session.refresh(entry)

    async def _ensure_period_open(self, entry_date: date) -> None:
        run = await self.locking.find_closed_run(entry_date)
        if run is not None:
            raise PayrollRunLockedError(run.id, run.status)

    @staticmethod
    def _ensure_unlocked(entry: TimeEntry) -> None:
        if entry.is_locked:
            raise TimeEntryLockedError(entry.id, entry.locked_by_payroll_run_id)
