"""Time entry (timer) API endpoints."""

from typing import Annotated, Literal
from uuid import UUID

from fastapi import APIRouter, HTTPException, Path, Query, status

from timebill_engine.api.dependencies import AppClock, AppSettings, DbSession
from timebill_engine.api.schemas import (
    ErrorResponse,
    SweepResponse,
    TimeEntryCreate,
    TimeEntryResponse,
    TimeEntryUpdate,
)
from timebill_engine.services.timer_service import TimerService

router = APIRouter(prefix="/time-entries", tags=["time-entries"])

NO_ACTIVE_TIMER = "No active timer found"
NULLABLE_EDITS = ("description", "category_id")


def _no_active_timer() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NO_ACTIVE_TIMER)


# ============================================================================
# Queries
# ============================================================================


@router.get("", response_model=list[TimeEntryResponse])
async def list_time_entries(
    db: DbSession,
    clock: AppClock,
    settings: AppSettings,
    employee_id: UUID | None = None,
    project_id: UUID | None = None,
    include_deleted: bool = False,
) -> list[TimeEntryResponse]:
    """List time entries, newest first."""
    service = TimerService(db, clock=clock, settings=settings)
    entries = await service.list_entries(employee_id, project_id, include_deleted)
    return [TimeEntryResponse.model_validate(e) for e in entries]


@router.get("/active", response_model=TimeEntryResponse | None)
async def get_active_time_entry(
    db: DbSession,
    clock: AppClock,
    settings: AppSettings,
    employee_id: Annotated[UUID, Query()],
) -> TimeEntryResponse | None:
    """The employee's running or paused entry, or null."""
    service = TimerService(db, clock=clock, settings=settings)
    entry = await service.get_active(employee_id)
    return TimeEntryResponse.model_validate(entry) if entry is not None else None


@router.get(
    "/{entry_id}",
    response_model=TimeEntryResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_time_entry(
    db: DbSession,
    clock: AppClock,
    settings: AppSettings,
    entry_id: Annotated[UUID, Path()],
) -> TimeEntryResponse:
    service = TimerService(db, clock=clock, settings=settings)
    return TimeEntryResponse.model_validate(await service.get_entry(entry_id))


# ============================================================================
# Timer lifecycle
# ============================================================================


@router.post(
    "",
    response_model=TimeEntryResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def create_time_entry(
    db: DbSession,
    clock: AppClock,
    settings: AppSettings,
    payload: TimeEntryCreate,
    on_conflict: Literal["reject", "replace"] | None = None,
) -> TimeEntryResponse:
    """Start a timer, or record finished work when a duration is given."""
    service = TimerService(db, clock=clock, settings=settings)
    if payload.duration_minutes is not None:
        entry = await service.create_manual_entry(
            employee_id=payload.employee_id,
            project_id=payload.project_id,
            duration_minutes=payload.duration_minutes,
            entry_date=payload.date,
            category_id=payload.category_id,
            is_billable=payload.is_billable,
            description=payload.description,
        )
    else:
        entry = await service.start(
            employee_id=payload.employee_id,
            project_id=payload.project_id,
            category_id=payload.category_id,
            is_billable=payload.is_billable,
            description=payload.description,
            on_conflict=on_conflict,
        )
    return TimeEntryResponse.model_validate(entry)


@router.put(
    "/{entry_id}",
    response_model=TimeEntryResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def update_time_entry(
    db: DbSession,
    clock: AppClock,
    settings: AppSettings,
    entry_id: Annotated[UUID, Path()],
    payload: TimeEntryUpdate,
) -> TimeEntryResponse:
    """Drive the timer by status, then apply any field edits.

    - PAUSED pauses, PENDING resumes, SUBMITTED stops (or resubmits a
      rejected entry)
    - APPROVED / REJECTED review a stopped entry
    """
    service = TimerService(db, clock=clock, settings=settings)
    entry = await service.get_entry(entry_id)

    if payload.status is not None and payload.status != entry.status:
        if payload.status == "PAUSED":
            entry = await service.pause(entry_id)
        elif payload.status == "PENDING":
            entry = await service.resume(entry_id)
        elif payload.status == "SUBMITTED" and entry.status == "REJECTED":
            entry = await service.review(entry_id, payload.status)
        elif payload.status == "SUBMITTED":
            stopped = await service.stop(entry_id)
            if stopped is None:
                raise _no_active_timer()
            entry = stopped
        else:
            entry = await service.review(entry_id, payload.status)
    elif payload.status == "SUBMITTED":
        # Stopping an already stopped entry
        raise _no_active_timer()

    edits = {
        name: value
        for name, value in payload.model_dump(exclude_unset=True, exclude={"status"}).items()
        if value is not None or name in NULLABLE_EDITS
    }
    if edits:
        entry = await service.edit(entry_id, **edits)
    return TimeEntryResponse.model_validate(entry)


@router.delete(
    "/{entry_id}",
    response_model=TimeEntryResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def delete_time_entry(
    db: DbSession,
    clock: AppClock,
    settings: AppSettings,
    entry_id: Annotated[UUID, Path()],
) -> TimeEntryResponse:
    """Soft delete: the entry is marked, never removed."""
    service = TimerService(db, clock=clock, settings=settings)
    return TimeEntryResponse.model_validate(await service.soft_delete(entry_id))


@router.post(
    "/{entry_id}/restore",
    response_model=TimeEntryResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def restore_time_entry(
    db: DbSession,
    clock: AppClock,
    settings: AppSettings,
    entry_id: Annotated[UUID, Path()],
) -> TimeEntryResponse:
    """Bring a soft-deleted entry back."""
    service = TimerService(db, clock=clock, settings=settings)
    return TimeEntryResponse.model_validate(await service.restore(entry_id))


@router.post("/sweep-stale", response_model=SweepResponse)
async def sweep_stale_timers(
    db: DbSession,
    clock: AppClock,
    settings: AppSettings,
) -> SweepResponse:
    """Stop every timer left open past the configured ceiling."""
    service = TimerService(db, clock=clock, settings=settings)
    stopped = await service.sweep_stale()
    return SweepResponse(
        count=len(stopped),
        entries=[TimeEntryResponse.model_validate(e) for e in stopped],
    )
