"""Payroll API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path

from timebill_engine.api.dependencies import AppClock, AppSettings, DbSession
from timebill_engine.api.schemas import (
    ErrorResponse,
    PayrollCalculateRequest,
    PayrollExceptionResponse,
    PayrollRecordAdjust,
    PayrollRecordResponse,
    PayrollRunResponse,
)
from timebill_engine.services.payroll_service import PayrollAggregationService

router = APIRouter(tags=["payroll"])


# ============================================================================
# Calculation
# ============================================================================


@router.post(
    "/payroll/calculate",
    response_model=PayrollRunResponse,
    responses={422: {"model": ErrorResponse}},
)
async def calculate_payroll(
    db: DbSession,
    clock: AppClock,
    settings: AppSettings,
    payload: PayrollCalculateRequest,
) -> PayrollRunResponse:
    """Create or rebuild the period's run. LOCKED and PAID runs come back unchanged."""
    service = PayrollAggregationService(db, clock=clock, settings=settings)
    run = await service.calculate(payload.period, generated_by=payload.generated_by)
    return PayrollRunResponse.model_validate(run)


# ============================================================================
# Runs
# ============================================================================


@router.get("/payroll-runs", response_model=list[PayrollRunResponse])
async def list_payroll_runs(
    db: DbSession,
    clock: AppClock,
    settings: AppSettings,
) -> list[PayrollRunResponse]:
    service = PayrollAggregationService(db, clock=clock, settings=settings)
    return [PayrollRunResponse.model_validate(r) for r in await service.list_runs()]


@router.get(
    "/payroll-runs/{run_id}",
    response_model=PayrollRunResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_payroll_run(
    db: DbSession,
    clock: AppClock,
    settings: AppSettings,
    run_id: Annotated[UUID, Path()],
) -> PayrollRunResponse:
    service = PayrollAggregationService(db, clock=clock, settings=settings)
    return PayrollRunResponse.model_validate(await service.get_run(run_id))


@router.get(
    "/payroll-runs/{run_id}/records",
    response_model=list[PayrollRecordResponse],
    responses={404: {"model": ErrorResponse}},
)
async def list_payroll_records(
    db: DbSession,
    clock: AppClock,
    settings: AppSettings,
    run_id: Annotated[UUID, Path()],
) -> list[PayrollRecordResponse]:
    service = PayrollAggregationService(db, clock=clock, settings=settings)
    records = await service.get_records(run_id)
    return [PayrollRecordResponse.model_validate(r) for r in records]


@router.get(
    "/payroll-runs/{run_id}/exceptions",
    response_model=list[PayrollExceptionResponse],
    responses={404: {"model": ErrorResponse}},
)
async def list_payroll_exceptions(
    db: DbSession,
    clock: AppClock,
    settings: AppSettings,
    run_id: Annotated[UUID, Path()],
) -> list[PayrollExceptionResponse]:
    """Anomalies for review. Nothing is corrected automatically."""
    service = PayrollAggregationService(db, clock=clock, settings=settings)
    return [
        PayrollExceptionResponse(
            code=e.code.value,
            severity=e.severity.value,
            employee_id=e.employee_id,
            employee_name=e.employee_name,
            message=e.message,
            record_id=e.record_id,
        )
        for e in await service.find_exceptions(run_id)
    ]


@router.post(
    "/payroll-runs/{run_id}/lock",
    response_model=PayrollRunResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def lock_payroll_run(
    db: DbSession,
    clock: AppClock,
    settings: AppSettings,
    run_id: Annotated[UUID, Path()],
) -> PayrollRunResponse:
    service = PayrollAggregationService(db, clock=clock, settings=settings)
    return PayrollRunResponse.model_validate(await service.lock(run_id))


@router.post(
    "/payroll-runs/{run_id}/paid",
    response_model=PayrollRunResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def mark_payroll_run_paid(
    db: DbSession,
    clock: AppClock,
    settings: AppSettings,
    run_id: Annotated[UUID, Path()],
) -> PayrollRunResponse:
    service = PayrollAggregationService(db, clock=clock, settings=settings)
    return PayrollRunResponse.model_validate(await service.mark_paid(run_id))


# ============================================================================
# Records
# ============================================================================


@router.put(
    "/payroll-records/{record_id}",
    response_model=PayrollRecordResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def adjust_payroll_record(
    db: DbSession,
    clock: AppClock,
    settings: AppSettings,
    record_id: Annotated[UUID, Path()],
    payload: PayrollRecordAdjust,
) -> PayrollRecordResponse:
    """Set bonus and deductions while the run is still a draft."""
    service = PayrollAggregationService(db, clock=clock, settings=settings)
    record = await service.adjust_record(
        record_id, bonus=payload.bonus, deductions=payload.deductions
    )
    return PayrollRecordResponse.model_validate(record)
