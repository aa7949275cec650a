"""Invoice API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from timebill_engine.api.dependencies import AppClock, AppSettings, DbSession
from timebill_engine.api.schemas import (
    ErrorResponse,
    InvoiceCreate,
    InvoiceResponse,
    InvoiceUpdate,
    OverrunCheckResponse,
    PaymentCreate,
)
from timebill_engine.services.invoice_service import InvoiceService
from timebill_engine.services.overrun_service import BudgetOverrunAutomator

router = APIRouter(tags=["invoices"])


@router.get("/invoices", response_model=list[InvoiceResponse])
async def list_invoices(
    db: DbSession,
    clock: AppClock,
    settings: AppSettings,
    project_id: UUID | None = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> list[InvoiceResponse]:
    service = InvoiceService(db, clock=clock, settings=settings)
    invoices = await service.list_invoices(project_id=project_id, status=status_filter)
    return [InvoiceResponse.model_validate(i) for i in invoices]


@router.get(
    "/invoices/{invoice_id}",
    response_model=InvoiceResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_invoice(
    db: DbSession,
    clock: AppClock,
    settings: AppSettings,
    invoice_id: Annotated[UUID, Path()],
) -> InvoiceResponse:
    service = InvoiceService(db, clock=clock, settings=settings)
    return InvoiceResponse.model_validate(await service.get_invoice(invoice_id))


@router.post(
    "/invoices",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def create_invoice(
    db: DbSession,
    clock: AppClock,
    settings: AppSettings,
    payload: InvoiceCreate,
) -> InvoiceResponse:
    """Create an invoice; totals are derived from the items."""
    service = InvoiceService(db, clock=clock, settings=settings)
    invoice = await service.create_invoice(
        items=[item.model_dump() for item in payload.items],
        created_by=payload.created_by,
        project_id=payload.project_id,
        client_id=payload.client_id,
        issue_date=payload.issue_date,
        due_date=payload.due_date,
        status=payload.status,
        invoice_type=payload.invoice_type,
        tax_rate=payload.tax_rate,
        currency=payload.currency,
        notes=payload.notes,
    )
    return InvoiceResponse.model_validate(invoice)


@router.put(
    "/invoices/{invoice_id}",
    response_model=InvoiceResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def update_invoice(
    db: DbSession,
    clock: AppClock,
    settings: AppSettings,
    invoice_id: Annotated[UUID, Path()],
    payload: InvoiceUpdate,
) -> InvoiceResponse:
    service = InvoiceService(db, clock=clock, settings=settings)
    invoice = await service.update_invoice(
        invoice_id,
        items=[item.model_dump() for item in payload.items] if payload.items is not None else None,
        status=payload.status,
        due_date=payload.due_date,
        notes=payload.notes,
    )
    return InvoiceResponse.model_validate(invoice)


@router.post(
    "/invoices/{invoice_id}/payments",
    response_model=InvoiceResponse,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def record_payment(
    db: DbSession,
    clock: AppClock,
    settings: AppSettings,
    invoice_id: Annotated[UUID, Path()],
    payload: PaymentCreate,
) -> InvoiceResponse:
    service = InvoiceService(db, clock=clock, settings=settings)
    invoice = await service.record_payment(
        invoice_id,
        amount=payload.amount,
        payment_date=payload.date,
        method=payload.method,
        reference=payload.reference,
    )
    return InvoiceResponse.model_validate(invoice)


@router.post(
    "/projects/{project_id}/overrun-check",
    response_model=OverrunCheckResponse,
    responses={404: {"model": ErrorResponse}},
)
async def check_project_overrun(
    db: DbSession,
    clock: AppClock,
    settings: AppSettings,
    project_id: Annotated[UUID, Path()],
) -> OverrunCheckResponse:
    """Run the budget overrun check for one project on demand."""
    automator = BudgetOverrunAutomator(db, clock=clock, settings=settings)
    result = await automator.check_project(project_id)
    return OverrunCheckResponse.model_validate(result)
