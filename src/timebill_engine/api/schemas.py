"""Pydantic schemas for API request/response models."""

from datetime import date as DateType
from datetime import datetime
from decimal import Decimal
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

TimeEntryStatusValue = Literal["PENDING", "PAUSED", "SUBMITTED", "APPROVED", "REJECTED"]
InvoiceStatusValue = Literal["DRAFT", "SENT", "PARTIAL", "PAID", "OVERDUE", "CANCELLED"]


# ============================================================================
# Time entry schemas
# ============================================================================


class TimeEntryCreate(BaseModel):
    """Start a timer, or record finished work when ``duration_minutes`` is set."""

    employee_id: UUID
    project_id: UUID
    category_id: UUID | None = None
    is_billable: bool = True
    description: str | None = None
    duration_minutes: int | None = Field(default=None, ge=0)
    date: DateType | None = None


class TimeEntryUpdate(BaseModel):
    """Status drives the timer; the other fields are edits."""

    status: TimeEntryStatusValue | None = None
    description: str | None = None
    is_billable: bool | None = None
    duration_minutes: int | None = Field(default=None, ge=0)
    date: DateType | None = None
    category_id: UUID | None = None


class TimeEntryResponse(BaseModel):
    """Schema for time entry response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    employee_id: UUID
    project_id: UUID
    category_id: UUID | None = None
    date: DateType
    start_time: datetime | None = None
    end_time: datetime | None = None
    started_at: datetime | None = None
    duration_minutes: int
    accumulated_seconds: int
    status: str
    is_billable: bool
    description: str | None = None
    notes: str | None = None
    is_edited: bool
    last_edited_at: datetime | None = None
    deleted_at: datetime | None = None
    locked_by_payroll_run_id: UUID | None = None
    created_at: datetime
    updated_at: datetime


class SweepResponse(BaseModel):
    """Entries stopped by a stale-timer sweep."""

    count: int
    entries: list[TimeEntryResponse]


# ============================================================================
# Invoice schemas
# ============================================================================


class InvoiceItemInput(BaseModel):
    description: str
    quantity: Decimal = Field(ge=0)
    unit_price: Decimal = Field(ge=0)
    time_entry_id: UUID | None = None


class InvoiceItemResponse(BaseModel):
    description: str
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal
    time_entry_id: UUID | None = None
    minutes: int | None = None


class InvoiceCreate(BaseModel):
    """Schema for creating an invoice by hand."""

    project_id: UUID | None = None
    client_id: UUID | None = None
    items: list[InvoiceItemInput] = Field(default_factory=list)
    issue_date: DateType | None = None
    due_date: DateType | None = None
    status: InvoiceStatusValue = "DRAFT"
    invoice_type: Literal["TIMESHEET", "FIXED"] = "FIXED"
    tax_rate: Decimal | None = Field(default=None, ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    notes: str | None = None
    created_by: str = "Admin"


class InvoiceUpdate(BaseModel):
    items: list[InvoiceItemInput] | None = None
    status: InvoiceStatusValue | None = None
    due_date: DateType | None = None
    notes: str | None = None


class PaymentCreate(BaseModel):
    amount: Decimal = Field(gt=0)
    date: DateType | None = None
    method: str | None = None
    reference: str | None = None


class InvoiceResponse(BaseModel):
    """Schema for invoice response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    invoice_number: str
    client_id: UUID | None = None
    client_name: str | None = None
    project_id: UUID | None = None
    project_name: str | None = None
    issue_date: DateType
    due_date: DateType
    currency: str
    status: str
    invoice_type: str
    items: list[InvoiceItemResponse]
    payments: list[dict[str, Any]]
    tax_rate: Decimal
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    balance_amount: Decimal
    notes: str | None = None
    created_by: str
    created_at: datetime
    updated_at: datetime


class OverrunCheckResponse(BaseModel):
    """Outcome of a manual overrun check."""

    model_config = ConfigDict(from_attributes=True)

    project_id: UUID
    action: str
    consumed_hours: Decimal
    estimated_hours: Decimal | None = None
    invoice_id: UUID | None = None
    invoice_created: bool
    notification_created: bool


# ============================================================================
# Payroll schemas
# ============================================================================


class PayrollCalculateRequest(BaseModel):
    period: str = Field(min_length=1, examples=["Jan 2026", "2026-01"])
    generated_by: str | None = None


class PayrollRunResponse(BaseModel):
    """Schema for payroll run response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    period: str
    period_start: DateType
    period_end: DateType
    status: str
    total_employees: int
    total_payable: Decimal
    total_approved_hours: Decimal
    fingerprint: str | None = None
    generated_at: datetime | None = None
    generated_by: str | None = None
    locked_at: datetime | None = None
    paid_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class PayrollRecordResponse(BaseModel):
    """Schema for payroll record response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    payroll_run_id: UUID
    employee_id: UUID
    employee_name: str
    designation: str | None = None
    department: str | None = None
    join_date: DateType | None = None
    total_hours: Decimal
    approved_hours: Decimal
    billable_hours: Decimal
    non_billable_hours: Decimal
    overtime_hours: Decimal
    rate_type: str
    hourly_rate: Decimal
    base_pay: Decimal
    overtime_amount: Decimal
    bonus: Decimal
    deductions: Decimal
    total_payable: Decimal
    status: str


class PayrollRecordAdjust(BaseModel):
    bonus: Decimal | None = Field(default=None, ge=0)
    deductions: Decimal | None = Field(default=None, ge=0)


class PayrollExceptionResponse(BaseModel):
    """A payroll anomaly awaiting review."""

    model_config = ConfigDict(from_attributes=True)

    code: str
    severity: str
    employee_id: UUID
    employee_name: str
    message: str
    record_id: UUID | None = None


# ============================================================================
# Notification schemas
# ============================================================================


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    audience: str
    title: str
    message: str
    is_read: bool
    created_at: datetime


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None
