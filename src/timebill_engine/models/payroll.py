"""Payroll run and record models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from timebill_engine.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


# ===== Payroll Run =====


class PayrollRun(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Payroll run container, one per period."""

    __tablename__ = "payroll_run"

    period: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    period_start: Mapped[date] = mapped_column(Date, nullable=False, unique=True)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="DRAFT")

    total_employees: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_payable: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    total_approved_hours: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    fingerprint: Mapped[str | None] = mapped_column(String(64), nullable=True)

    generated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    generated_by: Mapped[str | None] = mapped_column(String, nullable=True)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('DRAFT', 'LOCKED', 'PAID')",
            name="payroll_run_status_check",
        ),
        CheckConstraint("period_end >= period_start", name="payroll_run_dates_check"),
    )


# ===== Payroll Record =====


class PayrollRecord(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """One employee's aggregated pay for a run."""

    __tablename__ = "payroll_record"

    payroll_run_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_run.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.id", ondelete="RESTRICT"),
        nullable=False,
    )
    employee_name: Mapped[str] = mapped_column(String, nullable=False)
    designation: Mapped[str | None] = mapped_column(String, nullable=True)
    department: Mapped[str | None] = mapped_column(String, nullable=True)
    join_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Hours
    total_hours: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    approved_hours: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    billable_hours: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    non_billable_hours: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0")
    )
    overtime_hours: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))

    # Money
    rate_type: Mapped[str] = mapped_column(String, nullable=False, default="HOURLY")
    hourly_rate: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    base_pay: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    overtime_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    bonus: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    deductions: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    total_payable: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))

    status: Mapped[str] = mapped_column(String, nullable=False, default="DRAFT")

    __table_args__ = (
        CheckConstraint(
            "status IN ('DRAFT', 'APPROVED', 'HOLD', 'PAID')",
            name="payroll_record_status_check",
        ),
        CheckConstraint("rate_type IN ('HOURLY')", name="payroll_record_rate_type_check"),
    )
