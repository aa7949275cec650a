"""Type definitions for billing and payroll calculations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class ExceptionSeverity(str, Enum):
    """How urgently a payroll anomaly needs review."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class ExceptionCode(str, Enum):
    """Payroll anomaly kinds."""

    MISSING_RATE = "MISSING_RATE"
    ZERO_PAY = "ZERO_PAY"
    EXCESSIVE_OVERTIME = "EXCESSIVE_OVERTIME"
    HIGH_DEDUCTIONS = "HIGH_DEDUCTIONS"
    HIGH_DAILY_HOURS = "HIGH_DAILY_HOURS"


@dataclass
class InvoiceItem:
    """One invoice line as stored in ``Invoice.items``."""

    description: str
    quantity: Decimal  # Hours
    unit_price: Decimal
    amount: Decimal
    time_entry_id: UUID | None = None
    minutes: int | None = None  # Set on timesheet lines

    @property
    def exact_amount(self) -> Decimal:
        """Unrounded line value; timesheet lines are priced from their minutes."""
        if self.minutes is None:
            return self.amount
        return Decimal(self.minutes) * self.unit_price / Decimal("60")

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON form; decimals are kept as strings to stay exact."""
        return {
            "description": self.description,
            "quantity": str(self.quantity),
            "unit_price": str(self.unit_price),
            "amount": str(self.amount),
            "time_entry_id": str(self.time_entry_id) if self.time_entry_id else None,
            "minutes": self.minutes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InvoiceItem:
        entry_id = data.get("time_entry_id")
        return cls(
            description=str(data.get("description") or ""),
            quantity=Decimal(str(data.get("quantity", "0"))),
            unit_price=Decimal(str(data.get("unit_price", "0"))),
            amount=Decimal(str(data.get("amount", "0"))),
            time_entry_id=UUID(str(entry_id)) if entry_id else None,
            minutes=int(data["minutes"]) if data.get("minutes") is not None else None,
        )


@dataclass
class InvoiceTotals:
    """Derived money columns of an invoice."""

    subtotal: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")
    paid_amount: Decimal = Decimal("0")
    balance_amount: Decimal = Decimal("0")


@dataclass
class PayrollRecordCandidate:
    """A payroll record before persistence."""

    employee_id: UUID
    employee_name: str
    designation: str | None = None
    department: str | None = None
    join_date: date | None = None

    total_hours: Decimal = Decimal("0")
    approved_hours: Decimal = Decimal("0")
    billable_hours: Decimal = Decimal("0")
    non_billable_hours: Decimal = Decimal("0")
    overtime_hours: Decimal = Decimal("0")

    rate_type: str = "HOURLY"
    hourly_rate: Decimal = Decimal("0")
    base_pay: Decimal = Decimal("0")
    overtime_amount: Decimal = Decimal("0")
    bonus: Decimal = Decimal("0")
    deductions: Decimal = Decimal("0")
    total_payable: Decimal = Decimal("0")

    # Hours per calendar day, used for anomaly checks only
    daily_hours: dict[date, Decimal] = field(default_factory=dict)

    def to_canonical_dict(self) -> dict[str, Any]:
        """Return canonical dict for hashing (deterministic ordering)."""
        return {
            "employee_id": str(self.employee_id),
            "total_hours": str(self.total_hours),
            "approved_hours": str(self.approved_hours),
            "billable_hours": str(self.billable_hours),
            "non_billable_hours": str(self.non_billable_hours),
            "overtime_hours": str(self.overtime_hours),
            "hourly_rate": str(self.hourly_rate),
            "base_pay": str(self.base_pay),
            "overtime_amount": str(self.overtime_amount),
            "bonus": str(self.bonus),
            "deductions": str(self.deductions),
            "total_payable": str(self.total_payable),
        }


@dataclass
class PayrollException:
    """A reviewable payroll anomaly. Never corrected automatically."""

    code: ExceptionCode
    severity: ExceptionSeverity
    employee_id: UUID
    employee_name: str
    message: str
    record_id: UUID | None = None
