"""Timer, invoice and payroll run state machines with transition validation."""

from __future__ import annotations

from enum import Enum


class TimeEntryStatus(str, Enum):
    """Time entry status values."""

    PENDING = "PENDING"  # Running
    PAUSED = "PAUSED"
    SUBMITTED = "SUBMITTED"  # Stopped
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class InvoiceStatus(str, Enum):
    """Invoice status values."""

    DRAFT = "DRAFT"
    SENT = "SENT"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


class PayrollRunStatus(str, Enum):
    """Payroll run status values."""

    DRAFT = "DRAFT"
    LOCKED = "LOCKED"
    PAID = "PAID"


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


def _value(status: str | Enum) -> str:
    return status.value if isinstance(status, Enum) else str(status)


class TimerStateMachine:
    """State machine for time entry status transitions.

    Allowed transitions:
    - PENDING → PAUSED (pause)
    - PAUSED → PENDING (resume)
    - PENDING → SUBMITTED, PAUSED → SUBMITTED (stop)
    - SUBMITTED → APPROVED, SUBMITTED → REJECTED (review)
    - REJECTED → SUBMITTED (resubmit)
    """

    # Define valid transitions: {from_status: [allowed_to_statuses]}
    VALID_TRANSITIONS: dict[str, list[str]] = {
        TimeEntryStatus.PENDING: [TimeEntryStatus.PAUSED, TimeEntryStatus.SUBMITTED],
        TimeEntryStatus.PAUSED: [TimeEntryStatus.PENDING, TimeEntryStatus.SUBMITTED],
        TimeEntryStatus.SUBMITTED: [TimeEntryStatus.APPROVED, TimeEntryStatus.REJECTED],
        TimeEntryStatus.REJECTED: [TimeEntryStatus.SUBMITTED],
        TimeEntryStatus.APPROVED: [],  # Terminal state
    }

    # Statuses that count as the employee's single open timer
    OPEN_STATUSES = {
        TimeEntryStatus.PENDING,
        TimeEntryStatus.PAUSED,
    }

    REVIEW_STATUSES = {
        TimeEntryStatus.APPROVED,
        TimeEntryStatus.REJECTED,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(_value(from_status), [])
        return _value(to_status) in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(_value(from_status), _value(to_status))

    @classmethod
    def is_open(cls, status: str) -> bool:
        """Check if an entry in this status is the employee's open timer."""
        return _value(status) in cls.OPEN_STATUSES

    @classmethod
    def is_review(cls, status: str) -> bool:
        return _value(status) in cls.REVIEW_STATUSES


class PayrollRunStateMachine:
    """State machine for payroll run status transitions.

    Allowed transitions:
    - DRAFT → LOCKED
    - LOCKED → PAID
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PayrollRunStatus.DRAFT: [PayrollRunStatus.LOCKED],
        PayrollRunStatus.LOCKED: [PayrollRunStatus.PAID],
        PayrollRunStatus.PAID: [],  # Terminal state
    }

    # Statuses where records are rebuilt on recalculation
    CALCULATION_ALLOWED = {
        PayrollRunStatus.DRAFT,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        allowed = cls.VALID_TRANSITIONS.get(_value(from_status), [])
        return _value(to_status) in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(_value(from_status), _value(to_status))

    @classmethod
    def can_calculate(cls, status: str) -> bool:
        """Check if records may be wiped and rebuilt in this status."""
        return _value(status) in cls.CALCULATION_ALLOWED

    @classmethod
    def can_adjust(cls, status: str) -> bool:
        """Check if bonus/deduction adjustments are allowed in this status."""
        return _value(status) == PayrollRunStatus.DRAFT


class InvoiceStateMachine:
    """State machine for invoice status transitions.

    Allowed transitions:
    - DRAFT → SENT, DRAFT → CANCELLED
    - SENT → DRAFT (recall before any payment)
    - SENT, OVERDUE → PARTIAL, PAID (payments)
    - SENT, PARTIAL → OVERDUE
    - PARTIAL → PAID
    - SENT, PARTIAL, OVERDUE → CANCELLED

    PAID and CANCELLED are terminal. PARTIAL and PAID are only reached by
    recording payments.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        InvoiceStatus.DRAFT: [InvoiceStatus.SENT, InvoiceStatus.CANCELLED],
        InvoiceStatus.SENT: [
            InvoiceStatus.DRAFT,
            InvoiceStatus.PARTIAL,
            InvoiceStatus.PAID,
            InvoiceStatus.OVERDUE,
            InvoiceStatus.CANCELLED,
        ],
        InvoiceStatus.PARTIAL: [
            InvoiceStatus.PAID,
            InvoiceStatus.OVERDUE,
            InvoiceStatus.CANCELLED,
        ],
        InvoiceStatus.OVERDUE: [
            InvoiceStatus.PARTIAL,
            InvoiceStatus.PAID,
            InvoiceStatus.CANCELLED,
        ],
        InvoiceStatus.PAID: [],  # Terminal state
        InvoiceStatus.CANCELLED: [],  # Terminal state
    }

    # Statuses an invoice may be created in
    INITIAL_STATUSES = {
        InvoiceStatus.DRAFT,
        InvoiceStatus.SENT,
    }

    PAYMENT_STATUSES = {
        InvoiceStatus.PARTIAL,
        InvoiceStatus.PAID,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        allowed = cls.VALID_TRANSITIONS.get(_value(from_status), [])
        return _value(to_status) in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(_value(from_status), _value(to_status))

    @classmethod
    def validate_manual_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a status change requested directly, not through a payment."""
        if _value(to_status) in cls.PAYMENT_STATUSES:
            raise InvalidTransitionError(
                _value(from_status), _value(to_status), "record a payment instead"
            )
        cls.validate_transition(from_status, to_status)

    @classmethod
    def can_create_as(cls, status: str) -> bool:
        return _value(status) in cls.INITIAL_STATUSES

    @classmethod
    def accepts_payments(cls, status: str) -> bool:
        """Drafts and cancelled invoices take no payments."""
        return _value(status) not in (InvoiceStatus.DRAFT, InvoiceStatus.CANCELLED)
