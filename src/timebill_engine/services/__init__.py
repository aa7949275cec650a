"""Timebill engine services."""

from timebill_engine.services.directory import DirectoryService, EntityNotFoundError
from timebill_engine.services.invoice_service import InvoiceService, InvoiceValidationError
from timebill_engine.services.locking_service import LockingService
from timebill_engine.services.notification_service import DatabaseNotificationSink, NotificationSink
from timebill_engine.services.overrun_service import BudgetOverrunAutomator, OverrunResult
from timebill_engine.services.payroll_service import PayrollAggregationService, PayrollRunLockedError
from timebill_engine.services.state_machine import (
    InvalidTransitionError,
    InvoiceStateMachine,
    InvoiceStatus,
    PayrollRunStateMachine,
    PayrollRunStatus,
    TimeEntryStatus,
    TimerStateMachine,
)
from timebill_engine.services.timer_service import (
    TimeEntryLockedError,
    TimerConflictError,
    TimerService,
)

__all__ = [
    "BudgetOverrunAutomator",
    "DatabaseNotificationSink",
    "DirectoryService",
    "EntityNotFoundError",
    "InvalidTransitionError",
    "InvoiceService",
    "InvoiceStateMachine",
    "InvoiceStatus",
    "InvoiceValidationError",
    "LockingService",
    "NotificationSink",
    "OverrunResult",
    "PayrollAggregationService",
    "PayrollRunLockedError",
    "PayrollRunStateMachine",
    "PayrollRunStatus",
    "TimeEntryLockedError",
    "TimeEntryStatus",
    "TimerConflictError",
    "TimerService",
    "TimerStateMachine",
]
