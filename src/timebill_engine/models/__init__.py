"""SQLAlchemy models for the time billing engine."""

from timebill_engine.models.base import Base, JSONType, TimestampMixin, UUIDPrimaryKeyMixin, utcnow
from timebill_engine.models.directory import Client, Employee, Project
from timebill_engine.models.invoice import Invoice, Notification
from timebill_engine.models.payroll import PayrollRecord, PayrollRun
from timebill_engine.models.time_entry import TimeEntry

__all__ = [
    # Base
    "Base",
    "JSONType",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "utcnow",
    # Directory
    "Client",
    "Employee",
    "Project",
    # Time tracking
    "TimeEntry",
    # Billing
    "Invoice",
    "Notification",
    # Payroll
    "PayrollRecord",
    "PayrollRun",
]
