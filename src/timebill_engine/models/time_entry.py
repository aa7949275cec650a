"""Time entry model."""

from __future__ import annotations

from datetime import date as date_type
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from timebill_engine.models.base import Base, JSONType, TimestampMixin, UUIDPrimaryKeyMixin

OPEN_STATUSES_SQL = "status IN ('PENDING', 'PAUSED')"


class TimeEntry(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """One logged unit of work.

    ``status`` is authoritative; ``start_time``/``end_time`` are audit data.
    ``start_time`` holds the start of the current running session and is
    cleared while paused. Seconds worked in earlier sessions live in
    ``activity_log["accumulated_seconds"]``.
    """

    __tablename__ = "time_entry"

    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    project_id: Mapped[UUID] = mapped_column(
        ForeignKey("project.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    category_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)

    date: Mapped[date_type] = mapped_column(Date, nullable=False)
    start_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[str] = mapped_column(String, nullable=False, default="PENDING")
    is_billable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    activity_log: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    is_edited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_edited_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Locking
    locked_by_payroll_run_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payroll_run.id", ondelete="SET NULL"),
        nullable=True,
    )
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'PAUSED', 'SUBMITTED', 'APPROVED', 'REJECTED')",
            name="time_entry_status_check",
        ),
        CheckConstraint("duration_minutes >= 0", name="time_entry_duration_check"),
        Index(
            "time_entry_one_open_per_employee",
            "employee_id",
            unique=True,
            sqlite_where=text(OPEN_STATUSES_SQL),
            postgresql_where=text(OPEN_STATUSES_SQL),
        ),
        Index("time_entry_employee_date_idx", "employee_id", "date"),
    )

    @property
    def accumulated_seconds(self) -> int:
        """Seconds banked by previous pause/stop operations."""
        return int((self.activity_log or {}).get("accumulated_seconds", 0))

    def set_accumulated_seconds(self, seconds: int) -> None:
        # Reassign so the JSON column is flagged dirty
        log = dict(self.activity_log or {})
        log["accumulated_seconds"] = int(seconds)
        self.activity_log = log

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_locked(self) -> bool:
        return self.locked_by_payroll_run_id is not None

    def append_note(self, note: str) -> None:
        self.notes = f"{self.notes}\n{note}" if self.notes else note
