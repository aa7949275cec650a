"""Invoice and notification models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from timebill_engine.models.base import Base, JSONType, TimestampMixin, UUIDPrimaryKeyMixin

DRAFT_ONLY_SQL = "status = 'DRAFT'"


class Invoice(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """One bill to a client.

    ``items`` and ``payments`` are JSON lists; every money column is derived
    from them by ``calculators.invoice_builder``.
    """

    __tablename__ = "invoice"

    invoice_number: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    client_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("client.id", ondelete="SET NULL"),
        nullable=True,
    )
    client_name: Mapped[str | None] = mapped_column(String, nullable=True)
    project_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("project.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    project_name: Mapped[str | None] = mapped_column(String, nullable=True)
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    status: Mapped[str] = mapped_column(String, nullable=False, default="DRAFT")
    invoice_type: Mapped[str] = mapped_column(String, nullable=False, default="TIMESHEET")

    items: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    payments: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)

    tax_rate: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False, default=Decimal("0"))
    subtotal: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    paid_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    balance_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('DRAFT', 'SENT', 'PARTIAL', 'PAID', 'OVERDUE', 'CANCELLED')",
            name="invoice_status_check",
        ),
        CheckConstraint(
            "invoice_type IN ('TIMESHEET', 'FIXED')",
            name="invoice_type_check",
        ),
        Index(
            "invoice_one_draft_per_project",
            "project_id",
            unique=True,
            sqlite_where=text(DRAFT_ONLY_SQL),
            postgresql_where=text(DRAFT_ONLY_SQL),
        ),
    )


class Notification(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """In-app notification addressed to an audience (``ADMIN`` or an employee id)."""

    __tablename__ = "notification"

    audience: Mapped[str] = mapped_column(String, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    dedupe_key: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)
