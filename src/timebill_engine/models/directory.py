"""Directory entities owned by the surrounding CRUD layer.

Employees, clients and projects are read here, never written by the engine.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from timebill_engine.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Client(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Billed customer."""

    __tablename__ = "client"

    name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(String, nullable=True)


class Project(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Billing and budget container."""

    __tablename__ = "project"

    name: Mapped[str] = mapped_column(String, nullable=False)
    client_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("client.id", ondelete="SET NULL"),
        nullable=True,
    )
    estimated_hours: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    global_rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    status: Mapped[str] = mapped_column(String, nullable=False, default="ACTIVE")


class Employee(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Person who logs time and gets paid."""

    __tablename__ = "employee"

    name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    role: Mapped[str] = mapped_column(String, nullable=False, default="EMPLOYEE")
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")
    department: Mapped[str | None] = mapped_column(String, nullable=True)
    designation: Mapped[str | None] = mapped_column(String, nullable=True)
    hourly_cost_rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    joining_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "role IN ('EMPLOYEE', 'MANAGER', 'ADMIN')",
            name="employee_role_check",
        ),
        CheckConstraint(
            "status IN ('active', 'inactive')",
            name="employee_status_check",
        ),
    )
