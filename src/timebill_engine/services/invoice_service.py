"""Invoice reads, manual invoices and payment recording."""

from __future__ import annotations

import logging
import secrets
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timebill_engine.calculators.invoice_builder import InvoiceBuilder
from timebill_engine.calculators.types import InvoiceItem, InvoiceTotals
from timebill_engine.clock import Clock, SystemClock
from timebill_engine.config import Settings, get_settings
from timebill_engine.models import Invoice
from timebill_engine.services.directory import DirectoryService, EntityNotFoundError
from timebill_engine.services.locking_service import LockingService
from timebill_engine.services.state_machine import InvoiceStateMachine, InvoiceStatus

logger = logging.getLogger(__name__)

INVOICE_TYPES = ("TIMESHEET", "FIXED")


class InvoiceValidationError(Exception):
    """Raised when an invoice request is inconsistent."""


class InvoiceService:
    """Invoices created by hand and through the same path as the automator.

    Totals are never taken from the caller; they are derived from items and
    payments on every write.
    """

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock | None = None,
        settings: Settings | None = None,
        locking: LockingService | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings()
        self.locking = locking or LockingService(session)
        self.directory = DirectoryService(session)

    async def get_invoice(self, invoice_id: UUID) -> Invoice:
        invoice = await self.session.get(Invoice, invoice_id, populate_existing=True)
        if invoice is None:
            raise EntityNotFoundError("Invoice", invoice_id)
        return invoice

    async def list_invoices(
        self,
        project_id: UUID | None = None,
        status: str | None = None,
    ) -> list[Invoice]:
        query = select(Invoice).order_by(Invoice.issue_date.desc(), Invoice.invoice_number)
        if project_id is not None:
            query = query.where(Invoice.project_id == project_id)
        if status is not None:
            query = query.where(Invoice.status == status)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def create_invoice(
        self,
        items: Sequence[dict[str, Any]],
        created_by: str,
        project_id: UUID | None = None,
        client_id: UUID | None = None,
        issue_date: date | None = None,
        due_date: date | None = None,
        status: str = "DRAFT",
        invoice_type: str = "FIXED",
        tax_rate: Decimal | None = None,
        currency: str | None = None,
        notes: str | None = None,
    ) -> Invoice:
        """Create an invoice from caller-supplied items."""
        self._validate_status(status)
        if not InvoiceStateMachine.can_create_as(status):
            raise InvoiceValidationError(f"Invoices cannot be created as {status}")
        if invoice_type not in INVOICE_TYPES:
            raise InvoiceValidationError(f"Unknown invoice type '{invoice_type}'")

        issue_date = issue_date or self.clock.today()
        due_date = due_date or issue_date + timedelta(days=self.settings.invoice_due_days)
        self._validate_dates(issue_date, due_date)
        built = self._build_items(items)

        project = await self.directory.get_project(project_id) if project_id else None
        if project is not None and client_id is None:
            client_id = project.client_id
        client = await self.directory.find_client(client_id)
        if client_id is not None and client is None:
            raise EntityNotFoundError("Client", client_id)

        lock_key = project_id or "unassigned"
        async with self.locking.hold("project", lock_key):
            if project_id is not None and status == "DRAFT":
                await self._ensure_no_other_draft(project_id)

            invoice = Invoice(
                invoice_number=self.generate_invoice_number(),
                client_id=client_id,
                client_name=client.name if client else None,
                project_id=project_id,
                project_name=project.name if project else None,
                issue_date=issue_date,
                due_date=due_date,
                currency=currency or (project.currency if project else "USD"),
                status=status,
                invoice_type=invoice_type,
                items=[],
                payments=[],
                tax_rate=self.settings.invoice_tax_rate if tax_rate is None else tax_rate,
                notes=notes,
                created_by=created_by,
            )
            self.apply_items(invoice, built)
            self.session.add(invoice)
            await self.session.commit()

        logger.info(
            "Invoice created",
            extra={"invoice_number": invoice.invoice_number, "created_by": created_by},
        )
        return invoice

    async def update_invoice(
        self,
        invoice_id: UUID,
        items: Sequence[dict[str, Any]] | None = None,
        status: str | None = None,
        due_date: date | None = None,
        notes: str | None = None,
    ) -> Invoice:
        """Replace items and/or change status, due date or notes."""
        invoice = await self.get_invoice(invoice_id)
        async with self.locking.hold("project", invoice.project_id or "unassigned"):
            invoice = await self.get_invoice(invoice_id)

            if status is not None and status != invoice.status:
                self._validate_status(status)
                InvoiceStateMachine.validate_manual_transition(invoice.status, status)
                if status == "DRAFT" and invoice.project_id is not None:
                    await self._ensure_no_other_draft(invoice.project_id, exclude_id=invoice.id)
                invoice.status = status
            if due_date is not None:
                self._validate_dates(invoice.issue_date, due_date)
                invoice.due_date = due_date
            if notes is not None:
                invoice.notes = notes
            if items is not None:
                self.apply_items(invoice, self._build_items(items))

            await self.session.commit()
        return invoice

    async def record_payment(
        self,
        invoice_id: UUID,
        amount: Decimal,
        payment_date: date | None = None,
        method: str | None = None,
        reference: str | None = None,
    ) -> Invoice:
        """Append a payment; the invoice becomes PARTIAL or PAID."""
        if amount <= 0:
            raise InvoiceValidationError("Payment amount must be positive")

        invoice = await self.get_invoice(invoice_id)
        async with self.locking.hold("project", invoice.project_id or "unassigned"):
            invoice = await self.get_invoice(invoice_id)
            if not InvoiceStateMachine.accepts_payments(invoice.status):
                raise InvoiceValidationError(
                    f"Cannot record a payment on a {invoice.status} invoice"
                )

            payments = list(invoice.payments or [])
            payments.append(
                {
                    "amount": str(InvoiceBuilder.round_to_cents(Decimal(amount))),
                    "date": (payment_date or self.clock.today()).isoformat(),
                    "method": method,
                    "reference": reference,
                }
            )
            invoice.payments = payments
            items = [InvoiceItem.from_dict(item) for item in invoice.items or []]
            totals = self.apply_items(invoice, items)
            new_status = InvoiceBuilder.payment_status(totals, invoice.status)
            if new_status != invoice.status:
                InvoiceStateMachine.validate_transition(invoice.status, new_status)
                invoice.status = new_status
            await self.session.commit()

        logger.info(
            "Payment recorded",
            extra={"invoice_number": invoice.invoice_number, "amount": str(amount)},
        )
        return invoice

    def apply_items(self, invoice: Invoice, items: list[InvoiceItem]) -> InvoiceTotals:
        """Store items and derive every money column from items and payments."""
        totals = InvoiceBuilder.compute_totals(
            items, invoice.payments or [], Decimal(invoice.tax_rate)
        )
        invoice.items = [item.to_dict() for item in items]
        invoice.subtotal = totals.subtotal
        invoice.tax_amount = totals.tax_amount
        invoice.total_amount = totals.total_amount
        invoice.paid_amount = totals.paid_amount
        invoice.balance_amount = totals.balance_amount
        return totals

    @staticmethod
    def _build_items(items: Sequence[dict[str, Any]]) -> list[InvoiceItem]:
        built: list[InvoiceItem] = []
        for raw in items:
            quantity = Decimal(str(raw.get("quantity", "0")))
            unit_price = Decimal(str(raw.get("unit_price", "0")))
            if quantity < 0 or unit_price < 0:
                raise InvoiceValidationError("Item quantity and unit price must not be negative")
            item = InvoiceBuilder.create_manual_item(
                str(raw.get("description") or ""), quantity, unit_price
            )
            if raw.get("time_entry_id"):
                item.time_entry_id = UUID(str(raw["time_entry_id"]))
            built.append(item)
        return built

    @staticmethod
    def _validate_status(status: str) -> None:
        if status not in {s.value for s in InvoiceStatus}:
            raise InvoiceValidationError(f"Unknown invoice status '{status}'")

    @staticmethod
    def _validate_dates(issue_date: date, due_date: date) -> None:
        if due_date < issue_date:
            raise InvoiceValidationError("Due date cannot be before the issue date")

    async def _ensure_no_other_draft(self, project_id: UUID, exclude_id: UUID | None = None) -> None:
        query = select(Invoice.id).where(Invoice.project_id == project_id, Invoice.status == "DRAFT")
        if exclude_id is not None:
            query = query.where(Invoice.id != exclude_id)
        if (await self.session.execute(query)).first() is not None:
            raise InvoiceValidationError(f"Project {project_id} already has a DRAFT invoice")

    def generate_invoice_number(self) -> str:
        year = self.clock.today().year
        return f"{self.settings.invoice_prefix}{year}-{secrets.token_hex(3).upper()}"
