"""Tests for manual invoices and payments."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from timebill_engine.services.directory import EntityNotFoundError
from timebill_engine.services.invoice_service import InvoiceService, InvoiceValidationError
from timebill_engine.services.state_machine import InvalidTransitionError

pytestmark = pytest.mark.asyncio

ITEMS = [
    {"description": "Discovery workshop", "quantity": "4", "unit_price": "150"},
    {"description": "Wireframes", "quantity": "2.5", "unit_price": "100"},
]


@pytest.fixture
def invoices(session, clock, settings) -> InvoiceService:
    return InvoiceService(session, clock=clock, settings=settings)


class TestCreateInvoice:
    async def test_totals_derived_from_items(self, invoices, test_project, test_client):
        invoice = await invoices.create_invoice(ITEMS, created_by="Admin", project_id=test_project.id)

        assert invoice.status == "DRAFT"
        assert invoice.invoice_type == "FIXED"
        assert invoice.client_id == test_client.id
        assert invoice.client_name == "Acme Corp"
        assert invoice.issue_date == date(2026, 1, 5)
        assert invoice.due_date == date(2026, 1, 12)
        assert invoice.subtotal == Decimal("850.00")
        assert invoice.tax_amount == Decimal("85.00")
        assert invoice.total_amount == Decimal("935.00")
        assert invoice.balance_amount == Decimal("935.00")
        assert [item["amount"] for item in invoice.items] == ["600.00", "250.00"]

    async def test_one_draft_per_project(self, invoices, test_project):
        await invoices.create_invoice(ITEMS, created_by="Admin", project_id=test_project.id)

        with pytest.raises(InvoiceValidationError):
            await invoices.create_invoice(ITEMS, created_by="Admin", project_id=test_project.id)

        sent = await invoices.create_invoice(
            ITEMS, created_by="Admin", project_id=test_project.id, status="SENT"
        )
        assert sent.status == "SENT"

    async def test_due_date_before_issue_date(self, invoices):
        with pytest.raises(InvoiceValidationError):
            await invoices.create_invoice(
                ITEMS,
                created_by="Admin",
                issue_date=date(2026, 1, 10),
                due_date=date(2026, 1, 9),
            )

    async def test_negative_quantity(self, invoices):
        with pytest.raises(InvoiceValidationError):
            await invoices.create_invoice(
                [{"description": "Refund", "quantity": "-1", "unit_price": "10"}],
                created_by="Admin",
            )

    async def test_cannot_create_as_paid(self, invoices):
        with pytest.raises(InvoiceValidationError):
            await invoices.create_invoice(ITEMS, created_by="Admin", status="PAID")

    async def test_unknown_project(self, invoices):
        with pytest.raises(EntityNotFoundError):
            await invoices.create_invoice(ITEMS, created_by="Admin", project_id=uuid4())

    async def test_invoice_numbers_are_unique(self, invoices):
        numbers = {
            (await invoices.create_invoice(ITEMS, created_by="Admin")).invoice_number
            for _ in range(5)
        }
        assert len(numbers) == 5


class TestPayments:
    async def test_partial_then_paid(self, invoices, test_project):
        invoice = await invoices.create_invoice(
            ITEMS, created_by="Admin", project_id=test_project.id, status="SENT"
        )

        invoice = await invoices.record_payment(invoice.id, Decimal("435.00"), method="bank")
        assert invoice.status == "PARTIAL"
        assert invoice.paid_amount == Decimal("435.00")
        assert invoice.balance_amount == Decimal("500.00")

        invoice = await invoices.record_payment(invoice.id, Decimal("500.00"))
        assert invoice.status == "PAID"
        assert invoice.balance_amount == Decimal("0.00")
        assert len(invoice.payments) == 2
        assert invoice.payments[0]["method"] == "bank"

    async def test_no_payment_on_draft(self, invoices, test_project):
        invoice = await invoices.create_invoice(ITEMS, created_by="Admin", project_id=test_project.id)

        with pytest.raises(InvoiceValidationError):
            await invoices.record_payment(invoice.id, Decimal("10"))

    async def test_amount_must_be_positive(self, invoices):
        invoice = await invoices.create_invoice(ITEMS, created_by="Admin", status="SENT")

        with pytest.raises(InvoiceValidationError):
            await invoices.record_payment(invoice.id, Decimal("0"))


class TestUpdateInvoice:
    async def test_replace_items_keeps_payments(self, invoices):
        invoice = await invoices.create_invoice(ITEMS, created_by="Admin", status="SENT")
        await invoices.record_payment(invoice.id, Decimal("100"))

        invoice = await invoices.update_invoice(
            invoice.id,
            items=[{"description": "Fixed fee", "quantity": "1", "unit_price": "1000"}],
            notes="Re-scoped",
        )

        assert invoice.subtotal == Decimal("1000.00")
        assert invoice.total_amount == Decimal("1100.00")
        assert invoice.paid_amount == Decimal("100.00")
        assert invoice.balance_amount == Decimal("1000.00")
        assert invoice.notes == "Re-scoped"

    async def test_cannot_reopen_second_draft(self, invoices, test_project):
        await invoices.create_invoice(ITEMS, created_by="Admin", project_id=test_project.id)
        sent = await invoices.create_invoice(
            ITEMS, created_by="Admin", project_id=test_project.id, status="SENT"
        )

        with pytest.raises(InvoiceValidationError):
            await invoices.update_invoice(sent.id, status="DRAFT")

    async def test_list_filters(self, invoices, test_project):
        await invoices.create_invoice(ITEMS, created_by="Admin", project_id=test_project.id)
        await invoices.create_invoice(ITEMS, created_by="Admin", status="SENT")

        assert len(await invoices.list_invoices()) == 2
        assert len(await invoices.list_invoices(project_id=test_project.id)) == 1
        assert len(await invoices.list_invoices(status="SENT")) == 1


class TestStatusChanges:
    async def test_send_then_mark_overdue(self, invoices, test_project):
        invoice = await invoices.create_invoice(ITEMS, created_by="Admin", project_id=test_project.id)

        invoice = await invoices.update_invoice(invoice.id, status="SENT")
        assert invoice.status == "SENT"
        invoice = await invoices.update_invoice(invoice.id, status="OVERDUE")
        assert invoice.status == "OVERDUE"

        invoice = await invoices.record_payment(invoice.id, Decimal("100"))
        assert invoice.status == "PARTIAL"

    async def test_paid_invoice_cannot_return_to_draft(self, invoices, test_project):
        invoice = await invoices.create_invoice(
            ITEMS, created_by="Admin", project_id=test_project.id, status="SENT"
        )
        await invoices.record_payment(invoice.id, Decimal("935.00"))

        with pytest.raises(InvalidTransitionError) as exc_info:
            await invoices.update_invoice(invoice.id, status="DRAFT")

        assert exc_info.value.from_status == "PAID"
        assert (await invoices.get_invoice(invoice.id)).status == "PAID"

    async def test_paid_needs_a_payment(self, invoices):
        invoice = await invoices.create_invoice(ITEMS, created_by="Admin", status="SENT")

        with pytest.raises(InvalidTransitionError):
            await invoices.update_invoice(invoice.id, status="PAID")

    async def test_cancelled_is_final(self, invoices):
        invoice = await invoices.create_invoice(ITEMS, created_by="Admin")
        await invoices.update_invoice(invoice.id, status="CANCELLED")

        with pytest.raises(InvalidTransitionError):
            await invoices.update_invoice(invoice.id, status="SENT")
