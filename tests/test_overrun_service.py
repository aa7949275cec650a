"""Tests for the budget overrun automator."""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from timebill_engine.models import Invoice, Notification, Project
from timebill_engine.services.notification_service import DatabaseNotificationSink
from timebill_engine.services.overrun_service import (
    AUTOMATOR_NAME,
    BudgetOverrunAutomator,
    format_hours,
)
from timebill_engine.services.timer_service import TimerService


class FailingNotifier:
    """Notification sink whose backend is down."""

    async def add_notification(self, audience, title, message, dedupe_key=None):
        raise RuntimeError("notification backend unavailable")


@pytest.fixture
def timers(session, clock, settings) -> TimerService:
    return TimerService(session, clock=clock, settings=settings)


async def invoices_for(session, project_id) -> list[Invoice]:
    result = await session.execute(
        select(Invoice)
        .where(Invoice.project_id == project_id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def notifications(session) -> list[Notification]:
    result = await session.execute(select(Notification))
    return list(result.scalars().all())


class TestFormatHours:
    def test_trims_trailing_zeros(self):
        assert format_hours(Decimal("10.5")) == "10.5h"
        assert format_hours(Decimal("10.00")) == "10h"
        assert format_hours(Decimal("100")) == "100h"
        assert format_hours(Decimal("7.125")) == "7.13h"


class TestOverrunAutomator:
    """Overrun detection through the timer engine."""

    async def test_under_budget_does_nothing(self, session, timers, test_employees, test_project):
        await timers.create_manual_entry(test_employees["alice"].id, test_project.id, 300)

        assert await invoices_for(session, test_project.id) == []
        assert await notifications(session) == []

    async def test_overrun_drafts_invoice_and_notifies(
        self, session, timers, test_employees, test_project, test_client
    ):
        """10.5h against a 10h estimate: one DRAFT invoice, one notification."""
        alice = test_employees["alice"]
        await timers.create_manual_entry(alice.id, test_project.id, 300, description="Design")
        await timers.create_manual_entry(alice.id, test_project.id, 330, description="Build")

        invoices = await invoices_for(session, test_project.id)
        assert len(invoices) == 1
        invoice = invoices[0]
        assert invoice.status == "DRAFT"
        assert invoice.invoice_type == "TIMESHEET"
        assert invoice.created_by == AUTOMATOR_NAME
        assert invoice.client_name == test_client.name
        assert invoice.project_name == "Website Redesign"
        assert invoice.invoice_number.startswith("INV-2026-")
        assert len(invoice.items) == 2
        assert invoice.subtotal == Decimal("1050.00")
        assert invoice.tax_amount == Decimal("105.00")
        assert invoice.total_amount == Decimal("1155.00")
        assert invoice.balance_amount == Decimal("1155.00")

        sent = await notifications(session)
        assert len(sent) == 1
        assert sent[0].audience == "ADMIN"
        assert "Website Redesign" in sent[0].title
        assert "10.5h" in sent[0].message
        assert "10h" in sent[0].message

    async def test_stopping_a_timer_past_the_estimate(
        self, session, clock, timers, test_employees, test_project
    ):
        """The stop that crosses the estimate drafts exactly one invoice."""
        alice = test_employees["alice"]
        await timers.create_manual_entry(alice.id, test_project.id, 540)
        entry = await timers.start(alice.id, test_project.id)
        clock.advance(minutes=90)

        assert await invoices_for(session, test_project.id) == []
        await timers.stop(entry.id)

        invoices = await invoices_for(session, test_project.id)
        assert len(invoices) == 1
        assert invoices[0].subtotal == Decimal("1050.00")
        assert len(await notifications(session)) == 1

    async def test_many_short_entries_bill_exact_minutes(
        self, session, timers, test_employees, test_project
    ):
        """Subtotal is billable minutes / 60 x rate, rounded once."""
        alice = test_employees["alice"]
        await timers.create_manual_entry(alice.id, test_project.id, 590)
        for _ in range(12):
            await timers.create_manual_entry(alice.id, test_project.id, 1)

        invoice = (await invoices_for(session, test_project.id))[0]
        assert len(invoice.items) == 13
        assert invoice.subtotal == Decimal("1003.33")
        assert invoice.tax_amount == Decimal("100.33")
        assert invoice.total_amount == Decimal("1103.66")

    async def test_repeat_checks_are_idempotent(
        self, session, clock, settings, timers, test_employees, test_project
    ):
        """Re-running the check refreshes the same draft and sends nothing new."""
        alice = test_employees["alice"]
        await timers.create_manual_entry(alice.id, test_project.id, 300, description="Design")
        await timers.create_manual_entry(alice.id, test_project.id, 330, description="Build")
        first = (await invoices_for(session, test_project.id))[0]
        snapshot = (list(first.items), first.subtotal, first.total_amount)

        automator = BudgetOverrunAutomator(session, clock=clock, settings=settings)
        result = await automator.check_project(test_project.id)

        assert result.is_overrun
        assert result.invoice_id == first.id
        assert result.invoice_created is False
        assert result.notification_created is False

        invoices = await invoices_for(session, test_project.id)
        assert len(invoices) == 1
        assert (invoices[0].items, invoices[0].subtotal, invoices[0].total_amount) == snapshot
        assert len(await notifications(session)) == 1

    async def test_new_work_replaces_items(self, session, timers, test_employees, test_project):
        """Each check rebuilds the draft's items from all project entries."""
        alice = test_employees["alice"]
        await timers.create_manual_entry(alice.id, test_project.id, 630)
        await timers.create_manual_entry(alice.id, test_project.id, 30)

        invoices = await invoices_for(session, test_project.id)
        assert len(invoices) == 1
        assert len(invoices[0].items) == 2
        assert invoices[0].subtotal == Decimal("1100.00")

        # 11h is a new overrun magnitude
        assert len(await notifications(session)) == 2

    async def test_deleted_entries_are_excluded(self, session, timers, test_employees, test_project):
        alice = test_employees["alice"]
        await timers.create_manual_entry(alice.id, test_project.id, 600)
        extra = await timers.create_manual_entry(alice.id, test_project.id, 60)
        await timers.soft_delete(extra.id)

        invoice = (await invoices_for(session, test_project.id))[0]
        assert len(invoice.items) == 1
        assert invoice.subtotal == Decimal("1000.00")

    async def test_non_billable_listed_at_zero(self, session, timers, test_employees, test_project):
        alice = test_employees["alice"]
        await timers.create_manual_entry(alice.id, test_project.id, 600)
        await timers.create_manual_entry(alice.id, test_project.id, 60, is_billable=False)

        invoice = (await invoices_for(session, test_project.id))[0]
        amounts = sorted(Decimal(item["amount"]) for item in invoice.items)
        assert amounts == [Decimal("0.00"), Decimal("1000.00")]

    async def test_no_estimate_is_skipped(self, session, clock, settings, unbudgeted_project):
        automator = BudgetOverrunAutomator(session, clock=clock, settings=settings)

        result = await automator.check_project(unbudgeted_project.id)

        assert result.action == "skipped"
        assert result.invoice_id is None

    async def test_default_rate_fallback(self, session, timers, test_employees, test_client):
        """A project without its own rate bills at the configured default."""
        project = Project(
            name="Support Retainer", client_id=test_client.id, estimated_hours=Decimal("1")
        )
        session.add(project)
        await session.commit()

        await timers.create_manual_entry(test_employees["alice"].id, project.id, 120)

        invoice = (await invoices_for(session, project.id))[0]
        assert invoice.items[0]["unit_price"] == "50.00"
        assert invoice.subtotal == Decimal("100.00")

    async def test_failing_notifier_keeps_invoice(
        self, session, clock, settings, test_employees, test_project
    ):
        """The invoice is committed even when the notification cannot be sent."""
        automator = BudgetOverrunAutomator(
            session, clock=clock, settings=settings, notifier=FailingNotifier()
        )
        timers = TimerService(session, clock=clock, settings=settings, automator=automator)

        entry = await timers.create_manual_entry(test_employees["alice"].id, test_project.id, 630)

        assert entry.duration_minutes == 630
        assert len(await invoices_for(session, test_project.id)) == 1
        assert await notifications(session) == []

        result = await automator.check_project(test_project.id)
        assert result.is_overrun
        assert result.invoice_created is False
        assert result.notification_created is False

    async def test_run_safely_swallows_errors(self, session, clock, settings):
        """A missing project is logged, not raised, when run after a timer change."""
        automator = BudgetOverrunAutomator(session, clock=clock, settings=settings)
        assert await automator.run_safely(uuid4()) is None


class TestNotificationSink:
    async def test_dedupe_key(self, session):
        sink = DatabaseNotificationSink(session)

        first = await sink.add_notification("ADMIN", "Title", "Body", dedupe_key="k1")
        second = await sink.add_notification("ADMIN", "Title", "Body", dedupe_key="k1")
        await session.commit()

        assert first is not None
        assert second is None
        assert len(await sink.list_notifications("ADMIN")) == 1
        assert await sink.list_notifications("someone-else") == []
