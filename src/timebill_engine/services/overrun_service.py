"""Budget overrun detection and DRAFT invoice upsert."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timebill_engine.calculators.invoice_builder import InvoiceBuilder
from timebill_engine.clock import Clock, SystemClock
from timebill_engine.config import Settings, get_settings
from timebill_engine.models import Invoice, Project, TimeEntry
from timebill_engine.services.directory import DirectoryService
from timebill_engine.services.invoice_service import InvoiceService
from timebill_engine.services.locking_service import LockingService
from timebill_engine.services.notification_service import (
    ADMIN_AUDIENCE,
    DatabaseNotificationSink,
    NotificationSink,
)

logger = logging.getLogger(__name__)

AUTOMATOR_NAME = "System (Overrun Automator)"
MINUTES_PER_HOUR = Decimal("60")


def format_hours(hours: Decimal) -> str:
    """Render hours the way notifications show them: ``10.5h``, ``10h``."""
    value = Decimal(hours).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP).normalize()
    return f"{value:f}h"


@dataclass
class OverrunResult:
    """Outcome of one overrun check."""

    project_id: UUID
    action: str  # "skipped", "under_budget" or "overrun"
    consumed_hours: Decimal
    estimated_hours: Decimal | None = None
    invoice_id: UUID | None = None
    invoice_created: bool = False
    notification_created: bool = False

    @property
    def is_overrun(self) -> bool:
        return self.action == "overrun"


class BudgetOverrunAutomator:
    """Compares a project's consumed hours with its estimate.

    When the estimate is reached:
    1. The project's DRAFT invoice is created or its items are replaced
       wholesale, and its totals are recomputed
    2. An admin notification is written once per overrun magnitude

    Both effects are idempotent. The invoice upsert is serialized per
    project and committed before the notification is attempted; a failing
    notification is logged and never undoes the invoice.
    """

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock | None = None,
        settings: Settings | None = None,
        notifier: NotificationSink | None = None,
        locking: LockingService | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings()
        self.notifier = notifier or DatabaseNotificationSink(session)
        self.locking = locking or LockingService(session)
        self.directory = DirectoryService(session)
        self.invoices = InvoiceService(
            session, clock=self.clock, settings=self.settings, locking=self.locking
        )

    async def check_project(self, project_id: UUID) -> OverrunResult:
        """Run the overrun check for one project."""
        async with self.locking.hold("project", project_id):
            project = await self.directory.get_project(project_id)
            entries = await self._load_entries(project_id)
            consumed = Decimal(sum(e.duration_minutes or 0 for e in entries)) / MINUTES_PER_HOUR
            estimated = project.estimated_hours

            if estimated is None or Decimal(estimated) <= 0:
                return OverrunResult(project_id=project_id, action="skipped", consumed_hours=consumed)

            estimated = Decimal(estimated)
            if consumed < estimated:
                return OverrunResult(
                    project_id=project_id,
                    action="under_budget",
                    consumed_hours=consumed,
                    estimated_hours=estimated,
                )

            logger.info(
                "Budget overrun detected",
                extra={
                    "project_id": str(project_id),
                    "consumed_hours": format_hours(consumed),
                    "estimated_hours": format_hours(estimated),
                },
            )

            invoice, created = await self._upsert_draft_invoice(project, entries)
            await self.session.commit()

        result = OverrunResult(
            project_id=project_id,
            action="overrun",
            consumed_hours=consumed,
            estimated_hours=estimated,
            invoice_id=invoice.id,
            invoice_created=created,
        )
        result.notification_created = await self._notify(project, consumed, estimated)
        return result

    async def run_safely(self, project_id: UUID) -> OverrunResult | None:
        """Run the check, logging and discarding any failure.

        Used after a timer mutation has already been committed.
        """
        try:
            return await self.check_project(project_id)
        except Exception:
            logger.exception("Overrun check failed", extra={"project_id": str(project_id)})
            await self.session.rollback()
            return None

    async def _load_entries(self, project_id: UUID) -> list[TimeEntry]:
        result = await self.session.execute(
            select(TimeEntry).where(
                TimeEntry.project_id == project_id,
                TimeEntry.deleted_at.is_(None),
            )
        )
        return list(result.scalars().all())

    async def _find_draft(self, project_id: UUID) -> Invoice | None:
        result = await self.session.execute(
            select(Invoice).where(Invoice.project_id == project_id, Invoice.status == "DRAFT")
        )
        return result.scalar_one_or_none()

    def _billing_rate(self, project: Project) -> Decimal:
        if project.global_rate is None:
            return self.settings.default_billing_rate
        return Decimal(project.global_rate)

    async def _upsert_draft_invoice(
        self,
        project: Project,
        entries: list[TimeEntry],
    ) -> tuple[Invoice, bool]:
        items = InvoiceBuilder.build_timesheet_items(entries, self._billing_rate(project))
        invoice = await self._find_draft(project.id)
        created = invoice is None

        if invoice is None:
            client = await self.directory.find_client(project.client_id)
            today = self.clock.today()
            invoice = Invoice(
                invoice_number=self.invoices.generate_invoice_number(),
                client_id=project.client_id,
                client_name=client.name if client else None,
                project_id=project.id,
                project_name=project.name,
                issue_date=today,
                due_date=today + timedelta(days=self.settings.invoice_due_days),
                currency=project.currency,
                status="DRAFT",
                invoice_type="TIMESHEET",
                items=[],
                payments=[],
                tax_rate=self.settings.invoice_tax_rate,
                created_by=AUTOMATOR_NAME,
            )
            self.session.add(invoice)

        totals = self.invoices.apply_items(invoice, items)
        await self.session.flush()

        logger.info(
            "Draft invoice %s",
            "created" if created else "refreshed",
            extra={
                "project_id": str(project.id),
                "invoice_number": invoice.invoice_number,
                "item_count": len(items),
                "total_amount": str(totals.total_amount),
            },
        )
        return invoice, created

    async def _notify(self, project: Project, consumed: Decimal, estimated: Decimal) -> bool:
        """Best-effort admin notification; returns True when one was written."""
        dedupe_key = f"overrun:{project.id}:{format_hours(consumed)[:-1]}"
        try:
            notification = await self.notifier.add_notification(
                ADMIN_AUDIENCE,
                f"Budget overrun: {project.name}",
                f"Project '{project.name}' has consumed {format_hours(consumed)} "
                f"against a budget of {format_hours(estimated)}.",
                dedupe_key=dedupe_key,
            )
            await self.session.commit()
        except Exception:
            logger.exception(
                "Overrun notification failed",
                extra={"project_id": str(project.id)},
            )
            await self.session.rollback()
            return False
        return notification is not None
