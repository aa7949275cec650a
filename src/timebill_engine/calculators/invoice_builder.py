"""Invoice line and totals builder."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any, Iterable, Sequence

from timebill_engine.calculators.duration import minutes_to_hours
from timebill_engine.calculators.types import InvoiceItem, InvoiceTotals
from timebill_engine.clock import ensure_utc

if TYPE_CHECKING:
    from timebill_engine.models import TimeEntry

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class InvoiceBuilder:
    """Builds invoice items and derives totals.

    Rounding:
    - Quantities (hours) to 4 decimals
    - Line amounts and totals half-up to cents
    - Timesheet subtotals are priced from exact minutes and rounded once
    - Totals are always derived from items and payments, never edited
    """

    OUTPUT_PRECISION = Decimal("0.01")  # 2 decimal places for persistence

    @staticmethod
    def round_to_cents(amount: Decimal) -> Decimal:
        """Round amount to 2 decimal places (cents)."""
        return amount.quantize(InvoiceBuilder.OUTPUT_PRECISION, rounding=ROUND_HALF_UP)

    @staticmethod
    def entry_sort_key(entry: TimeEntry) -> tuple[Any, ...]:
        """Stable ordering: date, then start, then id."""
        started = entry.started_at or entry.start_time
        return (
            entry.date,
            ensure_utc(started) if started is not None else _EPOCH,
            str(entry.id),
        )

    @staticmethod
    def describe_entry(entry: TimeEntry) -> str:
        label = (entry.description or "").strip() or "Time entry"
        return f"{entry.date.isoformat()} - {label}"

    @staticmethod
    def create_timesheet_item(entry: TimeEntry, rate: Decimal) -> InvoiceItem:
        """One line per entry; non-billable work is listed at zero."""
        quantity = minutes_to_hours(entry.duration_minutes)
        unit_price = rate if entry.is_billable else Decimal("0")
        return InvoiceItem(
            description=InvoiceBuilder.describe_entry(entry),
            quantity=quantity,
            unit_price=InvoiceBuilder.round_to_cents(unit_price),
            amount=InvoiceBuilder.round_to_cents(quantity * unit_price),
            time_entry_id=entry.id,
            minutes=entry.duration_minutes,
        )

    @classmethod
    def build_timesheet_items(
        cls,
        entries: Iterable[TimeEntry],
        rate: Decimal,
    ) -> list[InvoiceItem]:
        """Fresh item set for a project's entries.

        Calling this twice over the same entries yields identical items.
        """
        return [
            cls.create_timesheet_item(entry, rate)
            for entry in sorted(entries, key=cls.entry_sort_key)
        ]

    @classmethod
    def create_manual_item(
        cls,
        description: str,
        quantity: Decimal,
        unit_price: Decimal,
    ) -> InvoiceItem:
        return InvoiceItem(
            description=description,
            quantity=quantity,
            unit_price=unit_price,
            amount=cls.round_to_cents(quantity * unit_price),
        )

    @staticmethod
    def sum_payments(payments: Sequence[dict[str, Any]]) -> Decimal:
        return sum(
            (Decimal(str(p.get("amount", "0"))) for p in payments),
            Decimal("0"),
        )

    @classmethod
    def compute_totals(
        cls,
        items: Sequence[InvoiceItem],
        payments: Sequence[dict[str, Any]],
        tax_rate: Decimal,
    ) -> InvoiceTotals:
        """Derive subtotal, tax, total, paid and balance.

        The balance never goes below zero, even when overpaid.
        """
        subtotal = cls.round_to_cents(sum((item.exact_amount for item in items), Decimal("0")))
        tax_amount = cls.round_to_cents(subtotal * tax_rate)
        total_amount = subtotal + tax_amount
        paid_amount = cls.round_to_cents(cls.sum_payments(payments))
        balance_amount = max(total_amount - paid_amount, Decimal("0"))
        return InvoiceTotals(
            subtotal=subtotal,
            tax_amount=tax_amount,
            total_amount=total_amount,
            paid_amount=paid_amount,
            balance_amount=balance_amount,
        )

    @staticmethod
    def payment_status(totals: InvoiceTotals, current_status: str) -> str:
        """Status implied by the amount paid so far."""
        if totals.paid_amount <= 0:
            return current_status
        if totals.balance_amount == 0:
            return "PAID"
        return "PARTIAL"
