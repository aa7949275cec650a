"""Per-employee payroll aggregation."""

from __future__ import annotations

import hashlib
import json
from collections import defaultdict
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Iterable, Sequence

from timebill_engine.calculators.types import PayrollRecordCandidate

if TYPE_CHECKING:
    from timebill_engine.models import Employee, TimeEntry

HOURS_PRECISION = Decimal("0.01")
CENTS = Decimal("0.01")
MINUTES_PER_HOUR = Decimal("60")
ZERO = Decimal("0")


def round_hours(hours: Decimal) -> Decimal:
    return hours.quantize(HOURS_PRECISION, rounding=ROUND_HALF_UP)


def round_money(amount: Decimal) -> Decimal:
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


class PayrollCalculator:
    """Aggregates one employee's period entries into a payroll record.

    Pipeline (stable order per employee):
    1) Sum minutes, split billable / non-billable, collect approved minutes
    2) Base pay = total hours x hourly cost rate
    3) Overtime above the threshold, paid at rate x premium on top of base
    4) Total payable = base + overtime + bonus - deductions

    Money is computed from exact hours and rounded half-up to cents once.
    """

    def __init__(
        self,
        overtime_threshold_hours: Decimal = Decimal("160"),
        overtime_premium: Decimal = ZERO,
    ):
        self.overtime_threshold_hours = overtime_threshold_hours
        self.overtime_premium = overtime_premium

    def build_record(
        self,
        employee: Employee,
        entries: Iterable[TimeEntry],
    ) -> PayrollRecordCandidate | None:
        """Build the record for one employee.

        Returns None when the employee has neither hours nor a rate.
        """
        total_minutes = 0
        billable_minutes = 0
        approved_minutes = 0
        daily_minutes: dict[date, int] = defaultdict(int)

        for entry in entries:
            minutes = max(0, int(entry.duration_minutes or 0))
            total_minutes += minutes
            if entry.is_billable:
                billable_minutes += minutes
            if entry.status == "APPROVED":
                approved_minutes += minutes
            daily_minutes[entry.date] += minutes

        rate = Decimal(employee.hourly_cost_rate or 0)
        if total_minutes == 0 and rate == 0:
            return None

        exact_hours = Decimal(total_minutes) / MINUTES_PER_HOUR
        overtime_exact = max(exact_hours - self.overtime_threshold_hours, ZERO)

        candidate = PayrollRecordCandidate(
            employee_id=employee.id,
            employee_name=employee.name,
            designation=employee.designation,
            department=employee.department,
            join_date=employee.joining_date,
            total_hours=round_hours(exact_hours),
            approved_hours=round_hours(Decimal(approved_minutes) / MINUTES_PER_HOUR),
            billable_hours=round_hours(Decimal(billable_minutes) / MINUTES_PER_HOUR),
            non_billable_hours=round_hours(
                Decimal(total_minutes - billable_minutes) / MINUTES_PER_HOUR
            ),
            overtime_hours=round_hours(overtime_exact),
            hourly_rate=round_money(rate),
            base_pay=round_money(exact_hours * rate),
            overtime_amount=round_money(overtime_exact * rate * self.overtime_premium),
            daily_hours={
                day: round_hours(Decimal(minutes) / MINUTES_PER_HOUR)
                for day, minutes in sorted(daily_minutes.items())
            },
        )
        candidate.total_payable = self.compute_total_payable(
            candidate.base_pay,
            candidate.overtime_amount,
            candidate.bonus,
            candidate.deductions,
        )
        return candidate

    @staticmethod
    def compute_total_payable(
        base_pay: Decimal,
        overtime_amount: Decimal,
        bonus: Decimal,
        deductions: Decimal,
    ) -> Decimal:
        return round_money(base_pay + overtime_amount + bonus - deductions)

    @staticmethod
    def compute_fingerprint(candidates: Sequence[PayrollRecordCandidate]) -> str:
        """Deterministic hash of a record set, independent of input order."""
        canonical = sorted(
            (c.to_canonical_dict() for c in candidates),
            key=lambda d: d["employee_id"],
        )
        json_str = json.dumps(canonical, sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()[:32]
