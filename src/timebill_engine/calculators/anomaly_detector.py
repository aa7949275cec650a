"""Payroll anomaly detection."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Mapping

from timebill_engine.calculators.types import (
    ExceptionCode,
    ExceptionSeverity,
    PayrollException,
)


class AnomalyDetector:
    """Flags payroll records that need a human look.

    Checks, in reporting order:
    - MISSING_RATE: hours logged but no hourly rate (HIGH)
    - ZERO_PAY: hours logged but nothing payable (HIGH)
    - EXCESSIVE_OVERTIME: overtime above the alert limit (MEDIUM)
    - HIGH_DEDUCTIONS: deductions above a share of base pay (MEDIUM)
    - HIGH_DAILY_HOURS: a single day above the daily limit (LOW)
    """

    def __init__(
        self,
        excessive_overtime_hours: Decimal = Decimal("40"),
        high_daily_hours: Decimal = Decimal("16"),
        deduction_alert_ratio: Decimal = Decimal("0.5"),
    ):
        self.excessive_overtime_hours = excessive_overtime_hours
        self.high_daily_hours = high_daily_hours
        self.deduction_alert_ratio = deduction_alert_ratio

    def detect(
        self,
        record: Any,
        daily_hours: Mapping[date, Decimal] | None = None,
    ) -> list[PayrollException]:
        """Return the anomalies for one record (a PayrollRecord or candidate)."""
        found: list[PayrollException] = []
        hours = Decimal(record.total_hours)

        def flag(code: ExceptionCode, severity: ExceptionSeverity, message: str) -> None:
            found.append(
                PayrollException(
                    code=code,
                    severity=severity,
                    employee_id=record.employee_id,
                    employee_name=record.employee_name,
                    message=message,
                    record_id=getattr(record, "id", None),
                )
            )

        if hours > 0 and Decimal(record.hourly_rate) == 0:
            flag(
                ExceptionCode.MISSING_RATE,
                ExceptionSeverity.HIGH,
                f"{record.employee_name} logged {hours}h but has no hourly rate",
            )

        if hours > 0 and Decimal(record.total_payable) <= 0:
            flag(
                ExceptionCode.ZERO_PAY,
                ExceptionSeverity.HIGH,
                f"{record.employee_name} logged {hours}h but total payable is {record.total_payable}",
            )

        overtime = Decimal(record.overtime_hours)
        if overtime > self.excessive_overtime_hours:
            flag(
                ExceptionCode.EXCESSIVE_OVERTIME,
                ExceptionSeverity.MEDIUM,
                f"{record.employee_name} has {overtime}h of overtime "
                f"(limit {self.excessive_overtime_hours}h)",
            )

        base_pay = Decimal(record.base_pay)
        deductions = Decimal(record.deductions)
        if deductions > 0 and deductions > base_pay * self.deduction_alert_ratio:
            flag(
                ExceptionCode.HIGH_DEDUCTIONS,
                ExceptionSeverity.MEDIUM,
                f"Deductions of {deductions} exceed "
                f"{(self.deduction_alert_ratio * 100).normalize():f}% of base pay {base_pay}",
            )

        for day, day_hours in sorted((daily_hours or {}).items()):
            if day_hours > self.high_daily_hours:
                flag(
                    ExceptionCode.HIGH_DAILY_HOURS,
                    ExceptionSeverity.LOW,
                    f"{record.employee_name} logged {day_hours}h on {day.isoformat()}",
                )

        return found
