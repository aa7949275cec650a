"""Payroll aggregation service - builds and gates payroll runs per period."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from timebill_engine.calculators.anomaly_detector import AnomalyDetector
from timebill_engine.calculators.payroll_calculator import MINUTES_PER_HOUR, PayrollCalculator, round_hours
from timebill_engine.calculators.period import PayPeriod, parse_period
from timebill_engine.calculators.types import PayrollException, PayrollRecordCandidate
from timebill_engine.clock import Clock, SystemClock
from timebill_engine.config import Settings, get_settings
from timebill_engine.models import PayrollRecord, PayrollRun, TimeEntry
from timebill_engine.services.directory import DirectoryService, EntityNotFoundError
from timebill_engine.services.locking_service import LockingService
from timebill_engine.services.state_machine import (
    PayrollRunStateMachine,
    PayrollRunStatus,
    TimeEntryStatus,
)

logger = logging.getLogger(__name__)


class PayrollRunLockedError(Exception):
    """Raised when changing a payroll run that is no longer a draft."""

    def __init__(self, payroll_run_id: UUID, status: str):
        self.payroll_run_id = payroll_run_id
        self.status = status
        super().__init__(f"Payroll run {payroll_run_id} is {status} and cannot be changed")


class PayrollAggregationService:
    """Service for building payroll runs from time entries.

    Operations:
    - calculate: create the period's run or wipe and rebuild its records
      while DRAFT; LOCKED and PAID runs are returned untouched
    - lock: DRAFT → LOCKED, locking the period's time entries
    - mark_paid: LOCKED → PAID
    - adjust_record: bonus/deductions on a DRAFT run's record
    - find_exceptions: anomalies for review, never auto-corrected

    Calculation and state changes hold the period's critical section so a
    concurrent caller never sees a half-rebuilt record set.
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
        self.calculator = PayrollCalculator(
            overtime_threshold_hours=self.settings.overtime_threshold_hours,
            overtime_premium=self.settings.overtime_premium,
        )
        self.detector = AnomalyDetector(
            excessive_overtime_hours=self.settings.excessive_overtime_hours,
            high_daily_hours=self.settings.high_daily_hours,
            deduction_alert_ratio=self.settings.deduction_alert_ratio,
        )

    # === Queries ===

    async def get_run(self, payroll_run_id: UUID) -> PayrollRun:
        run = await self.session.get(PayrollRun, payroll_run_id, populate_existing=True)
        if run is None:
            raise EntityNotFoundError("PayrollRun", payroll_run_id)
        return run

    async def find_run_for_period(self, period: PayPeriod) -> PayrollRun | None:
        """Runs are keyed by month, so ``Jan 2026`` and ``2026-01`` share one."""
        result = await self.session.execute(
            select(PayrollRun)
            .where(PayrollRun.period_start == period.start)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_runs(self) -> list[PayrollRun]:
        result = await self.session.execute(
            select(PayrollRun).order_by(PayrollRun.period_start.desc())
        )
        return list(result.scalars().all())

    async def get_records(self, payroll_run_id: UUID) -> list[PayrollRecord]:
        await self.get_run(payroll_run_id)
        result = await self.session.execute(
            select(PayrollRecord)
            .where(PayrollRecord.payroll_run_id == payroll_run_id)
            .order_by(PayrollRecord.employee_name, PayrollRecord.employee_id)
        )
        return list(result.scalars().all())

    async def get_record(self, record_id: UUID) -> PayrollRecord:
        record = await self.session.get(PayrollRecord, record_id, populate_existing=True)
        if record is None:
            raise EntityNotFoundError("PayrollRecord", record_id)
        return record

    # === Calculation ===

    async def calculate(self, period_label: str, generated_by: str | None = None) -> PayrollRun:
        """Produce or refresh the run for a period."""
        period = parse_period(period_label)

        async with self.locking.hold("period", period.start.isoformat()):
            run = await self.find_run_for_period(period)

            if run is not None and not PayrollRunStateMachine.can_calculate(run.status):
                logger.info(
                    "Payroll run not recalculated",
                    extra={"payroll_run_id": str(run.id), "status": run.status},
                )
                return run

            if run is None:
                run = PayrollRun(
                    period=period.label,
                    period_start=period.start,
                    period_end=period.end,
                    status=PayrollRunStatus.DRAFT.value,
                    total_employees=0,
                    total_payable=Decimal("0"),
                    total_approved_hours=Decimal("0"),
                )
                self.session.add(run)
                await self.session.flush()
            else:
                # Wipe and rebuild
                await self.session.execute(
                    delete(PayrollRecord).where(PayrollRecord.payroll_run_id == run.id)
                )

            candidates = await self._build_candidates(period)
            for candidate in candidates:
                self.session.add(self._record_from_candidate(run.id, candidate))

            self._apply_totals(run, candidates)
            run.generated_at = self.clock.now()
            run.generated_by = generated_by
            await self.session.commit()

        logger.info(
            "Payroll calculated",
            extra={
                "payroll_run_id": str(run.id),
                "period": run.period,
                "total_employees": run.total_employees,
                "total_payable": str(run.total_payable),
                "fingerprint": run.fingerprint,
            },
        )
        return run

    async def _build_candidates(self, period: PayPeriod) -> list[PayrollRecordCandidate]:
        employees = await self.directory.list_payable_employees()
        entries_by_employee = await self._load_period_entries(period.start, period.end)

        candidates: list[PayrollRecordCandidate] = []
        for employee in employees:
            candidate = self.calculator.build_record(
                employee, entries_by_employee.get(employee.id, [])
            )
            if candidate is not None:
                candidates.append(candidate)
        return candidates

    async def _load_period_entries(
        self,
        period_start: date,
        period_end: date,
        employee_ids: list[UUID] | None = None,
    ) -> dict[UUID, list[TimeEntry]]:
        """Non-deleted, non-rejected entries dated within the period."""
        query = (
            select(TimeEntry)
            .where(
                TimeEntry.date >= period_start,
                TimeEntry.date <= period_end,
                TimeEntry.deleted_at.is_(None),
                TimeEntry.status != TimeEntryStatus.REJECTED.value,
            )
            .order_by(TimeEntry.date, TimeEntry.started_at, TimeEntry.id)
        )
        if employee_ids is not None:
            query = query.where(TimeEntry.employee_id.in_(employee_ids))
        result = await self.session.execute(query)

        grouped: dict[UUID, list[TimeEntry]] = defaultdict(list)
        for entry in result.scalars().all():
            grouped[entry.employee_id].append(entry)
        return grouped

    @staticmethod
    def _record_from_candidate(payroll_run_id: UUID, candidate: PayrollRecordCandidate) -> PayrollRecord:
        return PayrollRecord(
            payroll_run_id=payroll_run_id,
            employee_id=candidate.employee_id,
            employee_name=candidate.employee_name,
            designation=candidate.designation,
            department=candidate.department,
            join_date=candidate.join_date,
            total_hours=candidate.total_hours,
            approved_hours=candidate.approved_hours,
            billable_hours=candidate.billable_hours,
            non_billable_hours=candidate.non_billable_hours,
            overtime_hours=candidate.overtime_hours,
            rate_type=candidate.rate_type,
            hourly_rate=candidate.hourly_rate,
            base_pay=candidate.base_pay,
            overtime_amount=candidate.overtime_amount,
            bonus=candidate.bonus,
            deductions=candidate.deductions,
            total_payable=candidate.total_payable,
            status="DRAFT",
        )

    @staticmethod
    def _candidate_from_record(record: PayrollRecord) -> PayrollRecordCandidate:
        return PayrollRecordCandidate(
            employee_id=record.employee_id,
            employee_name=record.employee_name,
            total_hours=Decimal(record.total_hours),
            approved_hours=Decimal(record.approved_hours),
            billable_hours=Decimal(record.billable_hours),
            non_billable_hours=Decimal(record.non_billable_hours),
            overtime_hours=Decimal(record.overtime_hours),
            hourly_rate=Decimal(record.hourly_rate),
            base_pay=Decimal(record.base_pay),
            overtime_amount=Decimal(record.overtime_amount),
            bonus=Decimal(record.bonus),
            deductions=Decimal(record.deductions),
            total_payable=Decimal(record.total_payable),
        )

    def _apply_totals(self, run: PayrollRun, candidates: list[PayrollRecordCandidate]) -> None:
        """Recompute run aggregates from its records."""
        run.total_employees = len(candidates)
        run.total_payable = sum((c.total_payable for c in candidates), Decimal("0"))
        run.total_approved_hours = sum((c.total_hours for c in candidates), Decimal("0"))
        run.fingerprint = self.calculator.compute_fingerprint(candidates)

    # === Status changes ===

    async def lock(self, payroll_run_id: UUID) -> PayrollRun:
        """DRAFT → LOCKED. The period's entries become read-only."""
        run = await self.get_run(payroll_run_id)
        async with self.locking.hold("period", run.period_start.isoformat()):
            run = await self.get_run(payroll_run_id)
            PayrollRunStateMachine.validate_transition(run.status, PayrollRunStatus.LOCKED)

            now = self.clock.now()
            records = await self.get_records(run.id)
            await self.locking.lock_inputs_for_run(
                run.id,
                [record.employee_id for record in records],
                run.period_start,
                run.period_end,
                now,
            )
            run.status = PayrollRunStatus.LOCKED.value
            run.locked_at = now
            await self.session.commit()

        logger.info("Payroll run locked", extra={"payroll_run_id": str(run.id)})
        return run

    async def mark_paid(self, payroll_run_id: UUID) -> PayrollRun:
        """LOCKED → PAID; every record becomes PAID."""
        run = await self.get_run(payroll_run_id)
        async with self.locking.hold("period", run.period_start.isoformat()):
            run = await self.get_run(payroll_run_id)
            PayrollRunStateMachine.validate_transition(run.status, PayrollRunStatus.PAID)

            for record in await self.get_records(run.id):
                record.status = "PAID"
            run.status = PayrollRunStatus.PAID.value
            run.paid_at = self.clock.now()
            await self.session.commit()

        logger.info("Payroll run marked paid", extra={"payroll_run_id": str(run.id)})
        return run

    async def adjust_record(
        self,
        record_id: UUID,
        bonus: Decimal | None = None,
        deductions: Decimal | None = None,
    ) -> PayrollRecord:
        """Set bonus and/or deductions on a record of a DRAFT run.

        A later recalculation rebuilds the records and drops adjustments.
        """
        for name, value in (("bonus", bonus), ("deductions", deductions)):
            if value is not None and Decimal(value) < 0:
                raise ValueError(f"{name} must not be negative")

        record = await self.get_record(record_id)
        run = await self.get_run(record.payroll_run_id)
        async with self.locking.hold("period", run.period_start.isoformat()):
            run = await self.get_run(record.payroll_run_id)
            if not PayrollRunStateMachine.can_adjust(run.status):
                raise PayrollRunLockedError(run.id, run.status)

            record = await self.get_record(record_id)
            if bonus is not None:
                record.bonus = Decimal(bonus)
            if deductions is not None:
                record.deductions = Decimal(deductions)
            record.total_payable = self.calculator.compute_total_payable(
                Decimal(record.base_pay),
                Decimal(record.overtime_amount),
                Decimal(record.bonus),
                Decimal(record.deductions),
            )

            records = await self.get_records(run.id)
            self._apply_totals(run, [self._candidate_from_record(r) for r in records])
            await self.session.commit()
        return record

    # === Review ===

    async def find_exceptions(self, payroll_run_id: UUID) -> list[PayrollException]:
        """Anomalies across the run's records, in record order."""
        run = await self.get_run(payroll_run_id)
        records = await self.get_records(run.id)
        entries_by_employee = await self._load_period_entries(
            run.period_start,
            run.period_end,
            [record.employee_id for record in records],
        )

        exceptions: list[PayrollException] = []
        for record in records:
            daily_minutes: dict[date, int] = defaultdict(int)
            for entry in entries_by_employee.get(record.employee_id, []):
                daily_minutes[entry.date] += entry.duration_minutes or 0
            daily_hours = {
                day: round_hours(Decimal(minutes) / MINUTES_PER_HOUR)
                for day, minutes in daily_minutes.items()
            }
            exceptions.extend(self.detector.detect(record, daily_hours))
        return exceptions
