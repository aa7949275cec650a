"""Pure billing and payroll calculations."""

from timebill_engine.calculators.anomaly_detector import AnomalyDetector
from timebill_engine.calculators.invoice_builder import InvoiceBuilder
from timebill_engine.calculators.payroll_calculator import PayrollCalculator
from timebill_engine.calculators.period import InvalidPeriodError, PayPeriod, parse_period

__all__ = [
    "AnomalyDetector",
    "InvoiceBuilder",
    "PayrollCalculator",
    "InvalidPeriodError",
    "PayPeriod",
    "parse_period",
]
