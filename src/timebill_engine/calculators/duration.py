"""Elapsed-time arithmetic for running and paused timers."""

from __future__ import annotations

import math
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from timebill_engine.clock import ensure_utc

QUANTITY_PRECISION = Decimal("0.0001")
MINUTES_PER_HOUR = Decimal("60")


def elapsed_seconds(start: datetime | None, now: datetime) -> int:
    """Whole seconds between ``start`` and ``now``, never negative.

    A clock that moved backwards yields zero rather than subtracting time.
    """
    if start is None:
        return 0
    delta = (ensure_utc(now) - ensure_utc(start)).total_seconds()
    return max(0, math.floor(delta))


def total_seconds(accumulated: int, start: datetime | None, now: datetime) -> int:
    """Banked seconds plus the running session, if any."""
    return max(0, int(accumulated)) + elapsed_seconds(start, now)


def seconds_to_minutes(seconds: int) -> int:
    """Finalized duration: whole minutes, partial minutes truncated."""
    return max(0, int(seconds)) // 60


def minutes_to_hours(minutes: int, precision: Decimal = QUANTITY_PRECISION) -> Decimal:
    return (Decimal(int(minutes)) / MINUTES_PER_HOUR).quantize(precision, rounding=ROUND_HALF_UP)
