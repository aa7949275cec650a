"""Pay period label parsing."""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import date

_MONTHS: dict[str, int] = {}
for _index in range(1, 13):
    _MONTHS[calendar.month_abbr[_index].lower()] = _index
    _MONTHS[calendar.month_name[_index].lower()] = _index

_ISO_MONTH = re.compile(r"^(\d{4})-(\d{1,2})$")
_NAMED_MONTH = re.compile(r"^([A-Za-z]+)\s+(\d{4})$")


class InvalidPeriodError(Exception):
    """Raised when a period label cannot be parsed."""

    def __init__(self, label: str):
        self.label = label
        super().__init__(
            f"Invalid period '{label}': expected 'Jan 2026', 'January 2026' or '2026-01'"
        )


@dataclass(frozen=True)
class PayPeriod:
    """A calendar-month pay period."""

    label: str
    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


def parse_period(label: str) -> PayPeriod:
    """Parse a month label into inclusive start/end dates.

    The label is kept as given (trimmed) so that it stays the run's key.
    """
    text = (label or "").strip()

    match = _ISO_MONTH.match(text)
    if match:
        year, month = int(match.group(1)), int(match.group(2))
    else:
        match = _NAMED_MONTH.match(text)
        if not match or match.group(1).lower() not in _MONTHS:
            raise InvalidPeriodError(label)
        month, year = _MONTHS[match.group(1).lower()], int(match.group(2))

    if not 1 <= month <= 12 or year < 1:
        raise InvalidPeriodError(label)

    last_day = calendar.monthrange(year, month)[1]
    return PayPeriod(label=text, start=date(year, month, 1), end=date(year, month, last_day))
