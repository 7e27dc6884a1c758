from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, timedelta


CADENCE_MONTHS = {
    "monthly": 1,
    "quarterly": 3,
    "yearly": 12,
}


@dataclass(frozen=True)
class CycleBounds:
    end: date
    next_start: date


def _days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def _add_months(year: int, month: int, offset: int) -> tuple[int, int]:
    zero_based = (year * 12 + (month - 1)) + offset
    return zero_based // 12, (zero_based % 12) + 1


def add_calendar_months(start: date, months: int) -> date:
    """Add whole calendar months, clamping the day to the last valid day of the target month."""
    year, month = _add_months(start.year, start.month, months)
    return date(year, month, min(start.day, _days_in_month(year, month)))


def compute_cycle_bounds(start: date, cadence: str) -> CycleBounds:
    """Return the inclusive end of the cycle starting on ``start`` and the following cycle's start.

    ``custom`` has no recurrence rule and is rejected like any other unknown cadence.
    """
    months = CADENCE_MONTHS.get(cadence)
    if months is None:
        raise ValueError(f"Unsupported cadence: {cadence}")

    end = add_calendar_months(start, months) - timedelta(days=1)
    return CycleBounds(end=end, next_start=end + timedelta(days=1))
