"""
Date parsing and calendar arithmetic.

Sailings are scheduled in whole calendar days, so the decision engine works with
`datetime.date` values. "Today" is resolved in the configured timezone (the port's
local day), never from a naive UTC clock.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime
from zoneinfo import ZoneInfo


def today_in(timezone: str) -> date:
    """Return the current calendar date in `timezone`."""
    return datetime.now(ZoneInfo(timezone)).date()


def parse_iso_date(value: str | date | datetime | None) -> date | None:
    """Parse an ISO calendar date (`YYYY-MM-DD`, or a full timestamp) into a `date`.

    Returns None for empty or unparseable values; callers decide whether that is an error.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def days_between(start: date, end: date) -> int:
    """Whole days from `start` to `end` (negative when `end` is earlier)."""
    return (end - start).days


def add_months(d: date, months: int) -> date:
    """Shift `d` by calendar months, clamping the day to the target month's length."""
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def is_weekend(d: date) -> bool:
    """True for Saturday/Sunday departures."""
    return d.weekday() >= 5
