"""Period boundary computation: pure calendar logic.

A period is 7 consecutive days starting on the configured weekday. Dates are
local calendar dates throughout: "2025-03-10" is always that day in the
caller's zone, never shifted through UTC.

No I/O: this module only transforms data.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta

WEEKDAYS = ("Sunday", "Monday")
DEFAULT_WEEK_START = "Sunday"
PERIOD_LENGTH_DAYS = 7

_DATE_KEY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def format_date_key(value: date) -> str:
    """Format a date (or datetime) as YYYY-MM-DD using its local components."""
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def parse_date_key(key: str) -> date:
    """Parse a YYYY-MM-DD key. Raises ValueError on malformed input."""
    if not isinstance(key, str) or not _DATE_KEY_RE.match(key):
        raise ValueError(f"Not a YYYY-MM-DD date key: {key!r}")
    return date.fromisoformat(key)


def is_valid_date_key(key: object) -> bool:
    try:
        parse_date_key(key)  # type: ignore[arg-type]
    except ValueError:
        return False
    return True


def _as_date(value: date | datetime | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return parse_date_key(value)


def period_start(day: date | datetime | str, start_weekday: str = DEFAULT_WEEK_START) -> str:
    """Return the most recent start_weekday on or before day, as a date key.

    Idempotent: a date that already is a period start maps to itself.
    """
    if start_weekday not in WEEKDAYS:
        raise ValueError(f"Unsupported week start day: {start_weekday!r}")
    current = _as_date(day)
    # date.weekday(): Monday = 0 ... Sunday = 6
    if start_weekday == "Monday":
        back = current.weekday()
    else:
        back = (current.weekday() + 1) % 7
    return format_date_key(current - timedelta(days=back))


def period_end(start: date | datetime | str) -> str:
    """Last day of the period beginning on start (start + 6 days)."""
    return format_date_key(_as_date(start) + timedelta(days=PERIOD_LENGTH_DAYS - 1))


def period_days(start: date | datetime | str) -> list[str]:
    """All 7 date keys of the period beginning on start, in order."""
    first = _as_date(start)
    return [format_date_key(first + timedelta(days=i)) for i in range(PERIOD_LENGTH_DAYS)]


def in_period(day: str, start: str) -> bool:
    """True when day falls within the 7-day period beginning on start."""
    return start <= day <= period_end(start)
