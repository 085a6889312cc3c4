"""
WeekTally: Clock.

Produces the current local instant. A fixed instant can be pinned for
deterministic tests; the pin belongs to the clock instance, so two clocks in
the same process never interfere.
"""

from __future__ import annotations

import logging
from datetime import date, datetime

from weektally.core.periods import format_date_key

logger = logging.getLogger(__name__)


def _coerce_instant(value: datetime | date | str) -> datetime:
    """Turn a datetime, date or ISO string into a naive local datetime.

    A bare ``YYYY-MM-DD`` string (or a ``date``) means local midnight,
    never UTC midnight.
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        text = value.strip()
        if "T" not in text and " " not in text:
            text = f"{text}T00:00:00"
        return datetime.fromisoformat(text)
    raise TypeError(f"Cannot use {type(value).__name__} as a clock instant")


class SystemClock:
    """Real-time clock with an optional fixed instant for tests."""

    def __init__(self, fixed: datetime | date | str | None = None) -> None:
        self._fixed: datetime | None = None
        if fixed is not None:
            self.set_fixed(fixed)

    @property
    def is_fixed(self) -> bool:
        return self._fixed is not None

    def set_fixed(self, value: datetime | date | str) -> None:
        """Pin now() to the given instant until clear_fixed() is called."""
        self._fixed = _coerce_instant(value)
        logger.info("Clock fixed at %s", self._fixed.isoformat())

    def clear_fixed(self) -> None:
        self._fixed = None
        logger.info("Clock returned to real time")

    def now(self) -> datetime:
        if self._fixed is not None:
            return self._fixed
        return datetime.now()

    def now_as_date_key(self) -> str:
        return format_date_key(self.now())

    def timestamp_ms(self) -> int:
        """Milliseconds since the epoch, the unit stored in record metadata."""
        return int(self.now().timestamp() * 1000)
