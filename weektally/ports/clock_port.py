"""Clock port: abstract source of "now" for every date-dependent module.

Core modules depend on this protocol, never on the system clock directly.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol


class Clock(Protocol):
    """Abstract clock used by the store, normalizer and reconciler."""

    def now(self) -> datetime: ...

    def now_as_date_key(self) -> str: ...

    def timestamp_ms(self) -> int: ...
