"""
WeekTally: Change log writer.

Every mutation of the archive, preferences or current state leaves an
append-only entry here for a future sync protocol. Logging a change is
best-effort and never fails the mutation that caused it.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from weektally.core.errors import StoreUnavailable, TransactionError
from weektally.data.models import CHANGE_OPERATIONS, ChangeLogEntry

if TYPE_CHECKING:
    from weektally.data.db import RecordStore
    from weektally.ports.clock_port import Clock

logger = logging.getLogger(__name__)


class ChangeLog:
    """Stamps and appends change-log entries for one device."""

    def __init__(self, store: RecordStore, clock: Clock, device_id: str) -> None:
        self._store = store
        self._clock = clock
        self._device_id = device_id

    def record(
        self,
        record_type: str,
        operation: str,
        record_id: str,
        data: Any = None,
    ) -> int | None:
        """Append one entry; returns its id, or None if it could not be written."""
        if operation not in CHANGE_OPERATIONS:
            logger.warning("Unknown change operation %r for %s", operation, record_type)
        try:
            payload = json.dumps(data, sort_keys=True) if data is not None else None
        except (TypeError, ValueError) as exc:
            logger.warning("Change log payload for %s %s not serializable: %s",
                           record_type, operation, exc)
            payload = None

        entry = ChangeLogEntry(
            timestamp=self._clock.timestamp_ms(),
            record_type=record_type,
            operation=operation,
            record_id=str(record_id),
            device_id=self._device_id,
            data=payload,
        )
        return self._store.append(entry)

    def pending(self, since: int = 0) -> list[ChangeLogEntry]:
        """Entries recorded at or after `since` (ms); empty on read failure."""
        try:
            return self._store.changes_since(since)
        except (StoreUnavailable, TransactionError) as exc:
            logger.error("Could not read pending changes: %s", exc)
            return []
