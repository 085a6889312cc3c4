"""
WeekTally: Current state slot.

The in-progress period draft lives in a single JSON file rather than in the
transactional store: it is rewritten on every count change and only ever
holds one object. A missing or unreadable file reads as "no state yet".
"""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path

from weektally.core.errors import TransactionError
from weektally.data.models import CurrentState

logger = logging.getLogger(__name__)


class CurrentStateSlot:
    """File-backed holder for the singleton CurrentState."""

    def __init__(self, path: str | None = None) -> None:
        if path is None:
            from weektally.config import settings
            path = settings.STATE_PATH

        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.is_file()

    def load(self) -> dict | None:
        """Return the raw saved state, or None when absent or unreadable."""
        if not self._path.is_file():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Could not read current state from %s: %s", self._path, exc)
            return None
        if not isinstance(data, dict):
            logger.error("Current state in %s is not an object; ignoring it", self._path)
            return None
        return data

    def save(self, state: CurrentState) -> None:
        """Overwrite the slot. Write failures are surfaced to the caller."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(state.to_dict(), indent=2), encoding="utf-8")
        except OSError as exc:
            logger.error("Could not save current state to %s: %s", self._path, exc)
            raise TransactionError("current_state", "save", str(exc)) from exc
        logger.debug("Current state saved (%s)", state.current_day_date)

    def clear(self) -> None:
        try:
            self._path.unlink(missing_ok=True)
        except OSError as exc:
            raise TransactionError("current_state", "clear", str(exc)) from exc
        logger.info("Current state cleared")


def load_or_create_device_id(path: str | None = None) -> str:
    """Return this installation's device id, generating it on first use."""
    if path is None:
        from weektally.config import settings
        path = settings.DEVICE_ID_PATH

    id_path = Path(path)
    try:
        existing = id_path.read_text(encoding="utf-8").strip()
    except OSError:
        existing = ""
    if existing:
        return existing

    device_id = str(uuid.uuid4())
    try:
        id_path.parent.mkdir(parents=True, exist_ok=True)
        id_path.write_text(device_id, encoding="utf-8")
        logger.info("Generated device id %s", device_id)
    except OSError as exc:
        logger.warning("Could not persist device id to %s: %s", id_path, exc)
    return device_id
