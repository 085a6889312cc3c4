"""
WeekTally: Schema migrations.

Raw payloads (rows written by older releases, or import files from older
devices) are upgraded one schema version at a time before they become typed
records. Each migration takes a copy of the payload at version N and returns
it at version N + 1.

Schema history:
    1  weekly totals only (`weekStartDate`, `totals`)
    2  adds `id`, `targets`, `metadata`; state gains `dailyCounts`
    3  adds per-day `dailyBreakdown`; state gains `selectedTrackerDate`
    4  week -> period naming; `syncStatus` -> `provenance`
"""

from __future__ import annotations

import copy
import logging
from typing import Callable

from weektally.data.models import PROVENANCE_LOCAL, PROVENANCES, SCHEMA_VERSION

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Archive record migrations
# ---------------------------------------------------------------------------


def _archive_1_to_2(raw: dict) -> dict:
    if "totals" not in raw and "weeklyCounts" in raw:
        raw["totals"] = raw.pop("weeklyCounts")
    raw.setdefault("totals", {})
    raw.setdefault("targets", {})
    raw.setdefault("metadata", {})
    return raw


def _archive_2_to_3(raw: dict) -> dict:
    raw.setdefault("dailyBreakdown", {})
    return raw


def _archive_3_to_4(raw: dict) -> dict:
    if "weekStartDate" in raw:
        raw.setdefault("periodStartDate", raw.pop("weekStartDate"))
    if "weekEndDate" in raw:
        raw.setdefault("periodEndDate", raw.pop("weekEndDate"))
    meta = raw.setdefault("metadata", {})
    if "syncStatus" in meta:
        status = meta.pop("syncStatus")
        meta.setdefault("provenance", status if status in PROVENANCES else PROVENANCE_LOCAL)
    return raw


ARCHIVE_MIGRATIONS: dict[int, Callable[[dict], dict]] = {
    1: _archive_1_to_2,
    2: _archive_2_to_3,
    3: _archive_3_to_4,
}


# ---------------------------------------------------------------------------
# Current state migrations
# ---------------------------------------------------------------------------


def _state_1_to_2(raw: dict) -> dict:
    raw.setdefault("dailyCounts", {})
    raw.setdefault("metadata", {})
    return raw


def _state_2_to_3(raw: dict) -> dict:
    if "currentDayDate" in raw:
        raw.setdefault("selectedTrackerDate", raw["currentDayDate"])
    return raw


def _state_3_to_4(raw: dict) -> dict:
    if "currentWeekStartDate" in raw:
        raw.setdefault("currentPeriodStartDate", raw.pop("currentWeekStartDate"))
    if "selectedTrackerDate" in raw:
        raw.setdefault("selectedViewDate", raw.pop("selectedTrackerDate"))
    meta = raw.setdefault("metadata", {})
    if "currentWeekDirty" in meta:
        meta.setdefault("currentPeriodDirty", meta.pop("currentWeekDirty"))
    if "previousWeekStartDate" in meta:
        meta.setdefault("previousPeriodStartDate", meta.pop("previousWeekStartDate"))
    return raw


STATE_MIGRATIONS: dict[int, Callable[[dict], dict]] = {
    1: _state_1_to_2,
    2: _state_2_to_3,
    3: _state_3_to_4,
}


# ---------------------------------------------------------------------------
# Version detection and driver
# ---------------------------------------------------------------------------


def _declared_version(raw: dict) -> int | None:
    meta = raw.get("metadata")
    if isinstance(meta, dict):
        version = meta.get("schemaVersion")
        if isinstance(version, int) and not isinstance(version, bool):
            return version
    return None


def detect_archive_version(raw: dict) -> int:
    """Schema version of an archive payload, declared or inferred."""
    declared = _declared_version(raw)
    if declared is not None:
        return declared
    if "periodStartDate" in raw:
        return SCHEMA_VERSION
    if "dailyBreakdown" in raw:
        return 3
    if "id" in raw or "metadata" in raw:
        return 2
    return 1


def detect_state_version(raw: dict) -> int:
    """Schema version of a current-state payload, declared or inferred."""
    declared = _declared_version(raw)
    if declared is not None:
        return declared
    if "currentPeriodStartDate" in raw:
        return SCHEMA_VERSION
    if "selectedTrackerDate" in raw:
        return 3
    if "dailyCounts" in raw:
        return 2
    return 1


def _run(raw: dict, version: int, migrations: dict, kind: str) -> dict:
    payload = copy.deepcopy(raw)
    if version > SCHEMA_VERSION:
        logger.warning(
            "%s payload has schema version %d, newer than supported %d; "
            "continuing best-effort",
            kind, version, SCHEMA_VERSION,
        )
        return payload
    start = max(version, 1)
    for step in range(start, SCHEMA_VERSION):
        payload = migrations[step](payload)
    if start < SCHEMA_VERSION:
        logger.debug("Migrated %s payload from schema %d to %d", kind, start, SCHEMA_VERSION)
        payload.setdefault("metadata", {})["schemaVersion"] = SCHEMA_VERSION
    return payload


def migrate_archive(raw: dict) -> dict:
    """Return a copy of an archive payload upgraded to the current schema."""
    if not isinstance(raw, dict):
        raise TypeError(f"Archive record must be an object, got {type(raw).__name__}")
    return _run(raw, detect_archive_version(raw), ARCHIVE_MIGRATIONS, "Archive")


def migrate_state(raw: dict) -> dict:
    """Return a copy of a current-state payload upgraded to the current schema."""
    if not isinstance(raw, dict):
        raise TypeError(f"Current state must be an object, got {type(raw).__name__}")
    return _run(raw, detect_state_version(raw), STATE_MIGRATIONS, "Current state")
