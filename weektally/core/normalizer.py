"""
WeekTally: Normalizer.

Turns raw candidate records (from the UI, from rollover, from import files of
any schema version) into canonical typed records. It fills identity,
timestamps, schema version and derived fields, and never mutates its input.
"""

from __future__ import annotations

import json
import logging
import math
import platform
import uuid
from dataclasses import replace
from datetime import datetime
from typing import TYPE_CHECKING, Iterable

from weektally.core.periods import (
    DEFAULT_WEEK_START,
    WEEKDAYS,
    is_valid_date_key,
    period_days,
    period_end,
    period_start,
)
from weektally.data.migrations import migrate_archive, migrate_state
from weektally.data.models import (
    PROVENANCE_IMPORTED,
    PROVENANCE_LOCAL,
    PROVENANCES,
    SCHEMA_VERSION,
    ArchiveMetadata,
    ArchiveRecord,
    Category,
    CurrentState,
    ImportInfo,
    StateMetadata,
)

if TYPE_CHECKING:
    from weektally.ports.clock_port import Clock

logger = logging.getLogger(__name__)

# lastModified of a brand-new draft: older than anything a real device wrote
FRESH_INSTALL_TIMESTAMP = int(datetime(2024, 1, 1).timestamp() * 1000)

_ARCHIVE_KEYS = {
    "id", "periodStartDate", "periodEndDate", "dailyBreakdown",
    "totals", "targets", "metadata",
}
_STATE_KEYS = {
    "currentDayDate", "selectedViewDate", "currentPeriodStartDate",
    "dailyCounts", "weeklyCounts", "lastModified", "metadata",
}


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def _coerce_counts(mapping: object, label: str) -> dict[str, int]:
    """Category -> count mapping with every count a non-negative int."""
    if mapping is None:
        return {}
    if not isinstance(mapping, dict):
        raise TypeError(f"{label} must be an object, got {type(mapping).__name__}")
    counts: dict[str, int] = {}
    for category, value in mapping.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"Count for {category!r} in {label} is not a number: {value!r}")
        if not math.isfinite(value):
            raise ValueError(f"Count for {category!r} in {label} is not finite: {value!r}")
        counts[str(category)] = max(0, int(value))
    return counts


def _coerce_daily(mapping: object, label: str) -> dict[str, dict[str, int]]:
    if mapping is None:
        return {}
    if not isinstance(mapping, dict):
        raise TypeError(f"{label} must be an object, got {type(mapping).__name__}")
    daily: dict[str, dict[str, int]] = {}
    for day, counts in mapping.items():
        if not is_valid_date_key(day):
            raise ValueError(f"{label} has an invalid day key: {day!r}")
        daily[day] = _coerce_counts(counts, f"{label}[{day}]")
    return daily


def period_breakdown(
    daily_counts: dict[str, dict[str, int]],
    start: str,
    fill_missing: bool = False,
) -> dict[str, dict[str, int]]:
    """Copy of the daily counts that fall inside the period beginning on start.

    With fill_missing, every one of the 7 days is present (empty if unused).
    """
    breakdown: dict[str, dict[str, int]] = {}
    for day in period_days(start):
        if day in daily_counts:
            breakdown[day] = dict(daily_counts[day])
        elif fill_missing:
            breakdown[day] = {}
    return breakdown


def sum_counts(breakdown: dict[str, dict[str, int]]) -> dict[str, int]:
    totals: dict[str, int] = {}
    for counts in breakdown.values():
        for category, value in counts.items():
            totals[category] = totals.get(category, 0) + value
    return totals


def recompute_weekly_counts(state: CurrentState) -> CurrentState:
    """Return a copy of state whose weekly counts are rebuilt from its daily counts."""
    breakdown = period_breakdown(state.daily_counts, state.current_period_start_date)
    return replace(state, weekly_counts=sum_counts(breakdown))


def targets_from_categories(categories: Iterable[Category | dict]) -> dict[str, dict]:
    """Frozen per-category target snapshot for an archive record."""
    targets: dict[str, dict] = {}
    for item in categories:
        category = item if isinstance(item, Category) else Category.from_dict(item)
        targets[category.id] = category.as_target()
    return targets


def _default_device_info() -> str:
    return json.dumps({
        "platform": platform.platform(),
        "python": platform.python_version(),
        "node": platform.node(),
    })


# ---------------------------------------------------------------------------
# Normalizer
# ---------------------------------------------------------------------------


class Normalizer:
    """Produces canonical records stamped with this device and clock."""

    def __init__(self, clock: Clock, device_id: str, device_info: str | None = None) -> None:
        self._clock = clock
        self._device_id = device_id
        self._device_info = device_info or _default_device_info()

    @property
    def device_id(self) -> str:
        return self._device_id

    def normalize_archive_record(
        self,
        candidate: ArchiveRecord | dict,
        *,
        existing: ArchiveRecord | None = None,
        targets_config: Iterable[Category | dict] | None = None,
        import_info: ImportInfo | None = None,
        start_weekday: str | None = None,
        updated_at: int | None = None,
    ) -> ArchiveRecord:
        """Build the canonical archive record for a candidate.

        Args:
            candidate: Raw payload (any schema version) or an ArchiveRecord.
            existing: The stored record with the same period start, if any.
                Its id and createdAt win over the candidate's.
            targets_config: Current categories; used only when the candidate
                carries no targets of its own.
            import_info: Set when the candidate comes from an import file.
            start_weekday: Week start setting to record; defaults to the
                candidate's own, then Sunday.
            updated_at: Override for metadata.updatedAt (defaults to now).

        Raises:
            TypeError / ValueError when the candidate is structurally unusable
            (not an object, missing or malformed periodStartDate, non-numeric
            counts).
        """
        raw = candidate.to_dict() if isinstance(candidate, ArchiveRecord) else candidate
        data = migrate_archive(raw)

        start = data.get("periodStartDate")
        if not is_valid_date_key(start):
            raise ValueError(f"periodStartDate is missing or malformed: {start!r}")

        now = self._clock.timestamp_ms()
        cand_meta = data.get("metadata") if isinstance(data.get("metadata"), dict) else {}
        parsed_meta = ArchiveMetadata.from_dict(cand_meta)

        targets = data.get("targets") or {}
        if not isinstance(targets, dict):
            raise TypeError(f"targets must be an object, got {type(targets).__name__}")
        if not targets and targets_config:
            targets = targets_from_categories(targets_config)

        breakdown = _coerce_daily(data.get("dailyBreakdown"), "dailyBreakdown")
        totals = _coerce_counts(data.get("totals"), "totals")
        if not totals and breakdown:
            totals = sum_counts(breakdown)

        if import_info is not None:
            provenance = PROVENANCE_IMPORTED
            imported_from = import_info.device_id or "unknown"
            import_timestamp = import_info.export_timestamp or now
        else:
            provenance = parsed_meta.provenance if parsed_meta.provenance in PROVENANCES else PROVENANCE_LOCAL
            imported_from = parsed_meta.imported_from
            import_timestamp = parsed_meta.import_timestamp

        week_start_day = start_weekday or parsed_meta.week_start_day
        if week_start_day not in WEEKDAYS:
            week_start_day = DEFAULT_WEEK_START

        if existing is not None:
            record_id = existing.id
        elif isinstance(data.get("id"), str) and data["id"]:
            record_id = data["id"]
        else:
            record_id = str(uuid.uuid4())

        metadata = ArchiveMetadata(
            created_at=existing.metadata.created_at if existing is not None else now,
            updated_at=updated_at if updated_at is not None else now,
            schema_version=SCHEMA_VERSION,
            device_id=self._device_id,
            device_info=self._device_info,
            provenance=provenance,
            week_start_day=week_start_day,
            imported_from=imported_from,
            import_timestamp=import_timestamp,
            extra=parsed_meta.extra,
        )

        return ArchiveRecord(
            id=record_id,
            period_start_date=start,
            period_end_date=period_end(start),
            daily_breakdown=breakdown,
            totals=totals,
            targets=targets,
            metadata=metadata,
            extra={k: v for k, v in data.items() if k not in _ARCHIVE_KEYS},
        )

    def normalize_current_state(
        self,
        raw: dict | None,
        *,
        start_weekday: str | None = None,
    ) -> CurrentState:
        """Canonical current state from a saved or imported payload.

        None produces the first-run draft: today, its period, one empty day.
        Weekly counts are always rebuilt from the daily counts.
        """
        today = self._clock.now_as_date_key()
        if raw is None:
            week_start = start_weekday or DEFAULT_WEEK_START
            return CurrentState(
                current_day_date=today,
                selected_view_date=today,
                current_period_start_date=period_start(today, week_start),
                daily_counts={today: {}},
                weekly_counts={},
                last_modified=FRESH_INSTALL_TIMESTAMP,
                metadata=StateMetadata(
                    device_id=self._device_id,
                    week_start_day=week_start,
                    is_fresh_install=True,
                ),
            )

        data = migrate_state(raw)
        meta_raw = data.get("metadata") if isinstance(data.get("metadata"), dict) else {}
        meta = StateMetadata.from_dict(meta_raw)

        week_start = start_weekday or meta.week_start_day
        if week_start not in WEEKDAYS:
            week_start = DEFAULT_WEEK_START

        current_day = data.get("currentDayDate")
        if not is_valid_date_key(current_day):
            current_day = today
        period = data.get("currentPeriodStartDate")
        if not is_valid_date_key(period):
            period = period_start(current_day, week_start)
        selected = data.get("selectedViewDate")
        if not is_valid_date_key(selected):
            selected = current_day

        daily = _coerce_daily(data.get("dailyCounts"), "dailyCounts")
        daily.setdefault(selected, {})

        last_modified = data.get("lastModified")
        if isinstance(last_modified, bool) or not isinstance(last_modified, int):
            last_modified = self._clock.timestamp_ms()

        state = CurrentState(
            current_day_date=current_day,
            selected_view_date=selected,
            current_period_start_date=period,
            daily_counts=daily,
            weekly_counts={},
            last_modified=last_modified,
            metadata=replace(
                meta,
                schema_version=SCHEMA_VERSION,
                device_id=self._device_id,
                week_start_day=week_start,
                is_fresh_install=False,
            ),
            extra={k: v for k, v in data.items() if k not in _STATE_KEYS},
        )
        return recompute_weekly_counts(state)

    def archive_from_state(
        self,
        state: CurrentState,
        *,
        targets_config: Iterable[Category | dict] | None = None,
        import_info: ImportInfo | None = None,
        start_weekday: str | None = None,
        updated_at: int | None = None,
    ) -> ArchiveRecord:
        """Fold a current-period draft into an archive record for its period.

        The breakdown covers exactly the 7 days of the state's period and the
        totals are recomputed from it, whatever the draft's weekly counts say.
        """
        breakdown = period_breakdown(
            state.daily_counts, state.current_period_start_date, fill_missing=True,
        )
        candidate = {
            "periodStartDate": state.current_period_start_date,
            "dailyBreakdown": breakdown,
            "totals": sum_counts(breakdown),
            "metadata": {"schemaVersion": SCHEMA_VERSION},
        }
        logger.debug("Archiving draft for period %s (%d categories)",
                     state.current_period_start_date, len(candidate["totals"]))
        return self.normalize_archive_record(
            candidate,
            targets_config=targets_config,
            import_info=import_info,
            start_weekday=start_weekday or state.metadata.week_start_day,
            updated_at=updated_at,
        )
