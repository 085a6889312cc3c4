"""
WeekTally: Tracker service.

UI-agnostic layer over the record store and the current-state slot. Every
write goes through the Normalizer and leaves a change-log entry; optional
lookups degrade to defaults instead of failing the caller.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from weektally.core.errors import StoreUnavailable, TransactionError
from weektally.core.normalizer import Normalizer, recompute_weekly_counts
from weektally.core.periods import (
    DEFAULT_WEEK_START,
    WEEKDAYS,
    in_period,
    is_valid_date_key,
    period_start,
)
from weektally.data.change_log import ChangeLog
from weektally.data.db import Collection
from weektally.data.models import (
    RECORD_ARCHIVE,
    RECORD_CURRENT_STATE,
    RECORD_PREFERENCE,
    SCHEMA_VERSION,
    ArchiveRecord,
    Category,
    CurrentState,
    ImportInfo,
    PreferenceRecord,
)

if TYPE_CHECKING:
    from weektally.data.db import RecordStore
    from weektally.data.state_slot import CurrentStateSlot
    from weektally.ports.clock_port import Clock

logger = logging.getLogger(__name__)

PREF_WEEK_START_DAY = "weekStartDay"
PREF_CATEGORIES = "categories"

RESET_DAILY = "DAILY"
RESET_WEEKLY = "WEEKLY"


class TrackerService:
    """Reads and writes tracker data for one device."""

    def __init__(
        self,
        store: RecordStore,
        state_slot: CurrentStateSlot,
        clock: Clock,
        device_id: str,
        default_week_start: str = DEFAULT_WEEK_START,
        normalizer: Normalizer | None = None,
    ) -> None:
        self._store = store
        self._slot = state_slot
        self._clock = clock
        self._device_id = device_id
        self._default_week_start = default_week_start
        self.normalizer = normalizer or Normalizer(clock, device_id)
        self.change_log = ChangeLog(store, clock, device_id)

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def device_id(self) -> str:
        return self._device_id

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    def save_preference(self, key: str, value: Any) -> PreferenceRecord:
        """Upsert a preference, keeping its original createdAt."""
        if not key:
            raise ValueError("Preference key is required")
        now = self._clock.timestamp_ms()
        existing = self._lookup(Collection.PREFERENCES, key)
        record = PreferenceRecord(
            key=key,
            value=value,
            created_at=existing.created_at if existing is not None else now,
            updated_at=now,
            device_id=self._device_id,
        )
        self._store.put(Collection.PREFERENCES, record)
        self.change_log.record(
            RECORD_PREFERENCE,
            "update" if existing is not None else "create",
            key,
            {"key": key, "value": value},
        )
        return record

    def get_preference(self, key: str, default: Any = None) -> Any:
        """Value of a preference, or default when absent or unreadable."""
        if not key:
            raise ValueError("Preference key is required")
        record = self._lookup(Collection.PREFERENCES, key)
        return record.value if record is not None else default

    def get_all_preferences(self) -> dict[str, Any]:
        try:
            records = self._store.get_all(Collection.PREFERENCES)
        except TransactionError as exc:
            logger.error("Could not read preferences: %s", exc)
            return {}
        return {r.key: r.value for r in records}

    def delete_preference(self, key: str) -> bool:
        if not key:
            raise ValueError("Preference key is required")
        deleted = self._store.delete(Collection.PREFERENCES, key)
        if deleted:
            self.change_log.record(RECORD_PREFERENCE, "delete", key)
        return deleted

    def bulk_save_preferences(self, preferences: dict[str, Any]) -> int:
        """Save several preferences; returns how many were written.

        Each preference is its own transaction; a failed one is logged and
        the rest are still saved.
        """
        saved = 0
        for key, value in preferences.items():
            try:
                self.save_preference(key, value)
                saved += 1
            except (TransactionError, ValueError) as exc:
                logger.error("Could not save preference '%s': %s", key, exc)
        return saved

    def week_start_day(self) -> str:
        value = self.get_preference(PREF_WEEK_START_DAY, self._default_week_start)
        if value not in WEEKDAYS:
            logger.warning("Ignoring invalid weekStartDay preference %r", value)
            return self._default_week_start
        return value

    def categories(self) -> list[Category]:
        """Configured categories (the targets configuration), if any."""
        return categories_from_value(self.get_preference(PREF_CATEGORIES, []))

    # ------------------------------------------------------------------
    # Archive
    # ------------------------------------------------------------------

    def save_archive_record(
        self,
        candidate: ArchiveRecord | dict,
        *,
        targets_config: list[Category] | None = None,
        import_info: ImportInfo | None = None,
        start_weekday: str | None = None,
        updated_at: int | None = None,
    ) -> ArchiveRecord:
        """Normalize and upsert one archive record keyed by its period start.

        A failed lookup of the existing record is treated as "no existing
        record"; a failed write is raised.
        """
        start = candidate.period_start_date if isinstance(candidate, ArchiveRecord) else None
        if start is None and isinstance(candidate, dict):
            start = candidate.get("periodStartDate") or candidate.get("weekStartDate")
        existing = self._lookup(Collection.ARCHIVE, start) if is_valid_date_key(start) else None

        record = self.normalizer.normalize_archive_record(
            candidate,
            existing=existing,
            targets_config=targets_config,
            import_info=import_info,
            start_weekday=start_weekday,
            updated_at=updated_at,
        )
        self._store.put(Collection.ARCHIVE, record)
        logger.info("Archive record for %s saved (%s)",
                    record.period_start_date, record.metadata.provenance)
        self.change_log.record(
            RECORD_ARCHIVE,
            "update" if existing is not None else "create",
            record.id,
            {"periodStartDate": record.period_start_date},
        )
        return record

    def get_archive_record(self, period_start_date: str) -> ArchiveRecord | None:
        return self._store.get(Collection.ARCHIVE, period_start_date)

    def list_archive(self, limit: int | None = None, offset: int = 0) -> list[ArchiveRecord]:
        """Archived periods, newest first, optionally paginated."""
        records = self._store.get_all(Collection.ARCHIVE)
        if limit is None:
            return records[offset:]
        return records[offset:offset + limit]

    def clear_archive(self) -> None:
        self._store.clear(Collection.ARCHIVE)
        self.change_log.record(RECORD_ARCHIVE, "clear", "all")

    # ------------------------------------------------------------------
    # Current state
    # ------------------------------------------------------------------

    def load_state(self) -> CurrentState:
        """The saved draft, or a fresh one for today if none exists."""
        raw = self._slot.load()
        start_weekday = self.week_start_day() if raw is None else None
        return self.normalizer.normalize_current_state(raw, start_weekday=start_weekday)

    def save_state(self, state: CurrentState, operation: str = "update") -> CurrentState:
        """Stamp and persist the draft, re-establishing its weekly totals."""
        stamped = recompute_weekly_counts(replace(
            state,
            last_modified=self._clock.timestamp_ms(),
            metadata=replace(
                state.metadata,
                schema_version=SCHEMA_VERSION,
                device_id=self._device_id,
            ),
        ))
        self._slot.save(stamped)
        self.change_log.record(
            RECORD_CURRENT_STATE,
            operation,
            "current",
            {
                "timestamp": stamped.last_modified,
                "periodStartDate": stamped.current_period_start_date,
                "selectedDate": stamped.selected_view_date,
            },
        )
        return stamped

    def ensure_weekly_counts(self) -> bool:
        """Re-save the stored draft if its weekly counts don't match its days.

        Returns True when a correction was written. A consistent draft, or no
        draft at all, is left byte-for-byte as it is.
        """
        raw = self._slot.load()
        if raw is None:
            return False
        state = self.normalizer.normalize_current_state(raw)
        if raw.get("weeklyCounts") == state.weekly_counts:
            return False
        logger.info("Stored weekly counts %s differ from daily sums %s",
                    raw.get("weeklyCounts"), state.weekly_counts)
        self.save_state(state)
        return True

    def reset_state(self) -> None:
        self._slot.clear()
        self.change_log.record(RECORD_CURRENT_STATE, "clear", "current")

    def record_count(
        self,
        category_id: str,
        delta: int = 1,
        day: str | None = None,
    ) -> CurrentState:
        """Add delta (may be negative) to one category on one day of the period.

        Counts never go below zero. The day defaults to the selected view date
        and must fall inside the current period.
        """
        state = self.load_state()
        target_day = day or state.selected_view_date
        if not is_valid_date_key(target_day):
            raise ValueError(f"Invalid day: {target_day!r}")
        if not in_period(target_day, state.current_period_start_date):
            raise ValueError(
                f"{target_day} is outside the current period starting "
                f"{state.current_period_start_date}"
            )

        day_counts = dict(state.daily_counts.get(target_day, {}))
        day_counts[category_id] = max(0, day_counts.get(category_id, 0) + delta)
        daily = {**state.daily_counts, target_day: day_counts}
        updated = replace(
            state,
            daily_counts=daily,
            metadata=replace(state.metadata, current_period_dirty=True),
        )
        logger.info("Count %s on %s -> %d", category_id, target_day, day_counts[category_id])
        return self.save_state(updated)

    def select_view_date(self, day: str) -> CurrentState:
        state = self.load_state()
        if not is_valid_date_key(day):
            raise ValueError(f"Invalid day: {day!r}")
        daily = dict(state.daily_counts)
        daily.setdefault(day, {})
        return self.save_state(replace(state, selected_view_date=day, daily_counts=daily))

    # ------------------------------------------------------------------
    # Period rollover
    # ------------------------------------------------------------------

    def archive_current_period(self, state: CurrentState) -> ArchiveRecord:
        """Produce the one archive record for the period the draft covers."""
        record = self.normalizer.archive_from_state(
            state,
            targets_config=self.categories(),
            start_weekday=state.metadata.week_start_day,
        )
        return self.save_archive_record(
            record, start_weekday=state.metadata.week_start_day,
        )

    def check_rollover(self) -> str | None:
        """Apply a daily or weekly reset if the clock has moved on.

        Returns "WEEKLY" when the previous period was archived and the draft
        reset, "DAILY" when only the current day advanced, None otherwise.
        If archiving fails the draft is left alone so nothing is lost; the
        next check tries again.
        """
        state = self.load_state()
        today = self._clock.now_as_date_key()
        week_start = self.week_start_day()
        system_period = period_start(today, week_start)

        if state.current_period_start_date != system_period:
            logger.info("Weekly rollover detected: from %s to %s",
                        state.current_period_start_date, system_period)
            try:
                self.archive_current_period(state)
            except (TransactionError, StoreUnavailable, ValueError) as exc:
                logger.error("Weekly rollover aborted, archiving %s failed: %s",
                             state.current_period_start_date, exc)
                return None

            fresh = replace(
                state,
                current_day_date=today,
                selected_view_date=today,
                current_period_start_date=system_period,
                daily_counts={today: {}},
                weekly_counts={},
                metadata=replace(
                    state.metadata,
                    week_start_day=week_start,
                    date_reset_performed=True,
                    date_reset_type=RESET_WEEKLY,
                    date_reset_timestamp=self._clock.timestamp_ms(),
                    previous_period_start_date=state.current_period_start_date,
                    current_period_dirty=False,
                    history_dirty=True,
                ),
            )
            self.save_state(fresh)
            logger.info("Weekly reset complete. New period: %s, new day: %s",
                        system_period, today)
            return RESET_WEEKLY

        if state.current_day_date != today:
            logger.info("Daily rollover detected: from %s to %s",
                        state.current_day_date, today)
            daily = dict(state.daily_counts)
            daily.setdefault(today, {})
            self.save_state(replace(
                state,
                current_day_date=today,
                selected_view_date=today,
                daily_counts=daily,
                metadata=replace(
                    state.metadata,
                    date_reset_performed=True,
                    date_reset_type=RESET_DAILY,
                    date_reset_timestamp=self._clock.timestamp_ms(),
                ),
            ))
            return RESET_DAILY

        if state.selected_view_date != state.current_day_date:
            logger.info("Aligning selected date %s with current day %s",
                        state.selected_view_date, state.current_day_date)
            self.save_state(replace(state, selected_view_date=state.current_day_date))

        logger.debug("check_rollover: no date or period change")
        return None

    # ------------------------------------------------------------------
    # Change log and statistics
    # ------------------------------------------------------------------

    def pending_changes(self, since: int = 0):
        return self.change_log.pending(since)

    def stats(self) -> dict:
        state = self.load_state()
        return {
            "database": {
                "path": self._store.db_path,
                "schemaVersion": SCHEMA_VERSION,
            },
            "counts": {
                "archive": self._store.count(Collection.ARCHIVE),
                "preferences": self._store.count(Collection.PREFERENCES),
                "changeLog": self._store.count(Collection.CHANGE_LOG),
            },
            "device": {"id": self._device_id},
            "state": {
                "saved": self._slot.exists(),
                "currentDayDate": state.current_day_date,
                "currentPeriodStartDate": state.current_period_start_date,
                "lastModified": state.last_modified,
                "weeklyCounts": state.weekly_counts,
            },
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lookup(self, collection: Collection, key: str):
        """Optional read: a failed transaction counts as "not found"."""
        try:
            return self._store.get(collection, key)
        except TransactionError as exc:
            logger.warning("Lookup of %s '%s' failed, treating as absent: %s",
                           collection.value, key, exc)
            return None


def categories_from_value(value: Any) -> list[Category]:
    """Parse a stored/imported `categories` preference, skipping bad entries."""
    if not isinstance(value, list):
        return []
    categories: list[Category] = []
    for item in value:
        if isinstance(item, Category):
            categories.append(item)
            continue
        if not isinstance(item, dict) or not item.get("id"):
            logger.warning("Skipping malformed category entry: %r", item)
            continue
        categories.append(Category.from_dict(item))
    return categories
