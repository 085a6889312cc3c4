"""
WeekTally: Import reconciliation.

An incoming snapshot is classified by comparing its current day with today:

    SAME_DAY     same calendar day           -> replace everything
    SAME_WEEK    same period, different day  -> max-merge the day counts
    PAST_WEEK    an earlier period           -> add it to history only
    FUTURE_WEEK  a later day or period       -> replace everything (flagged)

The file is validated completely before anything is written. Once writes
begin, a bad archive entry is skipped and reported on the ImportResult
instead of aborting the import.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from weektally.core.errors import (
    PartialImportError,
    StoreUnavailable,
    TransactionError,
    ValidationError,
)
from weektally.core.periods import DEFAULT_WEEK_START, period_start
from weektally.core.tracker_service import (
    PREF_CATEGORIES,
    TrackerService,
    categories_from_value,
)
from weektally.core.transfer import (
    AppInfo,
    ImportFile,
    parse_import,
    read_import_file,
    write_export,
)
from weektally.data.models import SCHEMA_VERSION, Category, CurrentState, ImportInfo

if TYPE_CHECKING:
    from weektally.ports.clock_port import Clock

logger = logging.getLogger(__name__)


class Classification(str, Enum):
    SAME_DAY = "SAME_DAY"
    SAME_WEEK = "SAME_WEEK"
    PAST_WEEK = "PAST_WEEK"
    FUTURE_WEEK = "FUTURE_WEEK"


_ACTIONS = {
    Classification.SAME_DAY: "Replace all tracking data",
    Classification.SAME_WEEK: (
        "Update the current period's counts and replace matching history"
    ),
    Classification.PAST_WEEK: (
        "Add the imported data to history while preserving current tracking"
    ),
    Classification.FUTURE_WEEK: (
        "Warning: the import appears to be from a future date; "
        "replace all tracking data"
    ),
}


def classify(
    imported_day: str,
    today: str,
    start_weekday: str = DEFAULT_WEEK_START,
) -> Classification:
    """Relationship of an imported snapshot's day to today."""
    if imported_day == today:
        return Classification.SAME_DAY
    if period_start(imported_day, start_weekday) == period_start(today, start_weekday):
        return Classification.SAME_WEEK
    if imported_day < today:
        return Classification.PAST_WEEK
    return Classification.FUTURE_WEEK


def merge_daily_counts(
    local: dict[str, dict[str, int]],
    imported: dict[str, dict[str, int]],
) -> dict[str, dict[str, int]]:
    """Per day and category, keep the larger of the two counts.

    Days and categories present on only one side are kept as they are.
    """
    merged = {day: dict(counts) for day, counts in local.items()}
    for day, counts in imported.items():
        target = merged.setdefault(day, {})
        for category, value in counts.items():
            target[category] = max(target.get(category, 0), value)
    return merged


@dataclass
class ImportPlan:
    """What an import would do, computed before anything is written."""

    classification: Classification
    imported_day: str
    today: str
    history_count: int
    exported_by: str = "unknown"
    export_date: str | None = None

    @property
    def action(self) -> str:
        return _ACTIONS[self.classification]


@dataclass
class ImportResult:
    """Outcome of an applied import."""

    classification: Classification
    imported_count: int = 0                # archive records written
    preferences_imported: int = 0
    skipped: list[PartialImportError] = field(default_factory=list)

    @property
    def completed_with_skips(self) -> bool:
        return bool(self.skipped)

    @property
    def message(self) -> str:
        if self.classification is Classification.SAME_DAY:
            text = "Import complete. All data replaced."
        elif self.classification is Classification.SAME_WEEK:
            text = "Import complete. Counts updated for the current period."
        elif self.classification is Classification.PAST_WEEK:
            text = f"Import complete. {self.imported_count} periods added to history."
        else:
            text = "Import complete. Future-dated data imported."
        if self.skipped:
            text += f" {len(self.skipped)} archive record(s) were skipped."
        return text


class Reconciler:
    """Applies import files to the local store and produces export snapshots."""

    def __init__(self, service: TrackerService, clock: Clock, app_name: str = "WeekTally") -> None:
        self._service = service
        self._clock = clock
        self._app_name = app_name

    # ------------------------------------------------------------------
    # Validation and planning (no writes)
    # ------------------------------------------------------------------

    def validate(self, payload: Any) -> tuple[ImportFile, CurrentState]:
        """Check the whole file and build the imported draft.

        Raises:
            ValidationError: anything that would make the import fail before
                a write; the local data is untouched.
        """
        import_file = parse_import(payload)
        try:
            imported_state = self._service.normalizer.normalize_current_state(
                import_file.currentState
            )
        except (TypeError, ValueError) as exc:
            raise ValidationError(
                f"Invalid currentState in import file: {exc}",
                [{"loc": "currentState", "msg": str(exc)}],
            ) from exc
        return import_file, imported_state

    def plan(self, payload: Any) -> ImportPlan:
        import_file, imported_state = self.validate(payload)
        info = import_file.import_info()
        today = self._clock.now_as_date_key()
        return ImportPlan(
            classification=classify(
                imported_state.current_day_date, today, self._service.week_start_day(),
            ),
            imported_day=imported_state.current_day_date,
            today=today,
            history_count=len(import_file.history),
            exported_by=info.device_id,
            export_date=import_file.appInfo.exportDate if import_file.appInfo else None,
        )

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def apply(self, payload: Any) -> ImportResult:
        """Validate, classify and merge an import payload into local data."""
        import_file, imported_state = self.validate(payload)
        # A stale draft must be archived before anything merges into it
        reset = self._service.check_rollover()
        if reset:
            logger.info("Applied %s rollover before import", reset.lower())
        info = import_file.import_info()
        today = self._clock.now_as_date_key()
        classification = classify(
            imported_state.current_day_date, today, self._service.week_start_day(),
        )
        logger.info("Importing snapshot from %s (day %s, today %s): %s",
                    info.device_id, imported_state.current_day_date, today,
                    classification.value)

        if classification is Classification.PAST_WEEK:
            result = self._add_past_week(import_file, imported_state, info)
        elif classification is Classification.SAME_WEEK:
            result = self._merge_same_week(import_file, imported_state, info)
        else:
            result = self._full_replace(import_file, imported_state, info, classification)

        self._ensure_weekly_invariant()
        logger.info("%s (%d written, %d skipped)", result.message,
                    result.imported_count, len(result.skipped))
        return result

    def import_file(self, path: str | Path) -> ImportResult:
        return self.apply(read_import_file(path))

    def _full_replace(
        self,
        import_file: ImportFile,
        imported_state: CurrentState,
        info: ImportInfo,
        classification: Classification,
    ) -> ImportResult:
        if classification is Classification.FUTURE_WEEK:
            logger.warning("Imported snapshot is dated %s, after today",
                           imported_state.current_day_date)

        self._service.clear_archive()
        self._service.reset_state()
        prefs = self._service.bulk_save_preferences(import_file.preferences)

        self._service.save_state(
            replace(
                imported_state,
                metadata=replace(
                    imported_state.metadata,
                    current_period_dirty=True,
                    history_dirty=bool(import_file.history),
                ),
            ),
            operation="import",
        )

        count, skipped = self._upsert_archive(
            import_file.history, info, self._service.categories(),
        )
        return ImportResult(classification, count, prefs, skipped)

    def _merge_same_week(
        self,
        import_file: ImportFile,
        imported_state: CurrentState,
        info: ImportInfo,
    ) -> ImportResult:
        local = self._service.load_state()
        expected = period_start(self._clock.now_as_date_key(), self._service.week_start_day())
        if local.current_period_start_date != expected:
            raise TransactionError(
                "currentState", "import",
                f"draft still covers {local.current_period_start_date}, expected {expected}",
            )
        prefs = self._service.bulk_save_preferences(import_file.preferences)

        merged = merge_daily_counts(local.daily_counts, imported_state.daily_counts)
        self._service.save_state(
            replace(
                local,
                daily_counts=merged,
                metadata=replace(
                    local.metadata,
                    current_period_dirty=True,
                    history_dirty=True,
                ),
            ),
            operation="import",
        )

        # Archive entries replace local ones with the same period start,
        # unlike the day counts above which are max-merged.
        count, skipped = self._upsert_archive(
            import_file.history, info, self._service.categories(),
        )
        return ImportResult(Classification.SAME_WEEK, count, prefs, skipped)

    def _add_past_week(
        self,
        import_file: ImportFile,
        imported_state: CurrentState,
        info: ImportInfo,
    ) -> ImportResult:
        targets = categories_from_value(import_file.preferences.get(PREF_CATEGORIES))
        synthetic = self._service.normalizer.archive_from_state(
            imported_state,
            targets_config=targets,
            import_info=info,
        )
        logger.info("Imported draft for %s becomes an archive record",
                    synthetic.period_start_date)
        count, skipped = self._upsert_archive(
            [synthetic.to_dict(), *import_file.history], info, targets,
        )
        return ImportResult(Classification.PAST_WEEK, count, 0, skipped)

    def _upsert_archive(
        self,
        entries: list[Any],
        info: ImportInfo,
        targets: list[Category],
    ) -> tuple[int, list[PartialImportError]]:
        """Write each entry in its own transaction, skipping unusable ones."""
        written = 0
        skipped: list[PartialImportError] = []
        for entry in entries:
            start = None
            if isinstance(entry, dict):
                start = entry.get("periodStartDate") or entry.get("weekStartDate")
            try:
                self._service.save_archive_record(
                    entry, targets_config=targets, import_info=info,
                )
            except StoreUnavailable:
                raise
            except (TransactionError, TypeError, ValueError) as exc:
                error = PartialImportError(start, str(exc))
                logger.warning("%s", error.message)
                skipped.append(error)
                continue
            written += 1
        return written, skipped

    def _ensure_weekly_invariant(self) -> None:
        if self._service.ensure_weekly_counts():
            logger.info("Weekly counts re-derived from daily counts after import")

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_snapshot(self) -> dict:
        """The full local data set in the export file format."""
        state = self._service.load_state()
        history = [record.to_dict() for record in self._service.list_archive()]
        app_info = AppInfo(
            appName=self._app_name,
            exportDate=self._clock.now().isoformat(timespec="seconds"),
            exportTimestamp=self._clock.timestamp_ms(),
            schemaVersion=SCHEMA_VERSION,
            deviceId=self._service.device_id,
        )
        logger.info("Exporting %d archive records", len(history))
        return {
            "appInfo": app_info.model_dump(),
            "currentState": state.to_dict(),
            "history": history,
            "preferences": self._service.get_all_preferences(),
        }

    def export_to_file(self, path: str | Path) -> Path:
        return write_export(path, self.export_snapshot())
