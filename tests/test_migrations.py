"""Tests for weektally.data.migrations: upgrading legacy payloads."""

import logging

import pytest

from weektally.data.migrations import (
    detect_archive_version,
    detect_state_version,
    migrate_archive,
    migrate_state,
)


class TestArchiveMigrations:
    def test_schema_1_weekly_counts_become_totals(self):
        raw = {"weekStartDate": "2025-03-02", "weeklyCounts": {"fruit": 5}}
        assert detect_archive_version(raw) == 1
        migrated = migrate_archive(raw)
        assert migrated["periodStartDate"] == "2025-03-02"
        assert migrated["totals"] == {"fruit": 5}
        assert migrated["targets"] == {}
        assert migrated["dailyBreakdown"] == {}
        assert migrated["metadata"]["schemaVersion"] == 4
        assert "weekStartDate" not in migrated

    def test_schema_3_sync_status_becomes_provenance(self):
        raw = {
            "id": "x",
            "weekStartDate": "2025-03-02",
            "weekEndDate": "2025-03-08",
            "dailyBreakdown": {},
            "totals": {},
            "metadata": {"schemaVersion": 3, "syncStatus": "synced"},
        }
        migrated = migrate_archive(raw)
        assert migrated["periodEndDate"] == "2025-03-08"
        assert migrated["metadata"]["provenance"] == "local"
        assert "syncStatus" not in migrated["metadata"]

    def test_valid_sync_status_is_kept(self):
        raw = {"weekStartDate": "2025-03-02", "metadata": {"schemaVersion": 3, "syncStatus": "imported"}}
        assert migrate_archive(raw)["metadata"]["provenance"] == "imported"

    def test_does_not_mutate_input(self):
        raw = {"weekStartDate": "2025-03-02", "weeklyCounts": {"fruit": 5}}
        migrate_archive(raw)
        assert raw == {"weekStartDate": "2025-03-02", "weeklyCounts": {"fruit": 5}}

    def test_current_schema_unchanged(self):
        raw = {"periodStartDate": "2025-03-02", "metadata": {"schemaVersion": 4}}
        assert migrate_archive(raw) == raw

    def test_newer_schema_logs_warning(self, caplog):
        raw = {"periodStartDate": "2025-03-02", "metadata": {"schemaVersion": 9}}
        with caplog.at_level(logging.WARNING):
            migrated = migrate_archive(raw)
        assert migrated == raw
        assert "newer than supported" in caplog.text

    def test_non_object_raises(self):
        with pytest.raises(TypeError):
            migrate_archive(["not", "a", "dict"])


class TestStateMigrations:
    def test_schema_3_week_fields_renamed(self):
        raw = {
            "currentDayDate": "2025-03-10",
            "currentWeekStartDate": "2025-03-09",
            "selectedTrackerDate": "2025-03-08",
            "dailyCounts": {},
            "metadata": {"schemaVersion": 3, "currentWeekDirty": True},
        }
        migrated = migrate_state(raw)
        assert migrated["currentPeriodStartDate"] == "2025-03-09"
        assert migrated["selectedViewDate"] == "2025-03-08"
        assert migrated["metadata"]["currentPeriodDirty"] is True
        assert "currentWeekStartDate" not in migrated

    def test_schema_1_gets_selected_date_from_current_day(self):
        raw = {"currentDayDate": "2025-03-10", "currentWeekStartDate": "2025-03-09"}
        assert detect_state_version(raw) == 1
        migrated = migrate_state(raw)
        assert migrated["selectedViewDate"] == "2025-03-10"
        assert migrated["dailyCounts"] == {}

    def test_inferred_versions(self):
        assert detect_state_version({"currentPeriodStartDate": "2025-03-09"}) == 4
        assert detect_state_version({"selectedTrackerDate": "2025-03-09"}) == 3
        assert detect_state_version({"dailyCounts": {}}) == 2
