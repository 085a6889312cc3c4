"""Tests for weektally.core.transfer: import file validation and file I/O."""

import json

import pytest

from weektally.core.errors import ValidationError
from weektally.core.transfer import parse_import, read_import_file, write_export


def _payload(**overrides):
    data = {
        "appInfo": {"appName": "WeekTally", "deviceId": "dev-9", "exportTimestamp": 77,
                    "exportDate": "2025-03-10T09:00:00", "schemaVersion": 4},
        "currentState": {"currentDayDate": "2025-03-10"},
        "history": [],
        "preferences": {"weekStartDay": "Sunday"},
    }
    data.update(overrides)
    return data


class TestParseImport:
    def test_valid_file(self):
        parsed = parse_import(_payload())
        info = parsed.import_info()
        assert info.device_id == "dev-9"
        assert info.export_timestamp == 77
        assert parsed.preferences == {"weekStartDay": "Sunday"}

    def test_minimal_file(self):
        parsed = parse_import({"currentState": {"currentDayDate": "2025-03-10"}, "history": []})
        assert parsed.preferences == {}
        assert parsed.import_info().device_id == "unknown"

    def test_null_preferences(self):
        assert parse_import(_payload(preferences=None)).preferences == {}

    def test_unknown_app_info_keys_allowed(self):
        app_info = {"appName": "Old", "version": "1.2", "historyCount": 3}
        parsed = parse_import(_payload(appInfo=app_info))
        assert parsed.appInfo.appName == "Old"

    @pytest.mark.parametrize("payload", [
        {"history": []},
        {"currentState": {"currentDayDate": "2025-03-10"}},
        {"currentState": {}, "history": []},
        {"currentState": {"currentDayDate": "10/03/2025"}, "history": []},
        {"currentState": "nope", "history": []},
        {"currentState": {"currentDayDate": "2025-03-10"}, "history": {"a": 1}},
    ])
    def test_invalid_files(self, payload):
        with pytest.raises(ValidationError) as excinfo:
            parse_import(payload)
        assert excinfo.value.code == "VALIDATION_ERROR"
        assert excinfo.value.details["errors"]

    def test_non_object(self):
        with pytest.raises(ValidationError):
            parse_import([1, 2, 3])


class TestFiles:
    def test_write_then_read(self, tmp_path):
        path = write_export(tmp_path / "out" / "export.json", _payload())
        assert read_import_file(path) == _payload()

    def test_read_invalid_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ValidationError) as excinfo:
            read_import_file(path)
        assert "not valid JSON" in excinfo.value.message

    def test_read_missing_file(self, tmp_path):
        with pytest.raises(ValidationError):
            read_import_file(tmp_path / "missing.json")

    def test_export_is_indented_json(self, tmp_path):
        path = write_export(tmp_path / "export.json", {"a": 1})
        assert json.loads(path.read_text(encoding="utf-8")) == {"a": 1}
        assert "\n" in path.read_text(encoding="utf-8")
