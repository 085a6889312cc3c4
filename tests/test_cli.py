"""Tests for weektally.cli: subcommands end to end on temp paths."""

import json
from unittest.mock import patch

import pytest


@pytest.fixture
def cli(tmp_path, monkeypatch):
    from weektally import cli as cli_module
    monkeypatch.setattr(cli_module.settings, "DATABASE_PATH", str(tmp_path / "weektally.db"))
    monkeypatch.setattr(cli_module.settings, "STATE_PATH", str(tmp_path / "state.json"))
    monkeypatch.setattr(cli_module.settings, "DEVICE_ID_PATH", str(tmp_path / "device_id"))
    return cli_module


def _out(capsys):
    return json.loads(capsys.readouterr().out)


class TestCommands:
    def test_count_then_status(self, cli, capsys):
        assert cli.main(["count", "fruit", "--delta", "2"]) == 0
        assert _out(capsys)["count"] == 2

        assert cli.main(["status"]) == 0
        status = _out(capsys)
        assert status["state"]["weeklyCounts"] == {"fruit": 2}
        assert status["counts"]["changeLog"] >= 1

    def test_week_start(self, cli, capsys):
        assert cli.main(["week-start", "Monday"]) == 0
        assert _out(capsys)["weekStartDay"] == "Monday"

    def test_export_then_import(self, cli, capsys, tmp_path):
        cli.main(["count", "veg"])
        capsys.readouterr()
        path = str(tmp_path / "export.json")

        assert cli.main(["export", path]) == 0
        assert _out(capsys)["path"] == path

        assert cli.main(["import", path, "--yes"]) == 0
        result = _out(capsys)
        assert result["classification"] == "SAME_DAY"
        assert result["skipped"] == []

    def test_import_cancelled(self, cli, capsys, tmp_path):
        path = str(tmp_path / "export.json")
        cli.main(["export", path])
        capsys.readouterr()
        with patch("builtins.input", return_value="n"):
            assert cli.main(["import", path]) == 0
        assert _out(capsys)["cancelled"] is True

    def test_changes_lists_change_log_entries(self, cli, capsys):
        cli.main(["count", "fruit"])
        capsys.readouterr()
        assert cli.main(["changes"]) == 0
        changes = _out(capsys)["changes"]
        assert changes[-1]["recordType"] == "currentState"
        assert changes[-1]["recordId"] == "current"
        assert "timestamp" in changes[-1]

        assert cli.main(["changes", "--since", "99999999999999"]) == 0
        assert _out(capsys)["changes"] == []

    def test_rollover_without_change(self, cli, capsys):
        cli.main(["count", "fruit"])
        capsys.readouterr()
        assert cli.main(["rollover"]) == 0
        assert _out(capsys)["reset"] is None


class TestErrors:
    def test_invalid_import_file(self, cli, capsys, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"history": []}), encoding="utf-8")
        assert cli.main(["import", str(path), "--yes"]) == 1
        assert _out(capsys)["error"]["code"] == "VALIDATION_ERROR"

    def test_day_outside_period(self, cli, capsys):
        assert cli.main(["count", "fruit", "--day", "1999-01-01"]) == 2
        assert _out(capsys)["error"]["code"] == "INVALID_ARGUMENT"

    def test_unknown_week_start_rejected_by_parser(self, cli):
        with pytest.raises(SystemExit):
            cli.main(["week-start", "Friday"])
