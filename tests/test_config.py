"""Tests for weektally.config: settings loading and validation."""

import pytest

from weektally import config


def test_defaults_loaded(monkeypatch):
    monkeypatch.delenv("STATE_PATH", raising=False)
    settings = config._load_settings()
    assert settings.STATE_PATH == "data/current_state.json"
    assert settings.WEEK_START_DAY in ("Sunday", "Monday")


def test_week_start_and_log_level_normalized(monkeypatch):
    monkeypatch.setenv("WEEK_START_DAY", " monday ")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    settings = config._load_settings()
    assert settings.WEEK_START_DAY == "Monday"
    assert settings.LOG_LEVEL == "DEBUG"


def test_invalid_week_start_exits(monkeypatch, capsys):
    monkeypatch.setenv("WEEK_START_DAY", "Friday")
    with pytest.raises(SystemExit):
        config._load_settings()
    assert "WEEK_START_DAY" in capsys.readouterr().err


def test_settings_model_rejects_bad_week_start():
    with pytest.raises(ValueError):
        config.Settings(WEEK_START_DAY="Wednesday")
