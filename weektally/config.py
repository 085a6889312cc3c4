"""
WeekTally: Centralized configuration.

Loads all settings from .env and validates them.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (one level up from weektally/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)

_WEEKDAYS = ("Sunday", "Monday")


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    APP_NAME: str = "WeekTally"

    # SQLite record store (archive, preferences, change log)
    DATABASE_PATH: str = "data/weektally.db"

    # Current-period draft (plain JSON file, written without transactions)
    STATE_PATH: str = "data/current_state.json"
    DEVICE_ID_PATH: str = "data/device_id"

    # Default first day of a period until the weekStartDay preference is set
    WEEK_START_DAY: str = "Sunday"

    LOG_LEVEL: str = "INFO"

    @field_validator("WEEK_START_DAY", mode="before")
    @classmethod
    def parse_week_start(cls, v: str) -> str:
        value = str(v).strip().capitalize()
        if value not in _WEEKDAYS:
            raise ValueError(f"WEEK_START_DAY must be one of {_WEEKDAYS}, got {v!r}")
        return value

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def parse_log_level(cls, v: str) -> str:
        return str(v).strip().upper() or "INFO"


def _load_settings() -> Settings:
    """Load settings from environment, validating the week start day."""
    week_start = os.getenv("WEEK_START_DAY", "Sunday")
    if week_start.strip().capitalize() not in _WEEKDAYS:
        print(
            f"ERROR: WEEK_START_DAY must be Sunday or Monday, got {week_start!r}",
            file=sys.stderr,
        )
        sys.exit(1)

    return Settings(
        APP_NAME=os.getenv("APP_NAME", "WeekTally"),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/weektally.db"),
        STATE_PATH=os.getenv("STATE_PATH", "data/current_state.json"),
        DEVICE_ID_PATH=os.getenv("DEVICE_ID_PATH", "data/device_id"),
        WEEK_START_DAY=week_start,
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
    )


# Singleton: imported by all other modules as:
#   from weektally.config import settings
settings = _load_settings()
