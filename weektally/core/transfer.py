"""
WeekTally: Export/import file contract.

Shared JSON contract between devices. An export file holds the app info,
the current draft, the archive (`history`) and the preferences:

{
    "appInfo": {
        "appName": "WeekTally",
        "exportDate": "2025-03-10T09:30:00",
        "exportTimestamp": 1741599000000,
        "schemaVersion": 4,
        "deviceId": "5c0b..."
    },
    "currentState": {"currentDayDate": "2025-03-10", ...},
    "history": [{"periodStartDate": "2025-03-02", ...}],
    "preferences": {"weekStartDay": "Sunday", "categories": [...]}
}

Only `currentState` (with a valid `currentDayDate`) and `history` are
required; files from older releases use the same top-level shape.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from weektally.core.errors import TransactionError, ValidationError
from weektally.core.periods import is_valid_date_key
from weektally.data.models import ImportInfo

logger = logging.getLogger(__name__)


class AppInfo(BaseModel):
    """Who produced an export file, and when."""
    model_config = ConfigDict(extra="allow")

    appName: str = ""
    exportDate: str | None = None
    exportTimestamp: int | None = None   # ms
    schemaVersion: int | None = None
    deviceId: str | None = None

    def to_import_info(self) -> ImportInfo:
        return ImportInfo(
            device_id=self.deviceId or "unknown",
            export_timestamp=self.exportTimestamp,
            app_name=self.appName,
            schema_version=self.schemaVersion,
        )


class ImportFile(BaseModel):
    """Top-level shape of an import file. Record contents are checked later."""
    model_config = ConfigDict(extra="allow")

    currentState: dict[str, Any]
    history: list[Any]
    preferences: dict[str, Any] = Field(default_factory=dict)
    appInfo: AppInfo | None = None

    @field_validator("currentState")
    @classmethod
    def check_current_day(cls, v: dict[str, Any]) -> dict[str, Any]:
        if not is_valid_date_key(v.get("currentDayDate")):
            raise ValueError("currentDayDate must be a YYYY-MM-DD date")
        return v

    @field_validator("preferences", mode="before")
    @classmethod
    def parse_preferences(cls, v: Any) -> Any:
        return {} if v is None else v

    def import_info(self) -> ImportInfo:
        if self.appInfo is None:
            return ImportInfo()
        return self.appInfo.to_import_info()


def _describe(exc: PydanticValidationError) -> list[dict]:
    return [
        {"loc": ".".join(str(part) for part in err["loc"]), "msg": err["msg"]}
        for err in exc.errors()
    ]


def parse_import(payload: Any) -> ImportFile:
    """Validate a decoded import payload.

    Raises:
        ValidationError: the payload is not a usable import file.
    """
    if not isinstance(payload, dict):
        raise ValidationError(
            f"Import file must be a JSON object, got {type(payload).__name__}"
        )
    try:
        return ImportFile.model_validate(payload)
    except PydanticValidationError as exc:
        errors = _describe(exc)
        logger.warning("Import file rejected: %s", errors)
        raise ValidationError("Invalid import file; nothing was changed", errors) from exc


def read_import_file(path: str | Path) -> Any:
    """Load the raw JSON of an import file."""
    file_path = Path(path)
    try:
        text = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValidationError(f"Cannot read import file {file_path}: {exc}") from exc
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValidationError(
            f"Import file {file_path} is not valid JSON: {exc.msg} "
            f"(line {exc.lineno}, column {exc.colno})"
        ) from exc


def write_export(path: str | Path, data: dict) -> Path:
    """Write an export payload as indented JSON, creating parent folders."""
    file_path = Path(path)
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    except OSError as exc:
        logger.error("Could not write export to %s: %s", file_path, exc)
        raise TransactionError("export", "write", str(exc)) from exc
    logger.info("Export written to %s", file_path)
    return file_path
