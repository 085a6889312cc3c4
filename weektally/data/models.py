"""
WeekTally: Data Models.

The in-progress period draft and the archive of past periods persist locally
across sessions and devices. Every record carries a schema version and
serializes to the camelCase JSON used by export files.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any

SCHEMA_VERSION = 4

PROVENANCE_LOCAL = "local"
PROVENANCE_IMPORTED = "imported"
PROVENANCE_CONFLICT = "conflict"
PROVENANCES = (PROVENANCE_LOCAL, PROVENANCE_IMPORTED, PROVENANCE_CONFLICT)

CHANGE_OPERATIONS = ("create", "update", "delete", "clear", "import")

RECORD_ARCHIVE = "archive"
RECORD_PREFERENCE = "preference"
RECORD_CURRENT_STATE = "currentState"


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _dump(obj: Any, skip: tuple[str, ...] = ()) -> dict:
    """Serialize the plain fields of a dataclass under camelCase keys."""
    out: dict[str, Any] = {}
    for f in fields(obj):
        if f.name == "extra" or f.name in skip:
            continue
        out[_camel(f.name)] = getattr(obj, f.name)
    out.update(getattr(obj, "extra", {}))
    return out


def _load(cls: type, data: dict, skip: tuple[str, ...] = ()) -> tuple[dict, dict]:
    """Split a camelCase payload into dataclass kwargs and unrecognized keys."""
    known = {_camel(f.name): f.name for f in fields(cls) if f.name != "extra"}
    kwargs: dict[str, Any] = {}
    extra: dict[str, Any] = {}
    for key, value in data.items():
        if key in known and known[key] not in skip:
            kwargs[known[key]] = value
        elif key not in known:
            extra[key] = value
    return kwargs, extra


@dataclass
class Category:
    """A tracked category and its target, e.g. "fruit: 7 servings per week"."""

    id: str
    name: str = ""
    target: int = 0
    frequency: str = "week"       # "day" | "week"
    type: str = "positive"        # "positive" (reach) | "limit" (stay under)
    unit: str = "servings"

    def as_target(self) -> dict:
        """Frozen snapshot stored on archive records."""
        return {
            "target": self.target,
            "frequency": self.frequency,
            "type": self.type,
            "unit": self.unit,
            "name": self.name,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Category:
        kwargs, _ = _load(cls, data)
        return cls(**kwargs)


@dataclass
class ImportInfo:
    """Provenance of an imported snapshot (taken from its appInfo)."""

    device_id: str = "unknown"
    export_timestamp: int | None = None
    app_name: str = ""
    schema_version: int | None = None


@dataclass
class StateMetadata:
    """Bookkeeping carried by the current state.

    The dirty/reset flags are written by the period rollover logic and read
    by whatever decides when to sync; unknown keys ride along in `extra`.
    """

    schema_version: int = SCHEMA_VERSION
    device_id: str = ""
    week_start_day: str = "Sunday"
    current_period_dirty: bool = False
    history_dirty: bool = False
    date_reset_performed: bool = False
    date_reset_type: str | None = None     # "DAILY" | "WEEKLY"
    date_reset_timestamp: int = 0
    previous_period_start_date: str | None = None
    is_fresh_install: bool = False
    extra: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return _dump(self)

    @classmethod
    def from_dict(cls, data: dict) -> StateMetadata:
        kwargs, extra = _load(cls, data)
        return cls(**kwargs, extra=extra)


@dataclass
class CurrentState:
    """The mutable draft for the period in progress (singleton)."""

    current_day_date: str                  # YYYY-MM-DD
    selected_view_date: str                # YYYY-MM-DD being viewed/edited
    current_period_start_date: str         # YYYY-MM-DD
    daily_counts: dict[str, dict[str, int]] = field(default_factory=dict)
    weekly_counts: dict[str, int] = field(default_factory=dict)
    last_modified: int = 0                 # ms timestamp
    metadata: StateMetadata = field(default_factory=StateMetadata)
    extra: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        out = _dump(self, skip=("metadata",))
        out["metadata"] = self.metadata.to_dict()
        return out

    @classmethod
    def from_dict(cls, data: dict) -> CurrentState:
        kwargs, extra = _load(cls, data, skip=("metadata",))
        metadata = StateMetadata.from_dict(data.get("metadata") or {})
        return cls(**kwargs, metadata=metadata, extra=extra)


@dataclass
class ArchiveMetadata:
    """Creation/update stamps and provenance of an archived period."""

    created_at: int = 0
    updated_at: int = 0
    schema_version: int = SCHEMA_VERSION
    device_id: str = ""
    device_info: str = ""
    provenance: str = PROVENANCE_LOCAL     # local | imported | conflict
    week_start_day: str = "Sunday"         # setting in effect when archived
    imported_from: str | None = None
    import_timestamp: int | None = None
    extra: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        out = _dump(self, skip=("imported_from", "import_timestamp"))
        if self.imported_from is not None:
            out["importedFrom"] = self.imported_from
        if self.import_timestamp is not None:
            out["importTimestamp"] = self.import_timestamp
        return out

    @classmethod
    def from_dict(cls, data: dict) -> ArchiveMetadata:
        kwargs, extra = _load(cls, data)
        return cls(**kwargs, extra=extra)


@dataclass
class ArchiveRecord:
    """One historical period, keyed by period_start_date."""

    id: str
    period_start_date: str                 # primary key, YYYY-MM-DD
    period_end_date: str                   # always start + 6 days
    daily_breakdown: dict[str, dict[str, int]] = field(default_factory=dict)
    totals: dict[str, int] = field(default_factory=dict)
    targets: dict[str, dict] = field(default_factory=dict)
    metadata: ArchiveMetadata = field(default_factory=ArchiveMetadata)
    extra: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        out = _dump(self, skip=("metadata",))
        out["metadata"] = self.metadata.to_dict()
        return out

    @classmethod
    def from_dict(cls, data: dict) -> ArchiveRecord:
        kwargs, extra = _load(cls, data, skip=("metadata",))
        metadata = ArchiveMetadata.from_dict(data.get("metadata") or {})
        return cls(**kwargs, metadata=metadata, extra=extra)


@dataclass
class PreferenceRecord:
    """A named user preference with its own timestamps."""

    key: str
    value: Any
    created_at: int = 0
    updated_at: int = 0
    device_id: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.key,
            "value": self.value,
            "metadata": {
                "createdAt": self.created_at,
                "updatedAt": self.updated_at,
                "deviceId": self.device_id,
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> PreferenceRecord:
        meta = data.get("metadata") or {}
        return cls(
            key=data["id"],
            value=data.get("value"),
            created_at=meta.get("createdAt", 0),
            updated_at=meta.get("updatedAt", 0),
            device_id=meta.get("deviceId", ""),
        )


@dataclass
class ChangeLogEntry:
    """An append-only record of one mutation, kept for future sync."""

    timestamp: int
    record_type: str                       # archive | preference | currentState
    operation: str                         # create | update | delete | clear | import
    record_id: str
    device_id: str = ""
    data: str | None = None                # JSON-serialized payload
    id: int | None = None                  # assigned by the store

    def to_dict(self) -> dict:
        return _dump(self)
