"""
WeekTally: Record Store.

Archived periods, preferences and the change log persist in SQLite across
sessions. Each collection is one table holding the record's JSON payload
under its key. Every operation runs in its own transaction; nothing spans
several puts, so a multi-record import commits record by record.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Iterator

from weektally.core.errors import StoreUnavailable, TransactionError
from weektally.core.periods import period_end
from weektally.data.migrations import migrate_archive
from weektally.data.models import ArchiveRecord, ChangeLogEntry, PreferenceRecord

logger = logging.getLogger(__name__)


class Collection(Enum):
    ARCHIVE = "archive"
    PREFERENCES = "preferences"
    CHANGE_LOG = "change_log"


class RecordStore:
    """SQLite-backed store for the Archive, Preferences and ChangeLog collections.

    The database is opened lazily. If opening fails, the call that touched
    the store raises StoreUnavailable; the next call tries to open it once
    more before failing the same way.
    """

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from weektally.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    @property
    def db_path(self) -> str:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_open(self) -> sqlite3.Connection:
        if self._conn is not None:
            return self._conn
        conn = None
        try:
            conn = self._connect()
            self._init_db(conn)
        except (sqlite3.Error, OSError) as exc:
            if conn is not None:
                conn.close()
            logger.error("Could not open record store at %s: %s", self._db_path, exc)
            raise StoreUnavailable(self._db_path, str(exc)) from exc
        self._conn = conn
        logger.info("Record store opened at %s", self._db_path)
        return conn

    def _init_db(self, conn: sqlite3.Connection) -> None:
        """Create the collection tables if they don't exist, and migrate schema."""
        with conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS archive (
                    period_start_date TEXT    PRIMARY KEY,
                    record_id         TEXT    NOT NULL,
                    payload           TEXT    NOT NULL,
                    updated_at        INTEGER NOT NULL DEFAULT 0
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS preferences (
                    key     TEXT PRIMARY KEY,
                    payload TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS change_log (
                    id          INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp   INTEGER NOT NULL,
                    record_type TEXT    NOT NULL,
                    operation   TEXT    NOT NULL,
                    record_id   TEXT    NOT NULL,
                    device_id   TEXT    NOT NULL DEFAULT '',
                    data        TEXT
                )
            """)
            # Migrate existing DBs: add new columns if missing
            archive_cols = {
                row[1] for row in conn.execute("PRAGMA table_info(archive)").fetchall()
            }
            if "updated_at" not in archive_cols:
                conn.execute(
                    "ALTER TABLE archive ADD COLUMN updated_at INTEGER NOT NULL DEFAULT 0"
                )
            log_cols = {
                row[1] for row in conn.execute("PRAGMA table_info(change_log)").fetchall()
            }
            if "device_id" not in log_cols:
                conn.execute(
                    "ALTER TABLE change_log ADD COLUMN device_id TEXT NOT NULL DEFAULT ''"
                )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_change_log_timestamp ON change_log (timestamp)"
            )
        logger.debug("Record store tables initialized at %s", self._db_path)

    @contextmanager
    def _transaction(self, collection: Collection, operation: str) -> Iterator[sqlite3.Connection]:
        conn = self._ensure_open()
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            logger.error("%s on '%s' failed: %s", operation, collection.value, exc)
            raise TransactionError(collection.value, operation, str(exc)) from exc

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # ------------------------------------------------------------------
    # Row decoding
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_archive(row: sqlite3.Row) -> ArchiveRecord:
        data = migrate_archive(json.loads(row["payload"]))
        # Payloads from early releases lack the key columns
        data.setdefault("id", row["record_id"])
        data.setdefault("periodStartDate", row["period_start_date"])
        data.setdefault("periodEndDate", period_end(data["periodStartDate"]))
        return ArchiveRecord.from_dict(data)

    @staticmethod
    def _row_to_preference(row: sqlite3.Row) -> PreferenceRecord:
        return PreferenceRecord.from_dict(json.loads(row["payload"]))

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> ChangeLogEntry:
        return ChangeLogEntry(
            id=row["id"],
            timestamp=row["timestamp"],
            record_type=row["record_type"],
            operation=row["operation"],
            record_id=row["record_id"],
            device_id=row["device_id"],
            data=row["data"],
        )

    def _decode(self, collection: Collection, row: sqlite3.Row):
        try:
            if collection is Collection.ARCHIVE:
                return self._row_to_archive(row)
            if collection is Collection.PREFERENCES:
                return self._row_to_preference(row)
            return self._row_to_entry(row)
        except (ValueError, TypeError, KeyError) as exc:
            raise TransactionError(collection.value, "decode", str(exc)) from exc

    # ------------------------------------------------------------------
    # Collection operations
    # ------------------------------------------------------------------

    def get(self, collection: Collection, key: str | int):
        """Fetch one record by key, or None if absent."""
        if collection is Collection.ARCHIVE:
            query = (
                "SELECT period_start_date, record_id, payload FROM archive "
                "WHERE period_start_date = ?"
            )
        elif collection is Collection.PREFERENCES:
            query = "SELECT payload FROM preferences WHERE key = ?"
        else:
            query = "SELECT * FROM change_log WHERE id = ?"

        with self._transaction(collection, "get") as conn:
            row = conn.execute(query, (key,)).fetchone()
        if row is None:
            return None
        return self._decode(collection, row)

    def get_all(self, collection: Collection) -> list:
        """Return every record in a collection.

        Archive records come back sorted by period_start_date, newest first.
        A row that cannot be decoded is logged and left out.
        """
        if collection is Collection.ARCHIVE:
            query = (
                "SELECT period_start_date, record_id, payload FROM archive "
                "ORDER BY period_start_date DESC"
            )
        elif collection is Collection.PREFERENCES:
            query = "SELECT payload FROM preferences ORDER BY key"
        else:
            query = "SELECT * FROM change_log ORDER BY id"

        with self._transaction(collection, "get_all") as conn:
            rows = conn.execute(query).fetchall()

        records = []
        for row in rows:
            try:
                records.append(self._decode(collection, row))
            except TransactionError as exc:
                logger.warning("Skipping unreadable %s row: %s", collection.value, exc)
        return records

    def put(self, collection: Collection, record: ArchiveRecord | PreferenceRecord) -> None:
        """Insert or replace a record under its key. Idempotent."""
        if collection is Collection.ARCHIVE:
            if not isinstance(record, ArchiveRecord):
                raise TypeError(f"Archive expects ArchiveRecord, got {type(record).__name__}")
            with self._transaction(collection, "put") as conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO archive
                        (period_start_date, record_id, payload, updated_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (
                        record.period_start_date,
                        record.id,
                        json.dumps(record.to_dict(), sort_keys=True),
                        record.metadata.updated_at,
                    ),
                )
            logger.debug("Archive record %s saved", record.period_start_date)
        elif collection is Collection.PREFERENCES:
            if not isinstance(record, PreferenceRecord):
                raise TypeError(f"Preferences expect PreferenceRecord, got {type(record).__name__}")
            with self._transaction(collection, "put") as conn:
                conn.execute(
                    "INSERT OR REPLACE INTO preferences (key, payload) VALUES (?, ?)",
                    (record.key, json.dumps(record.to_dict(), sort_keys=True)),
                )
            logger.debug("Preference '%s' saved", record.key)
        else:
            raise ValueError("The change log is insert-only; use append()")

    def delete(self, collection: Collection, key: str) -> bool:
        """Delete one preference. Archive records are only removed by clear()."""
        if collection is not Collection.PREFERENCES:
            raise ValueError(f"Records in '{collection.value}' cannot be deleted individually")
        with self._transaction(collection, "delete") as conn:
            cursor = conn.execute("DELETE FROM preferences WHERE key = ?", (key,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Preference '%s' deleted", key)
        return deleted

    def clear(self, collection: Collection) -> None:
        """Remove every record from a collection."""
        with self._transaction(collection, "clear") as conn:
            conn.execute(f"DELETE FROM {collection.value}")
        logger.info("Collection '%s' cleared", collection.value)

    def count(self, collection: Collection) -> int:
        with self._transaction(collection, "count") as conn:
            row = conn.execute(f"SELECT COUNT(*) FROM {collection.value}").fetchone()
        return row[0]

    # ------------------------------------------------------------------
    # Change log
    # ------------------------------------------------------------------

    def append(self, entry: ChangeLogEntry) -> int | None:
        """Append a change-log entry and return its id.

        Best-effort: any failure is logged and None is returned, so the
        operation that produced the entry is never interrupted.
        """
        try:
            with self._transaction(Collection.CHANGE_LOG, "append") as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO change_log
                        (timestamp, record_type, operation, record_id, device_id, data)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        entry.timestamp, entry.record_type, entry.operation,
                        entry.record_id, entry.device_id, entry.data,
                    ),
                )
        except (StoreUnavailable, TransactionError) as exc:
            logger.warning("Change log append failed for %s %s: %s",
                           entry.record_type, entry.operation, exc)
            return None
        logger.debug("Change log entry #%d: %s %s", cursor.lastrowid,
                     entry.record_type, entry.operation)
        return cursor.lastrowid

    def changes_since(self, since: int = 0) -> list[ChangeLogEntry]:
        """Change-log entries with timestamp >= since, oldest first."""
        with self._transaction(Collection.CHANGE_LOG, "changes_since") as conn:
            rows = conn.execute(
                "SELECT * FROM change_log WHERE timestamp >= ? ORDER BY id",
                (since,),
            ).fetchall()
        return [self._row_to_entry(r) for r in rows]
