"""
Exception hierarchy for WeekTally.

Every error carries a machine-readable `code` so callers (CLI, UI) can
branch on it without parsing English messages.
"""

from __future__ import annotations

from typing import Any


class WeekTallyError(Exception):
    """Base class for all application-level errors."""

    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class StoreUnavailable(WeekTallyError):
    """The record store could not be opened. Nothing can be persisted."""

    code = "STORE_UNAVAILABLE"

    def __init__(self, db_path: str, reason: str):
        super().__init__(
            message=f"Record store at {db_path} is unavailable: {reason}",
            details={"db_path": db_path, "reason": reason},
        )


class TransactionError(WeekTallyError):
    """A single get/put/clear failed. Other operations are unaffected."""

    code = "TRANSACTION_ERROR"

    def __init__(self, collection: str, operation: str, reason: str):
        super().__init__(
            message=f"{operation} on '{collection}' failed: {reason}",
            details={"collection": collection, "operation": operation, "reason": reason},
        )


class ValidationError(WeekTallyError):
    """An import payload is malformed. Raised before anything is written."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, errors: list[dict] | None = None):
        super().__init__(
            message=message,
            details={"errors": errors} if errors else {},
        )


class PartialImportError(WeekTallyError):
    """One archive record could not be normalized or written during import.

    Collected on the import result rather than raised; the import continues.
    """

    code = "PARTIAL_IMPORT"

    def __init__(self, period_start_date: str | None, reason: str):
        super().__init__(
            message=f"Skipped archive record {period_start_date or 'unknown'}: {reason}",
            details={"period_start_date": period_start_date, "reason": reason},
        )
        self.period_start_date = period_start_date
        self.reason = reason
