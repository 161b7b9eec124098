# chesscal/errors.py
from __future__ import annotations

from typing import Any, Optional


class CalendarError(Exception):
    """Base error for the calendar core. `code` is the machine-readable kind."""

    code = "calendar_error"

    def __init__(self, message: str, *, details: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"success": False, "error": self.message, "code": self.code}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(CalendarError):
    """Bad or missing input. Raised before storage is touched."""

    code = "validation_error"


class NotFoundError(CalendarError):
    code = "not_found"


class StorageError(CalendarError):
    code = "storage_error"


class DuplicateConstraintError(StorageError):
    code = "duplicate_constraint"


class BackupError(CalendarError):
    code = "backup_error"


class UnsupportedModeError(CalendarError):
    code = "unsupported_mode"


class UnauthorizedError(CalendarError):
    """Missing or wrong admin bearer token."""

    code = "unauthorized"
