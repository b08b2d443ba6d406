"""
Exception types for flatcal.

Every error raised by the core derives from FlatcalError and from the
builtin exception a caller would naturally catch for the same condition,
so `except FileNotFoundError` keeps working around a restore.
"""

from typing import Optional


class FlatcalError(Exception):
    """Base class for all flatcal errors."""


class ConfigError(FlatcalError):
    """The configuration file is present but unusable."""


class RecordDecodeError(FlatcalError, ValueError):
    """
    A single table record could not be decoded.

    Load and restore catch this per record, report it and carry on with
    the next record.
    """

    def __init__(
        self,
        reason: str,
        line: str = "",
        line_number: Optional[int] = None,
        table: Optional[str] = None,
    ):
        self.reason = reason
        self.line = line
        self.line_number = line_number
        self.table = table
        super().__init__(self.describe())

    def describe(self) -> str:
        where = self.table or "record"
        if self.line_number is not None:
            where = f"{where}:{self.line_number}"
        return f"{where}: {self.reason} in {self.line!r}"

    def located(self, table: str, line_number: int, line: str) -> 'RecordDecodeError':
        """Return a copy of this error tagged with where it happened."""
        return RecordDecodeError(self.reason, line=line, line_number=line_number, table=table)


class EventNotFoundError(FlatcalError, KeyError):
    """No event with the requested id exists in the store."""

    def __init__(self, event_id: int):
        self.event_id = event_id
        super().__init__(f"Event not found: {event_id}")

    def __str__(self) -> str:
        return f"Event not found: {self.event_id}"


class BackupNotFoundError(FlatcalError, FileNotFoundError):
    """The backup archive to restore does not exist."""

    def __init__(self, path):
        self.path = path
        super().__init__(f"Backup file not found: {path}")

    def __str__(self) -> str:
        return f"Backup file not found: {self.path}"


class StorageError(FlatcalError, OSError):
    """Reading or writing one of the table files failed."""

    def __init__(self, message: str, path=None):
        self.path = path
        super().__init__(message if path is None else f"{message}: {path}")
