"""
flatcal core module

This module provides the core functionality for calendar persistence:
- Configuration parsing (config.py)
- Record codec for the CSV tables (record_codec.py)
- Event model - CalEvent with optional RecurrenceRule (event_model.py)
- Table storage backend (event_storage.py)
- Event store with id assignment (event_store.py)
- Recurrence expansion (recurrence.py)
- Conflict detection (conflicts.py)
- Backup and restore archives (backup.py)
- Search and reminders (search.py, reminders.py)
"""

from .config import Config, StoreConfig
from .errors import (
    FlatcalError, ConfigError, RecordDecodeError,
    EventNotFoundError, BackupNotFoundError, StorageError,
)
from .event_model import CalEvent, RecurrenceRule, RecurrenceType, validate_event
from .event_storage import LoadReport
from .event_store import EventStore
from .recurrence import expand, occurrences_between
from .conflicts import has_conflict, find_conflicts
from .backup import BackupManager, RestoreReport
from .search import search_by_date, search_by_date_range, search_by_title

__all__ = [
    'Config',
    'StoreConfig',
    'FlatcalError',
    'ConfigError',
    'RecordDecodeError',
    'EventNotFoundError',
    'BackupNotFoundError',
    'StorageError',
    'CalEvent',
    'RecurrenceRule',
    'RecurrenceType',
    'validate_event',
    'LoadReport',
    'EventStore',
    'expand',
    'occurrences_between',
    'has_conflict',
    'find_conflicts',
    'BackupManager',
    'RestoreReport',
    'search_by_date',
    'search_by_date_range',
    'search_by_title',
]
