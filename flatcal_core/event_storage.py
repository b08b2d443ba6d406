"""
Persistent table storage for flatcal.

Abstract base class and the CSV implementation that keeps events in four
independent tables joined by event id:

- core table: eventId,title,description,startDateTime,endDateTime
- recurrence table: eventId,recurrentInterval,recurrentTimes,recurrentEndDate
- metadata table: eventId,location,category,priority
- reminder table: eventId,reminderMinutes

Only the core table is required. The others may be missing or unreadable
and are then treated as empty. Writing is not atomic across tables: a
failure part way through leaves the earlier tables already rewritten.
"""

import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, TypeVar

from .config import StoreConfig
from .errors import RecordDecodeError, StorageError
from .event_model import CalEvent, RecurrenceRule
from . import record_codec as codec


def _debug_print(msg: str) -> None:
    timestamp = datetime.now().strftime("%H:%M:%S")
    print(f"[{timestamp}] STORAGE: {msg}", file=sys.stderr)


T = TypeVar('T')


@dataclass
class TableRead:
    """Decoded rows of one table plus the records that were skipped."""
    rows: list = field(default_factory=list)
    skipped: list[RecordDecodeError] = field(default_factory=list)
    missing: bool = False


@dataclass
class LoadReport:
    """Outcome of reading the tables back into events."""
    events: list[CalEvent] = field(default_factory=list)
    skipped: list[RecordDecodeError] = field(default_factory=list)
    created_core_table: bool = False

    @property
    def loaded_count(self) -> int:
        return len(self.events)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


def join_tables(
    core: list[CalEvent],
    recurrences: dict[int, RecurrenceRule],
    metadata: dict[int, tuple[str, str, str]],
    reminders: dict[int, int],
) -> list[CalEvent]:
    """
    Merge auxiliary rows into the core events by id.

    Events without an auxiliary row keep their defaults. Auxiliary rows whose
    id has no core event are ignored.
    """
    events = []
    for event in core:
        changes = {}
        rule = recurrences.get(event.id)
        if rule is not None:
            changes["recurrence"] = rule
        meta = metadata.get(event.id)
        if meta is not None:
            changes["location"], changes["category"], changes["priority"] = meta
        if event.id in reminders:
            changes["reminder"] = reminders[event.id]
        events.append(replace(event, **changes) if changes else event)
    return events


class EventStorageBackend(ABC):
    """
    Abstract base class for event storage backends.

    Implementations must handle persistence (CSV tables, SQLite, etc).
    """

    @abstractmethod
    def load_events(self) -> LoadReport:
        """Load and join all events. Creates an empty store on first use."""
        pass

    @abstractmethod
    def save_events(self, events: list[CalEvent]) -> None:
        """Persist the complete event set, replacing what was stored."""
        pass


class CsvEventStorage(EventStorageBackend):
    """
    CSV file-based event storage.

    File locations come from a StoreConfig; nothing here is process-global.
    """

    def __init__(self, config: StoreConfig):
        self.config = config

    # ==================== Reading ====================

    def _read_text(self, path: Path) -> Optional[str]:
        """Read a whole table, None if the file does not exist."""
        if not path.exists():
            return None
        try:
            with open(path, 'r', encoding='utf-8', newline='') as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(f"Failed to read table ({e})", path) from e

    def _read_table(
        self,
        path: Path,
        header: list[str],
        decode: Callable[[list[str]], T],
    ) -> TableRead:
        text = self._read_text(path)
        if text is None:
            return TableRead(missing=True)
        return decode_table(text, header, decode, table=path.name)

    def _read_aux_table(self, path: Path, header: list[str], decode) -> TableRead:
        try:
            return self._read_table(path, header, decode)
        except StorageError as e:
            _debug_print(f"Treating {path.name} as empty: {e}")
            return TableRead(missing=True)

    def read_core_table(self) -> TableRead:
        return self._read_table(self.config.event_file, codec.EVENT_HEADER, codec.decode_event)

    def read_recurrence_table(self) -> TableRead:
        return self._read_aux_table(
            self.config.recurrent_file, codec.RECURRENCE_HEADER, codec.decode_recurrence
        )

    def read_metadata_table(self) -> TableRead:
        return self._read_aux_table(
            self.config.additional_file, codec.METADATA_HEADER, codec.decode_metadata
        )

    def read_reminder_table(self) -> TableRead:
        return self._read_aux_table(
            self.config.reminder_file, codec.REMINDER_HEADER, codec.decode_reminder
        )

    def load_events(self) -> LoadReport:
        """
        Read every table and join them into events.

        Returns a LoadReport listing the events in core table order and every
        skipped record. If the core table does not exist it is created with
        only its header row.
        """
        report = LoadReport()

        core = self.read_core_table()
        if core.missing:
            self.create_core_table()
            report.created_core_table = True
            _debug_print(f"Created empty {self.config.event_file}")
            return report

        report.skipped.extend(core.skipped)

        # First row wins for a duplicated id
        seen: set[int] = set()
        unique: list[CalEvent] = []
        for event in core.rows:
            if event.id in seen:
                report.skipped.append(RecordDecodeError(
                    f"duplicate event id {event.id}",
                    line=codec.encode_event_line(event),
                    table=self.config.event_file.name,
                ))
                continue
            seen.add(event.id)
            unique.append(event)

        recurrence = self.read_recurrence_table()
        metadata = self.read_metadata_table()
        reminders = self.read_reminder_table()
        for aux in (recurrence, metadata, reminders):
            report.skipped.extend(aux.skipped)

        report.events = join_tables(
            unique,
            dict(recurrence.rows),
            dict(metadata.rows),
            dict(reminders.rows),
        )

        for skipped in report.skipped:
            _debug_print(f"Skipping invalid line: {skipped.describe()}")
        _debug_print(f"Loaded {report.loaded_count} events, skipped {report.skipped_count} lines")
        return report

    # ==================== Writing ====================

    def _write_table(self, path: Path, header: list[str], rows: list[list[str]]) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, 'w', encoding='utf-8', newline='') as f:
                f.write(codec.encode_row(header) + "\n")
                for fields in rows:
                    f.write(codec.encode_row(fields) + "\n")
        except OSError as e:
            raise StorageError(f"Failed to write table ({e})", path) from e

    def create_core_table(self) -> None:
        self._write_table(self.config.event_file, codec.EVENT_HEADER, [])

    def write_core_table(self, events: list[CalEvent]) -> None:
        self._write_table(
            self.config.event_file,
            codec.EVENT_HEADER,
            [codec.encode_event(e) for e in events],
        )

    def write_recurrence_table(self, events: list[CalEvent]) -> None:
        rows = []
        for e in events:
            if e.recurrence is None:
                continue
            if not e.recurrence.is_known_type:
                _debug_print(
                    f"Event {e.id}: unknown recurrence type {e.recurrence.type_name!r} saved as daily"
                )
            rows.append(codec.encode_recurrence(e.id, e.recurrence))
        self._write_table(self.config.recurrent_file, codec.RECURRENCE_HEADER, rows)

    def write_metadata_table(self, events: list[CalEvent]) -> None:
        self._write_table(
            self.config.additional_file,
            codec.METADATA_HEADER,
            [codec.encode_metadata(e) for e in events],
        )

    def write_reminder_table(self, events: list[CalEvent]) -> None:
        self._write_table(
            self.config.reminder_file,
            codec.REMINDER_HEADER,
            [codec.encode_reminder(e) for e in events if e.reminder is not None],
        )

    def save_events(self, events: list[CalEvent]) -> None:
        """Rewrite all four tables, core table first."""
        self.write_core_table(events)
        self.write_recurrence_table(events)
        self.write_metadata_table(events)
        self.write_reminder_table(events)
        _debug_print(f"Saved {len(events)} events to {self.config.data_dir}")


def decode_table(
    source,
    header: list[str],
    decode: Callable[[list[str]], T],
    table: str = "table",
) -> TableRead:
    """
    Decode the records of one table.

    Header rows, blank lines and "#" comment lines are skipped.
    Records that fail to decode are collected in `skipped`. When a record
    spanning several physical lines fails, only its first line is skipped
    and decoding resumes on the line after it, so a stray quote cannot
    swallow the rest of the table.
    """
    result = TableRead()
    lines = codec.split_lines(source)
    resume_at: Optional[int] = 0
    while resume_at is not None:
        resume_at = _decode_from(lines, resume_at, header, decode, table, result)
    return result


def _decode_from(
    lines: list[str],
    start: int,
    header: list[str],
    decode: Callable[[list[str]], T],
    table: str,
    result: TableRead,
) -> Optional[int]:
    """Decode lines[start:] into result. Returns where to resume, None when done."""
    try:
        for first, end, fields in codec.iter_record_spans(lines, start):
            if not fields or is_blank(fields) or codec.is_comment(fields):
                continue
            # Appending restores can leave header rows mid-file
            if codec.is_header(fields, header):
                continue
            try:
                result.rows.append(decode(fields))
            except RecordDecodeError as e:
                if end - first > 1:
                    result.skipped.append(e.located(table, first + 1, lines[first].rstrip("\r\n")))
                    return first + 1
                result.skipped.append(e.located(table, end, e.line or codec.encode_row(fields)))
    except RecordDecodeError as e:
        # line_number is 1-based, so it is also the index of the next line
        result.skipped.append(e.located(table, e.line_number, e.line))
        return e.line_number
    return None


def is_blank(fields: list[str]) -> bool:
    return len(fields) == 1 and not fields[0].strip()


def create_storage_backend(config: StoreConfig) -> EventStorageBackend:
    """Factory function to create a storage backend."""
    return CsvEventStorage(config)
