"""
Backup and restore of the table files.

A backup archive is one UTF-8 text file of named sections. Each section
starts with a marker line `--- <name> ---` and holds the raw lines of one
table, header included, up to the next marker or the end of the file:

    --- event.csv ---
    eventId,title,description,startDateTime,endDateTime
    1,Standup,,2025-10-06T09:00:00,2025-10-06T09:15:00
    --- recurrent.csv ---
    eventId,recurrentInterval,recurrentTimes,recurrentEndDate
    1,1d,5,0

Only the core and recurrence tables are archived; metadata and reminders
are not part of the archive format. Restoring in append mode remaps
colliding event ids through EventStore.append_merge, but recurrence rows are
appended verbatim and keep the ids they had in the archive.

The coordinator reads and writes the table files directly and does not
share the event store's in-memory state. Nothing locks the files while a
backup runs.
"""

import sys
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional, Union

from .config import StoreConfig
from .errors import BackupNotFoundError, RecordDecodeError, StorageError
from .event_model import CalEvent
from .event_storage import CsvEventStorage, decode_table
from .event_store import EventStore
from . import record_codec as codec


def _debug_print(msg: str) -> None:
    timestamp = datetime.now().strftime("%H:%M:%S")
    print(f"[{timestamp}] BACKUP: {msg}", file=sys.stderr)


# Section names used by existing archives
EVENT_SECTION = "event.csv"
RECURRENT_SECTION = "recurrent.csv"


@dataclass
class RestoreReport:
    """What a restore did."""
    overwrite: bool
    events: list[CalEvent] = field(default_factory=list)
    skipped: list[RecordDecodeError] = field(default_factory=list)
    remapped: dict[int, int] = field(default_factory=dict)
    recurrence_lines: int = 0

    @property
    def restored_count(self) -> int:
        return len(self.events)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


def parse_sections(lines: Iterable[str]) -> dict[str, list[str]]:
    """
    Split archive lines into named sections.

    Lines before the first marker are ignored. A section name that appears
    twice accumulates its lines. A marker-like line inside a quoted,
    multi-line CSV field belongs to the field, not to a new section. A quote
    that is still open at the end of the archive was a stray one: the lines
    after it are read again as if it were closed.
    """
    lines = list(lines)
    sections: dict[str, list[str]] = {}
    current: Optional[str] = None
    # (index of the line after the opening quote, section length at that point)
    opened: Optional[tuple[int, int]] = None
    index = 0
    while index < len(lines) or opened is not None:
        if index == len(lines):
            index, size = opened
            opened = None
            if current is not None:
                del sections[current][size:]
            continue

        raw = lines[index]
        index += 1
        if opened is None:
            name = codec.parse_section_marker(raw)
            if name is not None:
                current = name
                sections.setdefault(current, [])
                continue
        if current is not None:
            sections[current].append(raw)
        # Doubled quotes cancel out, so an odd count toggles quoting
        if raw.count(codec.QUOTE_CHAR) % 2 == 1:
            if opened is None:
                opened = (index, len(sections[current]) if current is not None else 0)
            else:
                opened = None
    return sections


def default_backup_path(directory: Path, now: Optional[datetime] = None) -> Path:
    """A timestamped archive path such as backup_2025-12-01_093000.txt."""
    if now is None:
        now = datetime.now()
    return Path(directory) / f"backup_{now.strftime('%Y-%m-%d_%H%M%S')}.txt"


def _split_lines(text: str) -> list[str]:
    if not text:
        return []
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return lines


def _read_lines(path: Path) -> list[str]:
    try:
        with open(path, 'r', encoding='utf-8', newline='') as f:
            return _split_lines(f.read())
    except (OSError, UnicodeDecodeError) as e:
        raise StorageError(f"Failed to read ({e})", path) from e


class BackupManager:
    """
    Creates and restores backup archives for one table layout.
    """

    def __init__(self, config: StoreConfig):
        self.config = config

    # ==================== Backup ====================

    def _section_lines(self, source: Path) -> list[str]:
        if not source.exists():
            return [codec.MISSING_FILE_MARKER]
        return _read_lines(source)

    def create_backup(self, backup_path: Union[str, Path]) -> Path:
        """
        Write the core and recurrence tables into one archive.

        Parent directories are created as needed. Returns the archive path.
        """
        backup_path = Path(backup_path)
        sections = [
            (EVENT_SECTION, self._section_lines(self.config.event_file)),
            (RECURRENT_SECTION, self._section_lines(self.config.recurrent_file)),
        ]
        try:
            backup_path.parent.mkdir(parents=True, exist_ok=True)
            with open(backup_path, 'w', encoding='utf-8', newline='') as f:
                for name, lines in sections:
                    f.write(codec.format_section_marker(name) + "\n")
                    for line in lines:
                        f.write(line + "\n")
        except OSError as e:
            raise StorageError(f"Failed to write backup ({e})", backup_path) from e

        _debug_print(f"Backup created at {backup_path}")
        return backup_path

    # ==================== Restore ====================

    def _write_recurrence_lines(self, lines: list[str], overwrite: bool) -> None:
        path = self.config.recurrent_file
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            if overwrite:
                with open(path, 'w', encoding='utf-8', newline='') as f:
                    for line in lines:
                        f.write(line + "\n")
                return

            prefix = ""
            if path.exists():
                with open(path, 'r', encoding='utf-8', newline='') as f:
                    existing = f.read()
                if existing and not existing.endswith("\n"):
                    prefix = "\n"
            with open(path, 'a', encoding='utf-8', newline='') as f:
                f.write(prefix)
                for line in lines:
                    f.write(line + "\n")
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(f"Failed to write recurrence table ({e})", path) from e

    def restore_backup(
        self,
        backup_path: Union[str, Path],
        overwrite: bool,
        target_store: EventStore,
    ) -> RestoreReport:
        """
        Restore an archive into the table files and the target store.

        Args:
            backup_path: Archive written by create_backup.
            overwrite: Replace the current events (True) or merge the
                archived events into them (False).
            target_store: Store sharing this manager's table layout.

        Returns:
            A RestoreReport with the decoded events, skipped records and,
            when merging, the ids that were remapped.

        Raises:
            BackupNotFoundError: the archive does not exist.
        """
        backup_path = Path(backup_path)
        if not backup_path.exists():
            raise BackupNotFoundError(backup_path)

        sections = parse_sections(_read_lines(backup_path))
        event_lines = sections.get(EVENT_SECTION, [])
        recurrent_lines = sections.get(RECURRENT_SECTION, [])

        report = RestoreReport(overwrite=overwrite, recurrence_lines=len(recurrent_lines))

        table = decode_table(
            event_lines,
            codec.EVENT_HEADER,
            codec.decode_event,
            table=f"{backup_path.name}[{EVENT_SECTION}]",
        )
        report.events = table.rows
        report.skipped = table.skipped
        for skipped in table.skipped:
            _debug_print(f"Skipping invalid event line during restore: {skipped.describe()}")

        if overwrite:
            self._write_recurrence_lines(recurrent_lines, overwrite=True)
            CsvEventStorage(self.config).write_core_table(report.events)
        else:
            # The merge saves every table, so the archived recurrence rows
            # are appended after it and picked up by the reload below
            report.remapped = target_store.append_merge(report.events)
            self._write_recurrence_lines(recurrent_lines, overwrite=False)
        target_store.load()

        _debug_print(
            f"Restored {report.restored_count} events from {backup_path} "
            f"({'overwrite' if overwrite else 'append'}, skipped {report.skipped_count})"
        )
        return report
