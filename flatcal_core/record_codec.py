"""
Record codec for the flat table files.

Each table row is one CSV record: comma separated, fields holding a comma,
a quote or a line break are wrapped in double quotes with inner quotes
doubled. A record may therefore span several physical lines.

The per-table encoders and decoders turn CalEvent data into field lists and
back. Decoders raise RecordDecodeError for a bad record; callers skip that
record and continue with the next one.
"""

import csv
import io
from datetime import datetime
from typing import Iterable, Iterator, Optional, Union

from .errors import RecordDecodeError
from .event_model import (
    CalEvent, RecurrenceRule, RecurrenceType,
    DEFAULT_LOCATION, DEFAULT_CATEGORY, DEFAULT_PRIORITY,
)


DELIMITER = ","
QUOTE_CHAR = '"'

# Header rows written at the top of each table
EVENT_HEADER = ["eventId", "title", "description", "startDateTime", "endDateTime"]
RECURRENCE_HEADER = ["eventId", "recurrentInterval", "recurrentTimes", "recurrentEndDate"]
METADATA_HEADER = ["eventId", "location", "category", "priority"]
REMINDER_HEADER = ["eventId", "reminderMinutes"]

# The recurrence end date column is not honored; occurrence count is
UNUSED_END_DATE = "0"

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"
_TIMESTAMP_FORMATS = (TIMESTAMP_FORMAT, "%Y-%m-%dT%H:%M")

MISSING_FILE_MARKER = "# (file missing)"


# ==================== Rows ====================

def encode_row(fields: Iterable) -> str:
    """Encode one record as CSV text without the trailing line break."""
    buf = io.StringIO()
    # "\r\n" as terminator makes the writer quote fields holding either character
    writer = csv.writer(
        buf,
        delimiter=DELIMITER,
        quotechar=QUOTE_CHAR,
        quoting=csv.QUOTE_MINIMAL,
        lineterminator="\r\n",
    )
    writer.writerow(["" if f is None else str(f) for f in fields])
    return buf.getvalue()[:-2]


def decode_row(line: str) -> list[str]:
    """
    Decode one CSV record back into its fields.

    Inverse of encode_row. An empty line decodes to an empty list.
    """
    try:
        rows = list(csv.reader(io.StringIO(line, newline=""), delimiter=DELIMITER, quotechar=QUOTE_CHAR))
    except csv.Error as e:
        raise RecordDecodeError(f"unreadable CSV ({e})", line=line) from e
    if not rows:
        return []
    if len(rows) > 1:
        raise RecordDecodeError(f"expected one record, found {len(rows)}", line=line)
    return rows[0]


def split_lines(source: Union[str, Iterable[str]]) -> list[str]:
    """
    Physical lines of a table, line endings kept.

    `source` is either the whole text of a table or a sequence of lines
    without line endings. Lines are split the way the csv reader splits a
    file opened with newline="".
    """
    if not isinstance(source, str):
        source = "\n".join(source)
    return io.StringIO(source, newline="").readlines()


def iter_record_spans(lines: list[str], start: int = 0) -> Iterator[tuple[int, int, list[str]]]:
    """
    Yield (first, end, fields) for each record in lines[start:].

    lines[first:end] are the physical lines the record was read from, so a
    record holding a quoted line break spans more than one. Blank lines yield
    an empty field list. A line the csv reader rejects raises
    RecordDecodeError with line_number set to that record's first line.
    """
    reader = csv.reader(iter(lines[start:]), delimiter=DELIMITER, quotechar=QUOTE_CHAR)
    first = start
    while True:
        try:
            fields = next(reader)
        except StopIteration:
            return
        except csv.Error as e:
            raise RecordDecodeError(
                f"unreadable CSV ({e})",
                line=lines[first].rstrip("\r\n"),
                line_number=first + 1,
            ) from e
        end = start + reader.line_num
        yield first, end, fields
        first = end


def iter_records(source: Union[str, Iterable[str]]) -> Iterator[tuple[int, list[str]]]:
    """
    Yield (line_number, fields) for each record in a table.

    line_number is the physical line the record ends on.
    """
    for _, end, fields in iter_record_spans(split_lines(source)):
        yield end, fields


def is_comment(fields: list[str]) -> bool:
    """True for a "# ..." line such as the missing-file placeholder."""
    return bool(fields) and fields[0].lstrip().startswith("#")


def is_header(fields: list[str], header: list[str]) -> bool:
    """True if the record looks like the table's header row."""
    return bool(fields) and fields[0].strip().lower().startswith(header[0].lower())


# ==================== Scalars ====================

def format_timestamp(dt: datetime) -> str:
    # isoformat pads the year to four digits, strftime("%Y") does not
    return dt.replace(second=0, microsecond=0, tzinfo=None).isoformat(timespec="seconds")


def parse_timestamp(text: str) -> datetime:
    """
    Parse a table timestamp.

    Accepts YYYY-MM-DDTHH:MM:SS and YYYY-MM-DDTHH:MM. Anything below the
    minute is dropped.
    """
    text = text.strip()
    for fmt in _TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(text, fmt).replace(second=0)
        except ValueError:
            continue
    raise RecordDecodeError(f"invalid timestamp {text!r}")


def _parse_int(text: str, what: str, minimum: Optional[int] = None) -> int:
    try:
        value = int(text.strip())
    except ValueError:
        raise RecordDecodeError(f"invalid {what} {text!r}") from None
    if minimum is not None and value < minimum:
        raise RecordDecodeError(f"{what} must be at least {minimum}, got {value}")
    return value


def _check_field_count(fields: list[str], header: list[str]) -> None:
    if len(fields) != len(header):
        raise RecordDecodeError(
            f"expected {len(header)} fields, found {len(fields)}",
            line=encode_row(fields),
        )


def _with_line(error: RecordDecodeError, fields: list[str]) -> RecordDecodeError:
    if not error.line:
        error.line = encode_row(fields)
    return error


# ==================== Core table ====================

def encode_event(event: CalEvent) -> list[str]:
    """Core table fields: eventId,title,description,startDateTime,endDateTime."""
    return [
        str(event.id),
        event.title or "",
        event.description or "",
        format_timestamp(event.start),
        format_timestamp(event.end),
    ]


def decode_event(fields: list[str]) -> CalEvent:
    """
    Build a plain event from a core table record.

    Metadata, reminder and recurrence are joined in later from their own
    tables.
    """
    _check_field_count(fields, EVENT_HEADER)
    try:
        event_id = _parse_int(fields[0], "event id", minimum=1)
        start = parse_timestamp(fields[3])
        end = parse_timestamp(fields[4])
    except RecordDecodeError as e:
        raise _with_line(e, fields)
    return CalEvent(
        id=event_id,
        title=fields[1],
        description=fields[2],
        start=start,
        end=end,
    )


def encode_event_line(event: CalEvent) -> str:
    return encode_row(encode_event(event))


def decode_event_line(line: str) -> CalEvent:
    """Decode a single core table line (possibly spanning line breaks)."""
    return decode_event(decode_row(line))


# ==================== Recurrence table ====================

def encode_recurrence(event_id: int, rule: RecurrenceRule) -> list[str]:
    if isinstance(rule.type, RecurrenceType):
        code = rule.type.interval_code
    else:
        # Unknown types are written as daily, matching existing files
        code = RecurrenceType.DAILY.interval_code
    return [str(event_id), code, str(rule.occurrences), UNUSED_END_DATE]


def decode_recurrence(fields: list[str]) -> tuple[int, RecurrenceRule]:
    _check_field_count(fields, RECURRENCE_HEADER)
    try:
        event_id = _parse_int(fields[0], "event id", minimum=1)
        rtype = RecurrenceType.from_interval_code(fields[1])
        if rtype is None:
            raise RecordDecodeError(f"unknown recurrence interval {fields[1]!r}")
        occurrences = _parse_int(fields[2], "occurrence count", minimum=1)
    except RecordDecodeError as e:
        raise _with_line(e, fields)
    return event_id, RecurrenceRule(type=rtype, occurrences=occurrences)


# ==================== Metadata table ====================

def encode_metadata(event: CalEvent) -> list[str]:
    return [
        str(event.id),
        event.location if event.location is not None else DEFAULT_LOCATION,
        event.category if event.category is not None else DEFAULT_CATEGORY,
        event.priority if event.priority is not None else DEFAULT_PRIORITY,
    ]


def decode_metadata(fields: list[str]) -> tuple[int, tuple[str, str, str]]:
    """Returns (event id, (location, category, priority))."""
    _check_field_count(fields, METADATA_HEADER)
    try:
        event_id = _parse_int(fields[0], "event id", minimum=1)
    except RecordDecodeError as e:
        raise _with_line(e, fields)
    return event_id, (fields[1], fields[2], fields[3])


# ==================== Reminder table ====================

def encode_reminder(event: CalEvent) -> list[str]:
    return [str(event.id), str(event.reminder)]


def decode_reminder(fields: list[str]) -> tuple[int, int]:
    _check_field_count(fields, REMINDER_HEADER)
    try:
        event_id = _parse_int(fields[0], "event id", minimum=1)
        minutes = _parse_int(fields[1], "reminder minutes", minimum=0)
    except RecordDecodeError as e:
        raise _with_line(e, fields)
    return event_id, minutes


# ==================== Backup section markers ====================

def format_section_marker(name: str) -> str:
    return f"--- {name} ---"


def parse_section_marker(line: str) -> Optional[str]:
    """Return the section name if `line` is a marker, else None."""
    stripped = line.strip()
    if len(stripped) >= 6 and stripped.startswith("---") and stripped.endswith("---"):
        name = stripped[3:-3].strip()
        return name or None
    return None
