"""
In-memory event model.

One event shape for every event: a CalEvent either carries a
RecurrenceRule or it does not. Code that cares branches on
`is_recurring` rather than on the event's class.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Union


# Defaults applied when an event has no metadata row
DEFAULT_LOCATION = ""
DEFAULT_CATEGORY = "General"
DEFAULT_PRIORITY = "MEDIUM"


class RecurrenceType(Enum):
    """How far each occurrence advances from the previous one."""
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"

    @property
    def interval_code(self) -> str:
        """Short code used in the recurrence table."""
        return _INTERVAL_CODES[self]

    @classmethod
    def from_interval_code(cls, code: str) -> Optional['RecurrenceType']:
        """
        Map an interval code such as "1d" to a type.

        Only the unit letter is significant. Returns None for an unknown unit.
        """
        code = code.strip().lower()
        if not code:
            return None
        return _CODE_UNITS.get(code[-1])


_INTERVAL_CODES = {
    RecurrenceType.DAILY: "1d",
    RecurrenceType.WEEKLY: "1w",
    RecurrenceType.MONTHLY: "1m",
}

_CODE_UNITS = {
    "d": RecurrenceType.DAILY,
    "w": RecurrenceType.WEEKLY,
    "m": RecurrenceType.MONTHLY,
}


def _coerce_recurrence_type(value) -> Union[RecurrenceType, str]:
    if isinstance(value, RecurrenceType):
        return value
    name = str(value).strip().upper()
    try:
        return RecurrenceType(name)
    except ValueError:
        # Unknown types are kept; the expander treats them as "no advance"
        return name


@dataclass
class RecurrenceRule:
    """
    Repeat an event a fixed number of times.

    The rule applies to its owning event's start/end, which are the first
    occurrence.
    """
    type: Union[RecurrenceType, str]
    occurrences: int

    def __post_init__(self):
        self.type = _coerce_recurrence_type(self.type)

    @property
    def is_known_type(self) -> bool:
        return isinstance(self.type, RecurrenceType)

    @property
    def type_name(self) -> str:
        return self.type.value if isinstance(self.type, RecurrenceType) else self.type


def truncate_to_minute(dt: datetime) -> datetime:
    """Drop seconds and microseconds; event times have minute precision."""
    return dt.replace(second=0, microsecond=0)


@dataclass
class CalEvent:
    """
    A calendar event as held by the event store.

    `id` is 0 until the store assigns one. Start and end are naive local
    datetimes; they are truncated to the minute on construction so that the
    in-memory value always equals what the tables can hold.
    """
    id: int
    title: str
    description: str
    start: datetime
    end: datetime

    reminder: Optional[int] = None  # minutes before start
    location: str = DEFAULT_LOCATION
    category: str = DEFAULT_CATEGORY
    priority: str = DEFAULT_PRIORITY
    recurrence: Optional[RecurrenceRule] = None

    # Display-only position within an expanded series (1-based), not persisted
    occurrence_index: Optional[int] = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        self.start = truncate_to_minute(self.start)
        self.end = truncate_to_minute(self.end)

    # ==================== Convenience Properties ====================

    @property
    def is_recurring(self) -> bool:
        """Check if this event has a recurrence rule."""
        return self.recurrence is not None

    @property
    def duration(self) -> timedelta:
        """Get the event's duration."""
        return self.end - self.start

    @property
    def has_default_metadata(self) -> bool:
        return (
            self.location == DEFAULT_LOCATION
            and self.category == DEFAULT_CATEGORY
            and self.priority == DEFAULT_PRIORITY
        )

    def with_id(self, event_id: int) -> 'CalEvent':
        """Return a copy of this event carrying a different id."""
        return replace(self, id=event_id)

    def __repr__(self):
        return f"CalEvent(id={self.id!r}, title={self.title!r}, start={self.start}, end={self.end})"


def validate_event(event: CalEvent) -> list[str]:
    """
    Check an event before handing it to the store.

    The store accepts any well-typed event; callers use this to reject bad
    input first. Returns a list of problems, empty if the event is fine.
    """
    problems = []
    if not event.title.strip():
        problems.append("title is empty")
    if event.start >= event.end:
        problems.append("start must be before end")
    if event.reminder is not None and event.reminder < 0:
        problems.append("reminder must not be negative")
    if event.recurrence is not None:
        if event.recurrence.occurrences < 1:
            problems.append("occurrences must be at least 1")
        if not event.recurrence.is_known_type:
            problems.append(f"unknown recurrence type {event.recurrence.type_name!r}")
    return problems
