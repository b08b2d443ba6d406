"""
Recurrence expansion.

Turns an event with a RecurrenceRule into its concrete occurrences.

Occurrence k (0-based) starts at the first start advanced by k periods,
computed from the first occurrence rather than step by step. Month steps
use dateutil's relativedelta, which clamps to the last day of a shorter
month: a series starting Jan 31 runs Jan 31, Feb 28 (29), Mar 31, Apr 30.
Every occurrence keeps the first occurrence's duration.
"""

import sys
from dataclasses import replace
from datetime import datetime
from typing import Iterable, Iterator, Optional

from dateutil.relativedelta import relativedelta

from .event_model import CalEvent, RecurrenceType


def _debug_print(msg: str) -> None:
    timestamp = datetime.now().strftime("%H:%M:%S")
    print(f"[{timestamp}] RECUR: {msg}", file=sys.stderr)


_PERIODS = {
    RecurrenceType.DAILY: relativedelta(days=1),
    RecurrenceType.WEEKLY: relativedelta(weeks=1),
    RecurrenceType.MONTHLY: relativedelta(months=1),
}


def period_of(rtype) -> Optional[relativedelta]:
    """The step for a recurrence type, None if the type is unknown."""
    return _PERIODS.get(rtype)


def occurrence_start(event: CalEvent, index: int) -> datetime:
    """Start of the occurrence at 0-based `index`."""
    if event.recurrence is None or index == 0:
        return event.start
    step = period_of(event.recurrence.type)
    if step is None:
        return event.start
    return event.start + step * index


def iter_occurrences(event: CalEvent, number_titles: bool = False) -> Iterator[CalEvent]:
    """
    Lazily yield the occurrences of an event.

    A non-recurring event yields itself once. An unknown recurrence type
    does not advance, so all its occurrences coincide with the first.
    """
    rule = event.recurrence
    if rule is None:
        yield event
        return

    if period_of(rule.type) is None:
        _debug_print(f"Event {event.id}: unknown recurrence type {rule.type_name!r}, not advancing")

    duration = event.duration
    total = max(rule.occurrences, 0)
    for index in range(total):
        start = occurrence_start(event, index)
        title = event.title
        if number_titles:
            title = f"{event.title} ({index + 1}/{total})"
        yield replace(
            event,
            title=title,
            start=start,
            end=start + duration,
            occurrence_index=index + 1,
        )


def expand(event: CalEvent, number_titles: bool = False) -> list[CalEvent]:
    """
    Expand an event into its occurrences.

    Args:
        event: The event to expand; its start/end are the first occurrence.
        number_titles: Suffix each title with " (k/N)" for display.

    Returns:
        One CalEvent per occurrence, all sharing the event's id and metadata.
    """
    return list(iter_occurrences(event, number_titles=number_titles))


def expand_all(events: Iterable[CalEvent]) -> list[CalEvent]:
    """Occurrences of every event, in input order."""
    occurrences = []
    for event in events:
        occurrences.extend(iter_occurrences(event))
    return occurrences


def occurrences_between(events: Iterable[CalEvent], start: datetime, end: datetime) -> list[CalEvent]:
    """
    Occurrences overlapping [start, end), sorted by start time.
    """
    found = [
        occ for occ in expand_all(events)
        if occ.start < end and occ.end > start
    ]
    found.sort(key=lambda occ: (occ.start, occ.id))
    return found
