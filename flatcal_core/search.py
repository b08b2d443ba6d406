"""
Event search by date, date range and title.

By default only each event's first occurrence is considered. Pass
expand=True to search every occurrence of recurring events instead.
"""

from datetime import date
from typing import Iterable

from .event_model import CalEvent
from .recurrence import expand_all


def _candidates(events: Iterable[CalEvent], expand: bool) -> list[CalEvent]:
    return expand_all(events) if expand else list(events)


def search_by_date(events: Iterable[CalEvent], day: date, expand: bool = False) -> list[CalEvent]:
    """Events starting on the given day."""
    return [e for e in _candidates(events, expand) if e.start.date() == day]


def search_by_date_range(
    events: Iterable[CalEvent],
    first: date,
    last: date,
    expand: bool = False,
) -> list[CalEvent]:
    """Events whose start date lies in [first, last], both days included."""
    return [e for e in _candidates(events, expand) if first <= e.start.date() <= last]


def search_by_title(events: Iterable[CalEvent], title: str, expand: bool = False) -> list[CalEvent]:
    """Events whose title is exactly `title`."""
    return [e for e in _candidates(events, expand) if e.title == title]
