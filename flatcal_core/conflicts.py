"""
Scheduling conflict detection.

Two events conflict when their time intervals overlap:
candidate.start < other.end and candidate.end > other.start. Intervals that
only touch (one ends exactly when the other starts) do not conflict. An
existing event with the candidate's id is skipped, so an edit can be checked
against the store without clashing with the event's own stored version.
"""

from typing import Iterable, Iterator

from .event_model import CalEvent
from .recurrence import iter_occurrences


def overlaps(a: CalEvent, b: CalEvent) -> bool:
    return a.start < b.end and a.end > b.start


def _iter_conflicts(candidate: CalEvent, existing: Iterable[CalEvent], expand: bool) -> Iterator[CalEvent]:
    candidates = list(iter_occurrences(candidate)) if expand else [candidate]
    for other in existing:
        if other.id == candidate.id:
            continue
        others = iter_occurrences(other) if expand else (other,)
        for occ in others:
            if any(overlaps(c, occ) for c in candidates):
                yield occ


def has_conflict(candidate: CalEvent, existing: Iterable[CalEvent], expand: bool = False) -> bool:
    """
    Check whether the candidate overlaps any existing event.

    With expand=True, every occurrence of the candidate is compared with
    every occurrence of each existing event. Stops at the first conflict.
    """
    for _ in _iter_conflicts(candidate, existing, expand):
        return True
    return False


def find_conflicts(candidate: CalEvent, existing: Iterable[CalEvent], expand: bool = False) -> list[CalEvent]:
    """
    Return every existing event (or occurrence, with expand=True) that
    overlaps the candidate. Empty when there is no conflict.
    """
    return list(_iter_conflicts(candidate, existing, expand))
