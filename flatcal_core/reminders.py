"""
Event reminders.

An event's reminder is a number of minutes before its start. For recurring
events every occurrence carries the same reminder.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from .event_model import CalEvent
from .recurrence import iter_occurrences
from .timezone_utils import local_now


MINUTES_PER_HOUR = 60
MINUTES_PER_DAY = 24 * MINUTES_PER_HOUR


@dataclass
class DueReminder:
    """A reminder that has fired for an occurrence that has not started."""
    event: CalEvent
    remind_at: datetime


def reminder_time(event: CalEvent) -> Optional[datetime]:
    """When the reminder for this event (or occurrence) fires, None if unset."""
    if event.reminder is None:
        return None
    return event.start - timedelta(minutes=event.reminder)


def describe_reminder(minutes: int) -> str:
    """Human readable form, e.g. "15 minutes before" or "2 days before"."""
    if minutes < MINUTES_PER_HOUR:
        return f"{minutes} minutes before"
    if minutes == MINUTES_PER_DAY:
        return "1 day before"
    if minutes % MINUTES_PER_DAY == 0:
        return f"{minutes // MINUTES_PER_DAY} days before"
    if minutes == MINUTES_PER_HOUR:
        return "1 hour before"
    if minutes % MINUTES_PER_HOUR == 0:
        return f"{minutes // MINUTES_PER_HOUR} hours before"
    return f"{minutes} minutes before"


def due_reminders(events: Iterable[CalEvent], now: Optional[datetime] = None) -> list[DueReminder]:
    """
    Occurrences whose reminder has fired but which have not started yet.

    Args:
        events: Events to check; recurring events are expanded.
        now: Naive local time to check against. Defaults to the current
            time in the configured timezone.

    Returns:
        DueReminder entries sorted by occurrence start.
    """
    if now is None:
        now = local_now()

    due = []
    for event in events:
        if event.reminder is None:
            continue
        for occ in iter_occurrences(event):
            remind_at = reminder_time(occ)
            if remind_at <= now < occ.start:
                due.append(DueReminder(event=occ, remind_at=remind_at))
    due.sort(key=lambda d: (d.event.start, d.event.id))
    return due
