"""
Event store for flatcal.

The single source of truth for events. Owns the in-memory event set and the
id counter, and persists through a storage backend after every mutation.
"""

import sys
import threading
from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterable, Optional

from .config import StoreConfig
from .errors import EventNotFoundError
from .event_model import CalEvent
from .event_storage import EventStorageBackend, LoadReport, create_storage_backend


def _debug_print(message: str) -> None:
    timestamp = datetime.now().strftime("%H:%M:%S")
    print(f"[{timestamp}] STORE: {message}", file=sys.stderr)


class EventStore:
    """
    Authoritative set of events with id assignment.

    Iteration follows insertion order. Each mutating operation and the save
    that follows it run under one lock; if the save fails the in-memory set
    is put back the way it was and the error propagates.
    """

    def __init__(self, config: StoreConfig, storage: Optional[EventStorageBackend] = None):
        self.config = config
        self._storage = storage if storage is not None else create_storage_backend(config)

        # event id -> CalEvent, in insertion order
        self._events: dict[int, CalEvent] = {}
        self._next_id = 1

        self._lock = threading.RLock()
        self._on_change_callback: Optional[Callable[[], None]] = None

    def set_on_change_callback(self, callback: Callable[[], None]) -> None:
        self._on_change_callback = callback

    def _notify_change(self) -> None:
        if self._on_change_callback:
            self._on_change_callback()

    # ==================== Persistence ====================

    def load(self) -> LoadReport:
        """
        Replace the in-memory set with what the tables hold.

        Malformed records are skipped and listed in the returned report. On
        first use this creates the core table.
        """
        with self._lock:
            report = self._storage.load_events()
            self._events = {e.id: e for e in report.events}
            self._recompute_next_id()
            _debug_print(f"Loaded {len(self._events)} events, next id {self._next_id}")
        self._notify_change()
        return report

    def save(self) -> None:
        """Write every table from the in-memory set."""
        with self._lock:
            self._storage.save_events(list(self._events.values()))

    def _recompute_next_id(self) -> None:
        self._next_id = max(self._events, default=0) + 1

    def _commit(self, previous: dict[int, CalEvent], previous_next_id: int) -> None:
        """Persist the current set, rolling memory back if that fails."""
        try:
            self.save()
        except Exception:
            self._events = previous
            self._next_id = previous_next_id
            raise
        self._notify_change()

    # ==================== Queries ====================

    @property
    def next_id(self) -> int:
        """The id the next added event will receive."""
        return self._next_id

    def get_all_events(self) -> list[CalEvent]:
        """Snapshot of all events in insertion order."""
        with self._lock:
            return list(self._events.values())

    def get_event_count(self) -> int:
        return len(self._events)

    def find_by_id(self, event_id: int) -> Optional[CalEvent]:
        """Get an event by id, or None."""
        return self._events.get(event_id)

    def require(self, event_id: int) -> CalEvent:
        """Get an event by id, raising EventNotFoundError if absent."""
        event = self.find_by_id(event_id)
        if event is None:
            raise EventNotFoundError(event_id)
        return event

    def __iter__(self):
        return iter(self.get_all_events())

    def __len__(self) -> int:
        return len(self._events)

    def __contains__(self, event_id: int) -> bool:
        return event_id in self._events

    # ==================== CRUD Operations ====================

    def add(self, event: CalEvent) -> CalEvent:
        """
        Store a new event under the next free id.

        Any id already on the event is ignored. Returns the stored event.
        """
        with self._lock:
            previous, previous_next_id = dict(self._events), self._next_id
            stored = event.with_id(self._next_id)
            self._events[stored.id] = stored
            self._next_id += 1
            self._commit(previous, previous_next_id)
            _debug_print(f"Added event {stored.id}: {stored.title!r}")
            return stored

    def update(self, event: CalEvent) -> bool:
        """Replace the event with the same id. Returns False if there is none."""
        with self._lock:
            if event.id not in self._events:
                return False
            previous = dict(self._events)
            self._events[event.id] = event
            self._commit(previous, self._next_id)
            return True

    def delete(self, event_id: int) -> bool:
        """Remove the event with this id. Returns False if there is none."""
        with self._lock:
            if event_id not in self._events:
                return False
            previous = dict(self._events)
            del self._events[event_id]
            self._commit(previous, self._next_id)
            _debug_print(f"Deleted event {event_id}")
            return True

    def update_or_raise(self, event: CalEvent) -> None:
        if not self.update(event):
            raise EventNotFoundError(event.id)

    def delete_or_raise(self, event_id: int) -> None:
        if not self.delete(event_id):
            raise EventNotFoundError(event_id)

    # ==================== Bulk Operations ====================

    def replace_all(self, events: Iterable[CalEvent]) -> None:
        """
        Replace the whole event set.

        The next id becomes one past the largest id in the new set (1 if the
        set is empty). If the new set repeats an id, the last event wins.
        """
        with self._lock:
            previous, previous_next_id = self._events, self._next_id
            self._events = {e.id: e for e in events}
            self._recompute_next_id()
            self._commit(previous, previous_next_id)

    def append_merge(self, events: Iterable[CalEvent]) -> dict[int, int]:
        """
        Add external events without discarding existing ones.

        An incoming event whose id is already taken gets a new id, one past
        the largest id held so far; so does one without a valid id. Other
        events keep their id. Callers must not assume imported ids survive.

        Returns:
            Mapping of incoming id to assigned id for the remapped events.
        """
        with self._lock:
            previous, previous_next_id = dict(self._events), self._next_id
            remapped: dict[int, int] = {}
            running_max = max(self._events, default=0)

            for event in events:
                if event.id < 1 or event.id in self._events:
                    running_max += 1
                    remapped[event.id] = running_max
                    event = replace(event, id=running_max)
                self._events[event.id] = event
                running_max = max(running_max, event.id)

            self._recompute_next_id()
            self._commit(previous, previous_next_id)
            if remapped:
                _debug_print(f"append_merge remapped ids: {remapped}")
            return remapped
