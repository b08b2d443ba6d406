"""Shared test fixtures and utilities."""

import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Optional

from flatcal_core.config import StoreConfig
from flatcal_core.event_model import CalEvent, RecurrenceRule
from flatcal_core.event_store import EventStore


def dt(text: str) -> datetime:
    return datetime.fromisoformat(text)


def make_event(
    event_id: int = 0,
    title: str = "Meeting",
    start: str = "2025-10-06T09:00",
    end: str = "2025-10-06T10:00",
    description: str = "",
    recurrence: Optional[tuple] = None,
    **kwargs,
) -> CalEvent:
    """Build a CalEvent from ISO strings; recurrence is (type, occurrences)."""
    rule = RecurrenceRule(*recurrence) if recurrence else None
    return CalEvent(
        id=event_id,
        title=title,
        description=description,
        start=dt(start),
        end=dt(end),
        recurrence=rule,
        **kwargs,
    )


class TempDirMixin:
    """Mixin providing a temporary directory that's cleaned up after each test.

    Usage:
        class MyTest(TempDirMixin, unittest.TestCase):
            def test_something(self):
                path = self.tmp / "file.txt"
                ...
    """

    tmpdir: str

    def setUp(self):
        super().setUp()
        self.tmpdir = tempfile.mkdtemp()
        self.tmp = Path(self.tmpdir)

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)
        super().tearDown()

    def make_store(self, subdir: str = "data") -> EventStore:
        """A loaded store whose tables live in tmp/subdir."""
        store = EventStore(StoreConfig.in_directory(self.tmp / subdir))
        store.load()
        return store

    def write(self, path: Path, text: str) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8", newline="") as fh:
            fh.write(text)
        return path

    def read(self, path: Path) -> str:
        with open(path, "r", encoding="utf-8", newline="") as fh:
            return fh.read()
