"""Tests for flatcal_core/event_store.py and the CSV table storage."""
import unittest

from flatcal_core.errors import EventNotFoundError, StorageError
from flatcal_core.event_model import RecurrenceType
from flatcal_core.event_storage import EventStorageBackend, LoadReport
from flatcal_core.event_store import EventStore
from flatcal_core.config import StoreConfig
from tests.fixtures import TempDirMixin, make_event


EVENT_HEADER_LINE = "eventId,title,description,startDateTime,endDateTime\n"


class FailingStorage(EventStorageBackend):
    """Loads nothing and fails every save, like a full disk."""

    def __init__(self):
        self.saves = 0

    def load_events(self) -> LoadReport:
        return LoadReport()

    def save_events(self, events) -> None:
        self.saves += 1
        raise StorageError("disk full")


class LoadTests(TempDirMixin, unittest.TestCase):

    def test_first_load_creates_core_table_with_header_only(self):
        store = self.make_store()
        self.assertEqual(len(store), 0)
        self.assertEqual(store.next_id, 1)
        self.assertEqual(self.read(store.config.event_file), EVENT_HEADER_LINE)

    def test_missing_auxiliary_tables_give_plain_events(self):
        config = StoreConfig.in_directory(self.tmp)
        self.write(config.event_file, EVENT_HEADER_LINE + "4,Lunch,,2025-10-06T12:00:00,2025-10-06T13:00:00\n")
        store = EventStore(config)
        report = store.load()
        event = store.find_by_id(4)
        self.assertEqual(report.loaded_count, 1)
        self.assertFalse(event.is_recurring)
        self.assertEqual((event.location, event.category, event.priority), ("", "General", "MEDIUM"))
        self.assertIsNone(event.reminder)
        self.assertEqual(store.next_id, 5)

    def test_malformed_line_is_skipped_and_reported(self):
        config = StoreConfig.in_directory(self.tmp)
        self.write(
            config.event_file,
            EVENT_HEADER_LINE
            + "1,Valid,,2025-10-06T09:00:00,2025-10-06T10:00:00\n"
            + "2,short\n",
        )
        store = EventStore(config)
        report = store.load()
        self.assertEqual(report.loaded_count, 1)
        self.assertEqual(report.skipped_count, 1)
        self.assertEqual(report.skipped[0].line_number, 3)
        self.assertIn("2,short", report.skipped[0].describe())
        self.assertEqual([e.id for e in store.get_all_events()], [1])

    def test_stray_quote_only_skips_its_own_line(self):
        config = StoreConfig.in_directory(self.tmp)
        self.write(
            config.event_file,
            EVENT_HEADER_LINE
            + '1,"Broken,desc,2025-10-06T09:00:00,2025-10-06T10:00:00\n'
            + "2,Two,,2025-10-07T09:00:00,2025-10-07T10:00:00\n"
            + "3,Three,,2025-10-08T09:00:00,2025-10-08T10:00:00\n",
        )
        store = EventStore(config)
        report = store.load()
        self.assertEqual([e.id for e in store.get_all_events()], [2, 3])
        self.assertEqual(report.skipped_count, 1)
        self.assertEqual(report.skipped[0].line_number, 2)
        self.assertIn('1,"Broken', report.skipped[0].line)

        added = store.add(make_event(title="New"))
        self.assertEqual(added.id, 4)
        reloaded = EventStore(config)
        reloaded.load()
        self.assertEqual([e.id for e in reloaded.get_all_events()], [2, 3, 4])

    def test_bad_multi_line_record_resumes_on_next_line(self):
        config = StoreConfig.in_directory(self.tmp)
        self.write(
            config.event_file,
            EVENT_HEADER_LINE
            + '1,Notes,"first\nsecond",not a date,2025-10-06T10:00:00\n'
            + "2,Two,,2025-10-07T09:00:00,2025-10-07T10:00:00\n",
        )
        store = EventStore(config)
        report = store.load()
        self.assertEqual([e.id for e in store.get_all_events()], [2])
        self.assertEqual(report.skipped[0].line_number, 2)

    def test_duplicate_id_keeps_first_row(self):
        config = StoreConfig.in_directory(self.tmp)
        self.write(
            config.event_file,
            EVENT_HEADER_LINE
            + "1,First,,2025-10-06T09:00:00,2025-10-06T10:00:00\n"
            + "1,Second,,2025-10-07T09:00:00,2025-10-07T10:00:00\n",
        )
        store = EventStore(config)
        report = store.load()
        self.assertEqual(store.find_by_id(1).title, "First")
        self.assertEqual(report.skipped_count, 1)

    def test_orphan_auxiliary_rows_are_ignored(self):
        config = StoreConfig.in_directory(self.tmp)
        self.write(config.event_file, EVENT_HEADER_LINE + "1,Only,,2025-10-06T09:00:00,2025-10-06T10:00:00\n")
        self.write(config.recurrent_file, "eventId,recurrentInterval,recurrentTimes,recurrentEndDate\n9,1d,3,0\n")
        self.write(config.additional_file, "eventId,location,category,priority\n9,Nowhere,Work,HIGH\n")
        store = EventStore(config)
        report = store.load()
        self.assertEqual(report.skipped_count, 0)
        self.assertFalse(store.find_by_id(1).is_recurring)
        self.assertIsNone(store.find_by_id(9))

    def test_unreadable_auxiliary_table_is_treated_as_empty(self):
        config = StoreConfig.in_directory(self.tmp)
        self.write(config.event_file, EVENT_HEADER_LINE + "1,Only,,2025-10-06T09:00:00,2025-10-06T10:00:00\n")
        # A directory where the file should be cannot be read
        config.recurrent_file.mkdir(parents=True)
        store = EventStore(config)
        store.load()
        self.assertFalse(store.find_by_id(1).is_recurring)

    def test_table_written_by_older_version_without_seconds(self):
        config = StoreConfig.in_directory(self.tmp)
        self.write(config.event_file, EVENT_HEADER_LINE + "3,Old,,2025-10-06T09:00,2025-10-06T10:00\n")
        store = EventStore(config)
        store.load()
        self.assertEqual(store.find_by_id(3).start.hour, 9)


class PersistenceTests(TempDirMixin, unittest.TestCase):

    def test_save_then_load_reproduces_events(self):
        store = self.make_store()
        store.add(make_event(title='Quarterly "review", part 1', description="agenda:\n- numbers\n- plans"))
        store.add(make_event(
            title="Gym",
            start="2025-10-07T18:00",
            end="2025-10-07T19:30",
            recurrence=(RecurrenceType.WEEKLY, 8),
            location="Downtown, 3rd floor",
            category="Health",
            priority="LOW",
            reminder=45,
        ))
        store.add(make_event(title="Rent", start="2025-01-31T08:00", end="2025-01-31T08:30",
                             recurrence=("monthly", 12), reminder=0))
        before = store.get_all_events()

        reloaded = EventStore(store.config)
        reloaded.load()
        self.assertEqual(reloaded.get_all_events(), before)
        self.assertEqual(reloaded.next_id, 4)

    def test_tables_have_expected_headers_and_rows(self):
        store = self.make_store()
        store.add(make_event(title="Plain"))
        store.add(make_event(title="Daily", recurrence=(RecurrenceType.DAILY, 3), reminder=10))
        config = store.config
        self.assertEqual(
            self.read(config.recurrent_file),
            "eventId,recurrentInterval,recurrentTimes,recurrentEndDate\n2,1d,3,0\n",
        )
        self.assertEqual(
            self.read(config.additional_file),
            "eventId,location,category,priority\n1,,General,MEDIUM\n2,,General,MEDIUM\n",
        )
        self.assertEqual(self.read(config.reminder_file), "eventId,reminderMinutes\n2,10\n")

    def test_seconds_are_not_kept(self):
        store = self.make_store()
        event = make_event(start="2025-10-06T09:00:42", end="2025-10-06T10:00:59")
        stored = store.add(event)
        self.assertEqual(stored.start.second, 0)
        reloaded = EventStore(store.config)
        reloaded.load()
        self.assertEqual(reloaded.find_by_id(stored.id), stored)


class CrudTests(TempDirMixin, unittest.TestCase):

    def setUp(self):
        super().setUp()
        self.store = self.make_store()

    def test_add_assigns_sequential_ids(self):
        first = self.store.add(make_event(title="A"))
        second = self.store.add(make_event(99, title="B"))
        self.assertEqual((first.id, second.id), (1, 2))
        self.assertEqual(self.store.next_id, 3)

    def test_update(self):
        stored = self.store.add(make_event(title="Draft"))
        stored.title = "Final"
        self.assertTrue(self.store.update(stored))
        self.assertEqual(self.store.find_by_id(stored.id).title, "Final")
        self.assertFalse(self.store.update(make_event(42)))

    def test_update_keeps_insertion_order(self):
        for title in ("A", "B", "C"):
            self.store.add(make_event(title=title))
        self.store.update(make_event(1, title="A2"))
        self.assertEqual([e.title for e in self.store.get_all_events()], ["A2", "B", "C"])

    def test_delete(self):
        stored = self.store.add(make_event())
        self.assertTrue(self.store.delete(stored.id))
        self.assertFalse(self.store.delete(stored.id))
        self.assertIsNone(self.store.find_by_id(stored.id))

    def test_delete_is_persisted(self):
        self.store.add(make_event(title="Keep"))
        gone = self.store.add(make_event(title="Gone"))
        self.store.delete(gone.id)
        reloaded = EventStore(self.store.config)
        reloaded.load()
        self.assertEqual([e.title for e in reloaded.get_all_events()], ["Keep"])

    def test_strict_variants_raise_not_found(self):
        with self.assertRaises(EventNotFoundError):
            self.store.require(5)
        with self.assertRaises(EventNotFoundError):
            self.store.delete_or_raise(5)
        with self.assertRaises(EventNotFoundError):
            self.store.update_or_raise(make_event(5))

    def test_change_callback(self):
        calls = []
        self.store.set_on_change_callback(lambda: calls.append(1))
        self.store.add(make_event())
        self.store.delete(1)
        self.store.delete(1)
        self.assertEqual(len(calls), 2)


class BulkTests(TempDirMixin, unittest.TestCase):

    def setUp(self):
        super().setUp()
        self.store = self.make_store()

    def test_replace_all_recomputes_next_id(self):
        self.store.add(make_event())
        self.store.replace_all([make_event(5, title="Five"), make_event(2, title="Two")])
        self.assertEqual(self.store.next_id, 6)
        self.assertEqual([e.id for e in self.store.get_all_events()], [5, 2])

    def test_replace_all_with_nothing(self):
        self.store.add(make_event())
        self.store.replace_all([])
        self.assertEqual(self.store.next_id, 1)
        self.assertEqual(len(self.store), 0)

    def test_append_merge_remaps_colliding_id(self):
        original = self.store.add(make_event(title="Original"))
        remapped = self.store.append_merge([make_event(1, title="Imported")])
        events = self.store.get_all_events()
        self.assertEqual([e.id for e in events], [1, 2])
        self.assertEqual(self.store.find_by_id(1), original)
        self.assertEqual(self.store.find_by_id(2).title, "Imported")
        self.assertEqual(remapped, {1: 2})
        self.assertEqual(self.store.next_id, 3)

    def test_append_merge_keeps_free_ids(self):
        self.store.add(make_event(title="Original"))
        remapped = self.store.append_merge([make_event(7, title="Seven")])
        self.assertEqual(remapped, {})
        self.assertEqual(self.store.find_by_id(7).title, "Seven")
        self.assertEqual(self.store.next_id, 8)

    def test_append_merge_never_reuses_an_id(self):
        self.store.add(make_event(title="Original"))
        self.store.append_merge([
            make_event(2, title="Two"),
            make_event(1, title="One"),
            make_event(1, title="One again"),
            make_event(0, title="No id"),
        ])
        ids = [e.id for e in self.store.get_all_events()]
        self.assertEqual(len(ids), len(set(ids)))
        self.assertEqual(len(ids), 5)
        self.assertEqual(self.store.next_id, max(ids) + 1)

    def test_append_merge_is_persisted(self):
        self.store.add(make_event(title="Original"))
        self.store.append_merge([make_event(1, title="Imported")])
        reloaded = EventStore(self.store.config)
        reloaded.load()
        self.assertEqual([e.title for e in reloaded.get_all_events()], ["Original", "Imported"])


class FailedSaveTests(unittest.TestCase):

    def setUp(self):
        self.storage = FailingStorage()
        self.store = EventStore(StoreConfig.in_directory("/nonexistent"), storage=self.storage)

    def test_add_rolls_back_memory(self):
        with self.assertRaises(StorageError):
            self.store.add(make_event())
        self.assertEqual(len(self.store), 0)
        self.assertEqual(self.store.next_id, 1)

    def test_replace_all_rolls_back_memory(self):
        with self.assertRaises(StorageError):
            self.store.replace_all([make_event(3)])
        self.assertEqual(len(self.store), 0)
        self.assertEqual(self.store.next_id, 1)

    def test_append_merge_rolls_back_memory(self):
        with self.assertRaises(StorageError):
            self.store.append_merge([make_event(3)])
        self.assertIsNone(self.store.find_by_id(3))


if __name__ == "__main__":
    unittest.main()
