#!/usr/bin/env python3
"""
flatcal - calendar events kept in plain CSV tables.

This is the command line entry point. It wires the configuration, the
event store and the backup manager together; all calendar logic lives in
flatcal_core.
"""

import sys
import argparse
from datetime import date, datetime
from pathlib import Path
from typing import Optional

from flatcal_core.config import Config
from flatcal_core.errors import ConfigError, FlatcalError
from flatcal_core.event_model import CalEvent, RecurrenceRule, validate_event
from flatcal_core.event_store import EventStore
from flatcal_core.backup import BackupManager, default_backup_path
from flatcal_core.conflicts import find_conflicts
from flatcal_core.recurrence import expand, occurrences_between
from flatcal_core.reminders import due_reminders, describe_reminder
from flatcal_core.search import search_by_date, search_by_date_range, search_by_title
from flatcal_core.record_codec import format_timestamp
from flatcal_core import timezone_utils


def _timestamp(text: str) -> datetime:
    # May carry an offset; run() converts it once the configured zone is set
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a date/time: {text!r} (use YYYY-MM-DDTHH:MM)")


def _date(text: str) -> date:
    try:
        return date.fromisoformat(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a date: {text!r} (use YYYY-MM-DD)")


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="flatcal - calendar events in flat CSV files"
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        help="Path to configuration file (default: auto-detect)"
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        help="Directory holding the tables (overrides the configuration)"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug output"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_list = sub.add_parser("list", help="List stored events")
    p_list.add_argument("--expand", action="store_true", help="Show every occurrence")

    p_add = sub.add_parser("add", help="Add an event")
    p_add.add_argument("title")
    p_add.add_argument("start", type=_timestamp)
    p_add.add_argument("end", type=_timestamp)
    p_add.add_argument("--description", default="")
    p_add.add_argument("--location", default="")
    p_add.add_argument("--category", default="General")
    p_add.add_argument("--priority", default="MEDIUM")
    p_add.add_argument("--reminder", type=int, help="Minutes before start")
    p_add.add_argument("--repeat", choices=["daily", "weekly", "monthly"])
    p_add.add_argument("--occurrences", type=int, default=1)
    p_add.add_argument("--allow-conflict", action="store_true")

    p_delete = sub.add_parser("delete", help="Delete an event")
    p_delete.add_argument("event_id", type=int)

    p_between = sub.add_parser("occurrences", help="Occurrences in a time range")
    p_between.add_argument("start", type=_timestamp)
    p_between.add_argument("end", type=_timestamp)

    p_search = sub.add_parser("search", help="Find events by title or date")
    criteria = p_search.add_mutually_exclusive_group(required=True)
    criteria.add_argument("--title", help="Exact title")
    criteria.add_argument("--date", type=_date, help="Start date (YYYY-MM-DD)")
    criteria.add_argument("--range", nargs=2, type=_date, metavar=("FIRST", "LAST"),
                          help="Start date between FIRST and LAST, both included")
    p_search.add_argument("--expand", action="store_true", help="Search every occurrence")

    sub.add_parser("reminders", help="Reminders that are due now")

    p_backup = sub.add_parser("backup", help="Write a backup archive")
    p_backup.add_argument("path", nargs="?", type=Path)

    p_restore = sub.add_parser("restore", help="Restore a backup archive")
    p_restore.add_argument("path", type=Path)
    p_restore.add_argument("--overwrite", action="store_true",
                           help="Replace current events instead of merging")

    return parser.parse_args(argv)


def load_config(args) -> Config:
    """Explicit config paths must exist; otherwise fall back to defaults."""
    if args.config is not None:
        config = Config.load(args.config)
    elif Config.get_default_config_path().exists():
        config = Config.load()
    else:
        config = Config.defaults()
    if args.data_dir is not None:
        fallback = Config.defaults(args.data_dir)
        config.store = fallback.store
        config.backup = fallback.backup
    if args.debug:
        config.debug = True
    return config


def _format_event(event: CalEvent) -> str:
    line = f"[{event.id}] {format_timestamp(event.start)} -> {format_timestamp(event.end)}  {event.title}"
    if event.recurrence is not None:
        line += f"  ({event.recurrence.type_name} x{event.recurrence.occurrences})"
    if event.reminder is not None:
        line += f"  reminder {describe_reminder(event.reminder)}"
    return line


def run(args, config: Config) -> int:
    # Stored times are naive local times
    for name in ("start", "end"):
        if isinstance(getattr(args, name, None), datetime):
            setattr(args, name, timezone_utils.to_local_naive(getattr(args, name)))

    store = EventStore(config.store)
    store.load()

    if args.command == "list":
        events = store.get_all_events()
        if args.expand:
            events = [occ for e in events for occ in expand(e, number_titles=True)]
        for event in events:
            print(_format_event(event))
        if not events:
            print("No events")
        return 0

    if args.command == "add":
        recurrence = None
        if args.repeat:
            recurrence = RecurrenceRule(type=args.repeat, occurrences=args.occurrences)
        event = CalEvent(
            id=0,
            title=args.title,
            description=args.description,
            start=args.start,
            end=args.end,
            reminder=args.reminder,
            location=args.location,
            category=args.category,
            priority=args.priority,
            recurrence=recurrence,
        )
        problems = validate_event(event)
        if problems:
            print(f"Error: {'; '.join(problems)}")
            return 1
        clashes = find_conflicts(event, store.get_all_events(), expand=True)
        if clashes and not args.allow_conflict:
            print("Conflict detected, not adding:")
            for clash in clashes:
                print(f"  {_format_event(clash)}")
            return 1
        stored = store.add(event)
        print(f"Added: {_format_event(stored)}")
        return 0

    if args.command == "delete":
        if not store.delete(args.event_id):
            print(f"Event not found: {args.event_id}")
            return 1
        print(f"Deleted event {args.event_id}")
        return 0

    if args.command == "occurrences":
        for occ in occurrences_between(store.get_all_events(), args.start, args.end):
            print(_format_event(occ))
        return 0

    if args.command == "search":
        events = store.get_all_events()
        if args.title is not None:
            found = search_by_title(events, args.title, expand=args.expand)
        elif args.date is not None:
            found = search_by_date(events, args.date, expand=args.expand)
        else:
            found = search_by_date_range(events, *args.range, expand=args.expand)
        for event in found:
            print(_format_event(event))
        if not found:
            print("No matching events")
        return 0

    if args.command == "reminders":
        for due in due_reminders(store.get_all_events()):
            print(f"{format_timestamp(due.remind_at)}  {_format_event(due.event)}")
        return 0

    manager = BackupManager(config.store)
    if args.command == "backup":
        path = args.path or default_backup_path(config.backup.directory)
        print(f"Backup created at: {manager.create_backup(path)}")
        return 0

    if args.command == "restore":
        report = manager.restore_backup(args.path, args.overwrite, store)
        print(f"Restored {report.restored_count} events, skipped {report.skipped_count} lines")
        for old_id, new_id in report.remapped.items():
            print(f"  event {old_id} stored as {new_id}")
        return 0

    return 2


def main(argv: Optional[list] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = load_config(args)
    except FileNotFoundError as e:
        print(f"Error: {e}")
        print("\nExample configuration:")
        print("""
[General]
timezone = "Europe/Amsterdam"

[Storage]
data_dir = "~/.local/share/flatcal"

[Backup]
directory = "backups"
""")
        return 1
    except ConfigError as e:
        print(f"Error loading configuration: {e}")
        return 1

    timezone_utils.set_timezone(config.timezone)

    if config.debug:
        print(f"Loaded configuration from: {config.source_path or 'defaults'}")
        print(f"  Event table: {config.store.event_file}")
        print(f"  Backups: {config.backup.directory}")

    try:
        return run(args, config)
    except FlatcalError as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
