"""Command line helper for pushing and pulling the workload workbook."""

from __future__ import annotations

import argparse
import sys
import time
from datetime import date
from pathlib import Path
from typing import Optional

from workload.auto_sync import AutoSyncController
from workload.calendar_client import CalendarError, GoogleCalendarClient
from workload.logging_config import configure_logging
from workload.models import Bucket
from workload.session_links import SessionLinkManager, SessionNotFoundError
from workload.settings import SettingsError, WorkloadSettings, load_settings, resolve_spreadsheet_id
from workload.sheets_client import (
    GoogleSheetsClient,
    SheetsClientError,
    app_share_link,
    build_drive_service,
    build_sheets_service,
    create_spreadsheet,
    load_google_credentials,
    share_spreadsheet,
    shareable_link,
)
from workload.store import LocalStateStorage, StoreError, WorkloadStore
from workload.table_sync import TableSyncEngine
from workload.ticket_import import TicketImportError, classify_ticket_file


def _settings(args: argparse.Namespace) -> WorkloadSettings:
    path = Path(args.settings) if args.settings else None
    settings = load_settings(path)
    if args.sheet:
        query = args.sheet if "=" in args.sheet else f"sheet={args.sheet}"
        resolve_spreadsheet_id(settings, query, path=path)
    return settings


def _store(args: argparse.Namespace) -> WorkloadStore:
    storage = LocalStateStorage(Path(args.state_dir)) if args.state_dir else LocalStateStorage()
    store = WorkloadStore(storage)
    store.load()
    return store


def _engine(settings: WorkloadSettings) -> TableSyncEngine:
    client = GoogleSheetsClient.from_credential_file(
        settings.require_spreadsheet(), Path(settings.credential_path)
    )
    return TableSyncEngine(client)


def command_push(args: argparse.Namespace) -> int:
    try:
        engine = _engine(_settings(args))
        store = _store(args)
        report = engine.sync_store(store)
    except (SettingsError, SheetsClientError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    store.save()
    for name in report.synced:
        print(f"Pushed {name}")
    for name, message in report.failures.items():
        print(f"Error: {name}: {message}", file=sys.stderr)
    return 0 if report.ok else 1


def command_pull(args: argparse.Namespace) -> int:
    try:
        engine = _engine(_settings(args))
        store = _store(args)
        engine.load_store(store)
    except (SettingsError, SheetsClientError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    store.save()
    for bucket, items in store.buckets.items():
        print(f"{bucket.table_title}: {len(items)} items")
    return 0


def command_import_tickets(args: argparse.Namespace) -> int:
    store = _store(args)
    try:
        summary = classify_ticket_file(args.path, store.tickets)
    except TicketImportError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    store.apply_ticket_summary(summary)
    store.save()
    print(f"Format   : {summary.source_format.value}")
    print(f"Total    : {summary.total}")
    print(f"Completed: {summary.completed}")
    print(f"Open     : {summary.open}")
    print(f"Pending  : {summary.pending}")

    if args.push:
        try:
            _engine(_settings(args)).sync_tickets(summary)
        except (SettingsError, SheetsClientError) as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
        print("Ticket summary pushed.")
    return 0


def command_init(args: argparse.Namespace) -> int:
    settings = _settings(args)
    try:
        if settings.has_spreadsheet:
            created = _engine(settings).ensure_tables()
            if created:
                print(f"Created worksheets: {', '.join(created)}")
            print("Header rows written.")
        else:
            credentials = load_google_credentials(Path(settings.credential_path))
            spreadsheet_id = create_spreadsheet(
                build_sheets_service(credentials),
                args.title,
                TableSyncEngine(None).table_headers(),
                time_zone=settings.time_zone,
            )
            resolve_spreadsheet_id(settings, f"sheet={spreadsheet_id}", path=Path(args.settings) if args.settings else None)
            print(f"Created spreadsheet {spreadsheet_id}")
    except (SettingsError, SheetsClientError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    print(shareable_link(settings.spreadsheet_id))
    return 0


def command_links(args: argparse.Namespace) -> int:
    settings = _settings(args)
    if not settings.has_spreadsheet:
        print("Error: no spreadsheet configured", file=sys.stderr)
        return 1
    print(f"Spreadsheet: {shareable_link(settings.spreadsheet_id)}")
    if args.base_url:
        print(f"App link   : {app_share_link(args.base_url, settings.spreadsheet_id)}")
    return 0


def command_share(args: argparse.Namespace) -> int:
    settings = _settings(args)
    try:
        spreadsheet_id = settings.require_spreadsheet()
        credentials = load_google_credentials(Path(settings.credential_path))
        share_spreadsheet(build_drive_service(credentials), spreadsheet_id, args.email, args.role)
    except (SettingsError, SheetsClientError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    print(f"Shared with {args.email} as {args.role}")
    return 0


def _calendar(settings: WorkloadSettings) -> GoogleCalendarClient:
    return GoogleCalendarClient.from_credential_file(
        Path(settings.credential_path),
        calendar_id=settings.calendar_id,
        time_zone=settings.time_zone,
    )


def _session_manager(args: argparse.Namespace, settings: WorkloadSettings) -> SessionLinkManager:
    if args.no_calendar:
        return SessionLinkManager()
    return SessionLinkManager(_calendar(settings))


def command_watch(args: argparse.Namespace) -> int:
    try:
        settings = _settings(args)
        engine = _engine(settings)
    except (SettingsError, SheetsClientError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    store = _store(args)

    def on_status(state: str, payload: dict) -> None:
        if state == "synced":
            store.save()
            print(f"Pushed {', '.join(payload.get('synced', []))}")
        elif state == "error":
            print(f"Error: {payload.get('failures') or payload.get('message')}", file=sys.stderr)

    controller = AutoSyncController(
        engine, store, interval_seconds=settings.sync_interval_seconds, status_callback=on_status
    )
    if args.once or not settings.auto_sync:
        if not args.once:
            print("Auto sync is disabled in the settings; pushing once.")
        report = controller.sync_now()
        return 0 if report is not None and report.ok else 1

    print(f"Pushing every {controller.interval_seconds} seconds. Press Ctrl+C to stop.")
    controller.start()
    try:
        while controller.running:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        controller.stop()
    return 0


def command_add_session(args: argparse.Namespace) -> int:
    store = _store(args)
    try:
        item = store.get_item(args.bucket, args.item_id)
        manager = _session_manager(args, _settings(args))
        session = manager.add_session(
            args.bucket,
            item,
            date=date.fromisoformat(args.date),
            start_time=args.start,
            end_time=args.end,
            notes=args.notes,
        )
    except (StoreError, SettingsError, CalendarError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    store.save()
    linked = f" (event {session.remote_event_id})" if session.is_synced else ""
    print(f"Added session {session.id}{linked}")
    return 0


def command_edit_session(args: argparse.Namespace) -> int:
    changes = {
        key: value
        for key, value in (
            ("date", args.date),
            ("start_time", args.start),
            ("end_time", args.end),
            ("notes", args.notes),
        )
        if value is not None
    }
    if not changes:
        print("Error: nothing to change", file=sys.stderr)
        return 1
    store = _store(args)
    try:
        item = store.get_item(args.bucket, args.item_id)
        manager = _session_manager(args, _settings(args))
        session = manager.update_session(args.bucket, item, args.session_id, **changes)
    except (StoreError, SettingsError, CalendarError, SessionNotFoundError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    store.save()
    print(f"Updated session {session.id}")
    return 0


def command_remove_session(args: argparse.Namespace) -> int:
    store = _store(args)
    try:
        item = store.get_item(args.bucket, args.item_id)
        manager = _session_manager(args, _settings(args))
        manager.delete_session(args.bucket, item, args.session_id)
    except (StoreError, SettingsError, CalendarError, SessionNotFoundError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    store.save()
    print(f"Removed session {args.session_id}")
    return 0


def command_events(args: argparse.Namespace) -> int:
    try:
        events = _calendar(_settings(args)).list_events(item_id=args.item)
    except (SettingsError, CalendarError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    for event in events:
        link = event.link
        print(f"{event.event_id}\t{event.start or ''}\t{link.bucket}/{link.item_id}/{link.session_id}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Workload tracker spreadsheet sync")
    parser.add_argument("--sheet", help="Spreadsheet id or a '?sheet=<id>' query string")
    parser.add_argument("--settings", help="Path to the sync settings JSON file")
    parser.add_argument("--state-dir", help="Directory holding the local store")
    parser.add_argument("--verbose", action="store_true", help="Also print log records to stderr")
    subparsers = parser.add_subparsers(dest="command", required=True)

    push_parser = subparsers.add_parser("push", help="Overwrite the workbook tables with the local store")
    push_parser.set_defaults(func=command_push)

    pull_parser = subparsers.add_parser("pull", help="Replace the local store with the workbook tables")
    pull_parser.set_defaults(func=command_pull)

    import_parser = subparsers.add_parser("import-tickets", help="Summarise a ticket export CSV")
    import_parser.add_argument("path", help="CSV file exported from the help desk")
    import_parser.add_argument("--push", action="store_true", help="Push the new summary to the workbook")
    import_parser.set_defaults(func=command_import_tickets)

    init_parser = subparsers.add_parser("init", help="Create the workbook or its missing worksheets")
    init_parser.add_argument("--title", default="IT Workload Tracker", help="Title for a new workbook")
    init_parser.set_defaults(func=command_init)

    links_parser = subparsers.add_parser("links", help="Print the spreadsheet and app links")
    links_parser.add_argument("--base-url", help="Address the web app is served from")
    links_parser.set_defaults(func=command_links)

    share_parser = subparsers.add_parser("share", help="Share the workbook with a user")
    share_parser.add_argument("email")
    share_parser.add_argument("--role", choices=("reader", "writer", "commenter"), default="writer")
    share_parser.set_defaults(func=command_share)

    watch_parser = subparsers.add_parser("watch", help="Push the local store on the configured interval")
    watch_parser.add_argument("--once", action="store_true", help="Push a single time and exit")
    watch_parser.set_defaults(func=command_watch)

    buckets = [bucket.value for bucket in Bucket]

    add_session_parser = subparsers.add_parser("add-session", help="Schedule a work session on an item")
    add_session_parser.add_argument("bucket", choices=buckets)
    add_session_parser.add_argument("item_id")
    add_session_parser.add_argument("--date", required=True, help="Session date as YYYY-MM-DD")
    add_session_parser.add_argument("--start", required=True, help="Start time as HH:MM")
    add_session_parser.add_argument("--end", required=True, help="End time as HH:MM")
    add_session_parser.add_argument("--notes")
    add_session_parser.add_argument("--no-calendar", action="store_true", help="Keep the session local only")
    add_session_parser.set_defaults(func=command_add_session)

    edit_session_parser = subparsers.add_parser("edit-session", help="Reschedule or annotate a work session")
    edit_session_parser.add_argument("bucket", choices=buckets)
    edit_session_parser.add_argument("item_id")
    edit_session_parser.add_argument("session_id")
    edit_session_parser.add_argument("--date")
    edit_session_parser.add_argument("--start")
    edit_session_parser.add_argument("--end")
    edit_session_parser.add_argument("--notes")
    edit_session_parser.add_argument("--no-calendar", action="store_true", help="Skip the calendar update")
    edit_session_parser.set_defaults(func=command_edit_session)

    remove_session_parser = subparsers.add_parser("remove-session", help="Delete a work session")
    remove_session_parser.add_argument("bucket", choices=buckets)
    remove_session_parser.add_argument("item_id")
    remove_session_parser.add_argument("session_id")
    remove_session_parser.add_argument("--no-calendar", action="store_true", help="Leave the calendar event alone")
    remove_session_parser.set_defaults(func=command_remove_session)

    events_parser = subparsers.add_parser("events", help="List calendar events linked to work sessions")
    events_parser.add_argument("--item", help="Only events for this item id")
    events_parser.set_defaults(func=command_events)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(console=args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
