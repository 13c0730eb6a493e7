from __future__ import annotations

import json

import pytest

from workload import cli
from workload import settings as settings_module
from workload.calendar_client import GoogleCalendarClient
from workload.models import Bucket
from workload.settings import WorkloadSettings, save_settings
from workload.sheets_client import GoogleSheetsClient
from workload.store import LocalStateStorage, WorkloadStore
from workload.table_sync import TableSyncEngine


@pytest.fixture(autouse=True)
def _isolate(monkeypatch, tmp_path):
    monkeypatch.delenv(settings_module.SPREADSHEET_ENV_VAR, raising=False)
    monkeypatch.setattr(cli, "configure_logging", lambda **kwargs: None)


def _base_args(tmp_path):
    return ["--settings", str(tmp_path / "sync_settings.json"), "--state-dir", str(tmp_path / "state")]


def test_import_tickets_updates_local_store(tmp_path, capsys) -> None:
    export = tmp_path / "tickets.csv"
    export.write_text("Ticket,Status\n1,Closed\n2,Open\n3,Pending\n", encoding="utf-8")

    exit_code = cli.main(_base_args(tmp_path) + ["import-tickets", str(export)])

    assert exit_code == 0
    output = capsys.readouterr().out
    assert "Format   : TicketList" in output
    assert "Total    : 3" in output
    data = json.loads((tmp_path / "state" / "workload-data.json").read_text(encoding="utf-8"))
    assert data["tickets"]["sourceName"] == "tickets.csv"


def test_links_use_sheet_option(tmp_path, capsys) -> None:
    exit_code = cli.main(
        _base_args(tmp_path) + ["--sheet", "abc123", "links", "--base-url", "https://tracker.example.com/"]
    )

    assert exit_code == 0
    output = capsys.readouterr().out
    assert "https://docs.google.com/spreadsheets/d/abc123/edit" in output
    assert "https://tracker.example.com/?sheet=abc123" in output
    saved = json.loads((tmp_path / "sync_settings.json").read_text(encoding="utf-8"))
    assert saved["spreadsheet_id"] == "abc123"


def test_push_without_spreadsheet_fails_cleanly(tmp_path, capsys) -> None:
    exit_code = cli.main(_base_args(tmp_path) + ["push"])

    assert exit_code == 1
    assert "No spreadsheet configured" in capsys.readouterr().err


def _seed_store(tmp_path) -> None:
    store = WorkloadStore(LocalStateStorage(tmp_path / "state"))
    store.add_item(Bucket.PROJECTS, "Server move", id="projects-1")
    store.save()


def _load_store(tmp_path) -> WorkloadStore:
    store = WorkloadStore(LocalStateStorage(tmp_path / "state"))
    store.load()
    return store


def test_session_commands_mirror_to_calendar(tmp_path, monkeypatch, capsys, calendar_service) -> None:
    _seed_store(tmp_path)
    monkeypatch.setattr(cli, "_calendar", lambda settings: GoogleCalendarClient(service=calendar_service))
    base = _base_args(tmp_path)

    assert cli.main(base + ["add-session", "projects", "projects-1", "--date", "2024-05-01",
                            "--start", "09:00", "--end", "11:00"]) == 0
    session = _load_store(tmp_path).get_item(Bucket.PROJECTS, "projects-1").work_sessions[0]
    assert session.remote_event_id == "evt-1"

    assert cli.main(base + ["edit-session", "projects", "projects-1", session.id, "--end", "12:00"]) == 0
    assert calendar_service.events_by_id["evt-1"]["end"]["dateTime"] == "2024-05-01T12:00:00"

    capsys.readouterr()
    assert cli.main(base + ["events", "--item", "projects-1"]) == 0
    assert f"projects/projects-1/{session.id}" in capsys.readouterr().out

    assert cli.main(base + ["remove-session", "projects", "projects-1", session.id]) == 0
    assert _load_store(tmp_path).get_item(Bucket.PROJECTS, "projects-1").work_sessions == []
    assert calendar_service.events_by_id == {}


def test_add_session_rejects_bad_time(tmp_path, capsys) -> None:
    _seed_store(tmp_path)

    exit_code = cli.main(_base_args(tmp_path) + ["add-session", "projects", "projects-1", "--date", "2024-05-01",
                                                 "--start", "9am", "--end", "10:00", "--no-calendar"])

    assert exit_code == 1
    assert "Error:" in capsys.readouterr().err
    assert _load_store(tmp_path).get_item(Bucket.PROJECTS, "projects-1").work_sessions == []


def test_watch_pushes_once_when_auto_sync_is_off(tmp_path, monkeypatch, capsys, sheets_service) -> None:
    _seed_store(tmp_path)
    engine = TableSyncEngine(GoogleSheetsClient("sheet-1", service=sheets_service))
    monkeypatch.setattr(cli, "_engine", lambda settings: engine)

    assert cli.main(_base_args(tmp_path) + ["watch"]) == 0

    assert "pushing once" in capsys.readouterr().out
    assert sheets_service.data_rows("Main Projects")[0][0] == "Server move"
    assert _load_store(tmp_path).get_item(Bucket.PROJECTS, "projects-1").updated_at


def test_watch_uses_configured_interval(tmp_path, monkeypatch, capsys, sheets_service) -> None:
    _seed_store(tmp_path)
    save_settings(WorkloadSettings(auto_sync=True, sync_interval_seconds=5), tmp_path / "sync_settings.json")
    engine = TableSyncEngine(GoogleSheetsClient("sheet-1", service=sheets_service))
    monkeypatch.setattr(cli, "_engine", lambda settings: engine)

    def interrupt(seconds):
        raise KeyboardInterrupt

    monkeypatch.setattr(cli.time, "sleep", interrupt)

    assert cli.main(_base_args(tmp_path) + ["watch"]) == 0
    assert "Pushing every 15 seconds" in capsys.readouterr().out
