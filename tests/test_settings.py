from __future__ import annotations

import json

import pytest

from workload import settings as settings_module
from workload.settings import (
    SettingsError,
    WorkloadSettings,
    load_settings,
    resolve_spreadsheet_id,
    save_settings,
    spreadsheet_id_from_query,
)


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch):
    monkeypatch.delenv(settings_module.SPREADSHEET_ENV_VAR, raising=False)
    monkeypatch.delenv(settings_module.CREDENTIALS_ENV_VAR, raising=False)


def test_missing_file_yields_defaults(tmp_path) -> None:
    settings = load_settings(tmp_path / "sync_settings.json")

    assert settings.spreadsheet_id == ""
    assert settings.calendar_id == "primary"
    assert settings.sync_interval_seconds == 30
    assert not settings.has_spreadsheet
    with pytest.raises(SettingsError):
        settings.require_spreadsheet()


@pytest.mark.parametrize("raw, expected", [(5, 15), (45, 45), (9000, 600), ("soon", 30)])
def test_sync_interval_is_clamped(tmp_path, raw, expected) -> None:
    path = tmp_path / "sync_settings.json"
    path.write_text(json.dumps({"sync_interval_seconds": raw}), encoding="utf-8")

    assert load_settings(path).sync_interval_seconds == expected


def test_environment_overrides_file(tmp_path, monkeypatch) -> None:
    path = save_settings(WorkloadSettings(spreadsheet_id="from-file"), tmp_path / "sync_settings.json")
    monkeypatch.setenv(settings_module.SPREADSHEET_ENV_VAR, "from-env")
    monkeypatch.setenv(settings_module.CREDENTIALS_ENV_VAR, "/secrets/sa.json")

    settings = load_settings(path)

    assert settings.spreadsheet_id == "from-env"
    assert settings.credential_path == "/secrets/sa.json"


def test_unreadable_file_is_ignored(tmp_path) -> None:
    path = tmp_path / "sync_settings.json"
    path.write_text("[1, 2", encoding="utf-8")

    assert load_settings(path).spreadsheet_id == ""


@pytest.mark.parametrize(
    "value, expected",
    [
        ("sheet=abc123", "abc123"),
        ("?sheet=abc123&tab=profiles", "abc123"),
        ("https://tracker.example.com/?sheet=xyz", "xyz"),
        ("#/board?sheet=hash-id", "hash-id"),
        ("tab=profiles", None),
        ("sheet=", None),
        ("", None),
    ],
)
def test_spreadsheet_id_from_query(value, expected) -> None:
    assert spreadsheet_id_from_query(value) == expected


def test_query_supplied_id_is_remembered(tmp_path) -> None:
    path = tmp_path / "sync_settings.json"
    settings = load_settings(path)

    assert resolve_spreadsheet_id(settings, "?sheet=shared-id", path=path) == "shared-id"
    assert load_settings(path).spreadsheet_id == "shared-id"


def test_without_query_the_saved_id_is_used(tmp_path) -> None:
    path = save_settings(WorkloadSettings(spreadsheet_id="saved"), tmp_path / "sync_settings.json")

    assert resolve_spreadsheet_id(load_settings(path), None, path=path) == "saved"
