"""Configuration helpers for the workload tracker sync."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import parse_qs, urlsplit

from workload import app_paths

logger = logging.getLogger(__name__)

SPREADSHEET_ENV_VAR = "WORKLOAD_SPREADSHEET_ID"
CREDENTIALS_ENV_VAR = "WORKLOAD_CREDENTIALS_PATH"
SHEET_QUERY_PARAMETER = "sheet"

DEFAULT_CALENDAR_ID = "primary"
DEFAULT_TIME_ZONE = "America/New_York"
DEFAULT_SYNC_INTERVAL = 30
MIN_SYNC_INTERVAL = 15
MAX_SYNC_INTERVAL = 600


class SettingsError(Exception):
    """Raised when the configuration is unusable for the requested action."""


def default_settings_path() -> Path:
    return app_paths.data_path("sync_settings.json")


def default_credentials_path() -> str:
    override = os.getenv(CREDENTIALS_ENV_VAR, "").strip()
    if override:
        return override
    return str(app_paths.credentials_path("credentials.json"))


@dataclass
class WorkloadSettings:
    spreadsheet_id: str = ""
    credential_path: str = ""
    calendar_id: str = DEFAULT_CALENDAR_ID
    time_zone: str = DEFAULT_TIME_ZONE
    sync_interval_seconds: int = DEFAULT_SYNC_INTERVAL
    auto_sync: bool = False

    @property
    def has_spreadsheet(self) -> bool:
        return bool(self.spreadsheet_id.strip())

    def require_spreadsheet(self) -> str:
        if not self.has_spreadsheet:
            raise SettingsError(
                "No spreadsheet configured. Pass --sheet, set "
                f"{SPREADSHEET_ENV_VAR} or save a spreadsheet id in the settings file."
            )
        return self.spreadsheet_id.strip()

    def to_json(self) -> Dict[str, object]:
        return asdict(self)


def _clamp_interval(value: object) -> int:
    try:
        return max(MIN_SYNC_INTERVAL, min(MAX_SYNC_INTERVAL, int(value)))
    except (TypeError, ValueError):
        return DEFAULT_SYNC_INTERVAL


def _read_settings_file(path: Path) -> Dict[str, object]:
    if not path.exists():
        return {}
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable settings file %s: %s", path, exc)
        return {}
    return data if isinstance(data, dict) else {}


def load_settings(path: Optional[Path] = None) -> WorkloadSettings:
    """Load settings from ``path``, applying environment overrides."""

    data = _read_settings_file(path or default_settings_path())
    settings = WorkloadSettings(
        spreadsheet_id=str(data.get("spreadsheet_id") or ""),
        credential_path=str(data.get("credential_path") or default_credentials_path()),
        calendar_id=str(data.get("calendar_id") or DEFAULT_CALENDAR_ID),
        time_zone=str(data.get("time_zone") or DEFAULT_TIME_ZONE),
        sync_interval_seconds=_clamp_interval(data.get("sync_interval_seconds", DEFAULT_SYNC_INTERVAL)),
        auto_sync=bool(data.get("auto_sync", False)),
    )
    env_sheet = os.getenv(SPREADSHEET_ENV_VAR, "").strip()
    if env_sheet:
        settings.spreadsheet_id = env_sheet
    return settings


def save_settings(settings: WorkloadSettings, path: Optional[Path] = None) -> Path:
    target = path or default_settings_path()
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as handle:
        json.dump(settings.to_json(), handle, indent=2)
    return target


def spreadsheet_id_from_query(value: str) -> Optional[str]:
    """Extract the ``sheet`` parameter from a URL or a bare query string."""

    text = (value or "").strip()
    if not text:
        return None
    query = urlsplit(text).query if "://" in text else text.lstrip("?")
    if "?" in query:
        query = query.split("?", 1)[1]
    values = parse_qs(query).get(SHEET_QUERY_PARAMETER)
    if not values:
        return None
    sheet_id = values[0].strip()
    return sheet_id or None


def resolve_spreadsheet_id(
    settings: WorkloadSettings,
    query: Optional[str] = None,
    *,
    path: Optional[Path] = None,
) -> str:
    """Return the spreadsheet id, preferring one supplied through ``query``.

    A query-supplied id is remembered in the settings file so later runs keep
    using the same workbook.
    """

    from_query = spreadsheet_id_from_query(query) if query else None
    if from_query and from_query != settings.spreadsheet_id:
        settings.spreadsheet_id = from_query
        save_settings(settings, path)
        logger.info("Using spreadsheet %s from query parameter", from_query)
    return settings.spreadsheet_id


__all__ = [
    "SettingsError",
    "WorkloadSettings",
    "load_settings",
    "resolve_spreadsheet_id",
    "save_settings",
    "spreadsheet_id_from_query",
]
