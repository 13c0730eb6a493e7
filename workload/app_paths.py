"""Centralised helpers for managing Workload Tracker application directories."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)

_APP_ENV_VARS: Iterable[str] = ("LOCALAPPDATA", "APPDATA")
HOME_ENV_VAR = "WORKLOAD_HOME"


def _detect_base_directory() -> Path:
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        return Path(override).expanduser().resolve()
    for env_var in _APP_ENV_VARS:
        value = os.environ.get(env_var)
        if value:
            return Path(value).expanduser().resolve() / "WorkloadTracker"
    return Path.home().resolve() / ".workload-tracker"


APP_DIR: Path = _detect_base_directory()
STATE_DIR: Path = APP_DIR / "state"
LOG_DIR: Path = APP_DIR / "logs"
CREDENTIALS_DIR: Path = APP_DIR / "credentials"


def ensure_directory(path: Path) -> Path:
    """Ensure that ``path`` exists, returning the :class:`~pathlib.Path`."""

    path.mkdir(parents=True, exist_ok=True)
    return path


def ensure_app_structure() -> None:
    """Create the base directories required for application data."""

    for directory in (APP_DIR, STATE_DIR, LOG_DIR, CREDENTIALS_DIR):
        ensure_directory(directory)


def data_path(*parts: str) -> Path:
    """Return a path rooted inside :data:`APP_DIR`, creating parent directories."""

    ensure_app_structure()
    target = APP_DIR.joinpath(*parts)
    if target.parent and not target.parent.exists():
        target.parent.mkdir(parents=True, exist_ok=True)
    return target


def state_path(*parts: str) -> Path:
    return data_path("state", *parts)


def logs_path(*parts: str) -> Path:
    return data_path("logs", *parts)


def credentials_path(*parts: str) -> Path:
    return data_path("credentials", *parts)


__all__ = [
    "APP_DIR",
    "STATE_DIR",
    "LOG_DIR",
    "CREDENTIALS_DIR",
    "HOME_ENV_VAR",
    "credentials_path",
    "data_path",
    "ensure_app_structure",
    "ensure_directory",
    "logs_path",
    "state_path",
]
