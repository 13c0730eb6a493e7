"""Logging setup shared by the command line and the background sync."""
from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Optional

from workload import app_paths

logger = logging.getLogger(__name__)

LOG_FILE_NAME = "workload.log"
LEVEL_ENV_VAR = "WORKLOAD_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
CONSOLE_FORMAT = "%(levelname)s %(name)s: %(message)s"

_LOG_PATH: Optional[Path] = None


class _ConsoleHandler(logging.StreamHandler):
    """Marks the stderr handler so it is attached only once."""


def _resolve_level(level: Optional[int]) -> int:
    if level is not None:
        return level
    name = os.getenv(LEVEL_ENV_VAR, "").strip().upper()
    if not name:
        return logging.INFO
    value = logging.getLevelName(name)
    return value if isinstance(value, int) else logging.INFO


def _writes_to(root: logging.Logger, target: Path) -> bool:
    return any(
        isinstance(handler, logging.FileHandler) and handler.baseFilename == str(target)
        for handler in root.handlers
    )


def configure_logging(
    level: Optional[int] = None,
    *,
    log_path: Optional[Path] = None,
    console: bool = False,
) -> Path:
    """Send log records to ``workload.log`` and, on request, to stderr.

    ``level`` defaults to the ``WORKLOAD_LOG_LEVEL`` environment variable or
    ``INFO``.  The file handler is attached once per process; later calls
    only add the console handler when it is asked for and still missing.
    Returns the log file path.
    """

    global _LOG_PATH

    resolved = _resolve_level(level)
    root = logging.getLogger()
    root.setLevel(min(root.level or resolved, resolved))

    if _LOG_PATH is None:
        target = log_path or app_paths.logs_path(LOG_FILE_NAME)
        target.parent.mkdir(parents=True, exist_ok=True)
        if not _writes_to(root, target):
            file_handler = logging.FileHandler(target, encoding="utf-8")
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            root.addHandler(file_handler)
        _LOG_PATH = target
        logger.debug("Writing log records to %s", target)

    if console and not any(isinstance(handler, _ConsoleHandler) for handler in root.handlers):
        console_handler = _ConsoleHandler(sys.stderr)
        console_handler.setLevel(resolved)
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        root.addHandler(console_handler)

    return _LOG_PATH


def get_log_path() -> Path:
    if _LOG_PATH is None:
        return configure_logging()
    return _LOG_PATH
