"""Background controller that pushes the store to the workbook periodically."""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, Optional

from workload.settings import DEFAULT_SYNC_INTERVAL, MIN_SYNC_INTERVAL
from workload.sheets_client import SheetsClientError
from workload.store import WorkloadStore
from workload.table_sync import SyncReport, TableSyncEngine

logger = logging.getLogger(__name__)

StatusPayload = Dict[str, object]
StatusCallback = Callable[[str, StatusPayload], None]


class AutoSyncController:
    """Run :meth:`TableSyncEngine.sync_store` on a daemon thread."""

    def __init__(
        self,
        engine: TableSyncEngine,
        store: WorkloadStore,
        *,
        interval_seconds: int = DEFAULT_SYNC_INTERVAL,
        status_callback: Optional[StatusCallback] = None,
    ) -> None:
        self._engine = engine
        self._store = store
        self._interval = max(MIN_SYNC_INTERVAL, interval_seconds)
        self._status_callback = status_callback
        self._stop_event = threading.Event()
        self._sync_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self.last_report: Optional[SyncReport] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="auto-sync", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=2)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def interval_seconds(self) -> int:
        return self._interval

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------
    def sync_now(self) -> Optional[SyncReport]:
        """Push immediately unless a push is already in flight."""

        if not self._engine.configured:
            self._notify_status("disabled", {"reason": "settings"})
            return None
        if not self._sync_lock.acquire(blocking=False):
            logger.debug("Skipping sync; previous push still running")
            return None
        try:
            self._notify_status("syncing", {})
            try:
                report = self._engine.sync_store(self._store)
            except SheetsClientError as exc:
                logger.error("Auto sync failed: %s", exc)
                self._notify_status("error", {"message": str(exc)})
                return None
            self.last_report = report
            if report.ok:
                self._notify_status("synced", {"synced": list(report.synced)})
            else:
                self._notify_status("error", {"failures": dict(report.failures)})
            return report
        finally:
            self._sync_lock.release()

    def _run(self) -> None:
        while not self._stop_event.is_set():
            start = time.monotonic()
            try:
                self.sync_now()
            except Exception:  # pragma: no cover - keeps the loop alive
                logger.exception("Auto sync tick failed")
                self._notify_status("error", {"message": "unexpected failure"})
            elapsed = time.monotonic() - start
            self._stop_event.wait(max(0.0, self._interval - elapsed))

    def _notify_status(self, state: str, payload: StatusPayload) -> None:
        if self._status_callback is None:
            return
        try:
            self._status_callback(state, payload)
        except Exception:  # pragma: no cover - UI callback guard
            logger.debug("Status callback failed", exc_info=True)


__all__ = ["AutoSyncController"]
