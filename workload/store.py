"""In-memory work-item store with JSON persistence under stable keys."""
from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from workload import app_paths
from workload.models import Bucket, TicketSummary, WorkItem, new_identifier

logger = logging.getLogger(__name__)

DATA_KEY = "workload-data"
OWNERS_KEY = "workload-owners"
PANEL_COLLAPSED_KEY = "workload-panel-collapsed"

StoreListener = Callable[[str, Dict[str, object]], None]


class StoreError(Exception):
    """Raised when a store operation refers to something that does not exist."""


class LocalStateStorage:
    """Key/value storage writing one JSON document per key.

    Reads of missing or corrupt documents return ``None``.
    """

    def __init__(self, directory: Optional[Path] = None) -> None:
        self._directory = directory or app_paths.STATE_DIR
        self._lock = threading.Lock()

    @property
    def directory(self) -> Path:
        return self._directory

    def _path_for(self, key: str) -> Path:
        return self._directory / f"{key}.json"

    def get(self, key: str) -> Any:
        path = self._path_for(key)
        with self._lock:
            if not path.exists():
                return None
            try:
                with path.open("r", encoding="utf-8") as handle:
                    return json.load(handle)
            except (OSError, json.JSONDecodeError) as exc:
                logger.warning("Ignoring unreadable local state %s: %s", path, exc)
                return None

    def set(self, key: str, value: Any) -> None:
        path = self._path_for(key)
        with self._lock:
            path.parent.mkdir(parents=True, exist_ok=True)
            temp_path = path.with_suffix(".tmp")
            with temp_path.open("w", encoding="utf-8") as handle:
                json.dump(value, handle, indent=2, ensure_ascii=False)
            temp_path.replace(path)

    def remove(self, key: str) -> None:
        with self._lock:
            try:
                self._path_for(key).unlink()
            except FileNotFoundError:
                pass


class WorkloadStore:
    """Owns the work items of every bucket, the owners list and the ticket summary."""

    def __init__(self, storage: Optional[LocalStateStorage] = None) -> None:
        self._storage = storage
        self.buckets: Dict[Bucket, List[WorkItem]] = {bucket: [] for bucket in Bucket}
        self.owners: List[str] = []
        self.tickets: Optional[TicketSummary] = None
        self.panel_collapsed = False
        self._listeners: List[StoreListener] = []

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    def subscribe(self, listener: StoreListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: StoreListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, event: str, **payload: object) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, dict(payload))
            except Exception:  # pragma: no cover - listener bugs must not break edits
                logger.exception("Store listener failed for %s", event)

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------
    def items(self, bucket: Bucket) -> List[WorkItem]:
        return self.buckets[Bucket.parse(bucket)]

    def get_item(self, bucket: Bucket, item_id: str) -> WorkItem:
        for item in self.items(bucket):
            if item.id == item_id:
                return item
        raise StoreError(f"No item {item_id!r} in {Bucket.parse(bucket).value}")

    def add_item(self, bucket: Bucket, name: str, **fields: Any) -> WorkItem:
        bucket = Bucket.parse(bucket)
        existing = {item.id for item in self.buckets[bucket]}
        item_id = fields.pop("id", None) or new_identifier(f"{bucket.value}-")
        while item_id in existing:
            item_id = new_identifier(f"{bucket.value}-")
        item = WorkItem(id=item_id, name=name, **fields)
        self.buckets[bucket].append(item)
        self._emit("item-added", bucket=bucket, item_id=item.id)
        return item

    def update_item(self, bucket: Bucket, item_id: str, **changes: Any) -> WorkItem:
        item = self.get_item(bucket, item_id)
        for key, value in changes.items():
            if key in {"id", "work_sessions", "updated_at"} or not hasattr(item, key):
                raise StoreError(f"Field {key!r} cannot be edited")
            setattr(item, key, value)
        item.__post_init__()
        self._emit("item-updated", bucket=Bucket.parse(bucket), item_id=item.id)
        return item

    def remove_item(self, bucket: Bucket, item_id: str) -> WorkItem:
        bucket = Bucket.parse(bucket)
        item = self.get_item(bucket, item_id)
        self.buckets[bucket].remove(item)
        self._emit("item-removed", bucket=bucket, item_id=item_id)
        return item

    def replace_bucket(self, bucket: Bucket, items: Iterable[WorkItem]) -> None:
        bucket = Bucket.parse(bucket)
        self.buckets[bucket] = list(items)
        self._emit("bucket-replaced", bucket=bucket)

    # ------------------------------------------------------------------
    # Owners and tickets
    # ------------------------------------------------------------------
    def add_owner(self, name: str) -> bool:
        owner = name.strip()
        if not owner or owner in self.owners:
            return False
        self.owners.append(owner)
        self._emit("owners-changed")
        return True

    def remove_owner(self, name: str) -> bool:
        if name not in self.owners:
            return False
        self.owners.remove(name)
        self._emit("owners-changed")
        return True

    def apply_ticket_summary(self, summary: TicketSummary) -> None:
        """Replace the ticket summary wholesale."""

        self.tickets = summary
        self._emit("tickets-replaced", source_format=summary.source_format.value)

    def set_panel_collapsed(self, collapsed: bool) -> None:
        self.panel_collapsed = bool(collapsed)
        if self._storage is not None:
            self._storage.set(PANEL_COLLAPSED_KEY, self.panel_collapsed)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            bucket.value: [item.to_dict() for item in items] for bucket, items in self.buckets.items()
        }
        payload["tickets"] = self.tickets.to_dict() if self.tickets is not None else None
        return payload

    def load_dict(self, payload: Mapping[str, Any]) -> None:
        for bucket in Bucket:
            entries = payload.get(bucket.value) or []
            items: List[WorkItem] = []
            for entry in entries:
                if not isinstance(entry, Mapping):
                    continue
                try:
                    items.append(WorkItem.from_dict(entry))
                except (KeyError, TypeError, ValueError) as exc:
                    logger.warning("Skipping unreadable %s item: %s", bucket.value, exc)
            self.buckets[bucket] = items
        tickets = payload.get("tickets")
        self.tickets = TicketSummary.from_dict(tickets) if isinstance(tickets, Mapping) else None

    def save(self) -> None:
        if self._storage is None:
            return
        self._storage.set(DATA_KEY, self.to_dict())
        self._storage.set(OWNERS_KEY, list(self.owners))

    def load(self) -> None:
        if self._storage is None:
            return
        data = self._storage.get(DATA_KEY)
        if isinstance(data, Mapping):
            self.load_dict(data)
        owners = self._storage.get(OWNERS_KEY)
        if isinstance(owners, list):
            self.owners = [str(owner) for owner in owners if str(owner).strip()]
        collapsed = self._storage.get(PANEL_COLLAPSED_KEY)
        self.panel_collapsed = bool(collapsed) if collapsed is not None else False


__all__ = [
    "DATA_KEY",
    "LocalStateStorage",
    "OWNERS_KEY",
    "PANEL_COLLAPSED_KEY",
    "StoreError",
    "WorkloadStore",
]
