"""Conversion between :class:`WorkItem` objects and worksheet rows.

Every item table has the same eleven columns.  The last column carries the
item's work sessions as a JSON array so that a whole item fits on one row.
Reading is forgiving: rows written before the sessions column existed are
shorter, and cells that fail to parse fall back to safe defaults instead of
aborting a load.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, List, Optional, Sequence, Union

from workload.models import (
    Bucket,
    Priority,
    Status,
    WorkItem,
    WorkSession,
    clamp_progress,
    label_of,
    parse_priority,
    parse_status,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

ITEM_HEADERS: Sequence[str] = (
    "Name",
    "Owner",
    "Status",
    "Priority",
    "Start Date",
    "Due Date",
    "Progress",
    "Notes",
    "Created At",
    "Updated At",
    "Work Sessions",
)
ITEM_COLUMN_COUNT = len(ITEM_HEADERS)

NAME, OWNER, STATUS, PRIORITY, START_DATE, DUE_DATE, PROGRESS, NOTES, CREATED_AT, UPDATED_AT, SESSIONS = range(
    ITEM_COLUMN_COUNT
)


def _text(value: Optional[str]) -> str:
    return "" if value is None else str(value)


def _timestamp(now: Union[datetime, str, None]) -> str:
    if now is None:
        return utc_now_iso()
    if isinstance(now, datetime):
        return now.replace(microsecond=0).isoformat()
    return now


def encode_sessions(sessions: Sequence[WorkSession]) -> str:
    return json.dumps([session.to_dict() for session in sessions], ensure_ascii=False, separators=(",", ":"))


def decode_sessions(raw: Optional[str]) -> List[WorkSession]:
    """Parse the sessions cell, returning an empty list for anything malformed."""

    text = (raw or "").strip()
    if not text:
        return []
    try:
        payload = json.loads(text)
        if not isinstance(payload, list):
            raise ValueError("sessions cell does not hold a JSON array")
        return [WorkSession.from_dict(entry) for entry in payload]
    except (ValueError, TypeError, KeyError, AttributeError) as exc:
        logger.warning("Ignoring unreadable work sessions cell: %s", exc)
        return []


def encode_item(item: WorkItem, now: Union[datetime, str, None] = None) -> List[str]:
    """Return the worksheet row for ``item``; ``now`` becomes the Updated At cell."""

    progress = str(item.progress) if item.progress is not None else "0"
    return [
        _text(item.name),
        _text(item.owner),
        label_of(item.status),
        label_of(item.priority),
        _text(item.start_date),
        _text(item.due_date),
        progress,
        _text(item.notes),
        item.created_at or utc_now_iso(),
        _timestamp(now),
        encode_sessions(item.work_sessions),
    ]


def item_id_for_row(bucket: Bucket, index: int) -> str:
    return f"{bucket.value}-{index}"


def decode_row(bucket: Bucket, index: int, row: Sequence[Any]) -> WorkItem:
    """Rebuild a :class:`WorkItem` from the ``index``-th data row of a table."""

    cells = ["" if cell is None else str(cell) for cell in row]
    cells.extend([""] * (ITEM_COLUMN_COUNT - len(cells)))

    return WorkItem(
        id=item_id_for_row(bucket, index),
        name=cells[NAME],
        owner=cells[OWNER],
        status=parse_status(cells[STATUS], Status.NOT_STARTED),
        priority=parse_priority(cells[PRIORITY], Priority.MEDIUM),
        start_date=cells[START_DATE],
        due_date=cells[DUE_DATE],
        progress=clamp_progress(cells[PROGRESS]),
        notes=cells[NOTES],
        created_at=cells[CREATED_AT].strip() or utc_now_iso(),
        updated_at=cells[UPDATED_AT].strip() or None,
        work_sessions=decode_sessions(cells[SESSIONS]),
    )


__all__ = [
    "ITEM_COLUMN_COUNT",
    "ITEM_HEADERS",
    "decode_row",
    "decode_sessions",
    "encode_item",
    "encode_sessions",
    "item_id_for_row",
]
