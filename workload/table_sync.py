"""Clear-then-write synchronisation between the store and the workbook tables.

Each bucket owns one worksheet.  A push erases the whole data region below
the header and rewrites it from the local list, so the local store is the
single source of truth and no row identity has to be reconciled.  The price
is that edits made directly in the sheet are lost on the next push, and a
failure between the clear and the write leaves the table empty until the
next successful push.  Push failures are reported to the caller and never
retried here.

Buckets are pushed concurrently, one worker per bucket; within a bucket the
clear always completes before the write is issued.
"""
from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from workload.models import Bucket, SourceFormat, TicketBreakdown, TicketSummary, WorkItem, utc_now_iso
from workload.row_codec import ITEM_COLUMN_COUNT, ITEM_HEADERS, decode_row, encode_item
from workload.sheets_client import GoogleSheetsClient, SheetsClientError, WorksheetNotFoundError

logger = logging.getLogger(__name__)

TICKETS_TABLE = "Tickets Summary"
TICKET_HEADERS: Sequence[str] = ("Metric", "Value", "Last Updated", "Source File", "Import Type", "Breakdown")
TICKET_COLUMN_COUNT = len(TICKET_HEADERS)

METRIC_TOTAL = "Total Submitted"
METRIC_COMPLETED = "Completed"
METRIC_OPEN = "Open"
METRIC_PENDING = "Pending"
METRIC_CLIENT_RESOLVED = "Client Tickets Resolved"
METRIC_EMPLOYEE_RESOLVED = "Employee Tickets Resolved"

TICKETS_KEY = "tickets"

Clock = Callable[[], str]


class TableSyncError(Exception):
    """Raised when a push cannot be attempted at all."""


class NotConfiguredError(TableSyncError):
    """Raised when no spreadsheet is configured for a push."""


@dataclass
class SyncReport:
    synced: List[str] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures


def _int_cell(value: str) -> int:
    try:
        return int(float(str(value).strip() or 0))
    except (ValueError, OverflowError):
        return 0


class TableSyncEngine:
    """Push and pull bucket tables and the ticket summary table."""

    def __init__(self, client: Optional[GoogleSheetsClient], *, clock: Optional[Clock] = None) -> None:
        self._client = client
        self._clock = clock or utc_now_iso

    @property
    def configured(self) -> bool:
        return self._client is not None

    def _require_client(self) -> GoogleSheetsClient:
        if self._client is None:
            raise NotConfiguredError("No spreadsheet configured")
        return self._client

    # ------------------------------------------------------------------
    # Work items
    # ------------------------------------------------------------------
    def sync(self, bucket: Bucket, items: Sequence[WorkItem]) -> None:
        """Overwrite the bucket's table with ``items`` in order."""

        client = self._require_client()
        bucket = Bucket.parse(bucket)
        title = bucket.table_title
        stamp = self._clock()
        rows = [encode_item(item, stamp) for item in items]

        client.clear_rows(title, columns=ITEM_COLUMN_COUNT)
        if rows:
            try:
                client.write_rows(title, rows, columns=ITEM_COLUMN_COUNT)
            except SheetsClientError:
                logger.error("Write to %s failed after clear; the table is empty until the next push", title)
                raise
        for item in items:
            item.updated_at = stamp
        logger.info("Pushed %d %s items to %s", len(rows), bucket.value, title)

    def load(self, bucket: Bucket) -> List[WorkItem]:
        """Return the bucket's items in row order; an absent table yields ``[]``."""

        bucket = Bucket.parse(bucket)
        if self._client is None:
            return []
        try:
            rows = self._client.read_rows(bucket.table_title, columns=ITEM_COLUMN_COUNT)
        except WorksheetNotFoundError as exc:
            logger.info("Table %s is not available: %s", bucket.table_title, exc)
            return []
        items = [decode_row(bucket, index, row) for index, row in enumerate(rows)]
        logger.info("Loaded %d %s items from %s", len(items), bucket.value, bucket.table_title)
        return items

    def sync_all(self, items_by_bucket: Mapping[Bucket, Sequence[WorkItem]]) -> SyncReport:
        """Push every bucket concurrently and report per-bucket outcomes."""

        self._require_client()
        report = SyncReport()
        if not items_by_bucket:
            return report
        with ThreadPoolExecutor(max_workers=len(items_by_bucket), thread_name_prefix="table-sync") as pool:
            futures = {
                Bucket.parse(bucket): pool.submit(self.sync, bucket, list(items))
                for bucket, items in items_by_bucket.items()
            }
            for bucket, future in futures.items():
                try:
                    future.result()
                except SheetsClientError as exc:
                    logger.error("Push of %s failed: %s", bucket.value, exc)
                    report.failures[bucket.value] = str(exc)
                else:
                    report.synced.append(bucket.value)
        return report

    # ------------------------------------------------------------------
    # Ticket summary
    # ------------------------------------------------------------------
    def ticket_rows(self, summary: TicketSummary) -> List[List[str]]:
        stamp = summary.last_imported_at or ""
        breakdown = json.dumps(
            [{"label": entry.label, "values": entry.values} for entry in summary.breakdown],
            ensure_ascii=False,
            separators=(",", ":"),
        )
        rows = [
            [METRIC_TOTAL, str(summary.total), stamp, summary.source_name or "", summary.source_format.value, breakdown],
            [METRIC_COMPLETED, str(summary.completed), stamp, "", "", ""],
            [METRIC_OPEN, str(summary.open), stamp, "", "", ""],
            [METRIC_PENDING, str(summary.pending), stamp, "", "", ""],
        ]
        if summary.client_resolved is not None:
            rows.append([METRIC_CLIENT_RESOLVED, str(summary.client_resolved), stamp, "", "", ""])
        if summary.employee_resolved is not None:
            rows.append([METRIC_EMPLOYEE_RESOLVED, str(summary.employee_resolved), stamp, "", "", ""])
        return rows

    def sync_tickets(self, summary: TicketSummary) -> None:
        client = self._require_client()
        rows = self.ticket_rows(summary)
        client.clear_rows(TICKETS_TABLE, columns=TICKET_COLUMN_COUNT)
        client.write_rows(TICKETS_TABLE, rows, columns=TICKET_COLUMN_COUNT)
        logger.info("Pushed ticket summary (%d metrics)", len(rows))

    def load_tickets(self) -> Optional[TicketSummary]:
        if self._client is None:
            return None
        try:
            rows = self._client.read_rows(TICKETS_TABLE, columns=TICKET_COLUMN_COUNT)
        except WorksheetNotFoundError as exc:
            logger.info("Table %s is not available: %s", TICKETS_TABLE, exc)
            return None
        if not rows:
            return None

        summary = TicketSummary()
        for raw in rows:
            row = list(raw) + [""] * (TICKET_COLUMN_COUNT - len(raw))
            metric, value = row[0].strip(), _int_cell(row[1])
            if metric == METRIC_TOTAL:
                summary.total = value
                summary.last_imported_at = row[2] or None
                summary.source_name = row[3] or None
                try:
                    summary.source_format = SourceFormat(row[4].strip() or SourceFormat.UNKNOWN.value)
                except ValueError:
                    summary.source_format = SourceFormat.UNKNOWN
                summary.breakdown = _decode_breakdown(row[5])
            elif metric == METRIC_COMPLETED:
                summary.completed = value
            elif metric == METRIC_OPEN:
                summary.open = value
            elif metric == METRIC_PENDING:
                summary.pending = value
            elif metric == METRIC_CLIENT_RESOLVED:
                summary.client_resolved = value
            elif metric == METRIC_EMPLOYEE_RESOLVED:
                summary.employee_resolved = value
        if not summary.total:
            logger.info("Table %s holds no submitted tickets", TICKETS_TABLE)
            return None
        return summary

    # ------------------------------------------------------------------
    # Workbook helpers
    # ------------------------------------------------------------------
    def table_headers(self) -> Dict[str, Sequence[str]]:
        tables: Dict[str, Sequence[str]] = {bucket.table_title: ITEM_HEADERS for bucket in Bucket}
        tables[TICKETS_TABLE] = TICKET_HEADERS
        return tables

    def ensure_tables(self) -> List[str]:
        """Create missing worksheets and (re)write every header row."""

        client = self._require_client()
        tables = self.table_headers()
        created = client.ensure_worksheets(list(tables))
        for title, headers in tables.items():
            client.write_header(title, headers)
        return created

    def sync_store(self, store) -> SyncReport:
        """Push every bucket of ``store`` and its ticket summary."""

        report = self.sync_all(store.buckets)
        if store.tickets is not None:
            try:
                self.sync_tickets(store.tickets)
            except SheetsClientError as exc:
                logger.error("Push of ticket summary failed: %s", exc)
                report.failures[TICKETS_KEY] = str(exc)
            else:
                report.synced.append(TICKETS_KEY)
        return report

    def load_store(self, store) -> None:
        """Replace the contents of ``store`` with the remote tables."""

        loaded = {bucket: self.load(bucket) for bucket in Bucket}
        for bucket, items in loaded.items():
            store.replace_bucket(bucket, items)
        tickets = self.load_tickets()
        if tickets is not None:
            store.apply_ticket_summary(tickets)


def _decode_breakdown(raw: str) -> List[TicketBreakdown]:
    text = (raw or "").strip()
    if not text:
        return []
    try:
        payload = json.loads(text)
        return [
            TicketBreakdown(label=str(entry.get("label") or "Group"), values=dict(entry.get("values") or {}))
            for entry in payload
        ]
    except (ValueError, TypeError, AttributeError) as exc:
        logger.warning("Ignoring unreadable ticket breakdown: %s", exc)
        return []


__all__ = [
    "NotConfiguredError",
    "SyncReport",
    "TICKETS_TABLE",
    "TICKET_HEADERS",
    "TableSyncEngine",
    "TableSyncError",
]
