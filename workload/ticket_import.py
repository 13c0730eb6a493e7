"""Ticket export import helpers.

Help desk exports arrive in two shapes.  A *ticket list* carries one row per
ticket with a status column, while a *group summary* carries one row per
support group with pre-aggregated counters.  :func:`classify_ticket_csv`
detects the shape from the header row and reduces the file to a single
:class:`~workload.models.TicketSummary`.  Anything else degrades to a row
count so that an unexpected export never aborts an import.
"""

from __future__ import annotations

import csv
import io
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from workload.models import SourceFormat, TicketBreakdown, TicketSummary, utc_now_iso

logger = logging.getLogger(__name__)

STATUS_HEADERS = ("status", "ticket status", "ticket_status")
GROUP_HEADER = "group name"
GROUP_COUNT_HEADERS = ("employee tickets", "client tickets", "internal tickets")
CLIENT_RESOLVED_HEADER = "client tickets resolved"
EMPLOYEE_RESOLVED_HEADER = "employee tickets resolved"
DEFAULT_GROUP_LABEL = "Group"

COMPLETED_CODES = {4, 5}
PENDING_CODES = {3}
OPEN_CODES = {2}
COMPLETED_WORDS = ("resolved", "closed", "complete")
PENDING_WORDS = ("pending", "waiting")
OPEN_WORDS = ("open",)

COMPLETED = "completed"
PENDING = "pending"
OPEN = "open"


class TicketImportError(Exception):
    """Raised when a ticket export cannot be read."""


def _read_rows(text: str) -> List[List[str]]:
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")), delimiter=",", quotechar='"')
    return [row for row in reader if any(cell.strip() for cell in row)]


def _normalise_header(value: str) -> str:
    return value.strip().lower()


def parse_number(value: Optional[str]) -> float:
    """Parse ``value`` as a number, stripping thousands separators.

    Unparseable input yields ``0``.
    """

    if value is None:
        return 0.0
    text = value.strip().replace(",", "")
    if not text:
        return 0.0
    try:
        return float(text)
    except ValueError:
        return 0.0


def classify_status(value: str) -> str:
    """Return ``completed``, ``pending`` or ``open`` for a status cell."""

    text = (value or "").strip()
    try:
        code = float(text)
    except ValueError:
        code = None
    if code is not None:
        if code in COMPLETED_CODES:
            return COMPLETED
        if code in PENDING_CODES:
            return PENDING
        if code in OPEN_CODES:
            return OPEN
        return OPEN

    lowered = text.lower()
    if any(word in lowered for word in COMPLETED_WORDS):
        return COMPLETED
    if any(word in lowered for word in PENDING_WORDS):
        return PENDING
    if any(word in lowered for word in OPEN_WORDS):
        return OPEN
    return OPEN


def detect_format(headers: Sequence[str]) -> SourceFormat:
    normalised = {_normalise_header(header) for header in headers}
    if any(name in normalised for name in STATUS_HEADERS):
        return SourceFormat.TICKET_LIST
    if GROUP_HEADER in normalised and any(name in normalised for name in GROUP_COUNT_HEADERS):
        return SourceFormat.GROUP_SUMMARY
    return SourceFormat.UNKNOWN


def _cell(row: Sequence[str], index: int) -> str:
    return row[index] if index < len(row) else ""


def _reduce_ticket_list(
    headers: List[str], rows: List[List[str]], previous: Optional[TicketSummary]
) -> TicketSummary:
    status_index = next(index for index, header in enumerate(headers) if header in STATUS_HEADERS)
    counts: Dict[str, int] = {COMPLETED: 0, PENDING: 0, OPEN: 0}
    for row in rows:
        counts[classify_status(_cell(row, status_index))] += 1

    total = len(rows)
    if previous is not None and previous.source_format is SourceFormat.GROUP_SUMMARY:
        # Group exports carry the authoritative submitted total.
        total = previous.total

    return TicketSummary(
        total=total,
        completed=counts[COMPLETED],
        open=counts[OPEN],
        pending=counts[PENDING],
        last_imported_at=utc_now_iso(),
        source_format=SourceFormat.TICKET_LIST,
    )


def _reduce_group_summary(headers: List[str], rows: List[List[str]]) -> TicketSummary:
    group_index = headers.index(GROUP_HEADER)
    numeric_columns = [
        (index, header)
        for index, header in enumerate(headers)
        if header.endswith("tickets") or header.endswith("resolved")
    ]

    total = 0.0
    client_resolved = 0.0
    employee_resolved = 0.0
    breakdown: List[TicketBreakdown] = []
    for row in rows:
        values: Dict[str, float] = {}
        for index, header in numeric_columns:
            number = parse_number(_cell(row, index))
            values[header] = number
            if header.endswith("tickets") and "resolved" not in header:
                total += number
            if header == CLIENT_RESOLVED_HEADER:
                client_resolved += number
            elif header == EMPLOYEE_RESOLVED_HEADER:
                employee_resolved += number
        label = _cell(row, group_index).strip() or DEFAULT_GROUP_LABEL
        breakdown.append(TicketBreakdown(label=label, values=values))

    completed = int(client_resolved + employee_resolved)
    return TicketSummary(
        total=int(total),
        completed=completed,
        open=max(int(total) - completed, 0),
        pending=0,
        client_resolved=int(client_resolved),
        employee_resolved=int(employee_resolved),
        last_imported_at=utc_now_iso(),
        source_format=SourceFormat.GROUP_SUMMARY,
        breakdown=breakdown,
    )


def _reduce_unknown(rows: List[List[str]], previous: Optional[TicketSummary]) -> TicketSummary:
    if previous is None:
        previous = TicketSummary()
    return TicketSummary(
        total=len(rows),
        completed=previous.completed,
        open=previous.open,
        pending=previous.pending,
        client_resolved=previous.client_resolved,
        employee_resolved=previous.employee_resolved,
        last_imported_at=utc_now_iso(),
        source_format=SourceFormat.UNKNOWN,
        breakdown=list(previous.breakdown),
    )


def classify_ticket_csv(text: str, previous: Optional[TicketSummary] = None) -> TicketSummary:
    """Reduce a ticket export to a :class:`TicketSummary`.

    ``previous`` is the summary currently held by the store; it supplies the
    counters that an unrecognised export cannot provide and the authoritative
    total of an earlier group summary.
    """

    try:
        table = _read_rows(text or "")
    except csv.Error as exc:
        logger.warning("Ticket export could not be parsed: %s", exc)
        return TicketSummary()
    if len(table) < 2:
        logger.info("Ticket export has no data rows; nothing to summarise")
        return TicketSummary()

    headers = [_normalise_header(header) for header in table[0]]
    rows = table[1:]
    source_format = detect_format(headers)
    logger.info("Classified ticket export as %s with %d rows", source_format.value, len(rows))

    if source_format is SourceFormat.TICKET_LIST:
        return _reduce_ticket_list(headers, rows, previous)
    if source_format is SourceFormat.GROUP_SUMMARY:
        return _reduce_group_summary(headers, rows)
    return _reduce_unknown(rows, previous)


def classify_ticket_file(path: str | Path, previous: Optional[TicketSummary] = None) -> TicketSummary:
    """Read ``path`` and classify it, recording the file name on the summary."""

    file_path = Path(path)
    try:
        with file_path.open("r", encoding="utf-8-sig", newline="") as handle:
            text = handle.read()
    except (OSError, UnicodeDecodeError) as exc:
        raise TicketImportError(f"Failed to read ticket export: {exc}") from exc

    summary = classify_ticket_csv(text, previous)
    summary.source_name = file_path.name
    return summary


__all__ = [
    "TicketImportError",
    "classify_status",
    "classify_ticket_csv",
    "classify_ticket_file",
    "detect_format",
    "parse_number",
]
