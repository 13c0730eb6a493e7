"""Google Sheets client helpers with robust A1 range handling.

This module centralises every direct interaction with the Google Sheets API
used by the workload tracker.  Callers speak in terms of worksheet titles and
row offsets; the client turns those into quoted A1 ranges and
``googleapiclient`` requests:

* ``read_rows`` / ``clear_rows`` / ``write_rows`` operate on the data region
  of a worksheet, one value range per request.
* ``write_header`` and ``ensure_worksheets`` prepare a workbook so the data
  region has a fixed header above it.
* ``create_spreadsheet`` and ``share_spreadsheet`` provision and share a new
  workbook.

All public entry points raise subclasses of :class:`SheetsClientError`.  A
range that names a worksheet the workbook does not contain surfaces as
:class:`WorksheetNotFoundError` so that loaders can treat it as "no data".

``googleapiclient`` service objects are not thread safe, so unless a service
is injected the client builds one service per thread from shared credentials.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, MutableSequence, Optional, Sequence

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from workload.google_credentials import TRANSPORT_ERRORS, CredentialsFileInvalidError, build_credentials

logger = logging.getLogger(__name__)

SCOPES: Sequence[str] = (
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive.file",
)
VALUE_INPUT_OPTION = "RAW"
SHARE_ROLES = ("reader", "writer", "commenter")
MISSING_RANGE_STATUSES = {400, 404}


class SheetsClientError(RuntimeError):
    """Base error raised for Sheets API failures."""


class SheetsCredentialsError(SheetsClientError):
    """Raised when the provided credential file is invalid or missing."""


class SheetsApiResponseError(SheetsClientError):
    """Raised when the Google API returns an error response."""


class WorksheetNotFoundError(SheetsApiResponseError):
    """Raised when a range refers to a worksheet or workbook that does not exist."""


def _normalise_title(title: str) -> str:
    """Return a worksheet title quoted according to A1 notation rules."""

    safe = (title or "").strip()
    if not safe:
        raise SheetsClientError("Worksheet title must not be empty.")
    safe = safe.replace("'", "''")
    return f"'{safe}'"


def column_letter(index: int) -> str:
    if index < 1:
        raise ValueError("Column index must be >= 1")
    letters: MutableSequence[str] = []
    while index:
        index, remainder = divmod(index - 1, 26)
        letters.append(chr(65 + remainder))
    return "".join(reversed(letters))


def a1_range(title: str, *, start_row: int, columns: int, end_row: Optional[int] = None) -> str:
    """Return an A1 range from ``start_row`` spanning ``columns`` columns.

    Without ``end_row`` the range is open ended and covers every row below
    ``start_row``.
    """

    if start_row < 1:
        raise ValueError("Row index must be >= 1")
    last_column = column_letter(max(1, columns))
    end = "" if end_row is None else str(end_row)
    return f"{_normalise_title(title)}!A{start_row}:{last_column}{end}"


def _translate_http_error(exc: HttpError, target: str) -> SheetsApiResponseError:
    status = getattr(getattr(exc, "resp", None), "status", None)
    try:
        status = int(status) if status is not None else None
    except (TypeError, ValueError):
        status = None
    if status in MISSING_RANGE_STATUSES:
        return WorksheetNotFoundError(f"{target}: {exc}")
    return SheetsApiResponseError(f"{target}: {exc}")


def _execute(request, target: str):
    try:
        return request.execute()
    except HttpError as exc:
        raise _translate_http_error(exc, target) from exc
    except TRANSPORT_ERRORS as exc:
        raise SheetsApiResponseError(f"{target}: {exc}") from exc


def load_google_credentials(path: Path):
    try:
        return build_credentials(path, SCOPES)
    except CredentialsFileInvalidError as exc:
        raise SheetsCredentialsError(str(exc)) from exc
    except Exception as exc:  # pragma: no cover - google library guard
        raise SheetsCredentialsError(str(exc)) from exc


def _build_service(api: str, version: str, credentials):
    try:
        return build(api, version, credentials=credentials, cache_discovery=False)
    except Exception as exc:  # pragma: no cover - HTTP / auth error guard
        raise SheetsApiResponseError(str(exc)) from exc


class GoogleSheetsClient:
    """Concrete helper that speaks to Google Sheets using the REST API."""

    def __init__(
        self,
        spreadsheet_id: str,
        *,
        credentials=None,
        service=None,
        service_factory: Optional[Callable[[], Any]] = None,
    ) -> None:
        if service is None and service_factory is None and credentials is None:
            raise SheetsCredentialsError("Credentials are required when no service is supplied.")
        self._spreadsheet_id = spreadsheet_id
        self._credentials = credentials
        self._service = service
        self._service_factory = service_factory
        self._local = threading.local()

    @classmethod
    def from_credential_file(cls, spreadsheet_id: str, credential_path: Path) -> "GoogleSheetsClient":
        return cls(spreadsheet_id, credentials=load_google_credentials(credential_path))

    @property
    def spreadsheet_id(self) -> str:
        return self._spreadsheet_id

    def _sheets(self):
        if self._service is not None:
            return self._service
        service = getattr(self._local, "service", None)
        if service is None:
            if self._service_factory is not None:
                service = self._service_factory()
            else:
                service = _build_service("sheets", "v4", self._credentials)
            self._local.service = service
        return service

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def health_check(self) -> None:
        """Perform a lightweight check to confirm the spreadsheet is reachable."""

        request = self._sheets().spreadsheets().get(
            spreadsheetId=self._spreadsheet_id,
            includeGridData=False,
            ranges=[],
        )
        _execute(request, self._spreadsheet_id)

    def read_rows(self, title: str, *, columns: int, start_row: int = 2) -> List[List[str]]:
        """Return every row at or below ``start_row`` as lists of strings."""

        target = a1_range(title, start_row=start_row, columns=columns)
        request = (
            self._sheets()
            .spreadsheets()
            .values()
            .get(spreadsheetId=self._spreadsheet_id, range=target, majorDimension="ROWS")
        )
        response = _execute(request, target)

        values = response.get("values", []) if isinstance(response, dict) else []
        return [["" if cell is None else str(cell) for cell in row] for row in values]

    def clear_rows(self, title: str, *, columns: int, start_row: int = 2) -> None:
        """Erase every value at or below ``start_row``, keeping formatting."""

        target = a1_range(title, start_row=start_row, columns=columns)
        logger.debug("Clearing %s", target)
        request = (
            self._sheets()
            .spreadsheets()
            .values()
            .clear(spreadsheetId=self._spreadsheet_id, range=target, body={})
        )
        _execute(request, target)

    def write_rows(
        self,
        title: str,
        rows: Sequence[Sequence[Any]],
        *,
        columns: int,
        start_row: int = 2,
    ) -> None:
        """Write ``rows`` starting at ``start_row`` in a single request."""

        if not rows:
            return
        end_row = start_row + len(rows) - 1
        target = a1_range(title, start_row=start_row, columns=columns, end_row=end_row)
        body = {"range": target, "majorDimension": "ROWS", "values": [list(row) for row in rows]}
        logger.debug("Writing %d rows to %s", len(rows), target)
        request = (
            self._sheets()
            .spreadsheets()
            .values()
            .update(
                spreadsheetId=self._spreadsheet_id,
                range=target,
                valueInputOption=VALUE_INPUT_OPTION,
                body=body,
            )
        )
        _execute(request, target)

    def write_header(self, title: str, headers: Sequence[str]) -> None:
        self.write_rows(title, [list(headers)], columns=len(headers), start_row=1)

    def worksheet_titles(self) -> List[str]:
        request = self._sheets().spreadsheets().get(
            spreadsheetId=self._spreadsheet_id, fields="sheets.properties.title"
        )
        response = _execute(request, self._spreadsheet_id)
        sheets = response.get("sheets", []) if isinstance(response, dict) else []
        return [str(sheet.get("properties", {}).get("title", "")) for sheet in sheets]

    def ensure_worksheets(self, titles: Sequence[str]) -> List[str]:
        """Create any worksheet in ``titles`` that is missing, returning those created."""

        existing = set(self.worksheet_titles())
        missing = [title for title in titles if title not in existing]
        if not missing:
            return []
        requests = [{"addSheet": {"properties": {"title": title}}} for title in missing]
        request = self._sheets().spreadsheets().batchUpdate(
            spreadsheetId=self._spreadsheet_id, body={"requests": requests}
        )
        _execute(request, self._spreadsheet_id)
        logger.info("Created worksheets: %s", ", ".join(missing))
        return missing


def create_spreadsheet(
    service,
    title: str,
    tables: Mapping[str, Sequence[str]],
    *,
    time_zone: str = "America/New_York",
) -> str:
    """Create a workbook holding one worksheet per entry of ``tables``.

    Each worksheet starts with its header row. Returns the new spreadsheet id.
    """

    sheets: List[Dict[str, Any]] = []
    for sheet_title, headers in tables.items():
        sheets.append(
            {
                "properties": {
                    "title": sheet_title,
                    "gridProperties": {"rowCount": 1000, "columnCount": len(headers)},
                },
                "data": [
                    {
                        "rowData": [
                            {"values": [{"userEnteredValue": {"stringValue": header}} for header in headers]}
                        ]
                    }
                ],
            }
        )
    body = {"properties": {"title": title, "timeZone": time_zone}, "sheets": sheets}
    response = _execute(service.spreadsheets().create(body=body, fields="spreadsheetId"), title)
    spreadsheet_id = str(response["spreadsheetId"])
    logger.info("Created spreadsheet %s (%s)", title, spreadsheet_id)
    return spreadsheet_id


def share_spreadsheet(drive_service, spreadsheet_id: str, email: str, role: str = "writer") -> None:
    """Grant ``email`` access to the workbook through the Drive API."""

    address = (email or "").strip()
    if not address:
        raise SheetsClientError("An email address is required to share the spreadsheet.")
    if role not in SHARE_ROLES:
        raise SheetsClientError(f"Unsupported share role {role!r}")
    permission = {"type": "user", "role": role, "emailAddress": address}
    request = drive_service.permissions().create(
        fileId=spreadsheet_id,
        body=permission,
        sendNotificationEmail=True,
    )
    _execute(request, spreadsheet_id)
    logger.info("Shared spreadsheet %s with %s as %s", spreadsheet_id, address, role)


def build_sheets_service(credentials):
    return _build_service("sheets", "v4", credentials)


def build_drive_service(credentials):
    return _build_service("drive", "v3", credentials)


def shareable_link(spreadsheet_id: str) -> str:
    if not spreadsheet_id:
        return ""
    return f"https://docs.google.com/spreadsheets/d/{spreadsheet_id}/edit"


def app_share_link(base_url: str, spreadsheet_id: str) -> str:
    """Return ``base_url`` with the ``sheet`` query parameter pointing at the workbook."""

    if not spreadsheet_id:
        return ""
    base = base_url.split("?", 1)[0]
    return f"{base}?sheet={spreadsheet_id}"


__all__ = [
    "GoogleSheetsClient",
    "SCOPES",
    "SheetsApiResponseError",
    "SheetsClientError",
    "SheetsCredentialsError",
    "WorksheetNotFoundError",
    "a1_range",
    "app_share_link",
    "build_drive_service",
    "build_sheets_service",
    "column_letter",
    "create_spreadsheet",
    "load_google_credentials",
    "share_spreadsheet",
    "shareable_link",
]
