from __future__ import annotations

import re
import sys
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple

import httplib2
import pytest
from googleapiclient.errors import HttpError

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


def make_http_error(status: int, message: str = "error") -> HttpError:
    return HttpError(httplib2.Response({"status": str(status)}), message.encode("utf-8"))


class _FakeRequest:
    def __init__(self, callback):
        self._callback = callback

    def execute(self):
        return self._callback()


class _FakeValues:
    def __init__(self, service: "FakeSheetsService") -> None:
        self._service = service

    def get(self, spreadsheetId: str, range: str, majorDimension: str = "ROWS"):  # noqa: N803 - API compatibility
        return _FakeRequest(lambda: self._service._handle_get(range))

    def clear(self, spreadsheetId: str, range: str, body: Dict[str, Any]):  # noqa: N803 - API compatibility
        return _FakeRequest(lambda: self._service._handle_clear(range))

    def update(self, spreadsheetId: str, range: str, valueInputOption: str, body: Dict[str, Any]):  # noqa: N803
        return _FakeRequest(lambda: self._service._handle_update(range, body))


class _FakeSpreadsheets:
    def __init__(self, service: "FakeSheetsService") -> None:
        self._service = service

    def values(self) -> _FakeValues:
        return _FakeValues(self._service)

    def get(self, spreadsheetId: str, **kwargs: Any):  # noqa: N803 - API compatibility
        return _FakeRequest(
            lambda: {"sheets": [{"properties": {"title": title}} for title in self._service.tables]}
        )

    def batchUpdate(self, spreadsheetId: str, body: Dict[str, Any]):  # noqa: N802,N803 - API compatibility
        return _FakeRequest(lambda: self._service._handle_batch_update(body))

    def create(self, body: Dict[str, Any], fields: str = ""):
        return _FakeRequest(lambda: self._service._handle_create(body))


class FakeSheetsService:
    """In-memory stand-in for the Sheets v4 service object."""

    def __init__(self, tables: Optional[Dict[str, List[List[Any]]]] = None) -> None:
        self.tables: Dict[str, List[List[Any]]] = {
            title: [list(row) for row in rows] for title, rows in (tables or {}).items()
        }
        self.calls: List[Tuple[str, str]] = []
        self.fail_on: Set[Tuple[str, str]] = set()
        self.errors: Dict[Tuple[str, str], Exception] = {}
        self.created: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def spreadsheets(self) -> _FakeSpreadsheets:
        return _FakeSpreadsheets(self)

    def data_rows(self, title: str) -> List[List[Any]]:
        return [list(row) for row in self.tables.get(title, [])[1:]]

    # Internal helpers -------------------------------------------------
    def _check(self, operation: str, title: str) -> None:
        self.calls.append((operation, title))
        if (operation, title) in self.errors:
            raise self.errors[(operation, title)]
        if (operation, title) in self.fail_on:
            raise make_http_error(500, f"{operation} failed")
        if title not in self.tables:
            raise make_http_error(400, f"Unable to parse range: {title}")

    def _handle_get(self, range_spec: str) -> Dict[str, Any]:
        with self._lock:
            title, start, end, width = self._parse(range_spec)
            self._check("get", title)
            rows = self.tables[title][start - 1 : end]
            values = [list(row[:width]) for row in rows]
            while values and not any(str(cell) for cell in values[-1]):
                values.pop()
            return {"values": values} if values else {}

    def _handle_clear(self, range_spec: str) -> Dict[str, Any]:
        with self._lock:
            title, start, end, _width = self._parse(range_spec)
            self._check("clear", title)
            rows = self.tables[title]
            if end is None:
                del rows[start - 1 :]
            else:
                for index in range(start - 1, min(end, len(rows))):
                    rows[index] = []
            return {}

    def _handle_update(self, range_spec: str, body: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            title, start, _end, _width = self._parse(range_spec)
            self._check("update", title)
            rows = self.tables[title]
            for offset, values in enumerate(body.get("values", [])):
                index = start - 1 + offset
                while len(rows) <= index:
                    rows.append([])
                rows[index] = list(values)
            return {}

    def _handle_batch_update(self, body: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            for request in body.get("requests", []):
                title = request.get("addSheet", {}).get("properties", {}).get("title")
                if title:
                    self.tables.setdefault(title, [])
            return {}

    def _handle_create(self, body: Dict[str, Any]) -> Dict[str, Any]:
        self.created.append(body)
        return {"spreadsheetId": "new-spreadsheet"}

    @staticmethod
    def _parse(range_spec: str) -> Tuple[str, int, Optional[int], int]:
        sheet, cell_range = range_spec.split("!", 1)
        if sheet.startswith("'") and sheet.endswith("'"):
            sheet = sheet[1:-1].replace("''", "'")
        match = re.match(r"A(\d+):([A-Z]+)(\d*)$", cell_range)
        assert match, cell_range
        width = 0
        for char in match.group(2):
            width = width * 26 + (ord(char) - 64)
        end = int(match.group(3)) if match.group(3) else None
        return sheet, int(match.group(1)), end, width


class _FakeEvents:
    def __init__(self, service: "FakeCalendarService") -> None:
        self._service = service

    def insert(self, calendarId: str, body: Dict[str, Any]):  # noqa: N803 - API compatibility
        return _FakeRequest(lambda: self._service._insert(body))

    def patch(self, calendarId: str, eventId: str, body: Dict[str, Any]):  # noqa: N803 - API compatibility
        return _FakeRequest(lambda: self._service._patch(eventId, body))

    def delete(self, calendarId: str, eventId: str):  # noqa: N803 - API compatibility
        return _FakeRequest(lambda: self._service._delete(eventId))

    def list(self, **params: Any):
        return _FakeRequest(lambda: self._service._list(params))


class FakeCalendarService:
    """In-memory stand-in for the Calendar v3 service object."""

    def __init__(self) -> None:
        self.events_by_id: Dict[str, Dict[str, Any]] = {}
        self.fail_on: Set[str] = set()
        self.errors: Dict[str, Exception] = {}
        self.calls: List[str] = []
        self.list_params: List[Dict[str, Any]] = []
        self._counter = 0

    def events(self) -> _FakeEvents:
        return _FakeEvents(self)

    def _fail(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.errors:
            raise self.errors[operation]
        if operation in self.fail_on:
            raise make_http_error(503, f"{operation} unavailable")

    def _insert(self, body: Dict[str, Any]) -> Dict[str, Any]:
        self._fail("insert")
        self._counter += 1
        event_id = f"evt-{self._counter}"
        self.events_by_id[event_id] = dict(body, id=event_id)
        return {"id": event_id}

    def _patch(self, event_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        self._fail("patch")
        if event_id not in self.events_by_id:
            raise make_http_error(404, "event not found")
        self.events_by_id[event_id].update(body)
        return self.events_by_id[event_id]

    def _delete(self, event_id: str) -> Dict[str, Any]:
        self._fail("delete")
        if event_id not in self.events_by_id:
            raise make_http_error(410, "event deleted")
        del self.events_by_id[event_id]
        return {}

    def _list(self, params: Dict[str, Any]) -> Dict[str, Any]:
        self._fail("list")
        self.list_params.append(params)
        wanted = params.get("privateExtendedProperty") or []
        items = []
        for event in self.events_by_id.values():
            private = event.get("extendedProperties", {}).get("private", {})
            if all(private.get(key) == value for key, value in (entry.split("=", 1) for entry in wanted)):
                items.append(event)
        return {"items": items}


@pytest.fixture
def item_tables() -> Dict[str, List[List[Any]]]:
    from workload.row_codec import ITEM_HEADERS
    from workload.table_sync import TICKET_HEADERS, TICKETS_TABLE

    tables = {title: [list(ITEM_HEADERS)] for title in ("Profiles", "Contracts", "Main Projects")}
    tables[TICKETS_TABLE] = [list(TICKET_HEADERS)]
    return tables


@pytest.fixture
def sheets_service(item_tables) -> FakeSheetsService:
    return FakeSheetsService(item_tables)


@pytest.fixture
def calendar_service() -> FakeCalendarService:
    return FakeCalendarService()
