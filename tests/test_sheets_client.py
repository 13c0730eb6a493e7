from __future__ import annotations

import pytest
from google.auth.exceptions import RefreshError

from workload import sheets_client
from workload.sheets_client import (
    GoogleSheetsClient,
    SheetsApiResponseError,
    SheetsClientError,
    SheetsCredentialsError,
    WorksheetNotFoundError,
)


@pytest.mark.parametrize(
    "index, expected",
    [(1, "A"), (11, "K"), (26, "Z"), (27, "AA"), (52, "AZ"), (80, "CB")],
)
def test_column_letter_sequence(index: int, expected: str) -> None:
    assert sheets_client.column_letter(index) == expected


def test_column_letter_rejects_zero() -> None:
    with pytest.raises(ValueError):
        sheets_client.column_letter(0)


def test_a1_range_quotes_titles() -> None:
    assert sheets_client.a1_range("Main Projects", start_row=2, columns=11) == "'Main Projects'!A2:K"
    assert sheets_client.a1_range("Bob's Sheet", start_row=1, columns=6, end_row=1) == "'Bob''s Sheet'!A1:F1"
    with pytest.raises(SheetsClientError):
        sheets_client.a1_range("  ", start_row=1, columns=1)
    with pytest.raises(ValueError):
        sheets_client.a1_range("Profiles", start_row=0, columns=1)


def test_client_requires_credentials_or_service() -> None:
    with pytest.raises(SheetsCredentialsError):
        GoogleSheetsClient("sheet-1")


def test_read_rows_stringifies_cells(sheets_service) -> None:
    sheets_service.tables["Profiles"].append(["Name", 5, None])
    client = GoogleSheetsClient("sheet-1", service=sheets_service)

    assert client.read_rows("Profiles", columns=11) == [["Name", "5", ""]]


def test_missing_worksheet_is_reported_separately(sheets_service) -> None:
    client = GoogleSheetsClient("sheet-1", service=sheets_service)

    with pytest.raises(WorksheetNotFoundError):
        client.read_rows("Archive", columns=11)


def test_server_errors_are_wrapped(sheets_service) -> None:
    sheets_service.fail_on.add(("clear", "Profiles"))
    client = GoogleSheetsClient("sheet-1", service=sheets_service)

    with pytest.raises(SheetsApiResponseError) as excinfo:
        client.clear_rows("Profiles", columns=11)

    assert not isinstance(excinfo.value, WorksheetNotFoundError)
    assert "'Profiles'!A2:K" in str(excinfo.value)


def test_write_rows_skips_empty_payload(sheets_service) -> None:
    client = GoogleSheetsClient("sheet-1", service=sheets_service)

    client.write_rows("Profiles", [], columns=11)

    assert sheets_service.calls == []


def test_service_factory_builds_one_service_per_thread(sheets_service) -> None:
    built = []

    def factory():
        built.append(object())
        return sheets_service

    client = GoogleSheetsClient("sheet-1", service_factory=factory)
    client.read_rows("Profiles", columns=11)
    client.read_rows("Contracts", columns=11)

    assert len(built) == 1


def test_create_spreadsheet_writes_header_rows(sheets_service) -> None:
    spreadsheet_id = sheets_client.create_spreadsheet(
        sheets_service, "IT Workload Tracker", {"Profiles": ["Name", "Owner"], "Tickets Summary": ["Metric"]}
    )

    assert spreadsheet_id == "new-spreadsheet"
    body = sheets_service.created[0]
    assert body["properties"] == {"title": "IT Workload Tracker", "timeZone": "America/New_York"}
    first = body["sheets"][0]
    assert first["properties"]["title"] == "Profiles"
    values = first["data"][0]["rowData"][0]["values"]
    assert [cell["userEnteredValue"]["stringValue"] for cell in values] == ["Name", "Owner"]


class _FakePermissions:
    def __init__(self) -> None:
        self.created = []

    def create(self, **kwargs):
        self.created.append(kwargs)

        class _Request:
            def execute(self_inner):
                return {"id": "perm-1"}

        return _Request()


class _FakeDrive:
    def __init__(self) -> None:
        self.permission_api = _FakePermissions()

    def permissions(self):
        return self.permission_api


def test_share_spreadsheet_creates_user_permission() -> None:
    drive = _FakeDrive()

    sheets_client.share_spreadsheet(drive, "sheet-1", " lead@example.com ", "commenter")

    call = drive.permission_api.created[0]
    assert call["fileId"] == "sheet-1"
    assert call["body"] == {"type": "user", "role": "commenter", "emailAddress": "lead@example.com"}


@pytest.mark.parametrize("email, role", [("", "writer"), ("a@example.com", "owner")])
def test_share_spreadsheet_validates_input(email: str, role: str) -> None:
    with pytest.raises(SheetsClientError):
        sheets_client.share_spreadsheet(_FakeDrive(), "sheet-1", email, role)


def test_links() -> None:
    assert sheets_client.shareable_link("abc") == "https://docs.google.com/spreadsheets/d/abc/edit"
    assert sheets_client.shareable_link("") == ""
    assert sheets_client.app_share_link("https://tracker.example.com/app?x=1", "abc") == (
        "https://tracker.example.com/app?sheet=abc"
    )


def test_transport_and_auth_failures_are_wrapped(sheets_service) -> None:
    sheets_service.errors[("get", "Profiles")] = OSError("network unreachable")
    sheets_service.errors[("clear", "Contracts")] = RefreshError("token expired")
    client = GoogleSheetsClient("sheet-1", service=sheets_service)

    with pytest.raises(SheetsApiResponseError, match="network unreachable"):
        client.read_rows("Profiles", columns=11)
    with pytest.raises(SheetsApiResponseError, match="token expired"):
        client.clear_rows("Contracts", columns=11)
