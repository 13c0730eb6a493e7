"""Domain objects shared by the sync engine, the ticket importer and the store."""
from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union


class Bucket(Enum):
    PROFILES = "profiles"
    CONTRACTS = "contracts"
    PROJECTS = "projects"

    @property
    def table_title(self) -> str:
        return BUCKET_TABLES[self]

    @classmethod
    def parse(cls, value: Union["Bucket", str]) -> "Bucket":
        if isinstance(value, Bucket):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown bucket {value!r}") from None


BUCKET_TABLES: Mapping[Bucket, str] = {
    Bucket.PROFILES: "Profiles",
    Bucket.CONTRACTS: "Contracts",
    Bucket.PROJECTS: "Main Projects",
}


class Status(Enum):
    NOT_STARTED = "Not Started"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    ON_HOLD = "On Hold"
    CANCELLED = "Cancelled"


class Priority(Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    URGENT = "Urgent"


class SourceFormat(Enum):
    TICKET_LIST = "TicketList"
    GROUP_SUMMARY = "GroupSummary"
    UNKNOWN = "Unknown"


# Values outside the preferred sets are kept verbatim so rows written by
# older versions of the sheet survive a load/sync cycle unchanged.
StatusValue = Union[Status, str]
PriorityValue = Union[Priority, str]


def _lookup_key(value: str) -> str:
    return re.sub(r"[^a-z]", "", value.lower())


_STATUS_LOOKUP = {_lookup_key(member.value): member for member in Status}
_PRIORITY_LOOKUP = {_lookup_key(member.value): member for member in Priority}


def parse_status(value: Any, default: Status = Status.NOT_STARTED) -> StatusValue:
    """Return the matching :class:`Status` or the raw text for unknown values."""

    if isinstance(value, Status):
        return value
    text = "" if value is None else str(value).strip()
    if not text:
        return default
    return _STATUS_LOOKUP.get(_lookup_key(text), text)


def parse_priority(value: Any, default: Priority = Priority.MEDIUM) -> PriorityValue:
    """Return the matching :class:`Priority` or the raw text for unknown values."""

    if isinstance(value, Priority):
        return value
    text = "" if value is None else str(value).strip()
    if not text:
        return default
    return _PRIORITY_LOOKUP.get(_lookup_key(text), text)


def label_of(value: Union[Enum, str]) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    return value


def clamp_progress(value: Any) -> int:
    """Coerce ``value`` to an integer percentage in ``[0, 100]``.

    Non-numeric input yields ``0``.
    """

    if value in (None, ""):
        return 0
    try:
        number = int(float(str(value).strip()))
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(0, min(100, number))


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def new_identifier(prefix: str = "") -> str:
    token = uuid.uuid4().hex[:12]
    return f"{prefix}{token}" if prefix else token


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


@dataclass
class WorkSession:
    """A scheduled block of time attached to a work item."""

    id: str
    date: date
    start_time: str
    end_time: str
    notes: Optional[str] = None
    remote_event_id: Optional[str] = None

    def __post_init__(self) -> None:
        if isinstance(self.date, str):
            self.date = date.fromisoformat(self.date.strip())
        self.notes = _blank_to_none(self.notes)
        self.remote_event_id = _blank_to_none(self.remote_event_id)

    @property
    def is_synced(self) -> bool:
        return self.remote_event_id is not None

    def start_datetime(self) -> datetime:
        return datetime.combine(self.date, _parse_clock(self.start_time))

    def end_datetime(self) -> datetime:
        return datetime.combine(self.date, _parse_clock(self.end_time))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "startTime": self.start_time,
            "endTime": self.end_time,
            "notes": self.notes,
            "remoteEventId": self.remote_event_id,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WorkSession":
        """Build a session from its JSON form, raising on missing keys."""

        return cls(
            id=str(data["id"]),
            date=date.fromisoformat(str(data["date"])),
            start_time=str(data["startTime"]),
            end_time=str(data["endTime"]),
            notes=data.get("notes"),
            remote_event_id=data.get("remoteEventId"),
        )


def _parse_clock(value: str):
    text = value.strip()
    for pattern in ("%H:%M", "%H:%M:%S"):
        try:
            return datetime.strptime(text, pattern).time()
        except ValueError:
            continue
    raise ValueError(f"Cannot parse time of day {value!r}")


@dataclass
class WorkItem:
    id: str
    name: str
    owner: str = ""
    status: StatusValue = Status.NOT_STARTED
    priority: PriorityValue = Priority.MEDIUM
    start_date: Optional[str] = None
    due_date: Optional[str] = None
    progress: int = 0
    notes: Optional[str] = None
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: Optional[str] = None
    work_sessions: List[WorkSession] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.status = parse_status(self.status)
        self.priority = parse_priority(self.priority)
        self.progress = clamp_progress(self.progress)
        self.start_date = _blank_to_none(self.start_date)
        self.due_date = _blank_to_none(self.due_date)
        self.notes = _blank_to_none(self.notes)

    def find_session(self, session_id: str) -> Optional[WorkSession]:
        for session in self.work_sessions:
            if session.id == session_id:
                return session
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "owner": self.owner,
            "status": label_of(self.status),
            "priority": label_of(self.priority),
            "startDate": self.start_date,
            "dueDate": self.due_date,
            "progress": self.progress,
            "notes": self.notes,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "workSessions": [session.to_dict() for session in self.work_sessions],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WorkItem":
        sessions = [
            WorkSession.from_dict(entry)
            for entry in data.get("workSessions") or []
            if isinstance(entry, Mapping)
        ]
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            owner=str(data.get("owner") or ""),
            status=data.get("status"),
            priority=data.get("priority"),
            start_date=data.get("startDate"),
            due_date=data.get("dueDate"),
            progress=data.get("progress"),
            notes=data.get("notes"),
            created_at=str(data.get("createdAt") or utc_now_iso()),
            updated_at=data.get("updatedAt"),
            work_sessions=sessions,
        )


@dataclass
class TicketBreakdown:
    label: str
    values: Dict[str, float] = field(default_factory=dict)


@dataclass
class TicketSummary:
    total: int = 0
    completed: int = 0
    open: int = 0
    pending: int = 0
    client_resolved: Optional[int] = None
    employee_resolved: Optional[int] = None
    last_imported_at: Optional[str] = None
    source_format: SourceFormat = SourceFormat.UNKNOWN
    breakdown: List[TicketBreakdown] = field(default_factory=list)
    source_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "completed": self.completed,
            "open": self.open,
            "pending": self.pending,
            "clientResolved": self.client_resolved,
            "employeeResolved": self.employee_resolved,
            "lastImportedAt": self.last_imported_at,
            "sourceFormat": self.source_format.value,
            "breakdown": [{"label": entry.label, "values": dict(entry.values)} for entry in self.breakdown],
            "sourceName": self.source_name,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TicketSummary":
        try:
            source_format = SourceFormat(data.get("sourceFormat") or SourceFormat.UNKNOWN.value)
        except ValueError:
            source_format = SourceFormat.UNKNOWN
        breakdown = [
            TicketBreakdown(label=str(entry.get("label") or "Group"), values=dict(entry.get("values") or {}))
            for entry in data.get("breakdown") or []
            if isinstance(entry, Mapping)
        ]
        return cls(
            total=int(data.get("total") or 0),
            completed=int(data.get("completed") or 0),
            open=int(data.get("open") or 0),
            pending=int(data.get("pending") or 0),
            client_resolved=_optional_int(data.get("clientResolved")),
            employee_resolved=_optional_int(data.get("employeeResolved")),
            last_imported_at=data.get("lastImportedAt"),
            source_format=source_format,
            breakdown=breakdown,
            source_name=data.get("sourceName"),
        )


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


__all__ = [
    "BUCKET_TABLES",
    "Bucket",
    "Priority",
    "PriorityValue",
    "SourceFormat",
    "Status",
    "StatusValue",
    "TicketBreakdown",
    "TicketSummary",
    "WorkItem",
    "WorkSession",
    "clamp_progress",
    "label_of",
    "new_identifier",
    "parse_priority",
    "parse_status",
    "utc_now_iso",
]
