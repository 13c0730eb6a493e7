"""Google Calendar collaborator used to mirror work sessions as events."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from workload.google_credentials import TRANSPORT_ERRORS, CredentialsFileInvalidError, build_credentials

logger = logging.getLogger(__name__)

SCOPES = ("https://www.googleapis.com/auth/calendar.events",)
DEFAULT_CALENDAR_ID = "primary"
DEFAULT_TIME_ZONE = "America/New_York"

LINK_ITEM = "workItemId"
LINK_BUCKET = "bucket"
LINK_SESSION = "sessionId"


class CalendarError(RuntimeError):
    """Raised when the calendar backend rejects or cannot complete a request."""


def _execute(request, action: str):
    try:
        return request.execute()
    except (HttpError, *TRANSPORT_ERRORS) as exc:
        raise CalendarError(f"{action} failed: {exc}") from exc


@dataclass(frozen=True)
class SessionLink:
    """Identifies the local session an event mirrors."""

    item_id: str
    bucket: str
    session_id: str

    def to_properties(self) -> Dict[str, str]:
        return {LINK_ITEM: self.item_id, LINK_BUCKET: self.bucket, LINK_SESSION: self.session_id}

    @classmethod
    def from_properties(cls, properties: Dict[str, Any]) -> Optional["SessionLink"]:
        try:
            return cls(
                item_id=str(properties[LINK_ITEM]),
                bucket=str(properties[LINK_BUCKET]),
                session_id=str(properties[LINK_SESSION]),
            )
        except KeyError:
            return None


@dataclass
class CalendarEvent:
    event_id: str
    start: Optional[str]
    end: Optional[str]
    description: Optional[str]
    link: Optional[SessionLink]


class GoogleCalendarClient:
    """Create, update, delete and list events on one calendar."""

    def __init__(
        self,
        *,
        credentials=None,
        service=None,
        calendar_id: str = DEFAULT_CALENDAR_ID,
        time_zone: str = DEFAULT_TIME_ZONE,
    ) -> None:
        if service is None:
            if credentials is None:
                raise CalendarError("Credentials are required when no service is supplied.")
            service = build("calendar", "v3", credentials=credentials, cache_discovery=False)
        self._service = service
        self._calendar_id = calendar_id
        self._time_zone = time_zone

    @classmethod
    def from_credential_file(
        cls,
        credential_path: Path,
        *,
        calendar_id: str = DEFAULT_CALENDAR_ID,
        time_zone: str = DEFAULT_TIME_ZONE,
    ) -> "GoogleCalendarClient":
        try:
            credentials = build_credentials(credential_path, SCOPES)
        except CredentialsFileInvalidError as exc:
            raise CalendarError(str(exc)) from exc
        return cls(credentials=credentials, calendar_id=calendar_id, time_zone=time_zone)

    def _time(self, value: datetime) -> Dict[str, str]:
        return {"dateTime": value.replace(microsecond=0).isoformat(), "timeZone": self._time_zone}

    def create_event(
        self,
        *,
        title: str,
        description: Optional[str],
        start: datetime,
        end: datetime,
        link: SessionLink,
    ) -> str:
        body = {
            "summary": title,
            "description": description or "",
            "start": self._time(start),
            "end": self._time(end),
            "extendedProperties": {"private": link.to_properties()},
        }
        request = self._service.events().insert(calendarId=self._calendar_id, body=body)
        response = _execute(request, "Event creation")
        event_id = str(response["id"])
        logger.info("Created calendar event %s for session %s", event_id, link.session_id)
        return event_id

    def update_event(
        self,
        event_id: str,
        *,
        start: datetime,
        end: datetime,
        description: Optional[str],
    ) -> None:
        body = {
            "description": description or "",
            "start": self._time(start),
            "end": self._time(end),
        }
        request = self._service.events().patch(calendarId=self._calendar_id, eventId=event_id, body=body)
        _execute(request, f"Event update for {event_id}")
        logger.info("Updated calendar event %s", event_id)

    def delete_event(self, event_id: str) -> None:
        request = self._service.events().delete(calendarId=self._calendar_id, eventId=event_id)
        _execute(request, f"Event deletion for {event_id}")
        logger.info("Deleted calendar event %s", event_id)

    def list_events(self, *, item_id: Optional[str] = None, page_size: int = 250) -> List[CalendarEvent]:
        """Return events created for work sessions, optionally for one item."""

        filters = [f"{LINK_ITEM}={item_id}"] if item_id else []
        events: List[CalendarEvent] = []
        page_token: Optional[str] = None
        while True:
            params: Dict[str, Any] = {
                "calendarId": self._calendar_id,
                "maxResults": page_size,
                "singleEvents": True,
            }
            if filters:
                params["privateExtendedProperty"] = filters
            if page_token:
                params["pageToken"] = page_token
            response = _execute(self._service.events().list(**params), "Event listing")
            for entry in response.get("items", []):
                private = entry.get("extendedProperties", {}).get("private", {})
                link = SessionLink.from_properties(private)
                if link is None:
                    continue
                events.append(
                    CalendarEvent(
                        event_id=str(entry.get("id")),
                        start=entry.get("start", {}).get("dateTime"),
                        end=entry.get("end", {}).get("dateTime"),
                        description=entry.get("description"),
                        link=link,
                    )
                )
            page_token = response.get("nextPageToken")
            if not page_token:
                break
        return events


__all__ = [
    "CalendarError",
    "CalendarEvent",
    "GoogleCalendarClient",
    "SCOPES",
    "SessionLink",
]
