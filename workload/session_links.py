"""Keep work sessions linked to their calendar events.

The local session list is authoritative.  Calendar calls are best effort: a
failed create leaves the session unsynced, a failed update keeps the local
edit and the existing link, and a failed delete still removes the session
locally, possibly orphaning the remote event.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from typing import Optional, Protocol

from workload.calendar_client import CalendarError, SessionLink
from workload.models import Bucket, WorkItem, WorkSession, new_identifier

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = {"date", "start_time", "end_time", "notes"}


class CalendarBackend(Protocol):
    def create_event(self, *, title, description, start, end, link: SessionLink) -> str: ...

    def update_event(self, event_id: str, *, start, end, description) -> None: ...

    def delete_event(self, event_id: str) -> None: ...


class SessionNotFoundError(LookupError):
    """Raised when a session id is not attached to the given item."""


class SessionLinkManager:
    """Add, edit and remove work sessions while mirroring them to a calendar."""

    def __init__(self, calendar: Optional[CalendarBackend] = None) -> None:
        self._calendar = calendar

    @property
    def has_calendar(self) -> bool:
        return self._calendar is not None

    @staticmethod
    def _description(item: WorkItem, session: WorkSession) -> Optional[str]:
        return session.notes or item.notes

    def add_session(
        self,
        bucket: Bucket,
        item: WorkItem,
        *,
        date: date,
        start_time: str,
        end_time: str,
        notes: Optional[str] = None,
    ) -> WorkSession:
        session = WorkSession(
            id=new_identifier("session-"),
            date=date,
            start_time=start_time,
            end_time=end_time,
            notes=notes,
        )
        start, end = session.start_datetime(), session.end_datetime()
        item.work_sessions.append(session)

        if self._calendar is None:
            return session
        link = SessionLink(item_id=item.id, bucket=Bucket.parse(bucket).value, session_id=session.id)
        try:
            session.remote_event_id = self._calendar.create_event(
                title=item.name,
                description=self._description(item, session),
                start=start,
                end=end,
                link=link,
            )
        except CalendarError as exc:
            logger.warning("Session %s kept locally without a calendar event: %s", session.id, exc)
        return session

    def update_session(self, bucket: Bucket, item: WorkItem, session_id: str, **changes) -> WorkSession:
        """Apply ``changes`` to a session, then mirror them to its event.

        The edit is validated on a copy first so a bad date or time leaves the
        session untouched.
        """

        session = self._require(item, session_id)
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot edit session fields: {', '.join(sorted(unknown))}")
        candidate = replace(session, **changes)
        start, end = candidate.start_datetime(), candidate.end_datetime()
        for key in changes:
            setattr(session, key, getattr(candidate, key))

        if self._calendar is None or not session.is_synced:
            return session
        try:
            self._calendar.update_event(
                session.remote_event_id,
                start=start,
                end=end,
                description=self._description(item, session),
            )
        except CalendarError as exc:
            logger.warning(
                "Calendar event %s for %s item %s is out of date: %s",
                session.remote_event_id,
                Bucket.parse(bucket).value,
                item.id,
                exc,
            )
        return session

    def delete_session(self, bucket: Bucket, item: WorkItem, session_id: str) -> WorkSession:
        session = self._require(item, session_id)
        try:
            if self._calendar is not None and session.is_synced:
                self._calendar.delete_event(session.remote_event_id)
        except CalendarError as exc:
            logger.warning(
                "Calendar event %s may be orphaned after removing session %s from %s: %s",
                session.remote_event_id,
                session.id,
                Bucket.parse(bucket).value,
                exc,
            )
        finally:
            item.work_sessions.remove(session)
        return session

    @staticmethod
    def _require(item: WorkItem, session_id: str) -> WorkSession:
        session = item.find_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id!r} not found on item {item.id!r}")
        return session


__all__ = ["CalendarBackend", "SessionLinkManager", "SessionNotFoundError"]
