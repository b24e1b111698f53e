"""Narrow storage interface used by the RSVP workflow and the HTTP layer."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any, Protocol, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import crud
from .crud import DuplicateRSVPError, RepositoryError
from .models import RSVP, Event, SubEvent, User

__all__ = [
    "DuplicateRSVPError",
    "Repository",
    "RepositoryError",
    "SqlRepository",
]


class Repository(Protocol):
    """One method per query or command the application needs from storage."""

    def find_event_by_slug(self, slug: str) -> Event | None: ...

    def find_event_by_id(self, event_id: str) -> Event | None: ...

    def find_existing_rsvp(self, event_id: str, email: str) -> RSVP | None: ...

    def create_rsvp_idempotent(
        self,
        *,
        event_id: str,
        guest_name: str,
        guest_email: str,
        guest_phone: str | None,
        status: str,
        num_guests: int | None,
        message: str | None,
    ) -> str: ...

    def increment_view_count(self, event_id: str) -> None: ...

    def record_view(self, event_id: str) -> None: ...

    def enqueue_notification(
        self,
        *,
        user_id: str,
        title: str,
        message: str,
        type: str = "system",
        event_id: str | None = None,
    ) -> None: ...

    def list_hosted_events(self, user_id: str) -> Sequence[Event]: ...

    def list_attending_events(self, email: str) -> Sequence[Event]: ...

    def list_event_rsvps(self, event_id: str) -> Sequence[RSVP]: ...

    def create_event(
        self, *, owner: User, event_name: str, start_date: datetime, **fields: Any
    ) -> Event: ...

    def update_event(self, event: Event, changes: Mapping[str, Any]) -> Event: ...

    def upsert_sub_events(
        self, event: Event, items: Iterable[Mapping[str, Any]]
    ) -> list[SubEvent]: ...

    def delete_sub_event(self, event: Event, sub_event_id: str) -> bool: ...

    def delete_event(self, event: Event) -> None: ...


class SqlRepository:
    """``Repository`` backed by a SQLAlchemy session.

    Driver errors on the RSVP write path are wrapped in ``RepositoryError`` so
    callers can surface the message without knowing about SQLAlchemy.
    """

    def __init__(self, session: Session):
        self.session = session

    def find_event_by_slug(self, slug: str) -> Event | None:
        return crud.get_event_by_slug(self.session, slug)

    def find_event_by_id(self, event_id: str) -> Event | None:
        return crud.get_event_by_id(self.session, event_id)

    def find_existing_rsvp(self, event_id: str, email: str) -> RSVP | None:
        return crud.find_existing_rsvp(self.session, event_id, email)

    def create_rsvp_idempotent(self, **fields: Any) -> str:
        try:
            return crud.create_rsvp_idempotent(self.session, **fields)
        except SQLAlchemyError as exc:
            raise RepositoryError(str(getattr(exc, "orig", None) or exc)) from exc

    def increment_view_count(self, event_id: str) -> None:
        crud.increment_view_count(self.session, event_id)

    def record_view(self, event_id: str) -> None:
        crud.record_view(self.session, event_id)

    def enqueue_notification(self, **fields: Any) -> None:
        crud.create_notification(self.session, **fields)

    def list_hosted_events(self, user_id: str) -> Sequence[Event]:
        return crud.list_hosted_events(self.session, user_id)

    def list_attending_events(self, email: str) -> Sequence[Event]:
        return crud.list_attending_events(self.session, email)

    def list_event_rsvps(self, event_id: str) -> Sequence[RSVP]:
        return crud.list_event_rsvps(self.session, event_id)

    def create_event(self, **fields: Any) -> Event:
        return crud.create_event(self.session, **fields)

    def update_event(self, event: Event, changes: Mapping[str, Any]) -> Event:
        return crud.update_event(self.session, event, changes)

    def upsert_sub_events(
        self, event: Event, items: Iterable[Mapping[str, Any]]
    ) -> list[SubEvent]:
        return crud.upsert_sub_events(self.session, event, items)

    def delete_sub_event(self, event: Event, sub_event_id: str) -> bool:
        return crud.delete_sub_event(self.session, event, sub_event_id)

    def delete_event(self, event: Event) -> None:
        crud.delete_event(self.session, event)
