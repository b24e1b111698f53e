"""CRUD helpers for users, events, sub-events, RSVPs and notifications."""

from __future__ import annotations

import secrets
import uuid
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any, Sequence

from pydantic import EmailStr, TypeAdapter, ValidationError
from sqlalchemy import func, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session, selectinload

from .models import (
    EVENT_TYPES,
    PUBLICATION_STATES,
    RSVP,
    RSVP_STATUSES,
    Event,
    EventView,
    Notification,
    SubEvent,
    User,
)
from .utils import normalize_social_links, slugify, to_naive_utc, utcnow

SLUG_SUFFIX_BYTES = 3

_email_adapter = TypeAdapter(EmailStr)

# Columns a host may change after creation; the slug is immutable.
EDITABLE_EVENT_FIELDS = {
    "event_name",
    "event_type",
    "host_names",
    "description",
    "start_date",
    "end_date",
    "venue_name",
    "venue_address",
    "parking_notes",
    "dress_code",
    "cover_image_url",
    "rsvp_enabled",
    "status",
    "youtube_link",
    "google_photos_url",
    "google_drive_url",
    "custom_social_links",
}


class RepositoryError(Exception):
    """Raised when the store rejects a read or write."""


class DuplicateRSVPError(RepositoryError):
    """Raised when an RSVP already exists for the (event, email) pair."""

    def __init__(self, message: str = "You have already responded to this event."):
        super().__init__(message)


def _now() -> datetime:
    return utcnow()


def normalize_email(value: str | None) -> str:
    return (value or "").strip().lower()


def validate_email_address(value: str | None) -> str:
    """Return the lower-cased address, or raise ``ValueError`` if it is not one."""
    normalized = normalize_email(value)
    try:
        return normalize_email(_email_adapter.validate_python(normalized))
    except ValidationError as exc:
        raise ValueError(f"Invalid email address: {value!r}") from exc


def _normalize_event_type(value: str | None) -> str:
    normalized = (value or "").strip().lower() or "other"
    if normalized not in EVENT_TYPES:
        raise ValueError(f"Invalid event type: {value}")
    return normalized


def _normalize_publication_state(value: str | None) -> str:
    normalized = (value or "").strip().lower() or "draft"
    if normalized not in PUBLICATION_STATES:
        raise ValueError(f"Invalid event status: {value}")
    return normalized


# -------- Users --------


def get_user_by_token(session: Session, token: str | None) -> User | None:
    if not token:
        return None
    return session.scalars(select(User).where(User.api_token == token)).first()


def get_user_by_email(session: Session, email: str) -> User | None:
    return session.scalars(
        select(User).where(User.email == normalize_email(email))
    ).first()


def create_user(session: Session, *, email: str, display_name: str | None) -> User:
    try:
        normalized = validate_email_address(email)
    except ValueError as exc:
        raise ValueError("A valid email address is required") from exc
    if get_user_by_email(session, normalized):
        raise ValueError("A user with that email already exists")
    user = User(
        email=normalized,
        display_name=(display_name or "").strip() or None,
        api_token=secrets.token_urlsafe(32),
        created_at=_now(),
    )
    session.add(user)
    session.flush()
    return user


def rotate_user_token(session: Session, user: User) -> str:
    user.api_token = secrets.token_urlsafe(32)
    session.add(user)
    session.flush()
    return user.api_token


# -------- Events --------


def get_event_by_slug(session: Session, slug: str) -> Event | None:
    normalized = (slug or "").strip().lower()
    if not normalized:
        return None
    stmt = (
        select(Event)
        .options(selectinload(Event.sub_events))
        .where(Event.slug == normalized)
    )
    return session.scalars(stmt).first()


def get_event_by_id(session: Session, event_id: str) -> Event | None:
    if not event_id:
        return None
    return session.get(Event, event_id)


def generate_unique_slug(session: Session, event_name: str) -> str:
    """Return ``<slugified-name>-<random hex>``, retrying on the rare collision."""
    base = slugify(event_name)[:120] or "event"
    while True:
        candidate = f"{base}-{secrets.token_hex(SLUG_SUFFIX_BYTES)}"
        exists = session.scalar(select(Event.id).where(Event.slug == candidate))
        if not exists:
            return candidate


def create_event(
    session: Session,
    *,
    owner: User,
    event_name: str,
    start_date: datetime,
    event_type: str = "other",
    end_date: datetime | None = None,
    status: str = "draft",
    rsvp_enabled: bool = True,
    **optional: Any,
) -> Event:
    """Create and persist a new event with a freshly generated slug."""
    name = (event_name or "").strip()
    if not name:
        raise ValueError("Event name is required")
    normalized_start = to_naive_utc(start_date)
    normalized_end = to_naive_utc(end_date)
    if normalized_end is not None and normalized_end < normalized_start:
        raise ValueError("End time must be after the start time")
    unknown = set(optional) - EDITABLE_EVENT_FIELDS
    if unknown:
        raise ValueError(f"Unknown event fields: {', '.join(sorted(unknown))}")
    if "custom_social_links" in optional:
        optional["custom_social_links"] = normalize_social_links(
            optional["custom_social_links"]
        )

    event = Event(
        owner=owner,
        event_name=name,
        event_type=_normalize_event_type(event_type),
        start_date=normalized_start,
        end_date=normalized_end,
        status=_normalize_publication_state(status),
        rsvp_enabled=bool(rsvp_enabled),
        slug=generate_unique_slug(session, name),
        view_count=0,
        created_at=_now(),
        updated_at=_now(),
        **optional,
    )
    session.add(event)
    session.flush()
    return event


def update_event(session: Session, event: Event, changes: Mapping[str, Any]) -> Event:
    """Apply host edits to an event. The slug never changes."""
    unknown = set(changes) - EDITABLE_EVENT_FIELDS
    if unknown:
        raise ValueError(f"Unknown event fields: {', '.join(sorted(unknown))}")
    for key, value in changes.items():
        if key == "event_name":
            value = (value or "").strip()
            if not value:
                raise ValueError("Event name is required")
        elif key == "event_type":
            value = _normalize_event_type(value)
        elif key == "status":
            value = _normalize_publication_state(value)
        elif key in {"start_date", "end_date"}:
            value = to_naive_utc(value)
        elif key == "custom_social_links":
            value = normalize_social_links(value)
        elif key == "rsvp_enabled":
            value = bool(value)
        elif isinstance(value, str):
            value = value.strip() or None
        setattr(event, key, value)
    if event.end_date is not None and event.end_date < event.start_date:
        raise ValueError("End time must be after the start time")
    event.updated_at = _now()
    session.add(event)
    session.flush()
    return event


def upsert_sub_events(
    session: Session, event: Event, items: Iterable[Mapping[str, Any]]
) -> list[SubEvent]:
    """Insert or update an event's itinerary in one batch.

    Items carrying an ``id`` update that sub-event; items without one are
    inserted. Sub-events missing from ``items`` are left untouched.
    """
    existing = {sub.id: sub for sub in event.sub_events}
    touched: list[SubEvent] = []
    for item in items:
        name = (item.get("name") or "").strip()
        if not name:
            raise ValueError("Every itinerary item needs a name")
        date_time = to_naive_utc(item.get("date_time"))
        if date_time is None:
            raise ValueError(f"Itinerary item '{name}' needs a date")
        location = (item.get("location_name") or "").strip() or None
        sub_id = item.get("id")
        if sub_id:
            sub_event = existing.get(sub_id)
            if sub_event is None:
                raise ValueError(f"Unknown itinerary item: {sub_id}")
            sub_event.name = name
            sub_event.date_time = date_time
            sub_event.location_name = location
        else:
            sub_event = SubEvent(
                id=str(uuid.uuid4()),
                name=name,
                date_time=date_time,
                location_name=location,
            )
            event.sub_events.append(sub_event)
        session.add(sub_event)
        touched.append(sub_event)
    session.flush()
    event.sub_events.sort(key=lambda sub: sub.date_time)
    return touched


def delete_sub_event(session: Session, event: Event, sub_event_id: str) -> bool:
    sub_event = next((sub for sub in event.sub_events if sub.id == sub_event_id), None)
    if sub_event is None:
        return False
    event.sub_events.remove(sub_event)
    session.flush()
    return True


def delete_event(session: Session, event: Event) -> None:
    """Delete an event; its RSVPs, sub-events and views cascade."""
    session.delete(event)
    session.flush()


def list_hosted_events(session: Session, user_id: str) -> Sequence[Event]:
    stmt = (
        select(Event)
        .where(Event.user_id == user_id)
        .order_by(Event.created_at.desc())
    )
    return session.scalars(stmt).all()


def list_attending_events(session: Session, email: str) -> Sequence[Event]:
    normalized = normalize_email(email)
    if not normalized:
        return []
    event_ids = select(RSVP.event_id).where(func.lower(RSVP.guest_email) == normalized)
    stmt = (
        select(Event)
        .where(Event.id.in_(event_ids))
        .order_by(Event.start_date.asc())
    )
    return session.scalars(stmt).all()


# -------- RSVPs --------


def find_existing_rsvp(session: Session, event_id: str, email: str) -> RSVP | None:
    """Return the most recent RSVP for the event by this email, any casing."""
    normalized = normalize_email(email)
    if not normalized:
        return None
    stmt = (
        select(RSVP)
        .where(RSVP.event_id == event_id)
        .where(func.lower(RSVP.guest_email) == normalized)
        .order_by(RSVP.submitted_at.desc())
        .limit(1)
    )
    return session.scalars(stmt).first()


def create_rsvp_idempotent(
    session: Session,
    *,
    event_id: str,
    guest_name: str,
    guest_email: str,
    guest_phone: str | None,
    status: str,
    num_guests: int | None,
    message: str | None,
) -> str:
    """Insert an RSVP unless one exists for (event, email); return its id.

    A single ``INSERT ... ON CONFLICT DO NOTHING RETURNING`` keeps the check
    and the write atomic.
    """
    if status not in RSVP_STATUSES:
        raise RepositoryError(f"Invalid RSVP status: {status}")
    if session.get(Event, event_id) is None:
        raise RepositoryError("Event not found")
    stmt = (
        sqlite_insert(RSVP)
        .values(
            id=str(uuid.uuid4()),
            event_id=event_id,
            guest_name=guest_name,
            guest_email=normalize_email(guest_email),
            guest_phone=guest_phone,
            status=status,
            num_guests=num_guests,
            message=message,
            submitted_at=_now(),
        )
        .on_conflict_do_nothing(index_elements=["event_id", "guest_email"])
        .returning(RSVP.id)
    )
    rsvp_id = session.execute(stmt).scalar_one_or_none()
    if rsvp_id is None:
        raise DuplicateRSVPError()
    return rsvp_id


def list_event_rsvps(session: Session, event_id: str) -> Sequence[RSVP]:
    stmt = (
        select(RSVP)
        .where(RSVP.event_id == event_id)
        .order_by(RSVP.submitted_at.desc())
    )
    return session.scalars(stmt).all()


def rsvp_stats(rsvps: Iterable[RSVP]) -> dict[str, int]:
    counts = {status: 0 for status in RSVP_STATUSES}
    attending_guests = 0
    for rsvp in rsvps:
        counts[rsvp.status] = counts.get(rsvp.status, 0) + 1
        if rsvp.status == "yes":
            attending_guests += rsvp.num_guests or 1
    return {
        "yes_count": counts["yes"],
        "no_count": counts["no"],
        "maybe_count": counts["maybe"],
        "total_responses": sum(counts.values()),
        "attending_guests": attending_guests,
    }


# -------- Views & notifications --------


def increment_view_count(session: Session, event_id: str) -> None:
    session.execute(
        update(Event)
        .where(Event.id == event_id)
        .values(view_count=Event.view_count + 1)
        .execution_options(synchronize_session=False)
    )


def record_view(session: Session, event_id: str) -> None:
    session.add(EventView(event_id=event_id, viewed_at=_now()))
    session.flush()


def create_notification(
    session: Session,
    *,
    user_id: str,
    title: str,
    message: str,
    type: str = "system",
    event_id: str | None = None,
) -> Notification:
    """Queue a notification inside a savepoint so a failure leaves the caller's
    transaction intact."""
    notification = Notification(
        user_id=user_id,
        event_id=event_id,
        title=title,
        message=message,
        type=type,
        is_read=False,
        created_at=_now(),
    )
    with session.begin_nested():
        session.add(notification)
    return notification
