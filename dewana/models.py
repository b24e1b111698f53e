"""SQLAlchemy models for Dewana."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

from .utils import utcnow

Base = declarative_base()

EVENT_TYPES = (
    "wedding",
    "birthday",
    "festival",
    "graduation",
    "baby-shower",
    "corporate",
    "other",
)
PUBLICATION_STATES = ("draft", "published", "past")
RSVP_STATUSES = ("yes", "no", "maybe")


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return utcnow()


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), nullable=False, unique=True)
    display_name = Column(String(120), nullable=True)
    api_token = Column(String(128), nullable=False, unique=True)
    created_at = Column(DateTime, default=_now, nullable=False)

    events = relationship("Event", back_populates="owner", cascade="all, delete")


class Event(Base):
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    event_name = Column(String(255), nullable=False)
    event_type = Column(String(32), nullable=False, default="other")
    host_names = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=True)
    venue_name = Column(String(255), nullable=True)
    venue_address = Column(Text, nullable=True)
    parking_notes = Column(Text, nullable=True)
    dress_code = Column(String(255), nullable=True)
    cover_image_url = Column(String(512), nullable=True)
    rsvp_enabled = Column(Boolean, default=True, nullable=False)
    status = Column(String(16), nullable=False, default="draft")
    slug = Column(String(160), nullable=False, unique=True)
    view_count = Column(Integer, default=0, nullable=False)
    youtube_link = Column(String(512), nullable=True)
    google_photos_url = Column(String(512), nullable=True)
    google_drive_url = Column(String(512), nullable=True)
    custom_social_links = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    owner = relationship("User", back_populates="events")
    sub_events = relationship(
        "SubEvent",
        back_populates="event",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="SubEvent.date_time",
    )
    rsvps = relationship(
        "RSVP",
        back_populates="event",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="desc(RSVP.submitted_at)",
    )
    views = relationship(
        "EventView",
        back_populates="event",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def location_text(self) -> str:
        """Venue name and address joined for calendars and map links."""
        return f"{self.venue_name or ''} {self.venue_address or ''}".strip()


class SubEvent(Base):
    __tablename__ = "sub_events"

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    name = Column(String(255), nullable=False)
    date_time = Column(DateTime, nullable=False)
    location_name = Column(String(255), nullable=True)

    event = relationship("Event", back_populates="sub_events")


class RSVP(Base):
    __tablename__ = "rsvps"
    __table_args__ = (
        UniqueConstraint("event_id", "guest_email", name="uq_rsvps_event_email"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    guest_name = Column(String(120), nullable=False)
    guest_email = Column(String(255), nullable=False)
    guest_phone = Column(String(40), nullable=True)
    status = Column(String(16), nullable=False, default="yes")
    num_guests = Column(Integer, nullable=True)
    message = Column(Text, nullable=True)
    submitted_at = Column(DateTime, default=_now, nullable=False)

    event = relationship("Event", back_populates="rsvps")


class EventView(Base):
    __tablename__ = "event_views"

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    viewed_at = Column(DateTime, default=_now, nullable=False)

    event = relationship("Event", back_populates="views")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    event_id = Column(
        String(36), ForeignKey("events.id", ondelete="SET NULL"), nullable=True
    )
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(32), nullable=False, default="system")
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)
