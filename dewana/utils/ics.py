"""iCalendar (.ics) helpers."""

from __future__ import annotations

import html
import re
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from dewana.models import Event


_tag_pattern = re.compile(r"<[^>]+>")


def ensure_utc(dt: datetime) -> datetime:
    """Return a timezone-aware UTC datetime."""

    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def format_utc(dt: datetime) -> str:
    """Format a datetime as an RFC5545 UTC timestamp."""

    return ensure_utc(dt).replace(microsecond=0).strftime("%Y%m%dT%H%M%SZ")


def _escape_text(value: str | None) -> str:
    """Escape text for ICS fields and strip any HTML tags."""

    if not value:
        return ""
    stripped = _tag_pattern.sub("", html.unescape(value))
    normalized = stripped.replace("\r\n", "\n").replace("\r", "\n")
    return (
        normalized.replace("\\", "\\\\")
        .replace(";", r"\;")
        .replace(",", r"\,")
        .replace("\n", "\\n")
    )


def generate_ics(event: Event, *, now: datetime | None = None) -> str:
    """Return ICS text for an event and its itinerary.

    Each sub-event becomes its own VEVENT so calendar apps show the schedule.
    """

    dtstamp = format_utc(now or datetime.now(UTC))
    end_source = event.end_date or event.start_date

    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//Dewana//EN",
        "BEGIN:VEVENT",
        f"UID:{event.id}@dewana",
        f"DTSTAMP:{dtstamp}",
        f"DTSTART:{format_utc(event.start_date)}",
        f"DTEND:{format_utc(end_source)}",
        f"SUMMARY:{_escape_text(event.event_name)}",
        f"DESCRIPTION:{_escape_text(event.description)}",
        f"LOCATION:{_escape_text(event.location_text)}",
        "END:VEVENT",
    ]
    for sub_event in event.sub_events:
        lines.extend(
            [
                "BEGIN:VEVENT",
                f"UID:{sub_event.id}@dewana",
                f"DTSTAMP:{dtstamp}",
                f"DTSTART:{format_utc(sub_event.date_time)}",
                f"DTEND:{format_utc(sub_event.date_time)}",
                f"SUMMARY:{_escape_text(f'{sub_event.name} ({event.event_name})')}",
                f"LOCATION:{_escape_text(sub_event.location_name)}",
                "END:VEVENT",
            ]
        )
    lines.append("END:VCALENDAR")
    return "\r\n".join(lines) + "\r\n"
