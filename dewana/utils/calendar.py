"""Google Calendar "add event" and Google Maps venue links."""

from __future__ import annotations

from datetime import datetime
from urllib.parse import urlencode

from .ics import format_utc

GOOGLE_CALENDAR_URL = "https://calendar.google.com/calendar/render"
GOOGLE_MAPS_SEARCH_URL = "https://www.google.com/maps/search/"


def google_calendar_link(
    *,
    title: str,
    start: datetime,
    end: datetime | None = None,
    description: str | None = None,
    location: str | None = None,
) -> str:
    """Return a prefilled Google Calendar template URL.

    Pure string formatting; ``end`` falls back to ``start`` the same way the
    ICS export does.
    """
    dates = f"{format_utc(start)}/{format_utc(end or start)}"
    params = {
        "action": "TEMPLATE",
        "text": title or "",
        "dates": dates,
        "details": description or "",
        "location": (location or "").strip(),
    }
    return f"{GOOGLE_CALENDAR_URL}?{urlencode(params)}"


def event_calendar_link(event) -> str:
    return google_calendar_link(
        title=event.event_name,
        start=event.start_date,
        end=event.end_date,
        description=event.description,
        location=event.location_text,
    )


def maps_link(event) -> str | None:
    """Google Maps search for the venue, offered only when a venue is named."""
    if not event.venue_name:
        return None
    return f"{GOOGLE_MAPS_SEARCH_URL}?{urlencode({'api': 1, 'query': event.location_text})}"
