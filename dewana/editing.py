"""Translate edit-form input into event changes and itinerary rows.

Form dates arrive as separate ``date`` and ``time`` fields in the viewer's
local time, along with the browser's ``getTimezoneOffset()`` value.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from .models import Event
from .utils import combine_date_time, normalize_social_links, split_datetime

TEXT_FIELDS = (
    "event_name",
    "event_type",
    "host_names",
    "description",
    "venue_name",
    "venue_address",
    "parking_notes",
    "dress_code",
    "status",
    "youtube_link",
    "google_photos_url",
    "google_drive_url",
)


class EditFormError(ValueError):
    """Raised when submitted edit fields cannot be interpreted."""


def event_form_data(event: Event, offset_minutes: int | str | None = 0) -> dict:
    """Return the event as edit-form fields in the viewer's local time."""
    start_date, start_time = split_datetime(event.start_date, offset_minutes)
    end_date, end_time = split_datetime(event.end_date, offset_minutes)
    data: dict[str, Any] = {field: getattr(event, field) or "" for field in TEXT_FIELDS}
    data.update(
        {
            "id": event.id,
            "slug": event.slug,
            "start_date": start_date,
            "start_time": start_time,
            "end_date": end_date,
            "end_time": end_time,
            "rsvp_enabled": bool(event.rsvp_enabled),
            "cover_image_url": event.cover_image_url or "",
            "custom_social_links": normalize_social_links(event.custom_social_links),
            "sub_events": [],
        }
    )
    for sub in event.sub_events:
        sub_date, sub_time = split_datetime(sub.date_time, offset_minutes)
        data["sub_events"].append(
            {
                "id": sub.id,
                "name": sub.name,
                "date": sub_date,
                "time": sub_time,
                "location_name": sub.location_name or "",
            }
        )
    return data


def _combine(date_value: str | None, time_value: str | None, offset, label: str):
    try:
        return combine_date_time(date_value or "", time_value, offset)
    except ValueError as exc:
        raise EditFormError(f"Invalid {label}: {exc}") from exc


def build_event_changes(
    data: Mapping[str, Any], offset_minutes: int | str | None = 0
) -> dict[str, Any]:
    """Collect the event columns present in ``data``.

    Only keys that were submitted are returned, so partial updates leave the
    rest of the event alone. An empty ``end_date`` clears the end.
    """
    changes: dict[str, Any] = {}
    for field in TEXT_FIELDS:
        if field in data and data[field] is not None:
            changes[field] = data[field]
    if "start_date" in data:
        changes["start_date"] = _combine(
            data.get("start_date"), data.get("start_time"), offset_minutes, "start date"
        )
    if "end_date" in data:
        if (data.get("end_date") or "").strip():
            changes["end_date"] = _combine(
                data.get("end_date"), data.get("end_time"), offset_minutes, "end date"
            )
        else:
            changes["end_date"] = None
    if "rsvp_enabled" in data and data["rsvp_enabled"] is not None:
        changes["rsvp_enabled"] = bool(data["rsvp_enabled"])
    if "custom_social_links" in data:
        changes["custom_social_links"] = normalize_social_links(
            data["custom_social_links"]
        )
    return changes


def build_sub_event_items(
    rows: Sequence[Mapping[str, Any]], offset_minutes: int | str | None = 0
) -> list[dict[str, Any]]:
    """Turn itinerary form rows into ``upsert_sub_events`` items.

    Rows without a name are skipped, which is how the form drops blank lines.
    """
    items = []
    for row in rows:
        name = (row.get("name") or "").strip()
        if not name:
            continue
        items.append(
            {
                "id": (row.get("id") or "").strip() or None,
                "name": name,
                "date_time": _combine(
                    row.get("date"), row.get("time"), offset_minutes, f"date for {name}"
                ),
                "location_name": row.get("location_name"),
            }
        )
    return items


def zip_form_rows(keys: Sequence[str], columns: Sequence[Sequence[str]]) -> list[dict]:
    """Rebuild row dicts from parallel form lists such as ``sub_event_name``."""
    length = max((len(column) for column in columns), default=0)
    rows = []
    for index in range(length):
        rows.append(
            {
                key: column[index] if index < len(column) else ""
                for key, column in zip(keys, columns)
            }
        )
    return rows
