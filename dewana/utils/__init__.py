"""Utility helpers for Dewana."""

from __future__ import annotations

import re
import unicodedata
from datetime import UTC, date, datetime, time, timedelta
from typing import Any

_slug_invalid = re.compile(r"[^a-z0-9]+")
_date_pattern = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_time_pattern = re.compile(r"^\d{1,2}:\d{2}(:\d{2})?$")

DEFAULT_TIME = time(12, 0)

EVENT_TYPE_EMOJI = {
    "wedding": "\N{CONFETTI BALL}",
    "birthday": "\N{BIRTHDAY CAKE}",
    "festival": "\N{DIYA LAMP}",
    "graduation": "\N{GRADUATION CAP}",
    "baby-shower": "\N{BABY}",
    "corporate": "\N{BRIEFCASE}",
    "other": "\N{PARTY POPPER}",
}


def utcnow() -> datetime:
    """Return a naive UTC datetime."""

    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Convert aware datetimes to naive UTC; naive values are assumed UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def slugify(value: str) -> str:
    """Return a canonical slug suitable for URLs."""
    value = (
        unicodedata.normalize("NFKD", value or "")
        .encode("ascii", "ignore")
        .decode("ascii")
    )
    value = value.strip().lower()
    value = _slug_invalid.sub("-", value)
    value = value.strip("-")
    return value


def local_to_utc(dt: datetime, offset_minutes: int | str | None) -> datetime:
    """Normalize a naive local datetime to UTC (still naive).

    ``offset_minutes`` follows the browser convention of
    ``Date.getTimezoneOffset()``: minutes to add to local time to reach UTC.
    """
    try:
        offset = int(offset_minutes or 0)
    except (TypeError, ValueError):
        offset = 0
    return dt + timedelta(minutes=offset)


def utc_to_local(dt: datetime, offset_minutes: int | str | None) -> datetime:
    try:
        offset = int(offset_minutes or 0)
    except (TypeError, ValueError):
        offset = 0
    return dt - timedelta(minutes=offset)


def split_datetime(
    value: datetime | None, offset_minutes: int | str | None = 0
) -> tuple[str, str]:
    """Split a stored UTC timestamp into ``("YYYY-MM-DD", "HH:MM")`` form fields."""
    if value is None:
        return "", ""
    local = utc_to_local(to_naive_utc(value), offset_minutes)
    return local.date().isoformat(), local.strftime("%H:%M")


def combine_date_time(
    date_value: str, time_value: str | None, offset_minutes: int | str | None = 0
) -> datetime:
    """Reassemble date and time form fields into a naive UTC datetime.

    An empty time falls back to noon. Raises ``ValueError`` on malformed input.
    """
    cleaned_date = (date_value or "").strip()
    if not _date_pattern.match(cleaned_date):
        raise ValueError(f"Invalid date: {date_value!r}")
    parsed_date = date.fromisoformat(cleaned_date)
    cleaned_time = (time_value or "").strip()
    if cleaned_time:
        if not _time_pattern.match(cleaned_time):
            raise ValueError(f"Invalid time: {time_value!r}")
        hours, minutes = (int(part) for part in cleaned_time.split(":")[:2])
        if hours > 23 or minutes > 59:
            raise ValueError(f"Invalid time: {time_value!r}")
        parsed_time = time(hours, minutes)
    else:
        parsed_time = DEFAULT_TIME
    return local_to_utc(datetime.combine(parsed_date, parsed_time), offset_minutes)


def format_date(value: datetime | None, offset_minutes: int | str | None = 0) -> str:
    """Return a long human date such as 'Saturday, 14 June 2025 at 6:30 PM'."""
    if not value:
        return ""
    local = utc_to_local(to_naive_utc(value), offset_minutes)
    hour = local.strftime("%I").lstrip("0") or "12"
    return (
        f"{local.strftime('%A')}, {local.day} {local.strftime('%B %Y')} "
        f"at {hour}:{local.strftime('%M %p')}"
    )


def event_type_emoji(event_type: str | None) -> str:
    return EVENT_TYPE_EMOJI.get((event_type or "").lower(), EVENT_TYPE_EMOJI["other"])


def humanize_time(value: datetime | None, *, now: datetime | None = None) -> str:
    """Return a friendly string such as 'in 2 weeks' or '3 hours ago'."""
    if not value:
        return ""
    now = now or utcnow()
    delta_seconds = (value - now).total_seconds()
    past = delta_seconds < 0
    seconds = abs(delta_seconds)

    units = [
        ("year", 365 * 24 * 3600),
        ("month", 30 * 24 * 3600),
        ("day", 24 * 3600),
        ("hour", 3600),
        ("minute", 60),
    ]

    for name, step in units:
        amount = int(seconds // step)
        if amount >= 1:
            label = name if amount == 1 else f"{name}s"
            return f"{amount} {label} ago" if past else f"in {amount} {label}"
    return "moments ago" if past else "in moments"


def normalize_social_links(raw: Any) -> list[dict[str, str]]:
    """Return social links as an ordered list of ``{"platform", "url"}`` dicts.

    Older events stored a mapping such as ``{"instagram_url": "..."}``; those
    are converted. Entries without a URL are dropped, duplicates by platform
    are kept.
    """
    if not raw:
        return []
    links: list[dict[str, str]] = []
    if isinstance(raw, dict):
        instagram = raw.get("instagram_url")
        if instagram:
            links.append({"platform": "Instagram", "url": str(instagram).strip()})
        return links
    if not isinstance(raw, (list, tuple)):
        return []
    for item in raw:
        if not isinstance(item, dict):
            continue
        url = str(item.get("url") or "").strip()
        if not url:
            continue
        platform = str(item.get("platform") or "").strip() or "Link"
        links.append({"platform": platform, "url": url})
    return links
