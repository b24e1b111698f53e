"""Live lifecycle status of an event, derived from its timestamps."""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum

from .utils import to_naive_utc, utcnow


class EventStatus(str, Enum):
    UPCOMING = "Upcoming"
    LIVE = "Live"
    COMPLETED = "Completed"


def derive_status(
    start: datetime,
    end: datetime | None,
    now: datetime,
    *,
    grace_window: timedelta,
) -> EventStatus:
    """Return the lifecycle status of an event at ``now``.

    An event is live from its start (inclusive) until its end (inclusive).
    Events without an end stay live for ``grace_window`` after they start.
    Aware datetimes are converted to UTC; naive ones are taken as UTC.
    """
    start = to_naive_utc(start)
    end = to_naive_utc(end)
    now = to_naive_utc(now)

    if now < start:
        return EventStatus.UPCOMING
    effective_end = end if end is not None else start + grace_window
    if now <= effective_end:
        return EventStatus.LIVE
    return EventStatus.COMPLETED


def event_status(event, *, grace_window: timedelta, now: datetime | None = None):
    return derive_status(
        event.start_date, event.end_date, now or utcnow(), grace_window=grace_window
    )
