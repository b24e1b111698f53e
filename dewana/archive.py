"""Move finished events from ``published`` to ``past``."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import and_, or_, select

from .config import settings
from .database import get_session
from .models import Event
from .status import EventStatus, derive_status
from .utils import utcnow

# Use uvicorn's error logger so archive messages show up with level prefixes.
logger = logging.getLogger("uvicorn.error")

ARCHIVE_BATCH_SIZE = 200


def run_archive_cycle(
    *, now: datetime | None = None, grace_window: timedelta | None = None
) -> dict:
    """Mark published events whose derived status is Completed as past."""
    now = now or utcnow()
    grace_window = grace_window or settings.live_grace_window
    stats = {"events_archived": 0, "batches": 0}

    # Coarse SQL pre-filter; derive_status makes the final call per row.
    candidates = and_(
        Event.status == "published",
        or_(
            Event.end_date < now,
            and_(Event.end_date.is_(None), Event.start_date < now - grace_window),
        ),
    )

    with get_session() as session:
        last_seen: str | None = None
        while True:
            query = select(Event).where(candidates).order_by(Event.id)
            if last_seen:
                query = query.where(Event.id > last_seen)
            batch = session.scalars(query.limit(ARCHIVE_BATCH_SIZE)).all()
            if not batch:
                break
            for event in batch:
                status = derive_status(
                    event.start_date, event.end_date, now, grace_window=grace_window
                )
                if status is not EventStatus.COMPLETED:
                    continue
                event.status = "past"
                session.add(event)
                stats["events_archived"] += 1
                logger.debug("Archived event %s (%s)", event.id, event.event_name)
            last_seen = batch[-1].id
            stats["batches"] += 1
            session.commit()

    logger.info(
        "Archive cycle finished: %d events moved to past across %d batches",
        stats["events_archived"],
        stats["batches"],
    )
    return stats
