"""Best-effort page-view recording."""

from __future__ import annotations

import logging

from .database import get_session
from .repository import SqlRepository

logger = logging.getLogger("uvicorn.error")


def track_view(event_id: str) -> None:
    """Log a page view and bump the event's counter.

    Runs after the response is sent. The two writes use separate sessions and
    are unordered relative to each other; a failure in either is logged and
    dropped.
    """
    try:
        with get_session() as session:
            SqlRepository(session).record_view(event_id)
    except Exception:
        logger.warning("Could not record view for event %s", event_id, exc_info=True)

    try:
        with get_session() as session:
            SqlRepository(session).increment_view_count(event_id)
    except Exception:
        logger.warning(
            "Could not increment view count for event %s", event_id, exc_info=True
        )
