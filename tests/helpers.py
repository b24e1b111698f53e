from __future__ import annotations

from datetime import datetime, timedelta

from dewana import crud
from dewana.utils import utcnow


def make_event(
    session,
    owner,
    *,
    event_name: str = "Mehndi Night",
    start: datetime | None = None,
    end: datetime | None = None,
    status: str = "published",
    **fields,
):
    event = crud.create_event(
        session,
        owner=owner,
        event_name=event_name,
        start_date=start or utcnow().replace(microsecond=0) + timedelta(days=7),
        end_date=end,
        status=status,
        **fields,
    )
    session.commit()
    return event
