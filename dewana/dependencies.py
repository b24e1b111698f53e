"""FastAPI dependencies shared by the HTML and JSON routes."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from . import database
from .identity import Identity, require_identity, resolve_identity
from .models import Event
from .repository import SqlRepository


def get_db():
    db = database.SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_repository(db: Session = Depends(get_db)) -> SqlRepository:
    return SqlRepository(db)


def current_identity(
    request: Request, db: Session = Depends(get_db)
) -> Identity | None:
    return resolve_identity(request, db)


def ensure_event_by_slug(repository: SqlRepository, slug: str) -> Event:
    event = repository.find_event_by_slug(slug)
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


def ensure_owned_event(
    repository: SqlRepository, event_id: str, identity: Identity | None
) -> Event:
    """Return the event if ``identity`` hosts it; 401 anonymous, 403 others."""
    identity = require_identity(identity)
    event = repository.find_event_by_id(event_id)
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    if event.user_id != identity.user_id:
        raise HTTPException(status_code=403, detail="Only the host can manage this event")
    return event
