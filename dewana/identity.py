"""Signed-in identity, resolved once per request and passed explicitly."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import HTTPException, Request
from sqlalchemy.orm import Session

from .crud import get_user_by_token
from .models import User

SESSION_COOKIE = "dewana_session"


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: str | None
    display_name: str | None

    @classmethod
    def from_user(cls, user: User) -> Identity:
        return cls(user_id=user.id, email=user.email, display_name=user.display_name)

    @property
    def short_name(self) -> str:
        if self.display_name:
            return self.display_name
        if self.email:
            return self.email.split("@")[0]
        return "Friend"


def _get_bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("authorization") or ""
    if not auth_header.lower().startswith("bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def request_token(request: Request) -> str | None:
    return _get_bearer_token(request) or request.cookies.get(SESSION_COOKIE) or None


def resolve_identity(request: Request, db: Session) -> Identity | None:
    """Return the caller's identity, or ``None`` for anonymous guests."""
    user = get_user_by_token(db, request_token(request))
    return Identity.from_user(user) if user else None


def require_identity(identity: Identity | None) -> Identity:
    if identity is None:
        raise HTTPException(status_code=401, detail="Sign in required")
    return identity
