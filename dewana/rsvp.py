"""RSVP submission workflow.

A ``RSVPWorkflow`` is created per form instance (one per request on the
server). It moves ``no_response -> submitting -> confirmed``; it can also jump
straight to ``confirmed`` when an earlier response is found for the signed-in
guest.

Uniqueness per (event, email) is the store's job: ``submit`` makes a single
``create_rsvp_idempotent`` call and never reads before writing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from .crud import (
    DuplicateRSVPError,
    RepositoryError,
    normalize_email,
    validate_email_address,
)
from .identity import Identity
from .repository import Repository
from .utils.calendar import event_calendar_link

logger = logging.getLogger("uvicorn.error")

MIN_GUESTS = 1
MAX_GUESTS = 10
GENERIC_FAILURE = "Failed to submit RSVP"


class RSVPState(str, Enum):
    NO_RESPONSE = "no_response"
    SUBMITTING = "submitting"
    CONFIRMED = "confirmed"


class RSVPValidationError(ValueError):
    """Rejected locally before anything was sent to the store."""


class RSVPSubmissionError(RuntimeError):
    """The store rejected or failed the write; ``str(exc)`` is its message."""

    def __init__(self, message: str, *, duplicate: bool = False):
        super().__init__(message)
        self.duplicate = duplicate


class SubmissionInProgressError(RuntimeError):
    """A second submit was attempted while the first is still running."""


class RSVPForm(BaseModel):
    guest_name: str = ""
    guest_email: str = ""
    guest_phone: str | None = None
    status: Literal["yes", "no", "maybe"] = "yes"
    num_guests: int | None = Field(default=1)
    message: str | None = None


def clamp_guest_count(raw: int | str | None) -> int:
    try:
        value = int(raw if raw not in (None, "") else MIN_GUESTS)
    except (TypeError, ValueError):
        value = MIN_GUESTS
    return max(MIN_GUESTS, min(value, MAX_GUESTS))


@dataclass
class ConfirmedResponse:
    id: str
    guest_name: str
    guest_email: str
    status: str
    num_guests: int | None
    guest_phone: str | None = None
    message: str | None = None
    calendar_link: str | None = None
    from_existing: bool = False

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "guest_name": self.guest_name,
            "guest_email": self.guest_email,
            "guest_phone": self.guest_phone,
            "status": self.status,
            "num_guests": self.num_guests,
            "message": self.message,
            "calendar_link": self.calendar_link,
            "from_existing": self.from_existing,
        }


@dataclass
class RSVPWorkflow:
    repository: Repository
    event: object
    identity: Identity | None = None
    state: RSVPState = RSVPState.NO_RESPONSE
    submitting: bool = False
    confirmed: ConfirmedResponse | None = field(default=None)

    def lookup_existing(self) -> ConfirmedResponse | None:
        """Short-circuit to ``confirmed`` if the signed-in guest already replied.

        Advisory only: a concurrent submission from another session can still
        land first, and the store decides.
        """
        email = self.identity.email if self.identity else None
        if not email:
            return None
        existing = self.repository.find_existing_rsvp(self.event.id, email)
        if existing is None:
            return None
        self.confirmed = ConfirmedResponse(
            id=existing.id,
            guest_name=existing.guest_name,
            guest_email=existing.guest_email,
            guest_phone=existing.guest_phone,
            status=existing.status,
            num_guests=existing.num_guests,
            message=existing.message,
            calendar_link=self._calendar_link(existing.status),
            from_existing=True,
        )
        self.state = RSVPState.CONFIRMED
        return self.confirmed

    def prepare(self, form: RSVPForm) -> dict:
        """Validate the form and return the exact fields sent to the store."""
        if self.event.status != "published":
            raise RSVPValidationError("Event not yet published.")
        if not self.event.rsvp_enabled:
            raise RSVPValidationError("RSVPs are currently closed for this event.")

        guest_name = (form.guest_name or "").strip()
        if not guest_name:
            raise RSVPValidationError("Please enter your name.")
        raw_email = form.guest_email
        if self.identity and self.identity.email:
            raw_email = self.identity.email
        if not normalize_email(raw_email):
            raise RSVPValidationError("Please enter your email address.")
        try:
            guest_email = validate_email_address(raw_email)
        except ValueError as exc:
            raise RSVPValidationError("Please enter a valid email address.") from exc

        return {
            "event_id": self.event.id,
            "guest_name": guest_name,
            "guest_email": guest_email,
            "guest_phone": (form.guest_phone or "").strip() or None,
            "status": form.status,
            "num_guests": clamp_guest_count(form.num_guests)
            if form.status == "yes"
            else None,
            "message": (form.message or "").strip() or None,
        }

    def submit(self, form: RSVPForm) -> ConfirmedResponse:
        if self.state is RSVPState.CONFIRMED and self.confirmed is not None:
            return self.confirmed
        if self.submitting:
            raise SubmissionInProgressError("An RSVP submission is already in progress.")

        payload = self.prepare(form)

        self.submitting = True
        self.state = RSVPState.SUBMITTING
        try:
            try:
                rsvp_id = self.repository.create_rsvp_idempotent(**payload)
            except DuplicateRSVPError as exc:
                raise RSVPSubmissionError(
                    str(exc) or GENERIC_FAILURE, duplicate=True
                ) from exc
            except RepositoryError as exc:
                raise RSVPSubmissionError(str(exc) or GENERIC_FAILURE) from exc

            self._notify_submitter()
            fields = {key: value for key, value in payload.items() if key != "event_id"}
            self.confirmed = ConfirmedResponse(
                id=rsvp_id,
                calendar_link=self._calendar_link(payload["status"]),
                **fields,
            )
            self.state = RSVPState.CONFIRMED
            logger.info(
                "RSVP %s recorded for event %s (%s)",
                rsvp_id,
                self.event.id,
                payload["status"],
            )
            return self.confirmed
        finally:
            self.submitting = False
            if self.state is RSVPState.SUBMITTING:
                self.state = RSVPState.NO_RESPONSE

    def _calendar_link(self, status: str) -> str | None:
        if status != "yes":
            return None
        return event_calendar_link(self.event)

    def _notify_submitter(self) -> None:
        if self.identity is None:
            return
        try:
            self.repository.enqueue_notification(
                user_id=self.identity.user_id,
                title="RSVP Submitted Successfully!",
                message=f'You\'re all set for "{self.event.event_name}".',
                type="system",
                event_id=self.event.id,
            )
        except Exception:
            logger.warning(
                "Could not queue RSVP confirmation for user %s on event %s",
                self.identity.user_id,
                self.event.id,
                exc_info=True,
            )
