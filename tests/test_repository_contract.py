"""The same assertions against the SQL repository and the in-memory fake."""

from __future__ import annotations

import pytest

from dewana.repository import DuplicateRSVPError, SqlRepository

from fakes import FakeEvent, FakeRepository
from helpers import make_event


@pytest.fixture(params=["sql", "fake"])
def store(request, session, host):
    """Yield ``(repository, first_event_id, second_event_id)``."""
    if request.param == "sql":
        first = make_event(session, host, event_name="First")
        second = make_event(session, host, event_name="Second")
        yield SqlRepository(session), first.id, second.id
        session.rollback()
    else:
        first, second = FakeEvent(), FakeEvent()
        yield FakeRepository([first, second]), first.id, second.id


def _fields(event_id: str, email: str) -> dict:
    return {
        "event_id": event_id,
        "guest_name": "Ravi",
        "guest_email": email,
        "guest_phone": None,
        "status": "yes",
        "num_guests": 3,
        "message": None,
    }


def test_create_returns_new_identifier(store):
    repository, event_id, _ = store
    rsvp_id = repository.create_rsvp_idempotent(**_fields(event_id, "ravi@example.com"))
    assert isinstance(rsvp_id, str) and rsvp_id


def test_second_create_for_same_key_is_rejected(store):
    repository, event_id, _ = store
    repository.create_rsvp_idempotent(**_fields(event_id, "ravi@example.com"))

    with pytest.raises(DuplicateRSVPError):
        repository.create_rsvp_idempotent(**_fields(event_id, "ravi@example.com"))


def test_key_comparison_ignores_email_case(store):
    repository, event_id, _ = store
    repository.create_rsvp_idempotent(**_fields(event_id, "ravi@example.com"))

    with pytest.raises(DuplicateRSVPError):
        repository.create_rsvp_idempotent(**_fields(event_id, "RAVI@Example.com"))


def test_same_email_may_respond_to_different_events(store):
    repository, first_id, second_id = store
    a = repository.create_rsvp_idempotent(**_fields(first_id, "ravi@example.com"))
    b = repository.create_rsvp_idempotent(**_fields(second_id, "ravi@example.com"))
    assert a != b


def test_find_existing_is_case_insensitive(store):
    repository, event_id, _ = store
    rsvp_id = repository.create_rsvp_idempotent(**_fields(event_id, "ravi@example.com"))

    found = repository.find_existing_rsvp(event_id, "Ravi@EXAMPLE.com")

    assert found is not None
    assert found.id == rsvp_id
    assert found.guest_email == "ravi@example.com"
    assert found.num_guests == 3


def test_find_existing_returns_none_when_absent(store):
    repository, event_id, _ = store
    assert repository.find_existing_rsvp(event_id, "nobody@example.com") is None


def test_stored_email_is_lower_case(store):
    repository, event_id, _ = store
    repository.create_rsvp_idempotent(**_fields(event_id, "Mixed@Case.COM"))
    [stored] = repository.list_event_rsvps(event_id)
    assert stored.guest_email == "mixed@case.com"
