from __future__ import annotations

import pytest

from dewana.identity import Identity
from dewana.repository import RepositoryError
from dewana.rsvp import (
    RSVPForm,
    RSVPState,
    RSVPSubmissionError,
    RSVPValidationError,
    RSVPWorkflow,
    SubmissionInProgressError,
    clamp_guest_count,
)

from fakes import FakeEvent, FakeRepository


@pytest.fixture()
def event():
    return FakeEvent()


@pytest.fixture()
def repository(event):
    return FakeRepository([event])


def _form(**overrides) -> RSVPForm:
    data = {
        "guest_name": "Priya",
        "guest_email": "Priya@Example.COM",
        "status": "yes",
        "num_guests": 2,
    }
    data.update(overrides)
    return RSVPForm(**data)


def test_unpublished_event_is_rejected_without_store_call(repository, event):
    event.status = "draft"
    workflow = RSVPWorkflow(repository=repository, event=event)

    with pytest.raises(RSVPValidationError, match="Event not yet published."):
        workflow.submit(_form())

    assert repository.create_calls == []
    assert workflow.state is RSVPState.NO_RESPONSE


def test_past_event_is_rejected_locally(repository, event):
    event.status = "past"
    workflow = RSVPWorkflow(repository=repository, event=event)
    with pytest.raises(RSVPValidationError):
        workflow.submit(_form())
    assert repository.create_calls == []


def test_closed_rsvps_are_rejected_locally(repository, event):
    event.rsvp_enabled = False
    workflow = RSVPWorkflow(repository=repository, event=event)
    with pytest.raises(RSVPValidationError, match="closed"):
        workflow.submit(_form())
    assert repository.create_calls == []


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"guest_name": "  "}, "name"),
        ({"guest_email": ""}, "email"),
        ({"guest_email": "not-an-address"}, "valid email"),
        ({"guest_email": "a@b.c.."}, "valid email"),
        ({"guest_email": '"a"@b.co'}, "valid email"),
        ({"guest_email": "priya@"}, "valid email"),
    ],
)
def test_missing_fields_fail_validation(repository, event, overrides, message):
    workflow = RSVPWorkflow(repository=repository, event=event)
    with pytest.raises(RSVPValidationError, match=message):
        workflow.submit(_form(**overrides))
    assert repository.create_calls == []


def test_submit_sends_lowercased_email_and_full_field_set(repository, event):
    workflow = RSVPWorkflow(repository=repository, event=event)

    workflow.submit(
        _form(guest_email="  A@B.COM ", guest_phone=" 555-0100 ", message=" Yay ")
    )

    assert repository.create_calls == [
        {
            "event_id": event.id,
            "guest_name": "Priya",
            "guest_email": "a@b.com",
            "guest_phone": "555-0100",
            "status": "yes",
            "num_guests": 2,
            "message": "Yay",
        }
    ]


def test_identity_email_takes_precedence(repository, event):
    identity = Identity(user_id="u-1", email="guest@example.com", display_name=None)
    workflow = RSVPWorkflow(repository=repository, event=event, identity=identity)

    workflow.submit(_form(guest_email="someone-else@example.com"))

    assert repository.create_calls[0]["guest_email"] == "guest@example.com"


@pytest.mark.parametrize(("raw", "expected"), [(0, 1), (1, 1), (7, 7), (25, 10), (None, 1)])
def test_guest_count_is_clamped_for_yes(repository, event, raw, expected):
    workflow = RSVPWorkflow(repository=repository, event=event)
    workflow.submit(_form(num_guests=raw))
    assert repository.create_calls[0]["num_guests"] == expected


@pytest.mark.parametrize("status", ["no", "maybe"])
def test_guest_count_is_dropped_unless_attending(repository, event, status):
    workflow = RSVPWorkflow(repository=repository, event=event)

    confirmed = workflow.submit(_form(status=status, num_guests=99))

    assert repository.create_calls[0]["num_guests"] is None
    assert repository.create_calls[0]["status"] == status
    assert confirmed.num_guests is None
    assert confirmed.calendar_link is None


def test_success_confirms_with_calendar_link(repository, event):
    workflow = RSVPWorkflow(repository=repository, event=event)

    confirmed = workflow.submit(_form())

    assert workflow.state is RSVPState.CONFIRMED
    assert workflow.submitting is False
    assert confirmed.id
    assert confirmed.calendar_link.startswith(
        "https://calendar.google.com/calendar/render?action=TEMPLATE"
    )
    assert "text=Garden+Party" in confirmed.calendar_link
    assert "location=Rose+Hall+1+Garden+Lane" in confirmed.calendar_link
    assert "dates=20300601T170000Z%2F20300601T170000Z" in confirmed.calendar_link


def test_confirmed_workflow_does_not_call_store_again(repository, event):
    workflow = RSVPWorkflow(repository=repository, event=event)
    first = workflow.submit(_form())

    second = workflow.submit(_form())

    assert second is first
    assert len(repository.create_calls) == 1


def test_prior_response_short_circuits_to_confirmed(repository, event):
    identity = Identity(user_id="u-1", email="Priya@example.com", display_name="Priya")
    RSVPWorkflow(repository=repository, event=event).submit(_form())

    workflow = RSVPWorkflow(repository=repository, event=event, identity=identity)
    existing = workflow.lookup_existing()

    assert workflow.state is RSVPState.CONFIRMED
    assert existing.from_existing is True
    assert existing.guest_email == "priya@example.com"
    workflow.submit(_form())
    assert len(repository.create_calls) == 1


def test_lookup_without_identity_is_a_no_op(repository, event):
    workflow = RSVPWorkflow(repository=repository, event=event)
    assert workflow.lookup_existing() is None
    assert workflow.state is RSVPState.NO_RESPONSE


def test_duplicate_surfaces_store_message_and_stays_submittable(repository, event):
    RSVPWorkflow(repository=repository, event=event).submit(_form())
    workflow = RSVPWorkflow(repository=repository, event=event)

    with pytest.raises(RSVPSubmissionError) as excinfo:
        workflow.submit(_form(guest_email="PRIYA@example.com"))

    assert excinfo.value.duplicate is True
    assert str(excinfo.value) == "You have already responded to this event."
    assert workflow.state is RSVPState.NO_RESPONSE
    assert workflow.submitting is False


def test_store_failure_uses_generic_fallback_and_allows_retry(repository, event):
    repository.fail_next_create = RepositoryError("")
    workflow = RSVPWorkflow(repository=repository, event=event)

    with pytest.raises(RSVPSubmissionError, match="Failed to submit RSVP"):
        workflow.submit(_form())
    assert workflow.state is RSVPState.NO_RESPONSE

    confirmed = workflow.submit(_form())
    assert confirmed.id
    assert len(repository.create_calls) == 2


def test_store_message_is_surfaced_verbatim(repository, event):
    repository.fail_next_create = RepositoryError("disk I/O error")
    workflow = RSVPWorkflow(repository=repository, event=event)
    with pytest.raises(RSVPSubmissionError, match="^disk I/O error$"):
        workflow.submit(_form())


def test_concurrent_submit_is_rejected(repository, event):
    workflow = RSVPWorkflow(repository=repository, event=event)
    workflow.submitting = True

    with pytest.raises(SubmissionInProgressError):
        workflow.submit(_form())
    assert repository.create_calls == []


def test_notification_is_queued_for_signed_in_guest(repository, event):
    identity = Identity(user_id="u-9", email="priya@example.com", display_name=None)
    workflow = RSVPWorkflow(repository=repository, event=event, identity=identity)

    workflow.submit(_form())

    assert len(repository.notifications) == 1
    notification = repository.notifications[0]
    assert notification["user_id"] == "u-9"
    assert notification["event_id"] == event.id


def test_anonymous_guest_gets_no_notification(repository, event):
    RSVPWorkflow(repository=repository, event=event).submit(_form())
    assert repository.notifications == []


def test_notification_failure_does_not_fail_submission(repository, event, caplog):
    repository.fail_notifications = True
    identity = Identity(user_id="u-9", email="priya@example.com", display_name=None)
    workflow = RSVPWorkflow(repository=repository, event=event, identity=identity)

    confirmed = workflow.submit(_form())

    assert confirmed.id
    assert workflow.state is RSVPState.CONFIRMED
    assert "Could not queue RSVP confirmation" in caplog.text


def test_clamp_guest_count_handles_garbage():
    assert clamp_guest_count("abc") == 1
    assert clamp_guest_count("") == 1
    assert clamp_guest_count("4") == 4
