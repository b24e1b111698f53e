from __future__ import annotations

import re
from datetime import datetime
from urllib.parse import parse_qs, urlparse

from dewana import crud
from dewana.identity import SESSION_COOKIE
from dewana.models import RSVP, Event

from helpers import make_event


def _sign_in(client, user):
    response = client.get(f"/auth/{user.api_token}", follow_redirects=False)
    assert response.status_code == 303
    return response


def _field(html: str, name: str) -> str:
    return re.search(rf'name="{name}"[^>]*value="([^"]*)"', html).group(1)


def _flash(response) -> dict:
    query = parse_qs(urlparse(response.headers["location"]).query)
    return {key: values[0] for key, values in query.items()}


def test_sign_in_sets_session_cookie(client, host):
    response = _sign_in(client, host)
    assert response.headers["location"] == "/dashboard"
    assert response.cookies.get(SESSION_COOKIE) == host.api_token

    dashboard = client.get("/dashboard")
    assert dashboard.status_code == 200
    assert "Hello, Asha" in dashboard.text


def test_invalid_sign_in_link_renders_error_page(client):
    response = client.get("/auth/not-a-token")
    assert response.status_code == 404
    assert "This sign-in link is not valid" in response.text


def test_dashboard_requires_sign_in(client):
    response = client.get("/dashboard")
    assert response.status_code == 401
    assert "Open the sign-in link" in response.text


def test_event_page_renders_and_counts_view(client, session, host):
    event = make_event(session, host, event_name="Mehndi Night", venue_name="Rose Hall")

    response = client.get(f"/event/{event.slug}")
    assert response.status_code == 200
    assert "Mehndi Night" in response.text
    assert "Rose Hall" in response.text
    assert "no-store" in response.headers["cache-control"]

    session.expire_all()
    assert session.get(Event, event.id).view_count == 1


def test_draft_event_shows_banner(client, session, host):
    event = make_event(session, host, status="draft")
    response = client.get(f"/event/{event.slug}")
    assert response.status_code == 200
    assert "Draft, not yet published" in response.text


def test_missing_event_page_is_404(client):
    response = client.get("/event/does-not-exist")
    assert response.status_code == 404
    assert "Event not found" in response.text


def test_rsvp_form_confirms_submission(client, session, host):
    event = make_event(session, host)

    response = client.post(
        f"/event/{event.slug}/rsvp",
        data={
            "guest_name": "Priya",
            "guest_email": "Priya@Example.com",
            "status": "yes",
            "num_guests": "3",
        },
    )
    assert response.status_code == 201
    assert "Thanks, Priya! Your response is recorded" in response.text
    assert "Add to your calendar" in response.text

    session.expire_all()
    rsvp = session.query(RSVP).one()
    assert rsvp.guest_email == "priya@example.com"
    assert rsvp.num_guests == 3


def test_rsvp_form_errors_redirect_with_message(client, session, host):
    event = make_event(session, host)
    path = f"/event/{event.slug}/rsvp"
    data = {"guest_name": "Priya", "guest_email": "priya@example.com", "status": "yes"}
    client.post(path, data=data)

    duplicate = client.post(path, data=data, follow_redirects=False)
    assert duplicate.status_code == 303
    assert _flash(duplicate) == {
        "message": "You have already responded to this event.",
        "message_class": "alert-danger",
    }

    missing_name = client.post(
        path, data={**data, "guest_name": ""}, follow_redirects=False
    )
    assert _flash(missing_name)["message"] == "Please enter your name."


def test_signed_in_guest_sees_existing_response(client, session, host):
    event = make_event(session, host)
    _sign_in(client, host)
    client.post(
        f"/event/{event.slug}/rsvp",
        data={"guest_name": "Asha", "status": "maybe"},
    )

    response = client.get(f"/event/{event.slug}")
    assert "You already responded" in response.text


def test_edit_page_is_host_only(client, session, host):
    event = make_event(session, host)
    other = crud.create_user(session, email="other@example.com", display_name=None)
    session.commit()

    assert client.get(f"/edit-event/{event.id}").status_code == 401
    _sign_in(client, other)
    assert client.get(f"/edit-event/{event.id}").status_code == 403


def test_edit_form_updates_event_and_itinerary(client, session, host):
    event = make_event(session, host, start=datetime(2030, 1, 1, 13, 0))
    sub = crud.upsert_sub_events(
        session, event, [{"name": "Haldi", "date_time": datetime(2030, 1, 1, 9, 0)}]
    )[0]
    session.commit()
    slug = event.slug
    _sign_in(client, host)

    page = client.get(f"/edit-event/{event.id}", params={"tz": -330})
    assert page.status_code == 200
    assert 'value="18:30"' in page.text

    response = client.post(
        f"/edit-event/{event.id}",
        data={
            "event_name": "Renamed",
            "event_type": "wedding",
            "status": "published",
            "start_date": "2030-01-01",
            "start_time": "18:30",
            "timezone_offset_minutes": "-330",
            "rsvp_enabled": "true",
            "social_platform": ["Instagram", ""],
            "social_url": ["https://instagram.com/p/ABC", ""],
            "sub_event_id": [sub.id, ""],
            "sub_event_name": ["Haldi", "Sangeet"],
            "sub_event_date": ["2030-01-01", "2030-01-01"],
            "sub_event_time": ["09:00", "20:00"],
            "sub_event_location": ["Courtyard", "Lawn"],
            "remove_sub_event": [sub.id],
        },
        follow_redirects=False,
    )
    assert response.status_code == 303
    assert _flash(response)["message"] == "Event updated."

    session.expire_all()
    updated = session.get(Event, event.id)
    assert updated.slug == slug
    assert updated.event_name == "Renamed"
    assert updated.event_type == "wedding"
    assert updated.start_date == datetime(2030, 1, 1, 13, 0)
    assert updated.custom_social_links == [
        {"platform": "Instagram", "url": "https://instagram.com/p/ABC"}
    ]
    assert [(item.name, item.location_name) for item in updated.sub_events] == [
        ("Sangeet", "Lawn")
    ]


def test_edit_form_reports_bad_dates(client, session, host):
    event = make_event(session, host)
    _sign_in(client, host)
    response = client.post(
        f"/edit-event/{event.id}",
        data={"event_name": "Renamed", "start_date": "soon"},
        follow_redirects=False,
    )
    assert response.status_code == 303
    flash = _flash(response)
    assert flash["message_class"] == "alert-danger"
    assert "start date" in flash["message"]

    session.expire_all()
    assert session.get(Event, event.id).event_name == "Mehndi Night"


def test_edit_form_keeps_cover_when_upload_fails(client, session, host, caplog):
    event = make_event(session, host, cover_image_url="/media/covers/old.png")
    _sign_in(client, host)
    response = client.post(
        f"/edit-event/{event.id}",
        data={"event_name": "Mehndi Night", "start_date": "2030-01-01"},
        files={"cover_image": ("cover.exe", b"MZ", "application/octet-stream")},
        follow_redirects=False,
    )
    assert _flash(response)["message"] == "Event updated."
    assert "Cover upload failed" in caplog.text

    session.expire_all()
    assert session.get(Event, event.id).cover_image_url == "/media/covers/old.png"


def test_dashboard_delete(client, session, host):
    event_id = make_event(session, host, event_name="Gone Soon").id
    _sign_in(client, host)

    response = client.post(
        f"/dashboard/events/{event_id}/delete", follow_redirects=False
    )
    assert response.status_code == 303
    assert _flash(response)["message"] == 'Deleted "Gone Soon".'

    session.expire_all()
    assert session.get(Event, event_id) is None


def test_edit_link_from_dashboard_saves_times_unchanged(client, session, host):
    event = make_event(
        session,
        host,
        start=datetime(2030, 1, 1, 13, 0),
        end=datetime(2030, 1, 1, 17, 30),
    )
    _sign_in(client, host)

    dashboard = client.get("/dashboard").text
    edit_href = re.search(r'href="(/edit-event/[^"]+)"', dashboard).group(1)
    assert "tz=" not in edit_href

    page = client.get(edit_href).text
    assert 'name="timezone_offset_minutes" value="0" data-tz-offset' in page
    form = {
        name: _field(page, name)
        for name in (
            "event_name",
            "start_date",
            "start_time",
            "end_date",
            "end_time",
            "timezone_offset_minutes",
        )
    }
    assert form["start_time"] == "13:00"

    response = client.post(edit_href, data=form, follow_redirects=False)
    assert _flash(response)["tz"] == "0"

    session.expire_all()
    saved = session.get(Event, event.id)
    assert saved.start_date == datetime(2030, 1, 1, 13, 0)
    assert saved.end_date == datetime(2030, 1, 1, 17, 30)


def test_edit_form_keeps_the_offset_it_was_rendered_with(client, session, host):
    event = make_event(session, host, start=datetime(2030, 1, 1, 13, 0))
    _sign_in(client, host)

    page = client.get(f"/edit-event/{event.id}", params={"tz": -330}).text
    assert _field(page, "timezone_offset_minutes") == "-330"
    form = {
        "event_name": _field(page, "event_name"),
        "start_date": _field(page, "start_date"),
        "start_time": _field(page, "start_time"),
        "timezone_offset_minutes": _field(page, "timezone_offset_minutes"),
    }

    response = client.post(f"/edit-event/{event.id}", data=form, follow_redirects=False)
    assert _flash(response)["tz"] == "-330"
    reloaded = client.get(response.headers["location"]).text
    assert _field(reloaded, "start_time") == "18:30"

    session.expire_all()
    assert session.get(Event, event.id).start_date == datetime(2030, 1, 1, 13, 0)


def test_event_page_links_venue_to_maps(client, session, host):
    event = make_event(
        session, host, venue_name="Rose Hall", venue_address="12 Lake Road"
    )
    page = client.get(f"/event/{event.slug}").text
    assert (
        "https://www.google.com/maps/search/?api=1&amp;query=Rose+Hall+12+Lake+Road"
        in page
    )

    bare = make_event(session, host, event_name="No Venue")
    assert "google.com/maps" not in client.get(f"/event/{bare.slug}").text


def test_dashboard_offers_share_links(client, session, host):
    event = make_event(session, host)
    _sign_in(client, host)

    page = client.get("/dashboard").text
    event_url = f"http://testserver/event/{event.slug}"
    assert f'data-copy="{event_url}"' in page
    assert "https://wa.me/?text=You+are+invited%21+http%3A%2F%2Ftestserver" in page
    assert "https://www.facebook.com/sharer/sharer.php?u=http%3A%2F%2Ftestserver" in page
