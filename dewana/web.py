"""HTML route handlers for Dewana."""

from __future__ import annotations

import logging
from pathlib import Path
from urllib.parse import urlencode

from fastapi import BackgroundTasks, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from .analytics import track_view
from .blobs import BlobStorageError, save_cover
from .config import settings
from .crud import get_user_by_token, rsvp_stats
from .dependencies import (
    current_identity,
    ensure_event_by_slug,
    ensure_owned_event,
    get_db,
    get_repository,
)
from .editing import (
    EditFormError,
    build_event_changes,
    build_sub_event_items,
    event_form_data,
    zip_form_rows,
)
from .identity import SESSION_COOKIE, Identity, require_identity
from .models import EVENT_TYPES
from .repository import SqlRepository
from .rsvp import RSVPForm, RSVPSubmissionError, RSVPValidationError, RSVPWorkflow
from .status import event_status
from .utils import event_type_emoji, format_date, humanize_time, normalize_social_links
from .utils.calendar import event_calendar_link, maps_link
from .utils.media import media_highlights
from .utils.share import share_links

logger = logging.getLogger("uvicorn.error")

templates = Jinja2Templates(directory=Path(__file__).parent / "templates")
templates.env.filters["relative_time"] = humanize_time
templates.env.filters["long_date"] = format_date
templates.env.filters["type_emoji"] = event_type_emoji
templates.env.globals["event_types"] = EVENT_TYPES

SESSION_MAX_AGE = 60 * 60 * 24 * 30


def _no_cache(response):
    """Prevent clients from caching dynamic pages so fresh data is shown."""
    response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
    response.headers["Pragma"] = "no-cache"
    response.headers["Expires"] = "0"
    return response


def _redirect_with_message(path: str, message: str, message_class: str, **extra):
    query = urlencode({**extra, "message": message, "message_class": message_class})
    return RedirectResponse(url=f"{path}?{query}", status_code=303)


def _flash(request: Request) -> dict:
    return {
        "message": request.query_params.get("message"),
        "message_class": request.query_params.get("message_class"),
    }


def _live_status(event) -> str:
    return event_status(event, grace_window=settings.live_grace_window).value


def public_event_url(request: Request, event) -> str:
    base = settings.public_base_url.rstrip("/") or str(request.base_url).rstrip("/")
    return f"{base}/event/{event.slug}"


def _event_page(
    request: Request,
    event,
    workflow: RSVPWorkflow,
    *,
    status_code: int = 200,
    form: RSVPForm | None = None,
):
    context = {
        "request": request,
        "event": event,
        "identity": workflow.identity,
        "live_status": _live_status(event),
        "status_poll_seconds": settings.status_poll_seconds,
        "media": media_highlights(event),
        "social_links": normalize_social_links(event.custom_social_links),
        "calendar_link": event_calendar_link(event),
        "maps_link": maps_link(event),
        "confirmed": workflow.confirmed,
        "form": form or RSVPForm(),
        **_flash(request),
    }
    response = templates.TemplateResponse(
        request, "event.html", context, status_code=status_code
    )
    return _no_cache(response)


def sign_in(token: str, db: Session = Depends(get_db)):
    """Exchange a magic-link token for a session cookie."""
    user = get_user_by_token(db, token)
    if user is None:
        raise HTTPException(status_code=404, detail="This sign-in link is not valid")
    response = RedirectResponse(url="/dashboard", status_code=303)
    response.set_cookie(
        SESSION_COOKIE,
        token,
        max_age=SESSION_MAX_AGE,
        httponly=True,
        samesite="lax",
    )
    return response


def dashboard(
    request: Request,
    repository: SqlRepository = Depends(get_repository),
    identity: Identity | None = Depends(current_identity),
):
    identity = require_identity(identity)
    hosted = repository.list_hosted_events(identity.user_id)
    attending = repository.list_attending_events(identity.email or "")
    response = templates.TemplateResponse(
        request,
        "dashboard.html",
        {
            "request": request,
            "identity": identity,
            "hosted_events": [
                (event, _live_status(event), share_links(public_event_url(request, event)))
                for event in hosted
            ],
            "attending_events": [(event, _live_status(event)) for event in attending],
            "status_poll_seconds": settings.status_poll_seconds,
            **_flash(request),
        },
    )
    return _no_cache(response)


def event_page(
    slug: str,
    request: Request,
    background_tasks: BackgroundTasks,
    repository: SqlRepository = Depends(get_repository),
    identity: Identity | None = Depends(current_identity),
):
    event = ensure_event_by_slug(repository, slug)
    workflow = RSVPWorkflow(repository=repository, event=event, identity=identity)
    workflow.lookup_existing()
    background_tasks.add_task(track_view, event.id)
    return _event_page(request, event, workflow)


def submit_rsvp(
    slug: str,
    request: Request,
    guest_name: str = Form(""),
    guest_email: str = Form(""),
    guest_phone: str | None = Form(None),
    status: str = Form("yes"),
    num_guests: str | None = Form(None),
    message: str | None = Form(None),
    repository: SqlRepository = Depends(get_repository),
    identity: Identity | None = Depends(current_identity),
):
    event = ensure_event_by_slug(repository, slug)
    path = f"/event/{event.slug}"
    if status not in {"yes", "no", "maybe"}:
        return _redirect_with_message(path, "Please choose a response.", "alert-danger")
    form = RSVPForm(
        guest_name=guest_name,
        guest_email=guest_email,
        guest_phone=guest_phone,
        status=status,
        num_guests=num_guests if (num_guests or "").strip().isdigit() else None,
        message=message,
    )
    workflow = RSVPWorkflow(repository=repository, event=event, identity=identity)
    try:
        workflow.submit(form)
    except (RSVPValidationError, RSVPSubmissionError) as exc:
        return _redirect_with_message(path, str(exc), "alert-danger")
    return _event_page(request, event, workflow, status_code=201)


def edit_event_page(
    event_id: str,
    request: Request,
    tz: int = 0,
    repository: SqlRepository = Depends(get_repository),
    identity: Identity | None = Depends(current_identity),
):
    event = ensure_owned_event(repository, event_id, identity)
    rsvps = list(repository.list_event_rsvps(event.id))
    response = templates.TemplateResponse(
        request,
        "edit_event.html",
        {
            "request": request,
            "identity": identity,
            "event": event,
            "form": event_form_data(event, tz),
            "timezone_offset_minutes": tz,
            "rsvps": rsvps,
            "stats": rsvp_stats(rsvps),
            **_flash(request),
        },
    )
    return _no_cache(response)


def save_event(
    event_id: str,
    event_name: str = Form(...),
    event_type: str = Form("other"),
    status: str = Form("draft"),
    host_names: str | None = Form(None),
    description: str | None = Form(None),
    start_date: str = Form(...),
    start_time: str | None = Form(None),
    end_date: str | None = Form(None),
    end_time: str | None = Form(None),
    timezone_offset_minutes: int = Form(0),
    venue_name: str | None = Form(None),
    venue_address: str | None = Form(None),
    parking_notes: str | None = Form(None),
    dress_code: str | None = Form(None),
    rsvp_enabled: bool = Form(False),
    youtube_link: str | None = Form(None),
    google_photos_url: str | None = Form(None),
    google_drive_url: str | None = Form(None),
    social_platform: list[str] = Form([]),
    social_url: list[str] = Form([]),
    sub_event_id: list[str] = Form([]),
    sub_event_name: list[str] = Form([]),
    sub_event_date: list[str] = Form([]),
    sub_event_time: list[str] = Form([]),
    sub_event_location: list[str] = Form([]),
    remove_sub_event: list[str] = Form([]),
    cover_image: UploadFile | None = File(None),
    db: Session = Depends(get_db),
    repository: SqlRepository = Depends(get_repository),
    identity: Identity | None = Depends(current_identity),
):
    event = ensure_owned_event(repository, event_id, identity)
    path = f"/edit-event/{event.id}"
    data = {
        "event_name": event_name,
        "event_type": event_type,
        "status": status,
        "host_names": host_names or "",
        "description": description or "",
        "start_date": start_date,
        "start_time": start_time,
        "end_date": end_date,
        "end_time": end_time,
        "venue_name": venue_name or "",
        "venue_address": venue_address or "",
        "parking_notes": parking_notes or "",
        "dress_code": dress_code or "",
        "rsvp_enabled": rsvp_enabled,
        "youtube_link": youtube_link or "",
        "google_photos_url": google_photos_url or "",
        "google_drive_url": google_drive_url or "",
        "custom_social_links": zip_form_rows(
            ("platform", "url"), (social_platform, social_url)
        ),
    }
    rows = zip_form_rows(
        ("id", "name", "date", "time", "location_name"),
        (
            sub_event_id,
            sub_event_name,
            sub_event_date,
            sub_event_time,
            sub_event_location,
        ),
    )
    try:
        changes = build_event_changes(data, timezone_offset_minutes)
        items = build_sub_event_items(
            [row for row in rows if row["id"] not in remove_sub_event],
            timezone_offset_minutes,
        )
        if cover_image is not None and cover_image.filename:
            try:
                changes["cover_image_url"] = save_cover(
                    event.user_id, cover_image.filename, cover_image.file.read()
                )
            except BlobStorageError:
                logger.warning(
                    "Cover upload failed for event %s; keeping the previous image",
                    event.id,
                    exc_info=True,
                )
        repository.update_event(event, changes)
        for sub_id in remove_sub_event:
            repository.delete_sub_event(event, sub_id)
        if items:
            repository.upsert_sub_events(event, items)
    except (EditFormError, ValueError) as exc:
        db.rollback()
        return _redirect_with_message(
            path, str(exc), "alert-danger", tz=timezone_offset_minutes
        )
    return _redirect_with_message(
        path, "Event updated.", "alert-success", tz=timezone_offset_minutes
    )


def delete_event(
    event_id: str,
    repository: SqlRepository = Depends(get_repository),
    identity: Identity | None = Depends(current_identity),
):
    event = ensure_owned_event(repository, event_id, identity)
    name = event.event_name
    repository.delete_event(event)
    logger.info("Event %s deleted by its host", event_id)
    return _redirect_with_message("/dashboard", f'Deleted "{name}".', "alert-success")


def register_web_routes(app):
    """Register HTML routes on the FastAPI app."""
    app.get("/auth/{token}")(sign_in)
    app.get("/dashboard", response_class=HTMLResponse)(dashboard)
    app.get("/event/{slug}", response_class=HTMLResponse)(event_page)
    app.post("/event/{slug}/rsvp", response_class=HTMLResponse)(submit_rsvp)
    app.get("/edit-event/{event_id}", response_class=HTMLResponse)(edit_event_page)
    app.post("/edit-event/{event_id}")(save_event)
    app.post("/dashboard/events/{event_id}/delete")(delete_event)
