"""FastAPI application for Dewana."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError, version as pkg_version
from pathlib import Path
from typing import Literal
import tomllib

from fastapi import (
    BackgroundTasks,
    Depends,
    FastAPI,
    File,
    HTTPException,
    Query,
    Request,
    Response,
    UploadFile,
)
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field
from sqlalchemy.exc import OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .analytics import track_view
from .blobs import BlobStorageError, save_cover
from .config import settings
from .crud import rsvp_stats
from .dependencies import (
    current_identity,
    ensure_event_by_slug,
    ensure_owned_event,
    get_repository,
)
from .editing import (
    EditFormError,
    build_event_changes,
    build_sub_event_items,
    event_form_data,
)
from .identity import Identity, require_identity
from .models import RSVP, Event, SubEvent, User
from .repository import SqlRepository
from .rsvp import (
    RSVPForm,
    RSVPSubmissionError,
    RSVPValidationError,
    RSVPWorkflow,
)
from .scheduler import start_scheduler, stop_scheduler
from .status import event_status
from .storage import init_db
from .utils import normalize_social_links, utcnow
from .utils.calendar import event_calendar_link, maps_link
from .utils.ics import generate_ics
from .utils.media import media_highlights
from .utils.share import share_links
from .web import public_event_url, register_web_routes, templates

# Use uvicorn's error logger so messages get the level prefix in the default log
# format.
logger = logging.getLogger("uvicorn.error")


def _load_app_version() -> str:
    """Return the current package version, falling back to pyproject for dev runs."""
    try:
        return pkg_version("dewana")
    except PackageNotFoundError:
        pyproject_path = Path(__file__).resolve().parent.parent / "pyproject.toml"
        if pyproject_path.exists():
            data = tomllib.loads(pyproject_path.read_text())
            project = data.get("project") or {}
            return str(project.get("version") or "dev")
    return "dev"


APP_VERSION = _load_app_version()


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    start_scheduler()
    logger.info("Dewana %s started (data dir %s)", APP_VERSION, settings.data_dir)
    try:
        yield
    finally:
        stop_scheduler()


app = FastAPI(title="Dewana", version=APP_VERSION, lifespan=lifespan)
static_dir = Path(__file__).parent / "static"
app.mount("/static", StaticFiles(directory=str(static_dir)), name="static")
app.mount(
    "/media",
    StaticFiles(directory=str(settings.media_dir), check_dir=False),
    name="media",
)
templates.env.globals["app_version"] = APP_VERSION

register_web_routes(app)


def _wants_json(request: Request) -> bool:
    accept = (request.headers.get("accept") or "").lower()
    return request.url.path.startswith("/api/") or (
        "application/json" in accept and "text/html" not in accept
    )


def _render_error(request: Request, status_code: int, message: str | None):
    extra_hint = None
    if status_code == 401:
        extra_hint = "Open the sign-in link you were given to continue."
    context = {
        "request": request,
        "status_code": status_code,
        "error_message": message or "Something went wrong.",
        "extra_hint": extra_hint,
    }
    return templates.TemplateResponse(
        request, "error.html", context, status_code=status_code
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render HTTP errors as friendly pages unless JSON was requested."""
    if _wants_json(request):
        return JSONResponse(
            {"detail": exc.detail}, status_code=exc.status_code, headers=exc.headers
        )
    detail = exc.detail if isinstance(exc.detail, str) else "Something went wrong."
    return _render_error(request, exc.status_code, detail)


@app.exception_handler(OperationalError)
async def operational_error_handler(request: Request, exc: OperationalError):
    raw = str(exc.orig) if getattr(exc, "orig", None) else str(exc)
    if "database is locked" in raw.lower():
        logger.error(
            "SQLite database is locked while handling %s %s",
            request.method,
            request.url.path,
        )
        detail = "The database is busy at the moment. Please wait a few seconds and try again."
        status = 503
    else:
        logger.error(
            "Operational database error on %s %s: %s",
            request.method,
            request.url.path,
            raw,
        )
        detail = "We hit a database issue. Please try again."
        status = 500
    if _wants_json(request):
        return JSONResponse({"detail": detail}, status_code=status)
    return _render_error(request, status, detail)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    if _wants_json(request):
        return JSONResponse({"detail": exc.errors()}, status_code=422)
    return _render_error(
        request,
        422,
        "Some of the fields were invalid. Please double-check and try again.",
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Gracefully handle unexpected errors."""
    logger.exception(
        "Unhandled error while processing %s %s", request.method, request.url.path
    )
    if _wants_json(request):
        return JSONResponse({"detail": "Internal server error"}, status_code=500)
    return _render_error(
        request,
        500,
        "We hit a snag while processing that request. Please try again.",
    )


# -------- Payloads --------


class SubEventPayload(BaseModel):
    id: str | None = None
    name: str
    date: str = Field(..., description="Local date, YYYY-MM-DD")
    time: str | None = Field(None, description="Local time, HH:MM; noon if omitted")
    location_name: str | None = None


class SocialLinkPayload(BaseModel):
    platform: str
    url: str


class EventCreatePayload(BaseModel):
    event_name: str
    event_type: str = "other"
    start_date: str = Field(..., description="Local date, YYYY-MM-DD")
    start_time: str | None = None
    end_date: str | None = None
    end_time: str | None = None
    timezone_offset_minutes: int = 0
    status: Literal["draft", "published"] = "draft"
    rsvp_enabled: bool = True
    host_names: str | None = None
    description: str | None = None
    venue_name: str | None = None
    venue_address: str | None = None
    parking_notes: str | None = None
    dress_code: str | None = None
    youtube_link: str | None = None
    google_photos_url: str | None = None
    google_drive_url: str | None = None
    custom_social_links: list[SocialLinkPayload] = Field(default_factory=list)
    sub_events: list[SubEventPayload] = Field(default_factory=list)


class EventUpdatePayload(BaseModel):
    event_name: str | None = None
    event_type: str | None = None
    start_date: str | None = None
    start_time: str | None = None
    end_date: str | None = None
    end_time: str | None = None
    timezone_offset_minutes: int = 0
    status: Literal["draft", "published", "past"] | None = None
    rsvp_enabled: bool | None = None
    host_names: str | None = None
    description: str | None = None
    venue_name: str | None = None
    venue_address: str | None = None
    parking_notes: str | None = None
    dress_code: str | None = None
    cover_image_url: str | None = None
    youtube_link: str | None = None
    google_photos_url: str | None = None
    google_drive_url: str | None = None
    custom_social_links: list[SocialLinkPayload] | None = None
    sub_events: list[SubEventPayload] | None = None


# -------- Serializers --------


def _isoformat(value) -> str | None:
    return value.isoformat() if value else None


def _serialize_sub_event(sub_event: SubEvent) -> dict:
    return {
        "id": sub_event.id,
        "name": sub_event.name,
        "date_time": sub_event.date_time.isoformat(),
        "location_name": sub_event.location_name,
    }


def _serialize_rsvp(rsvp: RSVP) -> dict:
    return {
        "id": rsvp.id,
        "event_id": rsvp.event_id,
        "guest_name": rsvp.guest_name,
        "guest_email": rsvp.guest_email,
        "guest_phone": rsvp.guest_phone,
        "status": rsvp.status,
        "num_guests": rsvp.num_guests,
        "message": rsvp.message,
        "submitted_at": rsvp.submitted_at.isoformat(),
    }


def _serialize_event(event: Event, *, include_manage_link: bool = False) -> dict:
    payload = {
        "id": event.id,
        "slug": event.slug,
        "event_name": event.event_name,
        "event_type": event.event_type,
        "host_names": event.host_names,
        "description": event.description,
        "start_date": event.start_date.isoformat(),
        "end_date": _isoformat(event.end_date),
        "venue_name": event.venue_name,
        "venue_address": event.venue_address,
        "parking_notes": event.parking_notes,
        "dress_code": event.dress_code,
        "cover_image_url": event.cover_image_url,
        "rsvp_enabled": event.rsvp_enabled,
        "status": event.status,
        "live_status": event_status(
            event, grace_window=settings.live_grace_window
        ).value,
        "view_count": event.view_count,
        "youtube_link": event.youtube_link,
        "google_photos_url": event.google_photos_url,
        "google_drive_url": event.google_drive_url,
        "custom_social_links": normalize_social_links(event.custom_social_links),
        "sub_events": [_serialize_sub_event(sub) for sub in event.sub_events],
        "created_at": event.created_at.isoformat(),
        "updated_at": event.updated_at.isoformat(),
        "links": {
            "public": f"/event/{event.slug}",
            "ics": f"/api/v1/events/{event.slug}/event.ics",
            "status": f"/api/v1/events/{event.slug}/status",
        },
    }
    if include_manage_link:
        payload["links"]["edit"] = f"/edit-event/{event.id}"
        payload["links"]["manage"] = f"/api/v1/manage/events/{event.id}"
    return payload


def _workflow_state(workflow: RSVPWorkflow) -> dict:
    return {
        "state": workflow.state.value,
        "rsvp": workflow.confirmed.as_dict() if workflow.confirmed else None,
    }


def _apply_sub_events(
    repository: SqlRepository,
    event: Event,
    rows: list[SubEventPayload],
    offset_minutes: int,
) -> None:
    items = build_sub_event_items(
        [row.model_dump() for row in rows], offset_minutes
    )
    if items:
        repository.upsert_sub_events(event, items)


# -------- Public event API --------


@app.post("/api/v1/events", status_code=201)
def api_create_event(
    payload: EventCreatePayload,
    repository: SqlRepository = Depends(get_repository),
    identity: Identity | None = Depends(current_identity),
):
    identity = require_identity(identity)
    owner = repository.session.get(User, identity.user_id)
    data = payload.model_dump(exclude={"sub_events", "timezone_offset_minutes"})
    offset = payload.timezone_offset_minutes
    try:
        changes = build_event_changes(data, offset)
        event_name = changes.pop("event_name")
        start_date = changes.pop("start_date")
        event = repository.create_event(
            owner=owner, event_name=event_name, start_date=start_date, **changes
        )
        _apply_sub_events(repository, event, payload.sub_events, offset)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    logger.info("Event %s created by user %s", event.slug, identity.user_id)
    return {"event": _serialize_event(event, include_manage_link=True)}


@app.get("/api/v1/events/{slug}")
def api_get_event(
    slug: str,
    background_tasks: BackgroundTasks,
    repository: SqlRepository = Depends(get_repository),
):
    event = ensure_event_by_slug(repository, slug)
    background_tasks.add_task(track_view, event.id)
    return {
        "event": _serialize_event(event),
        "media": media_highlights(event),
        "calendar_link": event_calendar_link(event),
        "maps_link": maps_link(event),
    }


@app.get("/api/v1/events/{slug}/status")
def api_event_status(slug: str, repository: SqlRepository = Depends(get_repository)):
    """Current live status; clients poll this to re-evaluate without reloading."""
    event = ensure_event_by_slug(repository, slug)
    now = utcnow()
    status = event_status(event, grace_window=settings.live_grace_window, now=now)
    return {
        "status": status.value,
        "checked_at": now.isoformat(),
        "refresh_after_seconds": settings.status_poll_seconds,
    }


@app.get("/api/v1/events/{slug}/event.ics")
def api_get_event_ics(slug: str, repository: SqlRepository = Depends(get_repository)):
    """Serve an event as a downloadable ICS file."""
    event = ensure_event_by_slug(repository, slug)
    ics_text = generate_ics(event)
    headers = {"Content-Disposition": f'attachment; filename="{event.slug}.ics"'}
    return Response(content=ics_text, media_type="text/calendar", headers=headers)


@app.get("/api/v1/events/{slug}/rsvp")
def api_get_own_rsvp(
    slug: str,
    repository: SqlRepository = Depends(get_repository),
    identity: Identity | None = Depends(current_identity),
):
    event = ensure_event_by_slug(repository, slug)
    workflow = RSVPWorkflow(repository=repository, event=event, identity=identity)
    workflow.lookup_existing()
    return _workflow_state(workflow)


@app.post("/api/v1/events/{slug}/rsvp", status_code=201)
def api_create_rsvp(
    slug: str,
    form: RSVPForm,
    repository: SqlRepository = Depends(get_repository),
    identity: Identity | None = Depends(current_identity),
):
    event = ensure_event_by_slug(repository, slug)
    workflow = RSVPWorkflow(repository=repository, event=event, identity=identity)
    try:
        workflow.submit(form)
    except RSVPValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except RSVPSubmissionError as exc:
        raise HTTPException(
            status_code=409 if exc.duplicate else 503, detail=str(exc)
        ) from exc
    return _workflow_state(workflow)


# -------- Host dashboard & management --------


@app.get("/api/v1/dashboard")
def api_dashboard(
    request: Request,
    repository: SqlRepository = Depends(get_repository),
    identity: Identity | None = Depends(current_identity),
):
    identity = require_identity(identity)
    hosted = repository.list_hosted_events(identity.user_id)
    attending = repository.list_attending_events(identity.email or "")
    return {
        "user": {
            "id": identity.user_id,
            "email": identity.email,
            "display_name": identity.short_name,
        },
        "hosted_events": [
            {
                **_serialize_event(event, include_manage_link=True),
                "share": share_links(public_event_url(request, event)),
            }
            for event in hosted
        ],
        "attending_events": [_serialize_event(event) for event in attending],
    }


@app.get("/api/v1/manage/events/{event_id}")
def api_get_event_for_edit(
    event_id: str,
    timezone_offset_minutes: int = Query(0),
    repository: SqlRepository = Depends(get_repository),
    identity: Identity | None = Depends(current_identity),
):
    event = ensure_owned_event(repository, event_id, identity)
    return {
        "event": _serialize_event(event, include_manage_link=True),
        "form": event_form_data(event, timezone_offset_minutes),
    }


@app.patch("/api/v1/manage/events/{event_id}")
def api_update_event(
    event_id: str,
    payload: EventUpdatePayload,
    repository: SqlRepository = Depends(get_repository),
    identity: Identity | None = Depends(current_identity),
):
    event = ensure_owned_event(repository, event_id, identity)
    data = payload.model_dump(
        exclude_unset=True, exclude={"sub_events", "timezone_offset_minutes"}
    )
    offset = payload.timezone_offset_minutes
    if "start_time" in data and "start_date" not in data:
        raise HTTPException(status_code=400, detail="start_time needs start_date")
    try:
        changes = build_event_changes(data, offset)
        if changes:
            repository.update_event(event, changes)
        if payload.sub_events is not None:
            _apply_sub_events(repository, event, payload.sub_events, offset)
    except (EditFormError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"event": _serialize_event(event, include_manage_link=True)}


@app.delete("/api/v1/manage/events/{event_id}", status_code=204)
def api_delete_event(
    event_id: str,
    repository: SqlRepository = Depends(get_repository),
    identity: Identity | None = Depends(current_identity),
):
    event = ensure_owned_event(repository, event_id, identity)
    repository.delete_event(event)
    logger.info("Event %s deleted by its host", event_id)
    return Response(status_code=204)


@app.get("/api/v1/manage/events/{event_id}/rsvps")
def api_list_event_rsvps(
    event_id: str,
    repository: SqlRepository = Depends(get_repository),
    identity: Identity | None = Depends(current_identity),
):
    event = ensure_owned_event(repository, event_id, identity)
    rsvps = list(repository.list_event_rsvps(event.id))
    return {
        "event": _serialize_event(event, include_manage_link=True),
        "rsvps": [_serialize_rsvp(rsvp) for rsvp in rsvps],
        "stats": rsvp_stats(rsvps),
    }


@app.post("/api/v1/manage/events/{event_id}/cover")
def api_upload_cover(
    event_id: str,
    cover_image: UploadFile = File(...),
    repository: SqlRepository = Depends(get_repository),
    identity: Identity | None = Depends(current_identity),
):
    event = ensure_owned_event(repository, event_id, identity)
    try:
        url = save_cover(event.user_id, cover_image.filename, cover_image.file.read())
    except BlobStorageError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    repository.update_event(event, {"cover_image_url": url})
    return {"cover_image_url": url}


@app.delete("/api/v1/manage/events/{event_id}/sub-events/{sub_event_id}", status_code=204)
def api_delete_sub_event(
    event_id: str,
    sub_event_id: str,
    repository: SqlRepository = Depends(get_repository),
    identity: Identity | None = Depends(current_identity),
):
    event = ensure_owned_event(repository, event_id, identity)
    if not repository.delete_sub_event(event, sub_event_id):
        raise HTTPException(status_code=404, detail="Itinerary item not found")
    return Response(status_code=204)
