"""FastAPI application for EventsFixer."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from importlib.metadata import PackageNotFoundError, version as pkg_version
from pathlib import Path
from typing import Any, Literal
import tomllib

from fastapi import (
    APIRouter,
    Depends,
    FastAPI,
    File,
    Form,
    Query,
    Request,
    Response,
    UploadFile,
)
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth import require_event_owner, require_user
from .config import settings
from .config_migrations import (
    config_change_summary,
    parse_page_config,
    validate_and_migrate,
)
from .crud import (
    available_yes_slots,
    create_event,
    create_invite,
    create_media_asset,
    create_rsvp,
    delete_event,
    delete_media_asset,
    duplicate_event,
    get_event,
    get_event_by_slug,
    get_invite_by_token,
    list_events_for_owner,
    list_invites,
    list_media_assets,
    list_rsvps,
    publish_event,
    unpublish_event,
    update_event,
)
from .database import SessionLocal
from .errors import AppError, MigrationError, NotFoundError, RateLimitError
from .media import default_store
from .models import RSVP, Event, EventPageVersion, Invite, MediaAsset, User
from .preview import (
    issue_preview_token,
    preview_token_status,
    resolve_preview_token,
    revoke_preview_token,
)
from .ratelimit import rate_limit
from .renderers import page_env, registry, render_page_html, resolve
from .scheduler import start_scheduler, stop_scheduler
from .storage import init_db
from .versions import (
    count_versions,
    current_page_config,
    get_version,
    list_versions,
    rollback_to_version,
    save_page_config,
)

# Use uvicorn's error logger so messages get the level prefix in the default log
# format.
logger = logging.getLogger("uvicorn.error")


def _no_cache(response: Response) -> Response:
    """Prevent clients from caching dynamic pages so fresh data is shown."""
    response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
    response.headers["Pragma"] = "no-cache"
    response.headers["Expires"] = "0"
    return response


def _load_app_version() -> str:
    """Return the current package version, falling back to pyproject for dev runs."""
    try:
        return pkg_version("eventsfixer")
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
    try:
        yield
    finally:
        stop_scheduler()


app = FastAPI(title="EventsFixer", version=APP_VERSION, lifespan=lifespan)
templates = Jinja2Templates(env=page_env)
settings.media_dir.mkdir(parents=True, exist_ok=True)
app.mount(
    settings.media_base_url,
    StaticFiles(directory=str(settings.media_dir)),
    name="media",
)


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def current_user(request: Request, db: Session = Depends(get_db)) -> User:
    return require_user(request, db)


def owned_event(
    event_id: str,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
) -> Event:
    return require_event_owner(db, event_id, user)


# -------- Error handling --------


def _wants_json(request: Request) -> bool:
    accept = (request.headers.get("accept") or "").lower()
    return request.url.path.startswith("/api/") or (
        "application/json" in accept and "text/html" not in accept
    )


def _render_error(request: Request, status_code: int, message: str):
    titles = {404: "Page not found", 403: "Not allowed", 429: "Slow down"}
    return templates.TemplateResponse(
        request,
        "error.html",
        {
            "request": request,
            "status_code": status_code,
            "title": titles.get(status_code, "Something went wrong"),
            "message": message,
        },
        status_code=status_code,
    )


def _error_response(
    request: Request,
    status_code: int,
    body: dict[str, Any],
    headers: dict[str, str] | None = None,
):
    if _wants_json(request):
        return JSONResponse(body, status_code=status_code, headers=headers)
    response = _render_error(request, status_code, body["error"])
    if headers:
        response.headers.update(headers)
    return response


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s", exc.code, request.method, request.url.path)
    headers = None
    if isinstance(exc, RateLimitError):
        headers = {"Retry-After": str(exc.retry_after)}
    return _error_response(
        request, exc.status_code, jsonable_encoder(exc.to_dict()), headers
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
    body = {"error": "Invalid request", "code": "VALIDATION_ERROR", "details": details}
    return _error_response(request, 400, body)


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning(
        "Integrity error on %s %s: %s", request.method, request.url.path, exc.orig
    )
    body = {"error": "Resource already exists", "code": "CONFLICT"}
    return _error_response(request, 409, body)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    codes = {
        401: "UNAUTHORIZED",
        403: "FORBIDDEN",
        404: "NOT_FOUND",
        405: "METHOD_NOT_ALLOWED",
    }
    detail = exc.detail if isinstance(exc.detail, str) else "Something went wrong"
    body = {"error": detail, "code": codes.get(exc.status_code, "HTTP_ERROR")}
    return _error_response(request, exc.status_code, body)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Gracefully handle unexpected errors."""
    logger.exception(
        "Unhandled error while processing %s %s", request.method, request.url.path
    )
    body = {"error": "Internal server error", "code": "INTERNAL_ERROR"}
    return _error_response(request, 500, body)


# -------- Payloads --------


class EventCreatePayload(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    start_time: datetime
    end_time: datetime | None = None
    description: str | None = Field(None, max_length=5000)
    location: str | None = Field(None, max_length=255)
    max_attendees: int | None = Field(None, ge=1)
    rsvp_deadline: datetime | None = None
    template_id: str | None = None


class EventUpdatePayload(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=255)
    start_time: datetime | None = None
    end_time: datetime | None = None
    description: str | None = Field(None, max_length=5000)
    location: str | None = Field(None, max_length=255)
    max_attendees: int | None = Field(None, ge=1)
    rsvp_deadline: datetime | None = None
    template_id: str | None = None


class PublishPayload(BaseModel):
    action: Literal["publish", "unpublish"] = "publish"


class PageConfigPayload(BaseModel):
    config: dict[str, Any]
    template_id: str | None = None


class PreviewTokenPayload(BaseModel):
    days: int | None = Field(None, ge=1, le=30)


class InviteItem(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    name: str | None = Field(None, max_length=120)


class InvitePayload(BaseModel):
    invites: list[InviteItem] = Field(..., min_length=1, max_length=100)


class RSVPPayload(BaseModel):
    event_id: str
    name: str = Field(..., min_length=1, max_length=120)
    email: str | None = Field(None, max_length=255)
    attendance_status: Literal["yes", "no", "maybe"] = "yes"
    guest_count: int = Field(0, ge=0, le=5)
    invite_token: str | None = Field(None, max_length=128)


# -------- Serializers --------


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _serialize_event(event: Event) -> dict[str, Any]:
    return {
        "id": event.id,
        "slug": event.slug,
        "title": event.title,
        "description": event.description,
        "start_time": _iso(event.start_time),
        "end_time": _iso(event.end_time),
        "location": event.location,
        "max_attendees": event.max_attendees,
        "rsvp_deadline": _iso(event.rsvp_deadline),
        "template_id": event.template_id,
        "config_version": event.config_version,
        "is_published": event.is_published,
        "published_at": _iso(event.published_at),
        "created_at": _iso(event.created_at),
        "last_modified": _iso(event.last_modified),
        "links": {"public": f"/e/{event.slug}"},
    }


def _serialize_version(
    version: EventPageVersion,
    *,
    include_config: bool = False,
    changes: list[str] | None = None,
) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": version.id,
        "event_id": version.event_id,
        "revision": version.revision,
        "config_version": version.config_version,
        "created_by": version.created_by,
        "created_at": _iso(version.created_at),
    }
    if changes is not None:
        data["changes"] = changes
    if include_config:
        data["config"] = version.page_config
    return data


def _serialize_asset(asset: MediaAsset) -> dict[str, Any]:
    return {
        "id": asset.id,
        "kind": asset.kind,
        "public_url": asset.public_url,
        "mime_type": asset.mime_type,
        "size_bytes": asset.size_bytes,
        "width": asset.width,
        "height": asset.height,
        "alt": asset.alt,
        "created_at": _iso(asset.created_at),
    }


def _serialize_rsvp(rsvp: RSVP) -> dict[str, Any]:
    return {
        "id": rsvp.id,
        "name": rsvp.name,
        "email": rsvp.email,
        "attendance_status": rsvp.attendance_status,
        "guest_count": rsvp.guest_count,
        "invite_id": rsvp.invite_id,
        "created_at": _iso(rsvp.created_at),
    }


def _serialize_invite(invite: Invite) -> dict[str, Any]:
    return {
        "id": invite.id,
        "email": invite.email,
        "name": invite.name,
        "status": invite.status,
        "sent_at": _iso(invite.sent_at),
        "responded_at": _iso(invite.responded_at),
        "created_at": _iso(invite.created_at),
    }


def _version_changes(versions: list[EventPageVersion]) -> list[list[str] | None]:
    """Describe each version relative to the one before it (list is newest first)."""
    configs = []
    for version in versions:
        try:
            configs.append(validate_and_migrate(version.page_config))
        except MigrationError:
            configs.append(None)
    changes: list[list[str] | None] = []
    for index, config in enumerate(configs):
        previous = configs[index + 1] if index + 1 < len(configs) else None
        if config is None:
            changes.append(None)
        elif previous is None:
            changes.append(["Initial version"] if index + 1 == len(configs) else None)
        else:
            changes.append(config_change_summary(previous, config))
    return changes


# -------- JSON API --------

api = APIRouter(prefix="/api", dependencies=[Depends(rate_limit("api"))])


@api.get("/health")
def api_health():
    return {"data": {"status": "ok", "version": APP_VERSION}}


@api.get("/templates")
def api_list_templates():
    return {"data": registry.describe()}


@api.post("/events", status_code=201)
def api_create_event(
    payload: EventCreatePayload,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    event = create_event(db, owner=user, **payload.model_dump())
    return {"data": _serialize_event(event)}


@api.get("/events")
def api_list_events(
    user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return {"data": [_serialize_event(e) for e in list_events_for_owner(db, user.id)]}


@api.get("/events/{event_id}")
def api_get_event(event: Event = Depends(owned_event), db: Session = Depends(get_db)):
    data = _serialize_event(event)
    data["version_count"] = count_versions(db, event.id)
    data["available_yes_slots"] = available_yes_slots(db, event)
    data["preview"] = preview_token_status(event)
    return {"data": data}


@api.patch("/events/{event_id}")
def api_update_event(
    payload: EventUpdatePayload,
    event: Event = Depends(owned_event),
    db: Session = Depends(get_db),
):
    event = update_event(db, event, payload.model_dump(exclude_unset=True))
    return {"data": _serialize_event(event)}


@api.delete("/events/{event_id}")
def api_delete_event(event: Event = Depends(owned_event), db: Session = Depends(get_db)):
    event_id = event.id
    delete_event(db, event, default_store())
    return {"data": {"id": event_id, "deleted": True}}


@api.post("/events/{event_id}/duplicate", status_code=201)
def api_duplicate_event(
    event: Event = Depends(owned_event),
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    copy = duplicate_event(db, event, user)
    return {"data": _serialize_event(copy)}


@api.post("/events/{event_id}/publish")
def api_publish_event(
    payload: PublishPayload,
    event: Event = Depends(owned_event),
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    if payload.action == "publish":
        event = publish_event(db, event, user.id)
    else:
        event = unpublish_event(db, event)
    return {"data": _serialize_event(event)}


@api.get("/events/{event_id}/page-config")
def api_get_page_config(
    event: Event = Depends(owned_event), db: Session = Depends(get_db)
):
    config = current_page_config(event)
    return {
        "data": {
            "config": config.to_document(),
            "template_id": resolve(event.template_id).template_id,
            "config_version": config.schema_version,
            "version_count": count_versions(db, event.id),
        }
    }


@api.put("/events/{event_id}/page-config")
def api_save_page_config(
    payload: PageConfigPayload,
    event: Event = Depends(owned_event),
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    config = parse_page_config(payload.config)
    if payload.template_id is not None:
        update_event(db, event, {"template_id": payload.template_id})
    version = save_page_config(db, event, config, user.id)
    return {
        "data": {
            "config": config.to_document(),
            "template_id": event.template_id,
            "version": _serialize_version(version),
        }
    }


@api.get("/events/{event_id}/page-config/versions")
def api_list_versions(
    limit: int = Query(50, ge=1),
    event: Event = Depends(owned_event),
    db: Session = Depends(get_db),
):
    versions = list(list_versions(db, event.id, limit))
    total = count_versions(db, event.id)
    changes = _version_changes(versions)
    if len(versions) < total and versions:
        # The oldest listed version has an unlisted predecessor.
        changes[-1] = None
    return {
        "data": {
            "versions": [
                _serialize_version(v, changes=c) for v, c in zip(versions, changes)
            ],
            "total": total,
        }
    }


@api.get("/events/{event_id}/page-config/versions/{version_id}")
def api_get_version(
    version_id: str,
    event: Event = Depends(owned_event),
    db: Session = Depends(get_db),
):
    version = get_version(db, event.id, version_id)
    return {"data": _serialize_version(version, include_config=True)}


@api.post("/events/{event_id}/page-config/versions/{version_id}")
def api_rollback_version(
    version_id: str,
    event: Event = Depends(owned_event),
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    config, version = rollback_to_version(db, event, version_id, user.id)
    return {
        "data": {
            "config": config.to_document(),
            "version": _serialize_version(version),
        }
    }


@api.get("/events/{event_id}/preview-token")
def api_preview_token_status(event: Event = Depends(owned_event)):
    return {"data": preview_token_status(event)}


@api.post("/events/{event_id}/preview-token", status_code=201)
def api_issue_preview_token(
    payload: PreviewTokenPayload | None = None,
    event: Event = Depends(owned_event),
    db: Session = Depends(get_db),
):
    days = payload.days if payload else None
    token, expires_at = issue_preview_token(db, event, days)
    return {
        "data": {
            "token": token,
            "url": f"/preview/{token}",
            "expires_at": _iso(expires_at),
        }
    }


@api.delete("/events/{event_id}/preview-token")
def api_revoke_preview_token(
    event: Event = Depends(owned_event), db: Session = Depends(get_db)
):
    revoke_preview_token(db, event)
    return {"data": preview_token_status(event)}


@api.get("/events/{event_id}/media")
def api_list_media(
    kind: str | None = Query(None),
    event: Event = Depends(owned_event),
    db: Session = Depends(get_db),
):
    return {"data": [_serialize_asset(a) for a in list_media_assets(db, event.id, kind)]}


@api.post("/events/{event_id}/media", status_code=201)
async def api_upload_media(
    file: UploadFile = File(...),
    kind: str = Form("gallery"),
    alt: str | None = Form(None),
    event: Event = Depends(owned_event),
    db: Session = Depends(get_db),
):
    data = await file.read()
    asset = create_media_asset(
        db,
        event=event,
        kind=kind,
        content_type=file.content_type or "",
        data=data,
        store=default_store(),
        alt=alt,
    )
    return {"data": _serialize_asset(asset)}


@api.delete("/events/{event_id}/media/{asset_id}")
def api_delete_media(
    asset_id: str,
    event: Event = Depends(owned_event),
    db: Session = Depends(get_db),
):
    delete_media_asset(db, event=event, asset_id=asset_id, store=default_store())
    return {"data": {"id": asset_id, "deleted": True}}


@api.get("/events/{event_id}/invites")
def api_list_invites(event: Event = Depends(owned_event), db: Session = Depends(get_db)):
    return {"data": [_serialize_invite(i) for i in list_invites(db, event.id)]}


@api.post(
    "/events/{event_id}/invites",
    status_code=201,
    dependencies=[Depends(rate_limit("invites"))],
)
def api_create_invites(
    payload: InvitePayload,
    event: Event = Depends(owned_event),
    db: Session = Depends(get_db),
):
    invites = [
        create_invite(db, event=event, email=item.email, name=item.name)
        for item in payload.invites
    ]
    return {"data": [_serialize_invite(i) for i in invites]}


@api.get("/events/{event_id}/rsvps")
def api_list_rsvps(event: Event = Depends(owned_event), db: Session = Depends(get_db)):
    rsvps = list_rsvps(db, event.id)
    return {
        "data": {
            "rsvps": [_serialize_rsvp(r) for r in rsvps],
            "available_yes_slots": available_yes_slots(db, event),
        }
    }


@api.get("/invites/lookup")
def api_lookup_invite(token: str, db: Session = Depends(get_db)):
    invite = get_invite_by_token(db, token)
    event = invite.event
    return {
        "data": {
            "name": invite.name,
            "email": invite.email,
            "status": invite.status,
            "rsvp": _serialize_rsvp(invite.rsvp) if invite.rsvp else None,
            "event": {
                "id": event.id,
                "title": event.title,
                "slug": event.slug,
                "start_time": _iso(event.start_time),
                "location": event.location,
                "rsvp_deadline": _iso(event.rsvp_deadline),
            },
        }
    }


@api.post("/rsvp", status_code=201, dependencies=[Depends(rate_limit("rsvp"))])
def api_create_rsvp(payload: RSVPPayload, db: Session = Depends(get_db)):
    event = get_event(db, payload.event_id)
    if event is None:
        raise NotFoundError("Event not found")
    rsvp = create_rsvp(
        db,
        event=event,
        name=payload.name,
        email=payload.email,
        attendance_status=payload.attendance_status,
        guest_count=payload.guest_count,
        invite_token=payload.invite_token,
    )
    return {"data": _serialize_rsvp(rsvp)}


app.include_router(api)


# -------- Public pages --------


def _render_event_page(db: Session, event: Event, *, preview: bool) -> HTMLResponse:
    config = current_page_config(event)
    renderer = resolve(event.template_id)
    tree = renderer.render(config, list_media_assets(db, event.id), event_id=event.id)
    response = HTMLResponse(render_page_html(tree, preview=preview, event=event))
    if preview:
        response.headers["X-Robots-Tag"] = "noindex, nofollow"
    return _no_cache(response)


@app.get("/e/{slug}", response_class=HTMLResponse)
def public_event_page(slug: str, db: Session = Depends(get_db)):
    event = get_event_by_slug(db, slug)
    if event is None or not event.is_published:
        raise NotFoundError("Event not found")
    return _render_event_page(db, event, preview=False)


@app.get("/preview/{token}", response_class=HTMLResponse)
def preview_event_page(token: str, db: Session = Depends(get_db)):
    event = resolve_preview_token(db, token)
    return _render_event_page(db, event, preview=True)


@app.get("/invite/{token}", response_class=HTMLResponse)
def invite_page(request: Request, token: str, db: Session = Depends(get_db)):
    invite = get_invite_by_token(db, token)
    response = templates.TemplateResponse(
        request,
        "invite.html",
        {
            "request": request,
            "event": invite.event,
            "invite": invite,
            "token": token,
            "statuses": ["yes", "no", "maybe"],
        },
    )
    response.headers["X-Robots-Tag"] = "noindex, nofollow"
    return _no_cache(response)


@app.post(
    "/rsvp/{event_id}",
    response_class=HTMLResponse,
    dependencies=[Depends(rate_limit("rsvp"))],
)
def rsvp_form_submit(
    request: Request,
    event_id: str,
    name: str = Form(...),
    email: str | None = Form(None),
    attendance_status: str = Form("yes"),
    guest_count: int = Form(0),
    invite_token: str | None = Form(None),
    db: Session = Depends(get_db),
):
    event = get_event(db, event_id)
    if event is None:
        raise NotFoundError("Event not found")
    rsvp = create_rsvp(
        db,
        event=event,
        name=name,
        email=email,
        attendance_status=attendance_status,
        guest_count=guest_count,
        invite_token=invite_token or None,
    )
    return templates.TemplateResponse(
        request,
        "rsvp_thanks.html",
        {"request": request, "event": event, "rsvp": rsvp},
        status_code=201,
    )
