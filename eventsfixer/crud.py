"""CRUD helpers for events, RSVPs, invites and media assets."""

from __future__ import annotations

import logging
import secrets
import uuid
from datetime import datetime
from typing import Any, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .config import settings
from .config_migrations import create_minimal_config, validate_and_migrate
from .email import enqueue_email
from .errors import (
    ConflictError,
    EventFullError,
    MigrationError,
    NotFoundError,
    RSVPClosedError,
    ValidationError,
)
from .media import ALLOWED_MIME_TYPES, MEDIA_KINDS, LocalMediaStore, storage_path_for
from .models import RSVP, Event, Invite, MediaAsset, User
from .renderers import registry
from .utils import collapse_whitespace, hash_token, slugify, to_naive_utc, utcnow
from .versions import current_page_config, save_page_config

logger = logging.getLogger("uvicorn.error")

VALID_ATTENDANCE_STATUSES = {"yes", "no", "maybe"}
MAX_GUESTS = 5


def _now() -> datetime:
    return utcnow()


def _unique_slug(session: Session, title: str) -> str:
    base = slugify(title) or "event"
    slug = base
    suffix = 2
    while session.scalar(select(Event.id).where(Event.slug == slug)) is not None:
        slug = f"{base}-{suffix}"
        suffix += 1
    return slug


def _check_template_id(template_id: str | None) -> None:
    if template_id is not None and template_id not in registry:
        raise ValidationError(f"Unknown template: {template_id}")


def get_event(session: Session, event_id: str) -> Event | None:
    return session.get(Event, event_id)


def get_event_by_slug(session: Session, slug: str) -> Event | None:
    normalized = (slug or "").strip().lower()
    if not normalized:
        return None
    return session.scalars(select(Event).where(Event.slug == normalized)).first()


def list_events_for_owner(session: Session, owner_id: str) -> Sequence[Event]:
    stmt = (
        select(Event)
        .where(Event.owner_id == owner_id)
        .order_by(Event.start_time.desc())
    )
    return session.scalars(stmt).all()


def create_event(
    session: Session,
    *,
    owner: User,
    title: str,
    start_time: datetime,
    description: str | None = None,
    end_time: datetime | None = None,
    location: str | None = None,
    max_attendees: int | None = None,
    rsvp_deadline: datetime | None = None,
    template_id: str | None = None,
) -> Event:
    """Create and persist a new, unpublished event.

    No page config is stored yet: pages render from the minimal config until
    the organizer saves one, which becomes version 1.
    """
    cleaned_title = collapse_whitespace(title)
    if not cleaned_title:
        raise ValidationError("Title is required")
    _check_template_id(template_id)
    event = Event(
        owner_id=owner.id,
        title=cleaned_title,
        slug=_unique_slug(session, cleaned_title),
        description=description,
        start_time=to_naive_utc(start_time),
        end_time=to_naive_utc(end_time),
        location=location,
        max_attendees=max_attendees if max_attendees and max_attendees > 0 else None,
        rsvp_deadline=to_naive_utc(rsvp_deadline),
        template_id=template_id or registry.default_id,
    )
    session.add(event)
    session.flush()
    logger.info("Created event %s (%s)", event.id, event.slug)
    return event


_UPDATABLE_FIELDS = (
    "title",
    "description",
    "start_time",
    "end_time",
    "location",
    "max_attendees",
    "rsvp_deadline",
    "template_id",
)


def update_event(session: Session, event: Event, changes: dict[str, Any]) -> Event:
    """Apply a partial update. Only keys present in ``changes`` are touched."""
    for key in _UPDATABLE_FIELDS:
        if key not in changes:
            continue
        value = changes[key]
        if key == "title":
            value = collapse_whitespace(value)
            if not value:
                raise ValidationError("Title is required")
        elif key == "start_time":
            if value is None:
                raise ValidationError("start_time is required")
            value = to_naive_utc(value)
        elif key in {"end_time", "rsvp_deadline"}:
            value = to_naive_utc(value)
        elif key == "max_attendees":
            value = value if value and value > 0 else None
        elif key == "template_id":
            if value is None:
                continue
            _check_template_id(value)
        setattr(event, key, value)
    if event.end_time and event.end_time < event.start_time:
        raise ValidationError("end_time must be after start_time")
    event.last_modified = _now()
    session.add(event)
    session.flush()
    return event


def publish_event(session: Session, event: Event, user_id: str) -> Event:
    """Make the event's page public.

    An event that never had a config is published with the minimal one, which
    is recorded as a version. A stored config that cannot be brought up to the
    current schema blocks publishing.
    """
    if event.page_config is None:
        save_page_config(session, event, create_minimal_config(event.title), user_id)
    else:
        try:
            validate_and_migrate(event.page_config)
        except MigrationError as exc:
            raise ValidationError(
                "Cannot publish: page config is invalid", details=exc.details
            ) from exc
    if event.published_at is None:
        event.published_at = _now()
    session.add(event)
    session.flush()
    logger.info("Published event %s", event.id)
    return event


def unpublish_event(session: Session, event: Event) -> Event:
    event.published_at = None
    session.add(event)
    session.flush()
    logger.info("Unpublished event %s", event.id)
    return event


def duplicate_event(session: Session, event: Event, user: User) -> Event:
    """Copy an event's details, template and page config. RSVPs stay behind."""
    copy = create_event(
        session,
        owner=user,
        title=f"{event.title} (Copy)",
        start_time=event.start_time,
        description=event.description,
        end_time=event.end_time,
        location=event.location,
        max_attendees=event.max_attendees,
        rsvp_deadline=event.rsvp_deadline,
        template_id=event.template_id if event.template_id in registry else None,
    )
    if event.page_config is not None:
        save_page_config(session, copy, current_page_config(event), user.id)
    logger.info("Duplicated event %s as %s", event.id, copy.id)
    return copy


def delete_event(
    session: Session, event: Event, store: LocalMediaStore | None = None
) -> None:
    if store is not None:
        for asset in list(event.media_assets):
            store.delete(asset.storage_path)
    session.delete(event)
    session.flush()
    logger.info("Deleted event %s", event.id)


def normalize_attendance_status(status: str | None) -> str:
    normalized = (status or "").strip().lower() or "yes"
    if normalized not in VALID_ATTENDANCE_STATUSES:
        raise ValidationError(f"Invalid attendance status: {status}")
    return normalized


def clamp_guest_count(raw: int | str | None) -> int:
    try:
        value = int(raw or 0)
    except (TypeError, ValueError):
        value = 0
    return max(0, min(value, MAX_GUESTS))


def yes_party_size(session: Session, event: Event) -> int:
    """Return the number of attending people, guests included."""
    total = session.scalar(
        select(func.coalesce(func.sum(RSVP.guest_count + 1), 0)).where(
            RSVP.event_id == event.id, RSVP.attendance_status == "yes"
        )
    )
    return int(total or 0)


def available_yes_slots(session: Session, event: Event) -> int | None:
    if event.max_attendees is None:
        return None
    return max(event.max_attendees - yes_party_size(session, event), 0)


def enforce_capacity(
    session: Session, event: Event, *, status: str, guest_count: int
) -> None:
    if status != "yes" or event.max_attendees is None:
        return
    if yes_party_size(session, event) + guest_count + 1 > event.max_attendees:
        raise EventFullError()


def invite_url(token: str) -> str:
    return f"{settings.public_base_url.rstrip('/')}/invite/{token}"


def event_email_variables(event: Event) -> dict[str, Any]:
    host = (event.owner.name or event.owner.email) if event.owner else "Your host"
    return {
        "event_title": event.title,
        "event_date": event.start_time.strftime("%A, %B %d, %Y at %H:%M UTC"),
        "event_location": event.location or "",
        "event_description": event.description or "",
        "host_name": host,
        "event_url": f"{settings.public_base_url.rstrip('/')}/e/{event.slug}",
    }


def get_invite_by_token(session: Session, token: str) -> Invite:
    """Resolve a guest's invite link. Unknown tokens and hidden events look alike."""
    invite = None
    if token:
        invite = session.scalar(
            select(Invite).where(Invite.token_hash == hash_token(token))
        )
    if invite is None or not invite.event.is_published:
        raise NotFoundError("Invite not found")
    return invite


def _invite_for_rsvp(
    session: Session, event: Event, token: str | None, email: str | None
) -> Invite | None:
    if token:
        invite = get_invite_by_token(session, token)
        if invite.event_id != event.id:
            raise NotFoundError("Invite not found")
        if invite.rsvp is not None:
            raise ConflictError("This invite has already been answered")
        return invite
    if not email:
        return None
    # Guests who answer on the public page still close out their invite.
    return session.scalar(
        select(Invite).where(
            Invite.event_id == event.id,
            Invite.email == email,
            Invite.responded_at.is_(None),
        )
    )


def create_rsvp(
    session: Session,
    *,
    event: Event,
    name: str,
    email: str | None = None,
    attendance_status: str | None = "yes",
    guest_count: int | None = 0,
    invite_token: str | None = None,
) -> RSVP:
    """Record a guest's response, enforcing the deadline and capacity.

    A response made through an invite link (or with an invited email address)
    is linked to that invite, which moves to ``responded``.
    """
    if not event.is_published:
        raise NotFoundError("Event not found")
    if event.rsvp_deadline and _now() > event.rsvp_deadline:
        raise RSVPClosedError()
    cleaned_name = collapse_whitespace(name)
    if not cleaned_name:
        raise ValidationError("Name is required")
    status = normalize_attendance_status(attendance_status)
    guests = clamp_guest_count(guest_count) if status == "yes" else 0
    normalized_email = (email or "").strip().lower() or None
    invite = _invite_for_rsvp(session, event, invite_token, normalized_email)
    if invite is not None and normalized_email is None:
        normalized_email = invite.email
    enforce_capacity(session, event, status=status, guest_count=guests)

    rsvp = RSVP(
        event_id=event.id,
        invite=invite,
        name=cleaned_name,
        email=normalized_email,
        attendance_status=status,
        guest_count=guests,
    )
    session.add(rsvp)
    if invite is not None:
        invite.status = "responded"
        invite.responded_at = _now()
    session.flush()
    logger.info("RSVP %s (%s) for event %s", rsvp.id, status, event.id)

    if normalized_email:
        variables = event_email_variables(event)
        variables.update(guest_name=cleaned_name, response=status, guest_count=guests)
        enqueue_email(
            session, "confirmation", normalized_email, variables, event_id=event.id
        )
    return rsvp


def list_rsvps(session: Session, event_id: str) -> Sequence[RSVP]:
    stmt = (
        select(RSVP).where(RSVP.event_id == event_id).order_by(RSVP.created_at.asc())
    )
    return session.scalars(stmt).all()


def create_invite(
    session: Session, *, event: Event, email: str, name: str | None = None
) -> Invite:
    normalized = (email or "").strip().lower()
    if not normalized or "@" not in normalized:
        raise ValidationError(f"Invalid email address: {email}")
    existing = session.scalar(
        select(Invite.id).where(Invite.event_id == event.id, Invite.email == normalized)
    )
    if existing is not None:
        raise ConflictError(f"{normalized} has already been invited")
    token = secrets.token_urlsafe(32)
    invite = Invite(
        event_id=event.id,
        email=normalized,
        name=collapse_whitespace(name) or None,
        token_hash=hash_token(token),
        status="pending",
    )
    session.add(invite)
    session.flush()

    variables = event_email_variables(event)
    variables.update(
        guest_name=invite.name or "",
        rsvp_url=invite_url(token),
    )
    enqueue_email(
        session,
        "invite",
        normalized,
        variables,
        event_id=event.id,
        invite_id=invite.id,
    )
    return invite


def list_invites(session: Session, event_id: str) -> Sequence[Invite]:
    stmt = (
        select(Invite)
        .where(Invite.event_id == event_id)
        .order_by(Invite.created_at.asc())
    )
    return session.scalars(stmt).all()


def count_media_assets(session: Session, event_id: str) -> int:
    return (
        session.scalar(
            select(func.count())
            .select_from(MediaAsset)
            .where(MediaAsset.event_id == event_id)
        )
        or 0
    )


def list_media_assets(
    session: Session, event_id: str, kind: str | None = None
) -> Sequence[MediaAsset]:
    stmt = select(MediaAsset).where(MediaAsset.event_id == event_id)
    if kind:
        stmt = stmt.where(MediaAsset.kind == kind)
    return session.scalars(stmt.order_by(MediaAsset.created_at.desc())).all()


def create_media_asset(
    session: Session,
    *,
    event: Event,
    kind: str,
    content_type: str,
    data: bytes,
    store: LocalMediaStore,
    alt: str | None = None,
) -> MediaAsset:
    """Validate and store an uploaded image."""
    normalized_kind = (kind or "").strip().lower()
    if normalized_kind not in MEDIA_KINDS:
        raise ValidationError(f"Invalid media kind: {kind}")
    if content_type not in ALLOWED_MIME_TYPES:
        raise ValidationError(
            "Invalid file type. Allowed types: " + ", ".join(sorted(ALLOWED_MIME_TYPES))
        )
    if not data:
        raise ValidationError("File is empty")
    if len(data) > settings.max_upload_bytes:
        limit_mb = settings.max_upload_bytes // (1024 * 1024)
        raise ValidationError(f"File too large. Maximum size is {limit_mb}MB")
    if count_media_assets(session, event.id) >= settings.max_assets_per_event:
        raise ValidationError(
            f"Maximum {settings.max_assets_per_event} assets per event"
        )

    asset_id = str(uuid.uuid4())
    path = storage_path_for(event.id, asset_id, content_type)
    public_url = store.put(path, data, content_type)
    asset = MediaAsset(
        id=asset_id,
        event_id=event.id,
        kind=normalized_kind,
        storage_path=path,
        public_url=public_url,
        mime_type=content_type,
        size_bytes=len(data),
        alt=collapse_whitespace(alt)[:500],
    )
    session.add(asset)
    session.flush()
    return asset


def delete_media_asset(
    session: Session, *, event: Event, asset_id: str, store: LocalMediaStore
) -> None:
    """Remove an asset. Page configs that still reference it render no image."""
    asset = session.scalars(
        select(MediaAsset).where(
            MediaAsset.id == asset_id, MediaAsset.event_id == event.id
        )
    ).first()
    if asset is None:
        raise NotFoundError("Asset not found")
    store.delete(asset.storage_path)
    session.delete(asset)
    session.flush()
