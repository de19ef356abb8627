"""Append-only page config history and the live config pointer.

Every write of an event's page config goes through :func:`save_page_config`
(or :func:`rollback_to_version`), which records a version row *before* moving
the event's live pointer. Both writes share the caller's session and are
committed together, so a pointer can never refer to a config that has no
history row.
"""

from __future__ import annotations

import logging
from typing import Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .config import settings
from .config_migrations import load_page_config, validate_and_migrate
from .errors import MigrationError, NotFoundError, ValidationError
from .models import Event, EventPageVersion
from .page_config import PageConfig
from .utils import utcnow

logger = logging.getLogger("uvicorn.error")


def _next_revision(session: Session, event_id: str) -> int:
    last = session.scalar(
        select(func.max(EventPageVersion.revision)).where(
            EventPageVersion.event_id == event_id
        )
    )
    return (last or 0) + 1


def record_version(
    session: Session, event_id: str, config: PageConfig, user_id: str
) -> EventPageVersion:
    """Insert one history row. Does not touch the event's live config."""
    version = EventPageVersion(
        event_id=event_id,
        revision=_next_revision(session, event_id),
        page_config=config.to_document(),
        config_version=config.schema_version,
        created_by=user_id,
        created_at=utcnow(),
    )
    session.add(version)
    session.flush()
    logger.info(
        "Recorded page config revision %d for event %s", version.revision, event_id
    )
    return version


def list_versions(
    session: Session, event_id: str, limit: int | None = None
) -> Sequence[EventPageVersion]:
    """Return the event's versions, most recent first."""
    cap = settings.max_versions_listed
    effective = min(limit, cap) if limit and limit > 0 else cap
    stmt = (
        select(EventPageVersion)
        .where(EventPageVersion.event_id == event_id)
        .order_by(EventPageVersion.revision.desc())
        .limit(effective)
    )
    return session.scalars(stmt).all()


def count_versions(session: Session, event_id: str) -> int:
    return (
        session.scalar(
            select(func.count())
            .select_from(EventPageVersion)
            .where(EventPageVersion.event_id == event_id)
        )
        or 0
    )


def get_version(session: Session, event_id: str, version_id: str) -> EventPageVersion:
    """Look up a version, refusing ids that belong to another event."""
    stmt = select(EventPageVersion).where(
        EventPageVersion.id == version_id, EventPageVersion.event_id == event_id
    )
    version = session.scalars(stmt).first()
    if version is None:
        raise NotFoundError("Version not found")
    return version


def current_page_config(event: Event) -> PageConfig:
    """Return the event's live config, or the minimal default if unusable."""
    return load_page_config(event.page_config, fallback_title=event.title)


def _point_event_at(
    event: Event, config: PageConfig, *, template_id: str | None = None
) -> None:
    event.page_config = config.to_document()
    event.config_version = config.schema_version
    if template_id:
        event.template_id = template_id
    event.last_modified = utcnow()


def save_page_config(
    session: Session,
    event: Event,
    config: PageConfig,
    user_id: str,
    *,
    template_id: str | None = None,
) -> EventPageVersion:
    """Record ``config`` as a new version, then make it the live config."""
    version = record_version(session, event.id, config, user_id)
    _point_event_at(event, config, template_id=template_id)
    session.add(event)
    session.flush()
    return version


def rollback_to_version(
    session: Session, event: Event, version_id: str, user_id: str
) -> tuple[PageConfig, EventPageVersion]:
    """Restore an earlier version by recording it again as the newest one.

    The stored snapshot is re-run through the current schema first; if it can
    no longer be brought up to date the rollback is refused and nothing is
    written.
    """
    target = get_version(session, event.id, version_id)
    try:
        config = validate_and_migrate(target.page_config)
    except MigrationError as exc:
        logger.warning(
            "Refusing rollback of event %s to revision %d: %s",
            event.id,
            target.revision,
            exc,
        )
        raise ValidationError("Cannot rollback: version config is invalid") from exc

    version = save_page_config(session, event, config, user_id)
    logger.info(
        "Rolled back event %s to revision %d as revision %d",
        event.id,
        target.revision,
        version.revision,
    )
    return config, version
