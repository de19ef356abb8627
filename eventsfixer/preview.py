"""Shareable preview links for unpublished event pages.

Only the SHA-256 hash of a preview token is stored. The raw token is handed
out once when it is issued and cannot be recovered afterwards.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from .config import settings
from .database import get_session
from .errors import NotFoundError
from .models import Event
from .utils import hash_token, utcnow

logger = logging.getLogger("uvicorn.error")


def issue_preview_token(
    session: Session, event: Event, days: int | None = None
) -> tuple[str, datetime]:
    """Create a new preview token for ``event``, replacing any previous one."""
    lifetime = timedelta(days=days) if days else settings.preview_token_lifetime
    token = secrets.token_urlsafe(32)
    expires_at = utcnow() + lifetime
    event.preview_token = hash_token(token)
    event.preview_token_expires_at = expires_at
    session.add(event)
    session.flush()
    logger.info("Issued preview token for event %s (expires %s)", event.id, expires_at)
    return token, expires_at


def revoke_preview_token(session: Session, event: Event) -> None:
    event.preview_token = None
    event.preview_token_expires_at = None
    session.add(event)
    session.flush()
    logger.info("Revoked preview token for event %s", event.id)


def preview_token_status(event: Event) -> dict:
    has_token = event.preview_token is not None
    expires_at = event.preview_token_expires_at
    is_expired = bool(has_token and expires_at and expires_at <= utcnow())
    return {
        "has_token": has_token,
        "is_expired": is_expired,
        "expires_at": expires_at.isoformat() if has_token and expires_at else None,
    }


def resolve_preview_token(session: Session, token: str) -> Event:
    """Return the event a preview token grants access to.

    Unknown and expired tokens raise the same ``NotFoundError`` so callers
    cannot tell whether a token ever existed.
    """
    if not token:
        raise NotFoundError("Preview not found")
    event = session.scalars(
        select(Event).where(Event.preview_token == hash_token(token))
    ).first()
    if event is None:
        raise NotFoundError("Preview not found")
    expires_at = event.preview_token_expires_at
    if expires_at is None or expires_at <= utcnow():
        raise NotFoundError("Preview not found")
    return event


def purge_expired_preview_tokens() -> int:
    """Clear expired token hashes. Returns the number of events touched."""
    with get_session() as session:
        result = session.execute(
            update(Event)
            .where(
                Event.preview_token.is_not(None),
                Event.preview_token_expires_at <= utcnow(),
            )
            .values(preview_token=None, preview_token_expires_at=None)
            .execution_options(synchronize_session=False)
        )
        purged = result.rowcount or 0
    if purged:
        logger.info("Purged %d expired preview tokens", purged)
    return purged
