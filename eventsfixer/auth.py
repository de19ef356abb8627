"""Bearer-token authentication for organizers."""

from __future__ import annotations

import logging
import secrets

from fastapi import Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from .errors import ConflictError, ForbiddenError, NotFoundError, UnauthorizedError
from .models import Event, User
from .utils import collapse_whitespace, hash_token

logger = logging.getLogger("uvicorn.error")


def get_bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("authorization") or ""
    if not auth_header.lower().startswith("bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def create_user(session: Session, *, email: str, name: str | None = None) -> tuple[User, str]:
    """Create an organizer account and return it with its raw API token.

    The raw token is not stored and cannot be shown again.
    """
    normalized = (email or "").strip().lower()
    if not normalized or "@" not in normalized:
        raise ValueError("A valid email address is required")
    existing = session.scalars(select(User).where(User.email == normalized)).first()
    if existing is not None:
        raise ConflictError(f"A user with email {normalized} already exists")
    token = secrets.token_urlsafe(32)
    user = User(
        email=normalized,
        name=collapse_whitespace(name) or None,
        api_token_hash=hash_token(token),
    )
    session.add(user)
    session.flush()
    logger.info("Created user %s", user.id)
    return user, token


def rotate_user_token(session: Session, user: User) -> str:
    token = secrets.token_urlsafe(32)
    user.api_token_hash = hash_token(token)
    session.add(user)
    session.flush()
    logger.info("Rotated API token for user %s", user.id)
    return token


def authenticate_token(session: Session, token: str | None) -> User | None:
    if not token:
        return None
    return session.scalars(
        select(User).where(User.api_token_hash == hash_token(token))
    ).first()


def verify_request(request: Request, session: Session) -> User | None:
    """Return the user behind the request's bearer token, if any."""
    return authenticate_token(session, get_bearer_token(request))


def require_user(request: Request, session: Session) -> User:
    user = verify_request(request, session)
    if user is None:
        raise UnauthorizedError()
    return user


def require_event_owner(session: Session, event_id: str, user: User) -> Event:
    """Load an event the user owns.

    Unknown ids raise ``NotFoundError``; events owned by someone else raise
    ``ForbiddenError``.
    """
    event = session.get(Event, event_id)
    if event is None:
        raise NotFoundError("Event not found")
    if event.owner_id != user.id:
        raise ForbiddenError()
    return event
