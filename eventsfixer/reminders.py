"""Daily reminder jobs that feed the email outbox."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from .config import settings
from .crud import event_email_variables
from .database import get_session
from .email import enqueue_email
from .models import RSVP, EmailMessage, Event, Invite
from .utils import utcnow

logger = logging.getLogger("uvicorn.error")


def _already_queued(session: Session, template: str, **filters) -> bool:
    stmt = select(EmailMessage.id).where(EmailMessage.template == template)
    for column, value in filters.items():
        stmt = stmt.where(getattr(EmailMessage, column) == value)
    return session.scalar(stmt.limit(1)) is not None


def queue_event_reminders(now: datetime | None = None) -> int:
    """Queue one reminder per confirmed guest of published events starting tomorrow.

    "Tomorrow" is the next UTC calendar day. Returns how many were queued.
    """
    now = now or utcnow()
    tomorrow = datetime(now.year, now.month, now.day) + timedelta(days=1)
    queued = 0
    with get_session() as session:
        stmt = (
            select(RSVP)
            .join(Event, RSVP.event_id == Event.id)
            .where(
                Event.published_at.is_not(None),
                Event.start_time >= tomorrow,
                Event.start_time < tomorrow + timedelta(days=1),
                RSVP.attendance_status == "yes",
                RSVP.email.is_not(None),
            )
            .order_by(Event.start_time, RSVP.created_at)
        )
        for rsvp in session.scalars(stmt).all():
            if _already_queued(
                session, "reminder", event_id=rsvp.event_id, recipient=rsvp.email
            ):
                continue
            variables = event_email_variables(rsvp.event)
            variables.update(guest_name=rsvp.name, guest_count=rsvp.guest_count)
            enqueue_email(
                session,
                "reminder",
                rsvp.email,
                variables,
                event_id=rsvp.event_id,
                invite_id=rsvp.invite_id,
            )
            queued += 1
    if queued:
        logger.info("Queued %d event reminder(s)", queued)
    return queued


def queue_no_response_reminders(now: datetime | None = None) -> int:
    """Nudge invited guests who have not answered once, before the event or deadline.

    Only invites delivered at least ``no_response_reminder_days`` ago qualify.
    The reminder reuses the link from the original invite email.
    """
    now = now or utcnow()
    cutoff = now - timedelta(days=settings.no_response_reminder_days)
    queued = 0
    with get_session() as session:
        stmt = (
            select(Invite)
            .join(Event, Invite.event_id == Event.id)
            .where(
                Event.published_at.is_not(None),
                Event.start_time > now,
                Invite.status == "sent",
                Invite.sent_at <= cutoff,
            )
            .order_by(Invite.sent_at)
        )
        for invite in session.scalars(stmt).all():
            event = invite.event
            if event.rsvp_deadline and event.rsvp_deadline <= now:
                continue
            if _already_queued(session, "no_response", invite_id=invite.id):
                continue
            original = session.scalar(
                select(EmailMessage).where(
                    EmailMessage.invite_id == invite.id,
                    EmailMessage.template == "invite",
                )
            )
            if original is None or not original.variables.get("rsvp_url"):
                logger.warning("Invite %s has no link to remind with", invite.id)
                continue
            variables = event_email_variables(event)
            variables.update(
                guest_name=invite.name or "",
                rsvp_url=original.variables["rsvp_url"],
            )
            enqueue_email(
                session,
                "no_response",
                invite.email,
                variables,
                event_id=event.id,
                invite_id=invite.id,
            )
            queued += 1
    if queued:
        logger.info("Queued %d no-response reminder(s)", queued)
    return queued
