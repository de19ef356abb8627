"""Transactional email outbox.

Request handlers only ever call :func:`enqueue_email`, which writes a
``queued`` row in the caller's session. Delivery happens later, from the
scheduler or the ``process-emails`` command, through an :class:`EmailSender`.
"""

from __future__ import annotations

import logging
import smtplib
import uuid
from dataclasses import dataclass
from email.message import EmailMessage as MIMEMessage
from email.utils import make_msgid
from typing import Any, Protocol

from jinja2 import TemplateError
from sqlalchemy import select
from sqlalchemy.orm import Session

from .config import settings
from .database import get_session
from .models import EmailMessage, Invite
from .renderers.html import page_env
from .utils import utcnow

logger = logging.getLogger("uvicorn.error")

EMAIL_TEMPLATES = ("invite", "confirmation", "reminder", "no_response")

STATUS_QUEUED = "queued"
STATUS_SENDING = "sending"
STATUS_SENT = "sent"
STATUS_FAILED = "failed"


def email_subject(template: str, variables: dict[str, Any]) -> str:
    title = variables.get("event_title") or "your event"
    if template == "invite":
        return f"You're invited to {title}"
    if template == "confirmation":
        if variables.get("response") == "yes":
            return f"You're confirmed for {title}!"
        return f"RSVP received for {title}"
    if template == "reminder":
        return f"Reminder: {title} is coming up"
    if template == "no_response":
        return f"Can you make it to {title}?"
    raise ValueError(f"Unknown email template: {template}")


def render_email_body(template: str, variables: dict[str, Any]) -> str:
    if template not in EMAIL_TEMPLATES:
        raise ValueError(f"Unknown email template: {template}")
    return page_env.get_template(f"emails/{template}.txt").render(**variables)


@dataclass(frozen=True)
class OutgoingEmail:
    recipient: str
    subject: str
    body: str
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class DeliveryResult:
    message_id: str


class EmailSender(Protocol):
    def send(self, message: OutgoingEmail) -> DeliveryResult: ...


class LogEmailSender:
    """Development sender: logs the envelope and drops the message."""

    def send(self, message: OutgoingEmail) -> DeliveryResult:
        message_id = f"log-{uuid.uuid4()}"
        logger.info(
            "Email %s to %s: %s (%s)",
            message_id,
            message.recipient,
            message.subject,
            ", ".join(message.tags) or "untagged",
        )
        return DeliveryResult(message_id=message_id)


class SMTPEmailSender:
    def __init__(
        self,
        host: str,
        port: int,
        *,
        username: str = "",
        password: str = "",
        mail_from: str,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.mail_from = mail_from

    def send(self, message: OutgoingEmail) -> DeliveryResult:
        mime = MIMEMessage()
        mime["From"] = self.mail_from
        mime["To"] = message.recipient
        mime["Subject"] = message.subject
        mime["Message-ID"] = make_msgid(domain="eventsfixer")
        mime.set_content(message.body)
        with smtplib.SMTP(self.host, self.port, timeout=30) as server:
            if self.username:
                server.starttls()
                server.login(self.username, self.password)
            server.send_message(mime)
        return DeliveryResult(message_id=mime["Message-ID"])


def default_sender() -> EmailSender:
    if settings.smtp_enabled:
        return SMTPEmailSender(
            settings.smtp_host,
            settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            mail_from=settings.mail_from,
        )
    return LogEmailSender()


def enqueue_email(
    session: Session,
    template: str,
    recipient: str,
    variables: dict[str, Any],
    *,
    event_id: str | None = None,
    invite_id: str | None = None,
) -> str:
    """Queue an email for later delivery and return the outbox id."""
    message = EmailMessage(
        event_id=event_id,
        invite_id=invite_id,
        template=template,
        recipient=recipient,
        subject=email_subject(template, variables),
        variables=dict(variables),
        status=STATUS_QUEUED,
    )
    session.add(message)
    session.flush()
    logger.info("Queued %s email %s", template, message.id)
    return message.id


def _claim(email_id: str) -> tuple[OutgoingEmail, str | None] | None:
    with get_session() as session:
        message = session.get(EmailMessage, email_id)
        if message is None or message.status != STATUS_QUEUED:
            return None
        message.attempts = (message.attempts or 0) + 1
        try:
            body = render_email_body(message.template, message.variables or {})
        except (ValueError, TemplateError) as exc:
            message.status = STATUS_FAILED
            message.last_error = str(exc)
            logger.error("Email %s could not be rendered: %s", email_id, exc)
            return None
        message.status = STATUS_SENDING
        outgoing = OutgoingEmail(
            recipient=message.recipient,
            subject=message.subject,
            body=body,
            tags=(message.template,),
        )
        invite_id = message.invite_id if message.template == "invite" else None
        return outgoing, invite_id


def process_email(email_id: str, sender: EmailSender | None = None) -> bool:
    """Deliver one queued email. Returns True when it was sent.

    Moves the row queued -> sending -> sent. A failed delivery is put back in
    the queue until ``email_max_attempts`` is reached, then marked failed.
    """
    claimed = _claim(email_id)
    if claimed is None:
        return False
    outgoing, invite_id = claimed
    sender = sender or default_sender()
    try:
        result = sender.send(outgoing)
    except (smtplib.SMTPException, OSError) as exc:
        with get_session() as session:
            message = session.get(EmailMessage, email_id)
            message.last_error = str(exc)
            if message.attempts >= settings.email_max_attempts:
                message.status = STATUS_FAILED
            else:
                message.status = STATUS_QUEUED
            status = message.status
        logger.error("Email %s delivery failed (%s): %s", email_id, status, exc)
        return False

    with get_session() as session:
        message = session.get(EmailMessage, email_id)
        message.status = STATUS_SENT
        message.sent_at = utcnow()
        message.provider_message_id = result.message_id
        message.last_error = None
        if invite_id:
            invite = session.get(Invite, invite_id)
            if invite is not None:
                invite.sent_at = message.sent_at
                if invite.status == "pending":
                    invite.status = "sent"
    logger.info("Sent email %s", email_id)
    return True


def process_queued_emails(
    limit: int | None = None, sender: EmailSender | None = None
) -> int:
    """Deliver up to ``limit`` queued emails, oldest first."""
    batch = limit or settings.email_batch_size
    with get_session() as session:
        email_ids = session.scalars(
            select(EmailMessage.id)
            .where(EmailMessage.status == STATUS_QUEUED)
            .order_by(EmailMessage.created_at.asc())
            .limit(batch)
        ).all()
    sender = sender or default_sender()
    sent = 0
    for email_id in email_ids:
        if process_email(email_id, sender):
            sent += 1
    if email_ids:
        logger.info("Processed %d queued emails, %d sent", len(email_ids), sent)
    return sent
