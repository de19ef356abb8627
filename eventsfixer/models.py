"""SQLAlchemy models for EventsFixer."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

from .utils import utcnow

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return utcnow()


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(120), nullable=True)
    api_token_hash = Column(String(64), nullable=False, unique=True)
    created_at = Column(DateTime, default=_now, nullable=False)

    events = relationship("Event", back_populates="owner")


class Event(Base):
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=_uuid)
    owner_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    title = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=True)
    location = Column(String(255), nullable=True)
    max_attendees = Column(Integer, nullable=True)
    rsvp_deadline = Column(DateTime, nullable=True)
    template_id = Column(String(64), nullable=True, index=True)
    # Untyped at rest: always run through config_migrations before use.
    page_config = Column(JSON, nullable=True)
    config_version = Column(Integer, nullable=False, default=1)
    published_at = Column(DateTime, nullable=True)
    preview_token = Column(String(64), nullable=True, unique=True)
    preview_token_expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)
    last_modified = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    owner = relationship("User", back_populates="events")
    page_versions = relationship(
        "EventPageVersion",
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="desc(EventPageVersion.revision)",
    )
    media_assets = relationship(
        "MediaAsset",
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="desc(MediaAsset.created_at)",
    )
    rsvps = relationship("RSVP", back_populates="event", cascade="all, delete-orphan")
    invites = relationship(
        "Invite",
        back_populates="event",
        cascade="all, delete-orphan",
    )
    emails = relationship(
        "EmailMessage",
        back_populates="event",
        cascade="all, delete-orphan",
    )

    @property
    def is_published(self) -> bool:
        return self.published_at is not None

    @property
    def yes_count(self) -> int:
        """Return the total attending party size (RSVP + guests)."""
        return sum(
            (r.guest_count or 0) + 1
            for r in self.rsvps
            if r.attendance_status == "yes"
        )


class EventPageVersion(Base):
    """Immutable snapshot of an event's page config."""

    __tablename__ = "event_page_versions"
    __table_args__ = (
        UniqueConstraint("event_id", "revision", name="uq_event_page_revision"),
        Index("ix_event_page_versions_event_created", "event_id", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    revision = Column(Integer, nullable=False)
    page_config = Column(JSON, nullable=False)
    config_version = Column(Integer, nullable=False)
    created_by = Column(String(36), nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)

    event = relationship("Event", back_populates="page_versions")


class MediaAsset(Base):
    __tablename__ = "media_assets"
    __table_args__ = (Index("ix_media_assets_event_kind", "event_id", "kind"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    kind = Column(String(16), nullable=False)
    storage_path = Column(String(512), nullable=False)
    public_url = Column(String(1024), nullable=False)
    mime_type = Column(String(64), nullable=False)
    size_bytes = Column(Integer, nullable=False)
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)
    alt = Column(String(500), nullable=False, default="")
    created_at = Column(DateTime, default=_now, nullable=False)

    event = relationship("Event", back_populates="media_assets")


class RSVP(Base):
    __tablename__ = "rsvps"

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    invite_id = Column(
        String(36), ForeignKey("invites.id", ondelete="SET NULL"), nullable=True, unique=True
    )
    name = Column(String(120), nullable=False)
    email = Column(String(255), nullable=True)
    attendance_status = Column(String(16), nullable=False, default="yes")
    guest_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)
    last_modified = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    event = relationship("Event", back_populates="rsvps")
    invite = relationship("Invite", back_populates="rsvp")


class Invite(Base):
    __tablename__ = "invites"
    __table_args__ = (UniqueConstraint("event_id", "email", name="uq_invite_email"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    email = Column(String(255), nullable=False)
    name = Column(String(120), nullable=True)
    token_hash = Column(String(64), nullable=False, unique=True)
    status = Column(String(16), nullable=False, default="pending")
    sent_at = Column(DateTime, nullable=True)
    responded_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)

    event = relationship("Event", back_populates="invites")
    rsvp = relationship("RSVP", back_populates="invite", uselist=False)


class EmailMessage(Base):
    """Outbox row; the scheduler drains ``queued`` rows."""

    __tablename__ = "email_messages"
    __table_args__ = (Index("ix_email_messages_status", "status", "created_at"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=True
    )
    invite_id = Column(
        String(36), ForeignKey("invites.id", ondelete="SET NULL"), nullable=True
    )
    template = Column(String(32), nullable=False)
    recipient = Column(String(255), nullable=False)
    subject = Column(String(255), nullable=False)
    variables = Column(JSON, nullable=False, default=dict)
    status = Column(String(16), nullable=False, default="queued")
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    provider_message_id = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)
    sent_at = Column(DateTime, nullable=True)

    event = relationship("Event", back_populates="emails")
