"""Shared pytest fixtures for EventsFixer."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from eventsfixer import api, database
from eventsfixer.auth import create_user
from eventsfixer.models import Base
from eventsfixer.ratelimit import limiter


@pytest.fixture(scope="session", autouse=True)
def configure_in_memory_db():
    """Reuse a single in-memory SQLite database for fast, isolated tests."""

    engine = database.make_engine("sqlite+pysqlite:///:memory:", poolclass=StaticPool)
    session_factory = database.make_session_factory(engine)
    database.engine = engine
    database.SessionLocal = session_factory
    api.SessionLocal = session_factory
    Base.metadata.create_all(bind=engine)
    yield
    session_factory.remove()


@pytest.fixture(autouse=True)
def clean_database():
    """Reset all tables between tests to guarantee isolation."""

    Base.metadata.drop_all(bind=database.engine)
    Base.metadata.create_all(bind=database.engine)
    limiter.reset()
    yield
    database.SessionLocal.remove()


@pytest.fixture()
def session():
    db = database.SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def organizer(session):
    user, token = create_user(session, email="host@example.com", name="Hosty")
    session.commit()
    return user, token


@pytest.fixture()
def client(monkeypatch):
    """FastAPI test client with the scheduler disabled."""

    monkeypatch.setattr(api, "start_scheduler", lambda: None)
    monkeypatch.setattr(api, "stop_scheduler", lambda: None)
    with TestClient(api.app) as test_client:
        yield test_client


def _sample_document(title: str = "Ada & Grace") -> dict:
    return {
        "schemaVersion": 2,
        "theme": {"preset": "romantic", "primaryColor": "#9D174D", "fontPair": "serif_sans"},
        "hero": {"title": title, "subtitle": "June 1st", "align": "center", "overlay": "soft"},
        "sections": [
            {
                "type": "details",
                "enabled": True,
                "data": {"dateText": "Saturday, June 1", "locationText": "The Old Mill"},
            },
            {
                "type": "schedule",
                "enabled": True,
                "data": {"items": [{"time": "14:00", "title": "Ceremony"}]},
            },
            {
                "type": "faq",
                "enabled": False,
                "data": {"items": [{"question": "Dress code?", "answer": "Smart casual"}]},
            },
            {
                "type": "rsvp",
                "enabled": True,
                "data": {"heading": "Will you join us?", "showMaybeOption": False},
            },
        ],
    }


@pytest.fixture()
def page_document():
    """Factory for a valid current-version page config document."""

    return _sample_document
