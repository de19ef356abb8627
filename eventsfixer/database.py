"""SQLite engine and session factory."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, scoped_session, sessionmaker

from .config import settings


def make_engine(url: str, **options: Any) -> Engine:
    # Sessions are shared with the scheduler's worker threads.
    return create_engine(url, connect_args={"check_same_thread": False}, **options)


def make_session_factory(bind: Engine) -> scoped_session[Session]:
    return scoped_session(
        sessionmaker(bind=bind, autoflush=False, expire_on_commit=False)
    )


def alembic_url(bind: Engine) -> str:
    """URL of ``bind`` escaped for Alembic's configparser-backed options."""
    return bind.url.render_as_string(hide_password=False).replace("%", "%%")


DATABASE_URL = f"sqlite:///{settings.database_path}"
engine = make_engine(DATABASE_URL)
SessionLocal = make_session_factory(engine)


@contextmanager
def get_session() -> Iterator[Session]:
    """Yield a session that is committed once on exit.

    If the block raises, everything done in it is rolled back.
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
