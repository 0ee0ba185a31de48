"""Database connection and session management."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session as OrmSession

from .models import Base, FocusStats

LOGGER = logging.getLogger(__name__)

# ── paths ────────────────────────────────────────────────────────────────────

APP_SUPPORT_DIR = Path.home() / "Library" / "Application Support" / "StudyFocus"
DB_PATH = APP_SUPPORT_DIR / "studyfocus.db"


def default_database_url() -> str:
    APP_SUPPORT_DIR.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{DB_PATH}"


# ── database ─────────────────────────────────────────────────────────────────


class Database:
    """Owns one SQLAlchemy engine and session factory.

    Every view constructs (or is handed) its own instance; several
    instances pointed at the same SQLite file behave like several
    windows of the app sharing one profile.
    """

    def __init__(self, url: str | None = None) -> None:
        self.url = url or default_database_url()
        self._engine = create_engine(
            self.url,
            connect_args={"check_same_thread": False, "timeout": 5},
            echo=False,
        )
        self._factory = sessionmaker(bind=self._engine, expire_on_commit=False)

    @property
    def engine(self):
        return self._engine

    def init(self) -> None:
        """Create all tables and seed the single stats row."""
        Base.metadata.create_all(self._engine)
        with self._factory() as session:
            if session.query(FocusStats).count() == 0:
                session.add(FocusStats())
                session.commit()
        LOGGER.debug("Database ready at %s", self.url)

    @contextmanager
    def session(self):
        """Yield a SQLAlchemy session; commit on success, rollback on error."""
        session: OrmSession = self._factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self._engine.dispose()
