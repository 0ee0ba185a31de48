"""Shared pytest fixtures for StudyFocus tests."""

import sys
import pytest

from PyQt6.QtCore import QCoreApplication

from studyfocus.app import FocusDesk
from studyfocus.database.db import Database
from studyfocus.database.store import SnapshotStore
from studyfocus.settings import SettingsManager
from studyfocus.timer.engine import TimerEngine

from helpers import FakeClock


@pytest.fixture(scope="session")
def qapp():
    """A single QCoreApplication instance shared across the entire test run."""
    app = QCoreApplication.instance() or QCoreApplication(sys.argv)
    yield app


@pytest.fixture
def db_url(tmp_path):
    """Every test gets its own SQLite file, shareable between views."""
    return f"sqlite:///{tmp_path / 'studyfocus.db'}"


@pytest.fixture
def database(db_url):
    db = Database(db_url)
    db.init()
    yield db
    db.dispose()


@pytest.fixture
def store(qapp, database):
    return SnapshotStore(database)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(store):
    manager = SettingsManager(store)
    manager.load()
    return manager


@pytest.fixture
def engine(settings, store, clock):
    """Fresh TimerEngine on an empty database."""
    timer = TimerEngine(settings, store, clock=clock)
    timer.load()
    return timer


@pytest.fixture
def make_desk(qapp, db_url, clock):
    """Factory for views sharing one database and one clock."""
    desks = []

    def _make(view_id: str, **kwargs) -> FocusDesk:
        desk = FocusDesk(db_url, view_id=view_id, clock=clock, **kwargs)
        desks.append(desk)
        return desk

    yield _make
    for desk in desks:
        desk.close()
