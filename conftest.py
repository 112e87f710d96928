"""Shared pytest fixtures.

Settings are read at import time, so the environment is pointed at a throwaway
database before any service module is imported.
"""

import os
import tempfile

_TMP_DIR = tempfile.mkdtemp(prefix="smart_reminder_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'default.db')}"
os.environ["LOG_DIR"] = os.path.join(_TMP_DIR, "logs")
os.environ["WORKER_ENABLED"] = "false"
os.environ["GOOGLE_MAPS_API_KEY"] = ""
os.environ["NOTIFICATION_API_URL"] = ""

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

import database  # noqa: E402


@pytest.fixture
def session_factory(tmp_path):
    """Session factory bound to a fresh file-backed SQLite database."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'reminders.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    database.Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def no_dates():
    """Date recognizer that never finds a date."""
    return lambda text: []
