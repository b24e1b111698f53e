"""Shared pytest fixtures for Dewana."""

from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

# Settings load at import time and ``live_grace_hours`` has no default.
_TEST_DATA_DIR = tempfile.mkdtemp(prefix="dewana-tests-")
os.environ.setdefault("DEWANA_LIVE_GRACE_HOURS", "3")
os.environ.setdefault("DEWANA_DATA_DIR", _TEST_DATA_DIR)
os.environ.setdefault("DEWANA_CONFIG", str(Path(_TEST_DATA_DIR) / "dewana.toml"))
os.environ.setdefault("DEWANA_ENABLE_SCHEDULER", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from dewana import api, crud, database, storage
from dewana.models import Base


@pytest.fixture(scope="session", autouse=True)
def configure_in_memory_db():
    """Reuse a single in-memory SQLite database for fast, isolated tests."""

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    session_factory = scoped_session(
        sessionmaker(
            bind=engine,
            autoflush=False,
            autocommit=False,
            future=True,
            expire_on_commit=False,
        )
    )
    database.engine = engine
    database.SessionLocal = session_factory
    storage.engine = engine
    Base.metadata.create_all(bind=engine)
    yield
    session_factory.remove()


@pytest.fixture(autouse=True)
def clean_database():
    """Reset all tables between tests to guarantee isolation."""

    Base.metadata.drop_all(bind=database.engine)
    Base.metadata.create_all(bind=database.engine)
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
def client(monkeypatch):
    """FastAPI test client with the scheduler disabled."""

    monkeypatch.setattr(api, "start_scheduler", lambda: None)
    monkeypatch.setattr(api, "stop_scheduler", lambda: None)
    with TestClient(api.app) as test_client:
        yield test_client


@pytest.fixture()
def host(session):
    user = crud.create_user(session, email="Host@Example.com", display_name="Asha")
    session.commit()
    return user


@pytest.fixture()
def host_headers(host):
    return {"Authorization": f"Bearer {host.api_token}"}
