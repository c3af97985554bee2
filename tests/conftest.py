# SPDX-License-Identifier: MIT
"""Pytest configuration and fixtures for the duplicate scrubber tests."""

import os
import uuid
from datetime import datetime, timedelta
from typing import Generator

import pytest

# Set test environment variables before importing app
os.environ.setdefault("TESTING", "true")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("DISABLE_LOGGING", "1")
os.environ.setdefault("ADMIN_KEY", "test-admin-key")

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

BASE_TIME = datetime(2024, 1, 1, 9, 0, 0)


@pytest.fixture
def db_engine():
    """Fresh in-memory SQLite database with foreign keys enforced."""
    from crm.database import Base

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory) -> Generator:
    """Session for arranging data and asserting on it."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def dedupe_settings():
    from crm.config import DedupeSettings

    return DedupeSettings(
        batch_size=2,  # small pages exercise the keyset pagination
        preview_limit=100,
        group_timeout_seconds=30,
        max_workers=1,
        lock_name="test-duplicate-scrub",
        multiple_property_tag="Multiple property",
    )


@pytest.fixture
def scrubber(session_factory, dedupe_settings):
    from crm.deduplication import DuplicateScrubber

    return DuplicateScrubber(session_factory, dedupe_settings)


@pytest.fixture
def make_contact(db_session):
    """Factory inserting a contact created ``day`` days after BASE_TIME."""
    from crm.database import Contact

    def _make(day: float = 0, id: str | None = None, **fields) -> Contact:
        contact = Contact(
            id=id or str(uuid.uuid4()),
            created_at=BASE_TIME + timedelta(days=day),
            **fields,
        )
        db_session.add(contact)
        db_session.commit()
        return contact

    return _make


@pytest.fixture
def make_property(db_session):
    from crm.database import ContactProperty

    def _make(contact_id: str, address: str | None, day: float = 0, **fields) -> ContactProperty:
        row = ContactProperty(
            contact_id=contact_id,
            address=address,
            created_at=BASE_TIME + timedelta(days=day),
            **fields,
        )
        db_session.add(row)
        db_session.commit()
        return row

    return _make


@pytest.fixture
def test_client(scrubber) -> Generator:
    """Create a test client for the FastAPI application bound to the test database."""
    from fastapi.testclient import TestClient
    from api.main import app
    from api.routes.duplicates import get_scrubber

    app.dependency_overrides[get_scrubber] = lambda: scrubber
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> dict:
    return {"Authorization": f"Bearer {os.environ['ADMIN_KEY']}"}
