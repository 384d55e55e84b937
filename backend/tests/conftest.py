# backend/tests/conftest.py
"""
Pytest configuration for the booking engine tests.

Every test gets its own file-backed SQLite database under ``tmp_path``. A file
(rather than ``:memory:``) lets the concurrency tests open several real
connections against the same data.
"""

import os
import sys

# CRITICAL: Set testing mode BEFORE any app imports!
os.environ["is_testing"] = "true"
os.environ.pop("NOTIFICATION_PROVIDER_RAISE_ON", None)

# Add the backend directory to Python path so imports work
backend_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, backend_dir)

from app.core.config import settings

settings.is_testing = True

from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient
import pytest
from sqlalchemy.orm import Session, sessionmaker

import app.models  # noqa: F401  registers every table on Base.metadata
from app.api.dependencies import get_db
from app.database import Base, SessionLocal, create_db_engine
from app.database import engine as default_engine
from app.main import app
from app.models.client import Client
from app.models.credit_pass import CreditPass
from tests.factories.class_booking import (
    create_client,
    create_credit_pass,
    create_occurrence,
)

# Fixed reference time for service-level tests
NOW = datetime(2030, 3, 4, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def engine(tmp_path):
    """Fresh SQLite database file per test."""
    test_engine = create_db_engine(f"sqlite:///{tmp_path / 'classbook_test.db'}")
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


@pytest.fixture
def db(session_factory) -> Session:
    """Create a new database session for each test."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def bind_session_local(engine):
    """Point the application's SessionLocal (used by tasks) at the test database."""
    SessionLocal.configure(bind=engine)
    yield SessionLocal
    SessionLocal.configure(bind=default_engine)


@pytest.fixture
def client(db: Session):
    """Create a test client with the test database."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    test_client = TestClient(app)

    yield test_client

    app.dependency_overrides.clear()
    test_client.close()


@pytest.fixture
def test_client_record(db: Session) -> Client:
    return create_client(db, name="Alex Member", email="alex@example.com")


@pytest.fixture
def other_client_record(db: Session) -> Client:
    return create_client(db, name="Sam Member", email="sam@example.com")


@pytest.fixture
def ten_class_pass(db: Session, test_client_record: Client, now: datetime) -> CreditPass:
    return create_credit_pass(
        db,
        test_client_record,
        credits=10,
        expires_at=now + timedelta(days=60),
        purchased_at=now - timedelta(days=1),
    )


@pytest.fixture
def occurrence(db: Session, now: datetime):
    """Class with two seats starting three days after NOW."""
    return create_occurrence(db, starts_at=now + timedelta(days=3), capacity=2)
