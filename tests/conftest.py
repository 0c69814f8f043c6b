"""
Pytest configuration and fixtures for ComeCome auth tests

This file ensures:
1. Clean database state for each test
2. A controllable clock and cheap bcrypt cost
3. API tests run against the same in-memory database as the services
"""
import os
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.comecome_app.models.database import Base
from src.comecome_app.models.audit_log import AuditLog, FailedPinAttempt  # noqa: F401
from src.comecome_app.services.auth_service import AuthService
from src.api.dependencies import get_clock, get_db, get_settings
from src.api.main import app
from src.config import AuthSettings
from tests.auth_helpers import UNLOCK_CODE, make_child, make_guardian

class FrozenClock:
    """Clock callable that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture(scope="function")
def test_db_engine():
    """
    Create a fresh in-memory SQLite database for each test.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def test_db_session(test_db_engine):
    TestingSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=test_db_engine,
    )
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def clock():
    # Aligned to a 300 second boundary so rate-limit windows start clean
    return FrozenClock(datetime(2026, 3, 2, 10, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings():
    return AuthSettings(pin_hash_cost=4, unlock_code=UNLOCK_CODE)


@pytest.fixture
def auth_service(test_db_session, settings, clock):
    return AuthService(test_db_session, settings, clock)


@pytest.fixture
def setup_test_db(test_db_session, settings, clock):
    """
    Configure FastAPI app to use the test database, settings and clock.
    """
    def override_get_db():
        try:
            yield test_db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_clock] = lambda: clock

    yield

    app.dependency_overrides.clear()


@pytest.fixture
def client(setup_test_db):
    return TestClient(app)


@pytest.fixture(autouse=True)
def reset_production_db():
    """
    Prevent tests from accidentally using the production database.
    """
    original_env = os.environ.get("DATABASE_URL")
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"

    yield

    if original_env:
        os.environ["DATABASE_URL"] = original_env
    elif "DATABASE_URL" in os.environ:
        del os.environ["DATABASE_URL"]


@pytest.fixture
def guardian_user(test_db_session):
    return make_guardian(test_db_session)


@pytest.fixture
def child_user(test_db_session):
    return make_child(test_db_session)
