"""
Pytest configuration and fixtures.

Provides shared fixtures for:
- Test database sessions (in-memory SQLite)
- In-memory job queue
- Sample data factories
- FastAPI test client with dependency overrides
"""

import os
from datetime import datetime

import pytest
from dateutil import tz
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app modules
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"

from deal_scheduler.database import Base  # noqa: E402
from deal_scheduler.domain.jobs.coordinator import JobCoordinator  # noqa: E402
from deal_scheduler.domain.recurring.service import DealRecurringService  # noqa: E402
from deal_scheduler.models import Deal, Merchant, Team, User  # noqa: E402

# Wednesday afternoon, UTC
FIXED_NOW = datetime(2025, 3, 12, 15, 30, tzinfo=tz.UTC)


class InMemoryJobQueue:
    """Job queue double keyed by (queue name, job id)"""

    def __init__(self):
        self.jobs = {}
        self.removed = []
        self.fail_on = set()

    def enqueue(self, job_id: str, queue_name: str = "deals"):
        self.jobs[(queue_name, job_id)] = {"status": "deferred"}
        return f"{queue_name}:{job_id}"

    async def get_job(self, job_id: str, queue_name: str = "deals"):
        if job_id in self.fail_on:
            raise ConnectionError("Redis unavailable")
        return self.jobs.get((queue_name, job_id))

    async def remove_job(self, job_id: str, queue_name: str = "deals") -> bool:
        removed = self.jobs.pop((queue_name, job_id), None)
        if removed is not None:
            self.removed.append(f"{queue_name}:{job_id}")
        return removed is not None

    def contains(self, reference: str) -> bool:
        queue_name, _, job_id = reference.partition(":")
        return (queue_name, job_id) in self.jobs


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(scope="function")
def test_db_engine():
    """Create an in-memory SQLite database engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    def _fk_pragma_on_connect(dbapi_con, con_record):
        dbapi_con.execute("pragma foreign_keys=ON")

    event.listen(engine, "connect", _fk_pragma_on_connect)

    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_db_engine)


@pytest.fixture(scope="function")
def test_db_session(session_factory):
    """Create a test database session."""
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# ============================================================================
# Service Fixtures
# ============================================================================


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def service(test_db_session, now):
    return DealRecurringService(test_db_session, clock=lambda: now)


@pytest.fixture
def job_queue():
    return InMemoryJobQueue()


@pytest.fixture
def coordinator(session_factory, job_queue):
    return JobCoordinator(session_factory, job_queue, max_attempts=3)


# ============================================================================
# Sample Data Factories
# ============================================================================


@pytest.fixture
def test_team(test_db_session):
    team = Team(name="Acme Studio")
    test_db_session.add(team)
    test_db_session.commit()
    test_db_session.refresh(team)
    return team


@pytest.fixture
def test_user(test_db_session, test_team):
    user = User(team_id=test_team.id, email="owner@acme.test", full_name="Ada Owner")
    test_db_session.add(user)
    test_db_session.commit()
    test_db_session.refresh(user)
    return user


@pytest.fixture
def create_merchant(test_db_session):
    """Factory for creating sample Merchant models in the database."""

    def _create(team, name="Northwind", email="ap@northwind.test", billing_email=None):
        merchant = Merchant(team_id=team.id, name=name, email=email, billing_email=billing_email)
        test_db_session.add(merchant)
        test_db_session.commit()
        test_db_session.refresh(merchant)
        return merchant

    return _create


@pytest.fixture
def test_merchant(test_team, create_merchant):
    return create_merchant(test_team)


@pytest.fixture
def create_deal(test_db_session):
    """Factory for creating sample Deal models in the database."""

    def _create(
        team,
        merchant=None,
        status="draft",
        issue_date=None,
        amount=1200.0,
        currency="USD",
        series=None,
        sequence=None,
        scheduled_at=None,
        scheduled_job_id=None,
    ):
        deal = Deal(
            team_id=team.id,
            merchant_id=merchant.id if merchant else None,
            status=status,
            issue_date=issue_date,
            amount=amount,
            currency=currency,
            deal_recurring_id=series.id if series else None,
            recurring_sequence=sequence,
            scheduled_at=scheduled_at,
            scheduled_job_id=scheduled_job_id,
        )
        test_db_session.add(deal)
        test_db_session.commit()
        test_db_session.refresh(deal)
        return deal

    return _create


@pytest.fixture
def series_payload(test_merchant):
    """Factory for create-request bodies."""

    def _create(**overrides):
        payload = {
            "merchantId": test_merchant.id,
            "frequency": "monthly_date",
            "frequencyDay": 15,
            "timezone": "UTC",
            "endType": "never",
            "amount": 1200.0,
            "currency": "USD",
        }
        payload.update(overrides)
        return payload

    return _create


# ============================================================================
# FastAPI Test Client Fixture
# ============================================================================


@pytest.fixture
def test_client(test_db_session, session_factory, coordinator):
    """Create a test client for FastAPI application."""
    from fastapi.testclient import TestClient

    from deal_scheduler.database import get_db
    from deal_scheduler.domain.jobs.coordinator import get_job_coordinator
    from deal_scheduler.main import app
    from deal_scheduler.services.notification_service import Notifications, get_notifications

    def get_test_db():
        try:
            yield test_db_session
        finally:
            pass

    app.dependency_overrides[get_db] = get_test_db
    app.dependency_overrides[get_job_coordinator] = lambda: coordinator
    app.dependency_overrides[get_notifications] = lambda: Notifications(session_factory)

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(test_user):
    from deal_scheduler.auth import create_access_token

    return {"Authorization": f"Bearer {create_access_token(test_user.id)}"}
