import copy
from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import get_db
from main import app, get_today
from models import Base
from schemas import PaymentResult, PaymentStatus
from subscription_service import PersistenceError, SubscriptionService

TODAY = date(2024, 3, 15)


class MemoryProfileStore:
    """Profile metadata kept in a dict, keyed by user id."""

    def __init__(self, profiles=None):
        self.profiles = profiles or {}
        self.writes = 0

    def get_metadata(self, user_id):
        return copy.deepcopy(self.profiles.get(user_id, {}))

    def update_metadata(self, user_id, metadata):
        self.writes += 1
        self.profiles[user_id] = copy.deepcopy(metadata)


class FailingProfileStore(MemoryProfileStore):
    """Reads work, every write is rejected."""

    def update_metadata(self, user_id, metadata):
        raise PersistenceError(f"profile store unavailable for {user_id}")


class FakeGateway:
    def __init__(self, status=PaymentStatus.SUCCEEDED, error=None):
        self.status = status
        self.error = error
        self.charges = []

    def charge(self, amount, currency, method, details):
        self.charges.append((amount, currency, method, details))
        if self.error:
            raise self.error
        return PaymentResult(status=self.status, reference=f"pay_{len(self.charges)}")


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def db_session():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def profile_store():
    return MemoryProfileStore()


@pytest.fixture
def failing_profile_store():
    return FailingProfileStore()


@pytest.fixture
def subscriptions(profile_store):
    return SubscriptionService(profile_store)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_today] = lambda: TODAY
    yield TestClient(app)
    app.dependency_overrides.clear()
    if hasattr(app.state, "payment_gateway"):
        del app.state.payment_gateway
