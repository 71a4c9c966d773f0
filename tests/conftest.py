# tests/conftest.py

import os

# Must be set before anything under app/ is imported
os.environ["ENV"] = "local"
os.environ["DATABASE_URL_LOCAL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["JWT_SECRET"] = "test-secret"

from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from starlette.testclient import TestClient

import app.models  # noqa: F401
from app.api import deps
from app.core.limiter import limiter
from app.db.base_class import Base
from app.db.session import get_db
from app.main import app as fastapi_app
from tests.utils.payment import FakePaymentProvider


# --- Test Database Setup ---
@pytest.fixture(scope="function")
def db():
    """Fresh in-memory SQLite database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def provider():
    return FakePaymentProvider()


@pytest.fixture
def notifier():
    """Notifier that records sends instead of publishing to Kafka."""
    mock = MagicMock()
    mock.send.return_value = True
    return mock


# --- Mock Dependencies Setup ---
class MockTokenPayload:
    def __init__(self, sub="user_123", is_coordinator=False):
        self.sub = sub
        self.org_id = "org_abc"
        self.is_coordinator = is_coordinator


def _override_dependencies(db, provider, notifier, user):
    def override_get_db():
        yield db

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[deps.get_provider] = lambda: provider
    fastapi_app.dependency_overrides[deps.get_notifications] = lambda: notifier
    fastapi_app.dependency_overrides[deps.get_current_user] = lambda: user
    limiter.enabled = False


# --- Test Client Fixtures ---
@pytest.fixture(scope="function")
def coordinator_client(db, provider, notifier):
    """TestClient on the test database, authenticated as a coordinator."""
    _override_dependencies(db, provider, notifier, MockTokenPayload("coord_1", is_coordinator=True))
    with TestClient(fastapi_app) as client:
        yield client
    fastapi_app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def member_client(db, provider, notifier):
    """TestClient on the test database, authenticated as member_1."""
    _override_dependencies(db, provider, notifier, MockTokenPayload("member_1"))
    with TestClient(fastapi_app) as client:
        yield client
    fastapi_app.dependency_overrides.clear()
