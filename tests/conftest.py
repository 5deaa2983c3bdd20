"""
Pytest configuration and fixtures for Storefront Mail API tests.
"""
import os

# Must be set before anything under app/ is imported
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["EMAIL_QUEUE_API_KEY"] = "test-queue-key"
os.environ.pop("RESEND_WEBHOOK_SECRET", None)

import itertools
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth import create_access_token
from app.config import Settings, get_settings
from app.database import Base, get_db
from app.errors import TransportError
from app.main import app
from app.models.customer import Customer
from app.models.unsubscribe_token import UnsubscribeToken
from app.services.transport import get_transport

# Use in-memory SQLite for tests with shared connection
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Global session for sharing across requests
_test_session = None

WEBHOOK_SECRET = "whsec_test_secret"


def get_test_db():
    """Get the shared test database session."""
    global _test_session
    try:
        yield _test_session
    finally:
        pass


class FakeTransport:
    """
    Records every send. Sends to an address in ``fail_for`` raise
    TransportError; ``fail_times`` makes the first N calls fail.
    """

    def __init__(self):
        self.sent = []
        self.calls = 0
        self.fail_for = set()
        self.fail_times = 0
        self._ids = itertools.count(1)

    def send(self, to, subject, html):
        self.calls += 1
        if to in self.fail_for or self.calls <= self.fail_times:
            raise TransportError("Provider unavailable", recipient=to)
        email_id = f"em_{next(self._ids)}"
        self.sent.append({"id": email_id, "to": to, "subject": subject, "html": html})
        return {"id": email_id}


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    global _test_session

    # Create all tables
    Base.metadata.create_all(bind=engine)

    # Create a session
    _test_session = TestingSessionLocal()

    # Override the get_db dependency
    app.dependency_overrides[get_db] = get_test_db

    yield _test_session

    # Cleanup
    app.dependency_overrides.clear()
    _test_session.close()
    _test_session = None

    # Drop all tables
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def transport(db):
    """A fake transport wired into the app."""
    fake = FakeTransport()
    app.dependency_overrides[get_transport] = lambda: fake
    return fake


@pytest.fixture(scope="function")
def settings(db):
    """Settings with a webhook secret configured, wired into the app."""
    test_settings = get_settings().model_copy(update={
        "resend_webhook_secret": WEBHOOK_SECRET,
        "email_queue_api_key": "test-queue-key",
    })
    app.dependency_overrides[get_settings] = lambda: test_settings
    return test_settings


@pytest.fixture(scope="function")
def client(db):
    """Create a test client."""
    with TestClient(app) as c:
        yield c


def make_customer(db, email, **preferences):
    """Create a customer; pass preferences=None for one who never opted in."""
    prefs = preferences.pop("preferences", preferences)
    customer = Customer(email=email, full_name=email.split("@")[0].title(), email_preferences=prefs)
    db.add(customer)
    db.commit()
    db.refresh(customer)
    return customer


@pytest.fixture(scope="function")
def customers(db):
    """
    Three opted-in customers and one who never opted in.

    alice: sales, bob: blog, carol: sales + new_products, dave: no record.
    """
    return {
        "alice": make_customer(db, "alice@example.com", order_updates=True, new_products=False, sales=True, blog=False),
        "bob": make_customer(db, "bob@example.com", order_updates=True, new_products=False, sales=False, blog=True),
        "carol": make_customer(db, "carol@example.com", order_updates=False, new_products=True, sales=True, blog=False),
        "dave": make_customer(db, "dave@example.com", preferences=None),
    }


@pytest.fixture(scope="function")
def test_customer(customers):
    return customers["alice"]


@pytest.fixture(scope="function")
def auth_token(test_customer):
    """Get an auth token for the test customer."""
    return create_access_token({"sub": test_customer.id, "email": test_customer.email})


@pytest.fixture(scope="function")
def auth_headers(auth_token):
    """Get auth headers for the test customer."""
    return {"Authorization": f"Bearer {auth_token}"}


def make_token(db, email, token_type="marketing", token="8f14e45f-ceea-4e67-a1b2-3c4d5e6f7a8b", expires_in=timedelta(days=7), used=False):
    """Insert an unsubscribe token row directly."""
    now = datetime.now(timezone.utc)
    record = UnsubscribeToken(
        email=email,
        token=token,
        token_type=token_type,
        expires_at=now + expires_in,
        used_at=now if used else None,
    )
    db.add(record)
    db.commit()
    return token
