"""Test configuration and fixtures."""

import json
import os
import uuid
from decimal import Decimal
from unittest.mock import patch

import pytest
import requests
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DISABLE_TRACING", "1")

from core.settings import Settings  # noqa: E402
from db.models import Base, Order, OrderStatus, PaymentStatus  # noqa: E402
from main import app  # noqa: E402

WEBHOOK_ID = "WH-TEST-4JH86294D6297924G"

TRANSMISSION_HEADERS = {
    "PAYPAL-AUTH-ALGO": "SHA256withRSA",
    "PAYPAL-CERT-URL": "https://api.sandbox.paypal.com/v1/notifications/certs/CERT-360caa42",
    "PAYPAL-TRANSMISSION-ID": "103e3700-8b0c-11e6-8695-6b62a8a99ac4",
    "PAYPAL-TRANSMISSION-SIG": "t8lJq1uBXd1eXeplXrlKLBVVpqhUz5q3Gq3T0NeXHq4=",
    "PAYPAL-TRANSMISSION-TIME": "2026-10-19T09:13:20Z",
}


class MockResponse:
    """Custom mock response class to ensure proper status_code handling."""

    def __init__(self, status_code, json_data=None, text=""):
        self.status_code = status_code
        self._json_data = json_data
        self.text = text or (json.dumps(json_data) if json_data is not None else "")

    def json(self):
        if self._json_data is None:
            raise ValueError("No JSON object could be decoded")
        return self._json_data

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")


class FakePayPal:
    """Stands in for requests.post, answering by PayPal endpoint."""

    def __init__(self):
        self.token = MockResponse(200, {"access_token": "test_token", "expires_in": 32400})
        self.verification = MockResponse(200, {"verification_status": "SUCCESS"})
        self.order = MockResponse(
            201,
            {
                "id": "5O190127TN364715T",
                "status": "CREATED",
                "links": [
                    {
                        "href": "https://www.sandbox.paypal.com/checkoutnow?token=5O190127TN364715T",
                        "rel": "approve",
                        "method": "GET",
                    }
                ],
            },
        )
        self.calls = []

    def __call__(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if url.endswith("/v1/oauth2/token"):
            return self._answer(self.token)
        if url.endswith("/v1/notifications/verify-webhook-signature"):
            return self._answer(self.verification)
        if url.endswith("/v2/checkout/orders"):
            return self._answer(self.order)
        raise AssertionError(f"Unexpected PayPal call: {url}")

    @staticmethod
    def _answer(response):
        if isinstance(response, Exception):
            raise response
        return response

    def calls_to(self, path):
        return [kwargs for url, kwargs in self.calls if url.endswith(path)]


def make_event(
    resource_type="capture",
    status="COMPLETED",
    amount="49.99",
    custom_id=None,
    resource_id="2GG279541U471931P",
    event_id="WH-58D329510W468432D-8HN650336L201105X",
    in_purchase_unit=False,
):
    """Build a PayPal webhook envelope."""
    resource = {"id": resource_id, "status": status}
    if amount is not None:
        resource["amount"] = {"currency_code": "USD", "value": amount}
    if in_purchase_unit:
        resource["purchase_units"] = [{"custom_id": custom_id}]
    elif custom_id is not None:
        resource["custom_id"] = custom_id
    return {
        "id": event_id,
        "event_version": "1.0",
        "event_type": f"PAYMENT.{(resource_type or 'unknown').upper()}.{status}",
        "resource_type": resource_type,
        "resource": resource,
    }


def to_body(event) -> bytes:
    return json.dumps(event).encode()


@pytest.fixture(autouse=True)
def setup_test_environment():
    """Setup test environment variables before each test."""
    original_env = dict(os.environ)

    os.environ.update(
        {
            "DATABASE_URL": "sqlite:///:memory:",
            "PAYPAL_CLIENT_ID": "test_client_id",
            "PAYPAL_SECRET": "test_secret",
            "PAYPAL_WEBHOOK_ID": WEBHOOK_ID,
            "PAYPAL_BASE": "https://api-m.sandbox.paypal.com",
            "APP_NAME": "Test Storefront",
            "ENVIRONMENT": "development",
            "DISABLE_TRACING": "1",
            "DEBUG": "true",
        }
    )

    yield

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture(autouse=True)
def clear_token_cache():
    import payments.paypal_client

    payments.paypal_client._TOKEN_CACHE = None
    yield
    payments.paypal_client._TOKEN_CACHE = None


@pytest.fixture
def mock_settings():
    return Settings(
        DATABASE_URL="sqlite:///:memory:",
        PAYPAL_CLIENT_ID="test_client_id",
        PAYPAL_SECRET="test_secret",
        PAYPAL_WEBHOOK_ID=WEBHOOK_ID,
        PAYPAL_BASE="https://api-m.sandbox.paypal.com",
        PAYPAL_TIMEOUT_SECONDS=5.0,
        APP_NAME="Test Storefront",
        DEBUG=True,
        ENVIRONMENT="development",
    )


@pytest.fixture
def paypal():
    """Fake PayPal REST API behind payments.paypal_client.requests.post."""
    fake = FakePayPal()
    with patch("payments.paypal_client.requests.post", side_effect=fake):
        yield fake


@pytest.fixture
def test_db_engine():
    """Create a test database engine and setup tables."""
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def test_db_session(test_db_engine):
    """Create test database session using the shared engine."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_order(test_db_session):
    """Factory for persisted orders."""

    def _make(
        total="49.99",
        payment_status=PaymentStatus.pending,
        order_status=OrderStatus.pending,
        refunded_amount="0",
    ):
        order = Order(
            order_guid=uuid.uuid4(),
            order_total=Decimal(total),
            currency_code="USD",
            order_status=order_status,
            payment_status=payment_status,
            refunded_amount=Decimal(refunded_amount),
            applied_refund_ids=[],
        )
        test_db_session.add(order)
        test_db_session.commit()
        return order

    return _make


def snapshot(session, order):
    """Column values and note count of an order as currently stored."""
    session.expire_all()
    stored = session.get(Order, order.id)
    columns = {c.name: getattr(stored, c.key) for c in Order.__table__.columns}
    return columns, len(stored.notes)


@pytest.fixture
def client(mock_settings, test_db_engine):
    """Test client with proper database setup."""
    from db.session import AsyncSessionAdapter, get_async_db, reset_engines

    reset_engines()

    TestingSessionLocal = sessionmaker(
        autocommit=False, autoflush=False, bind=test_db_engine
    )

    async def override_get_async_db():
        adapter = AsyncSessionAdapter(TestingSessionLocal())
        try:
            yield adapter
        finally:
            await adapter.close()

    app.dependency_overrides[get_async_db] = override_get_async_db

    with patch("core.dependencies._settings", mock_settings):
        with TestClient(app) as test_client:
            yield test_client

    app.dependency_overrides.clear()
    reset_engines()


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: marks tests as unit tests (SQLite)")
    config.addinivalue_line("markers", "slow: marks tests as slow running")
