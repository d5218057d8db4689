import os
import json
import datetime as dt
from dataclasses import replace

# 1. Configure the app for tests before anything from copilot is imported
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-jwt-secret-for-the-copilot-suite"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ.pop("STRIPE_PRICE_PRO", None)
os.environ.pop("STRIPE_PRICE_ENTERPRISE", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from copilot.credentials import hash_password  # noqa: E402
from copilot.db import get_db, make_engine  # noqa: E402
from copilot.deps import get_gateway  # noqa: E402
from copilot.errors import InvalidSignature  # noqa: E402
from copilot.gateway import GatewayCustomer, GatewaySubscription  # noqa: E402
from copilot.main import app  # noqa: E402
from copilot.models import Base  # noqa: E402
from copilot.reconciliation import ReconciliationEngine  # noqa: E402
from copilot.repository import SubscriptionRepository, UserRepository, SessionRepository  # noqa: E402

PERIOD_START = dt.datetime(2026, 10, 1)
PERIOD_END = dt.datetime(2026, 11, 1)
VALID_SIGNATURE = "t=1,v1=valid"


class FakeGateway:
    """In-memory stand-in for StripeGateway that records every call."""

    def __init__(self):
        self.customers = {}
        self.subscriptions = {}
        self.keys = {}
        self.calls = []
        self.initial_status = "incomplete"
        self.error = None

    def _fail(self):
        if self.error is not None:
            raise self.error

    def create_customer(self, email, name=None):
        self.calls.append(("create_customer", email))
        self._fail()
        customer = GatewayCustomer(id=f"cus_{len(self.customers) + 1}", email=email)
        self.customers[customer.id] = customer
        return customer

    def create_subscription(self, customer_id, price_id, idempotency_key=None):
        self.calls.append(("create_subscription", customer_id, price_id))
        self._fail()
        if idempotency_key in self.keys:
            return self.subscriptions[self.keys[idempotency_key]]
        n = len(self.subscriptions) + 1
        sub = GatewaySubscription(
            id=f"sub_{n}",
            status=self.initial_status,
            current_period_start=PERIOD_START,
            current_period_end=PERIOD_END,
            cancel_at_period_end=False,
            client_secret=f"pi_{n}_secret_abc",
        )
        self.subscriptions[sub.id] = sub
        if idempotency_key:
            self.keys[idempotency_key] = sub.id
        return sub

    def retrieve_subscription(self, subscription_id):
        self.calls.append(("retrieve_subscription", subscription_id))
        self._fail()
        return replace(self.subscriptions[subscription_id], client_secret=None)

    def update_subscription(self, subscription_id, cancel_at_period_end):
        self.calls.append(("update_subscription", subscription_id, cancel_at_period_end))
        self._fail()
        sub = replace(self.subscriptions[subscription_id], cancel_at_period_end=cancel_at_period_end, client_secret=None)
        self.subscriptions[subscription_id] = sub
        return sub

    def verify_webhook_signature(self, payload, signature_header):
        if signature_header != VALID_SIGNATURE:
            raise InvalidSignature("Webhook signature verification failed")
        return json.loads(payload)

    # test helpers

    def set_remote(self, subscription_id, **changes):
        self.subscriptions[subscription_id] = replace(self.subscriptions[subscription_id], **changes)

    def count(self, name):
        return sum(1 for call in self.calls if call[0] == name)


def webhook_payload(kind, obj, event_id="evt_1"):
    return json.dumps({"id": event_id, "type": kind, "data": {"object": obj}}).encode()


def subscription_object(sub_id, status="active", cancel_at_period_end=False):
    return {
        "id": sub_id,
        "object": "subscription",
        "status": status,
        "current_period_start": int(dt.datetime(2026, 11, 1, tzinfo=dt.timezone.utc).timestamp()),
        "current_period_end": int(dt.datetime(2026, 12, 1, tzinfo=dt.timezone.utc).timestamp()),
        "cancel_at_period_end": cancel_at_period_end,
    }


@pytest.fixture
def db_session():
    """
    Creates a fresh in-memory database session for a test.
    """
    engine = make_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def users(db_session):
    return UserRepository(db_session)


@pytest.fixture
def subscriptions(db_session):
    return SubscriptionRepository(db_session)


@pytest.fixture
def sessions(db_session):
    return SessionRepository(db_session)


@pytest.fixture
def engine(subscriptions, users, gateway):
    return ReconciliationEngine(subscriptions, users, gateway, plan_prices={})


@pytest.fixture
def user(users):
    return users.create(email="ada@example.com", password_hash=hash_password("hunter22"), name="Ada")


@pytest.fixture
def client(db_session, gateway):
    def override_db():
        yield db_session

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    with TestClient(app) as c:
        yield c
    app.dependency_overrides = {}


def signup(client, email="grace@example.com", password="s3cret-pass", name="Grace"):
    res = client.post("/api/auth/signup", json={"name": name, "email": email, "password": password})
    assert res.status_code == 201, res.text
    return {"Authorization": f"Bearer {res.json()['token']}"}


@pytest.fixture
def auth_headers(client):
    return signup(client)
