"""
Pytest fixtures for the webhook receivers.

Each test gets a fresh in-memory SQLite store, a fake Stripe gateway and a
TestClient whose dependencies point at both. Payloads are signed the way
Stripe signs them so the real verifier runs unmodified.
"""

import hashlib
import hmac
import json
import time
import uuid
from typing import Any, Dict, Iterator, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from database import models  # noqa: F401
from database.session import Base, get_db, get_session_factory
from main import app
from utils.config import Settings, get_settings
from utils.stripe_gateway import get_stripe_gateway

PLATFORM_SECRET = "whsec_platform_test"
CONNECT_SECRET = "whsec_connect_test"
CREDITS_PLATFORM_SECRET = "whsec_credits_platform_test"
CREDITS_CONNECT_SECRET = "whsec_credits_connect_test"

SALE_PATH = "/api/stripe-webhook"
CREDITS_PATH = "/api/webhooks/stripe-credits"


class FakeStripeGateway:
    """Serves canned PaymentIntents and Accounts; records every lookup."""

    def __init__(self) -> None:
        self.payment_intents: Dict[str, Dict[str, Any]] = {}
        self.accounts: Dict[str, Dict[str, Any]] = {}
        self.calls: list = []

    def retrieve_payment_intent(self, payment_intent_id: str) -> Dict[str, Any]:
        self.calls.append(("payment_intent", payment_intent_id))
        return self.payment_intents[payment_intent_id]

    def retrieve_account(self, account_id: str) -> Dict[str, Any]:
        self.calls.append(("account", account_id))
        return self.accounts[account_id]


def sign_payload(payload: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    ts = int(time.time()) if timestamp is None else timestamp
    signed = f"{ts}.{payload.decode('utf-8')}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def make_event(event_type: str, obj: Dict[str, Any], account: Optional[str] = None) -> bytes:
    event: Dict[str, Any] = {
        "id": f"evt_{uuid.uuid4().hex[:16]}",
        "object": "event",
        "type": event_type,
        "livemode": False,
        "data": {"object": obj},
    }
    if account:
        event["account"] = account
    return json.dumps(event).encode("utf-8")


def post_event(client: TestClient, path: str, payload: bytes, secret: Optional[str]):
    headers = {"content-type": "application/json"}
    if secret is not None:
        headers["stripe-signature"] = sign_payload(payload, secret)
    return client.post(path, content=payload, headers=headers)


@pytest.fixture
def session_factory() -> Iterator[sessionmaker]:
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False, future=True)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory: sessionmaker) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway() -> FakeStripeGateway:
    return FakeStripeGateway()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        stripe_secret_key="sk_test_dummy",
        sales_webhook_secret=PLATFORM_SECRET,
        sales_connect_secret=CONNECT_SECRET,
        credits_webhook_secret=CREDITS_PLATFORM_SECRET,
        credits_connect_secret=CREDITS_CONNECT_SECRET,
        payout_delay_minutes=10,
    )


@pytest.fixture
def client(session_factory: sessionmaker, gateway: FakeStripeGateway, settings: Settings) -> Iterator[TestClient]:
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_stripe_gateway] = lambda: gateway
    app.dependency_overrides[get_settings] = lambda: settings
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
