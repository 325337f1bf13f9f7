"""
Tests for the Stripe webhook route.
"""

import hashlib
import hmac
import json
import time
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from fulfillment.api.deps import get_fulfillment_service, get_stripe_service
from fulfillment.config import settings
from fulfillment.main import app
from fulfillment.services.stripe_service import StripeService

EVENT = {
    "id": "evt_123",
    "type": "checkout.session.completed",
    "data": {
        "object": {
            "id": "cs_test_123",
            "amount_total": 9800,
            "currency": "chf",
            "customer_details": {"email": "payer@example.com", "name": "Ada Lovelace"},
            "metadata": {},
        }
    },
}


def sign(payload: bytes, secret: str) -> str:
    timestamp = int(time.time())
    signed = f"{timestamp}.".encode() + payload
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


@pytest.fixture
def fulfillment():
    service = MagicMock()
    service.handle_event = AsyncMock()
    service.db.rollback = AsyncMock()
    return service


@pytest.fixture
def client(fulfillment):
    app.dependency_overrides[get_stripe_service] = lambda: StripeService(api_key="sk_test")
    app.dependency_overrides[get_fulfillment_service] = lambda: fulfillment
    yield TestClient(app)
    app.dependency_overrides.clear()


def post(client, payload: bytes, signature=None):
    headers = {"content-type": "application/json"}
    if signature:
        headers["stripe-signature"] = signature
    return client.post("/webhooks/stripe", content=payload, headers=headers)


def test_valid_event_is_dispatched(client, fulfillment):
    payload = json.dumps(EVENT).encode()

    response = post(client, payload, sign(payload, settings.stripe_webhook_secret))

    assert response.status_code == 200
    assert response.json() == {"received": True}
    event = fulfillment.handle_event.await_args.args[0]
    assert event["type"] == "checkout.session.completed"
    assert event["data"]["object"]["id"] == "cs_test_123"


def test_missing_signature(client, fulfillment):
    response = post(client, json.dumps(EVENT).encode())

    assert response.status_code == 400
    fulfillment.handle_event.assert_not_awaited()


def test_invalid_signature(client, fulfillment):
    payload = json.dumps(EVENT).encode()

    response = post(client, payload, sign(payload, "whsec_wrong"))

    assert response.status_code == 400
    fulfillment.handle_event.assert_not_awaited()


def test_handler_failure_asks_stripe_to_retry(client, fulfillment):
    fulfillment.handle_event = AsyncMock(side_effect=RuntimeError("db down"))
    payload = json.dumps(EVENT).encode()

    response = post(client, payload, sign(payload, settings.stripe_webhook_secret))

    assert response.status_code == 500
    fulfillment.db.rollback.assert_awaited_once()


def test_unconfigured_secret(client, fulfillment, monkeypatch):
    monkeypatch.setattr(settings, "stripe_webhook_secret", "")
    payload = json.dumps(EVENT).encode()

    response = post(client, payload, sign(payload, "whsec_test"))

    assert response.status_code == 500
    fulfillment.handle_event.assert_not_awaited()


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
