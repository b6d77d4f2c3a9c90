from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from backend.main import app
from backend.app.core.config import Settings
from backend.app.core.errors import ProviderFailure
from backend.app.core.metrics import REGISTRY, checkout_requests
from backend.app.api.deps import current_settings
from backend.app.integrations.stripe.client import get_session_creator
from backend.app.models.checkout import PaymentSession, SessionRequest

client = TestClient(app)


class FakeCreator:
    """Records the session request instead of talking to Stripe."""

    def __init__(self):
        self.requests: list[SessionRequest] = []

    async def create_session(self, request: SessionRequest) -> PaymentSession:
        self.requests.append(request)
        return PaymentSession(id="cs_test_123", url="https://checkout.stripe.test/c/cs_test_123")


class FailingCreator:
    async def create_session(self, request: SessionRequest) -> PaymentSession:
        raise ProviderFailure("card_error: your key is bogus")


class ExplodingCreator:
    async def create_session(self, request: SessionRequest) -> PaymentSession:
        raise RuntimeError("connection reset")


class SlowCreator:
    async def create_session(self, request: SessionRequest) -> PaymentSession:
        await asyncio.sleep(2)
        return PaymentSession(id="late", url=None)


def _test_settings(**overrides) -> Settings:
    values = {
        "stripe_secret_key": "sk_test_dummy",
        "checkout_success_url": "https://shop.test/success",
        "checkout_cancel_url": "https://shop.test/cancel",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def use_creator():
    REGISTRY.reset()

    def _install(creator, **settings_overrides):
        cfg = _test_settings(**settings_overrides)
        app.dependency_overrides[get_session_creator] = lambda: creator
        app.dependency_overrides[current_settings] = lambda: cfg
        return creator

    yield _install
    app.dependency_overrides.clear()


def test_create_session_ok(use_creator):
    fake = use_creator(FakeCreator())
    r = client.post(
        "/create-checkout-session",
        json={"products": [{"name": "Mug", "price": 9.99, "quantity": 2}, {"title": "Book", "price": "12"}]},
    )
    assert r.status_code == 200
    assert r.json() == {"id": "cs_test_123", "url": "https://checkout.stripe.test/c/cs_test_123"}

    assert len(fake.requests) == 1
    req = fake.requests[0]
    assert req.mode == "payment"
    assert req.success_url == "https://shop.test/success"
    assert req.cancel_url == "https://shop.test/cancel"
    assert req.allow_promotion_codes is True
    assert req.billing_address_collection == "auto"
    assert [(i.name, i.unit_amount, i.quantity, i.currency) for i in req.line_items] == [
        ("Mug", 999, 2, "usd"),
        ("Book", 1200, 1, "usd"),
    ]
    assert checkout_requests.value({"outcome": "ok"}) == 1


def test_empty_products_rejected(use_creator):
    fake = use_creator(FakeCreator())
    r = client.post("/create-checkout-session", json={"products": []})
    assert r.status_code == 400
    assert r.json() == {"error": "No products provided.", "kind": "malformed_request"}
    assert fake.requests == []


@pytest.mark.parametrize("body", [{}, {"products": "mug"}, {"products": None}])
def test_missing_or_bad_products_rejected(use_creator, body):
    use_creator(FakeCreator())
    r = client.post("/create-checkout-session", json=body)
    assert r.status_code == 400
    assert r.json()["kind"] == "malformed_request"


def test_non_json_body_rejected(use_creator):
    use_creator(FakeCreator())
    r = client.post(
        "/create-checkout-session",
        content=b"products=mug",
        headers={"content-type": "application/x-www-form-urlencoded"},
    )
    assert r.status_code == 400
    assert r.json()["kind"] == "malformed_request"

    r = client.post("/create-checkout-session", json=[{"name": "Mug", "price": 1}])
    assert r.status_code == 400
    assert r.json()["kind"] == "malformed_request"


def test_invalid_entry_rejects_whole_cart(use_creator):
    fake = use_creator(FakeCreator())
    r = client.post(
        "/create-checkout-session",
        json={"products": [{"name": "Mug", "price": 9.99}, {"title": "Book", "price": -5, "quantity": 1}]},
    )
    assert r.status_code == 400
    body = r.json()
    assert body["kind"] == "invalid_entry"
    assert body["index"] == 1
    assert body["field"] == "price"
    assert "Book" in body["error"] and "-5" in body["error"]
    assert fake.requests == []
    assert checkout_requests.value({"outcome": "invalid_entry"}) == 1


def test_invalid_quantity(use_creator):
    use_creator(FakeCreator())
    r = client.post("/create-checkout-session", json={"products": [{"name": "Pen", "price": 1, "quantity": 0.5}]})
    assert r.status_code == 400
    assert r.json()["field"] == "quantity"
    assert "Pen" in r.json()["error"]


def test_provider_failure_is_generic(use_creator):
    use_creator(FailingCreator())
    r = client.post("/create-checkout-session", json={"products": [{"name": "Mug", "price": 9.99}]})
    assert r.status_code == 502
    body = r.json()
    assert body == {"error": "Failed to create checkout session.", "kind": "provider_failure"}
    assert "bogus" not in r.text
    assert checkout_requests.value({"outcome": "provider_failure"}) == 1


def test_unexpected_creator_error_becomes_provider_failure(use_creator):
    use_creator(ExplodingCreator())
    r = client.post("/create-checkout-session", json={"products": [{"name": "Mug", "price": 9.99}]})
    assert r.status_code == 502
    assert r.json()["kind"] == "provider_failure"
    assert "connection reset" not in r.text


def test_provider_timeout(use_creator):
    use_creator(SlowCreator(), provider_timeout_seconds=0.05)
    r = client.post("/create-checkout-session", json={"products": [{"name": "Mug", "price": 9.99}]})
    assert r.status_code == 504
    assert r.json() == {"error": "Payment provider timed out.", "kind": "provider_timeout"}
    assert checkout_requests.value({"outcome": "provider_timeout"}) == 1


def test_configured_currency_flows_to_line_items(use_creator):
    fake = use_creator(FakeCreator(), checkout_currency="EUR", checkout_allow_promotion_codes=False)
    r = client.post("/create-checkout-session", json={"products": [{"name": "Tea", "price": 3.5}]})
    assert r.status_code == 200
    req = fake.requests[0]
    assert req.line_items[0].currency == "eur"
    assert req.allow_promotion_codes is False


def test_cors_preflight_allows_storefront_origin():
    r = client.options(
        "/create-checkout-session",
        headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "content-type",
        },
    )
    assert r.status_code == 200
    assert r.headers["access-control-allow-origin"] == "http://localhost:5173"
    assert r.headers["access-control-allow-credentials"] == "true"


@pytest.mark.parametrize(
    "entry, field",
    [
        ({"name": "Yacht", "price": 1e30}, "price"),
        ({"name": "Pen", "price": 1, "quantity": "1e2000000"}, "quantity"),
    ],
)
def test_oversized_values_are_invalid_entries(use_creator, entry, field):
    fake = use_creator(FakeCreator())
    r = client.post("/create-checkout-session", json={"products": [entry]})
    assert r.status_code == 400
    assert r.json()["kind"] == "invalid_entry"
    assert r.json()["field"] == field
    assert fake.requests == []
