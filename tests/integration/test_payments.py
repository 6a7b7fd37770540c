"""
Integration tests for billing endpoints and the Stripe webhook.
"""

import hashlib
import hmac
import json
import time
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
import pytest_asyncio
import stripe
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from nitpickr.api import payments
from nitpickr.models import Price, Service, Subscription, Team, User

WEBHOOK_SECRET = "whsec_test"
NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def catalog(test_db: AsyncSession, test_tiers):
    """Premium, Pro and Basic services, inserted out of display order."""
    test_db.add_all([
        Service(id="prod_premium", name="Premium", created=NOW),
        Service(id="prod_pro", name="Pro", created=NOW),
        Service(id="prod_basic", name="Basic", created=NOW),
    ])
    await test_db.flush()
    test_db.add_all([
        Price(id="price_premium", service_id="prod_premium", currency="usd", amount=49, type="recurring", created=NOW),
        Price(id="price_pro", service_id="prod_pro", currency="usd", amount=29, type="recurring", created=NOW),
        Price(id="price_basic", service_id="prod_basic", currency="usd", type="recurring", created=NOW),
    ])
    await test_db.commit()


@pytest.fixture
def stripe_sessions(monkeypatch) -> list:
    """Capture checkout and portal session creation."""
    calls = []

    def create_checkout(**params):
        calls.append(("checkout", params))
        return SimpleNamespace(id="cs_test", url="https://checkout.stripe.test/cs_test")

    def create_portal(**params):
        calls.append(("portal", params))
        return SimpleNamespace(url="https://billing.stripe.test/p_test")

    monkeypatch.setattr(stripe.checkout.Session, "create", create_checkout)
    monkeypatch.setattr(stripe.billing_portal.Session, "create", create_portal)
    return calls


def _signed(event: dict, secret: str = WEBHOOK_SECRET) -> tuple[bytes, dict]:
    payload = json.dumps(event)
    timestamp = int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"), f"{timestamp}.{payload}".encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return payload.encode("utf-8"), {"stripe-signature": f"t={timestamp},v1={signature}"}


def _subscription_event(event_type: str, price: str = "price_pro", status: str = "active") -> dict:
    return {
        "id": "evt_1",
        "object": "event",
        "type": event_type,
        "data": {
            "object": {
                "id": "sub_1",
                "object": "subscription",
                "customer": "cus_owner",
                "status": status,
                "current_period_start": 1717200000,
                "current_period_end": 1719792000,
                "cancel_at": None,
                "items": {"data": [{"price": {"id": price}}]},
            }
        },
    }


class TestProductsEndpoint:
    """Test GET /api/payments/products."""

    @pytest.mark.asyncio
    async def test_products_subscriptions_and_tiers(
        self, client: AsyncClient, auth_headers: dict, test_db: AsyncSession, test_user: User, catalog
    ):
        test_db.add(
            Subscription(
                id="sub_1",
                customer_id="cus_owner",
                price_id="price_pro",
                tier_id="pro-tier",
                active=True,
                start_date=NOW,
                end_date=NOW + timedelta(days=30),
                user_id=test_user.id,
            )
        )
        await test_db.commit()

        response = await client.get("/api/payments/products", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert [product["name"] for product in data["products"]] == ["Basic", "Pro", "Premium"]
        assert data["products"][1]["prices"][0]["id"] == "price_pro"
        assert [tier["id"] for tier in data["tiers"]] == ["basic-tier", "pro-tier"]

        subscription = data["subscriptions"][0]
        assert subscription["tierId"] == "pro-tier"
        assert subscription["price"]["amount"] == 29
        assert subscription["product"]["name"] == "Pro"
        assert "prices" not in subscription["product"]


class TestCheckoutEndpoints:
    """Test checkout and portal session creation."""

    @pytest.mark.asyncio
    async def test_user_checkout(self, client: AsyncClient, auth_headers: dict, stripe_sessions):
        response = await client.post(
            "/api/payments/create-checkout-session",
            json={"price": "price_pro", "quantity": 1},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json() == {"id": "cs_test", "url": "https://checkout.stripe.test/cs_test"}
        kind, params = stripe_sessions[0]
        assert kind == "checkout"
        assert params["customer"] == "cus_owner"
        assert params["mode"] == "subscription"
        assert params["line_items"] == [{"price": "price_pro", "quantity": 1}]

    @pytest.mark.asyncio
    async def test_user_portal(self, client: AsyncClient, auth_headers: dict, stripe_sessions):
        response = await client.post("/api/payments/create-portal-link", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"url": "https://billing.stripe.test/p_test"}
        assert stripe_sessions[0][1]["return_url"].endswith("/settings/subscription")

    @pytest.mark.asyncio
    async def test_stripe_error(self, client: AsyncClient, auth_headers: dict, monkeypatch):
        def fail(**params):
            raise stripe.InvalidRequestError("No such price", "price")

        monkeypatch.setattr(stripe.checkout.Session, "create", fail)

        response = await client.post(
            "/api/payments/create-checkout-session",
            json={"price": "price_missing"},
            headers=auth_headers,
        )

        assert response.status_code == 502

    @pytest.mark.asyncio
    async def test_team_checkout_requires_payment_permission(
        self,
        client: AsyncClient,
        auth_headers: dict,
        member_headers: dict,
        test_team: Team,
        stripe_sessions,
    ):
        response = await client.post(
            "/api/teams/test-team/payments/create-checkout-session",
            json={"price": "price_pro"},
            headers=member_headers,
        )
        assert response.status_code == 403

        response = await client.post(
            "/api/teams/test-team/payments/create-portal-link", headers=auth_headers
        )
        assert response.status_code == 200
        assert stripe_sessions[0][1]["return_url"].endswith("/teams/test-team/billing")


class TestStripeWebhook:
    """Test POST /api/payments/webhook."""

    @pytest.fixture(autouse=True)
    def webhook_secret(self, monkeypatch):
        monkeypatch.setattr(payments.settings, "stripe_webhook_secret", WEBHOOK_SECRET)

    @pytest.mark.asyncio
    async def test_subscription_lifecycle(
        self, client: AsyncClient, test_db: AsyncSession, test_user: User, catalog
    ):
        payload, headers = _signed(_subscription_event("customer.subscription.created"))
        response = await client.post("/api/payments/webhook", content=payload, headers=headers)

        assert response.status_code == 200
        assert response.json() == {"received": True}
        subscription = await test_db.get(Subscription, "sub_1")
        assert subscription.user_id == test_user.id
        assert subscription.tier_id == "pro-tier"
        assert subscription.active is True

        payload, headers = _signed(
            _subscription_event("customer.subscription.updated", price="price_basic", status="past_due")
        )
        await client.post("/api/payments/webhook", content=payload, headers=headers)

        assert subscription.tier_id == "basic-tier"
        assert subscription.active is False

        payload, headers = _signed(_subscription_event("customer.subscription.deleted"))
        await client.post("/api/payments/webhook", content=payload, headers=headers)

        test_db.expunge_all()
        assert await test_db.get(Subscription, "sub_1") is None

    @pytest.mark.asyncio
    async def test_team_customer(
        self, client: AsyncClient, test_db: AsyncSession, test_team: Team, catalog
    ):
        test_team.billing_id = "cus_team"
        await test_db.commit()
        event = _subscription_event("customer.subscription.created")
        event["data"]["object"]["customer"] = "cus_team"

        payload, headers = _signed(event)
        await client.post("/api/payments/webhook", content=payload, headers=headers)

        subscription = await test_db.get(Subscription, "sub_1")
        assert subscription.team_id == test_team.id
        assert subscription.user_id is None

    @pytest.mark.asyncio
    async def test_invalid_signature(self, client: AsyncClient):
        payload, headers = _signed(_subscription_event("customer.subscription.created"), "whsec_other")

        response = await client.post("/api/payments/webhook", content=payload, headers=headers)

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid signature"

    @pytest.mark.asyncio
    async def test_secret_not_configured(self, client: AsyncClient, monkeypatch):
        monkeypatch.setattr(payments.settings, "stripe_webhook_secret", None)

        response = await client.post("/api/payments/webhook", content=b"{}")

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_other_events_are_acknowledged(self, client: AsyncClient):
        payload, headers = _signed({"id": "evt_2", "object": "event", "type": "invoice.paid", "data": {"object": {}}})

        response = await client.post("/api/payments/webhook", content=payload, headers=headers)

        assert response.json() == {"received": True}
