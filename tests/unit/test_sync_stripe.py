"""
Unit tests for the Stripe catalogue sync script.
"""

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nitpickr.models import Price, Service, Subscription, Tier, User
from nitpickr.scripts.sync_stripe import SyncError, fetch_stripe_catalog, sync_catalog

pytestmark = pytest.mark.unit

PRODUCTS = [
    {
        "id": "prod_basic",
        "name": "Basic",
        "description": None,
        "images": [],
        "features": [{"name": "1 Team"}],
        "created": 1700000000,
    },
    {
        "id": "prod_pro",
        "name": "Pro",
        "description": "For busy buyers",
        "images": ["https://img.example.com/pro.png"],
        "features": [],
        "created": 1700000000,
    },
]

PRICES = [
    {
        "id": "price_basic",
        "product": "prod_basic",
        "currency": "usd",
        "unit_amount": 0,
        "billing_scheme": "per_unit",
        "recurring": {"interval": "month"},
        "type": "recurring",
        "created": 1700000000,
    },
    {
        "id": "price_pro",
        "product": "prod_pro",
        "currency": "usd",
        "unit_amount": 2900,
        "billing_scheme": "per_unit",
        "recurring": {"interval": "month"},
        "type": "recurring",
        "created": 1700000000,
    },
]


def _subscription(sub_id: str, customer: str, price: str) -> dict:
    return {
        "id": sub_id,
        "customer": customer,
        "status": "active",
        "current_period_start": 1717200000,
        "current_period_end": 1719792000,
        "cancel_at": None,
        "items": {"data": [{"price": {"id": price}}]},
    }


class TestSyncCatalog:
    """Test replacing local billing data."""

    @pytest.mark.asyncio
    async def test_replaces_catalog_and_seeds_tiers(
        self, test_db: AsyncSession, test_user: User, test_tiers
    ):
        stats = await sync_catalog(
            test_db,
            PRODUCTS,
            PRICES,
            [
                _subscription("sub_owner", "cus_owner", "price_pro"),
                _subscription("sub_unknown_price", "cus_owner", "price_gone"),
                _subscription("sub_unknown_user", "cus_nobody", "price_basic"),
            ],
        )

        assert stats == {"products": 2, "prices": 2, "subscriptions": 1}

        tiers = (await test_db.execute(select(Tier).order_by(Tier.price))).scalars().all()
        assert [tier.id for tier in tiers] == ["basic-tier", "pro-tier", "premium-tier"]

        pro = await test_db.get(Price, "price_pro")
        assert pro.amount == 29
        assert pro.price_metadata == {"interval": "month"}
        assert (await test_db.get(Price, "price_basic")).amount is None

        basic = await test_db.get(Service, "prod_basic")
        assert basic.features == ["1 Team"]
        assert basic.description == ""

        subscription = await test_db.get(Subscription, "sub_owner")
        assert subscription.tier_id == "pro-tier"
        assert subscription.user_id == test_user.id
        assert subscription.active is True

    @pytest.mark.asyncio
    async def test_no_prices(self, test_db: AsyncSession):
        with pytest.raises(SyncError, match="No prices"):
            await sync_catalog(test_db, PRODUCTS, [], [])

    @pytest.mark.asyncio
    async def test_no_products(self, test_db: AsyncSession):
        with pytest.raises(SyncError, match="No products"):
            await sync_catalog(test_db, [], PRICES, [])


def test_fetch_requires_secret_key(monkeypatch):
    from nitpickr.config.settings import get_settings

    monkeypatch.setattr(get_settings(), "stripe_secret_key", None)

    with pytest.raises(SyncError, match="STRIPE_SECRET_KEY"):
        fetch_stripe_catalog()
