"""
Unit tests for subscription persistence.
"""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from nitpickr.models import Price, Service, Subscription, User
from nitpickr.services import subscriptions as subscription_service

pytestmark = pytest.mark.unit

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def catalog(test_db: AsyncSession, test_tiers):
    """Pro and Basic services with one monthly price each."""
    test_db.add_all([
        Service(id="prod_basic", name="Basic", created=NOW),
        Service(id="prod_pro", name="Pro", created=NOW),
    ])
    await test_db.flush()
    test_db.add_all([
        Price(id="price_basic", service_id="prod_basic", currency="usd", amount=0, type="recurring", created=NOW),
        Price(id="price_pro", service_id="prod_pro", currency="usd", amount=29, type="recurring", created=NOW),
    ])
    await test_db.commit()


async def _create(db: AsyncSession, user: User, price_id: str = "price_basic") -> Subscription:
    return await subscription_service.create_stripe_subscription(
        db,
        id="sub_1",
        customer_id="cus_owner",
        active=True,
        start_date=NOW,
        end_date=NOW + timedelta(days=30),
        price_id=price_id,
        user_id=user.id,
    )


class TestSubscriptionFields:
    def test_reads_period_from_subscription(self):
        fields = subscription_service.subscription_fields(
            {
                "status": "active",
                "current_period_start": 1717200000,
                "current_period_end": 1719792000,
                "cancel_at": None,
                "items": {"data": [{"price": {"id": "price_pro"}}]},
            }
        )

        assert fields["active"] is True
        assert fields["price_id"] == "price_pro"
        assert fields["start_date"] == datetime(2024, 6, 1, tzinfo=timezone.utc)
        assert fields["cancel_at"] is None

    def test_reads_period_from_item(self):
        fields = subscription_service.subscription_fields(
            {
                "status": "canceled",
                "items": {
                    "data": [
                        {
                            "price": {"id": "price_pro"},
                            "current_period_start": 1717200000,
                            "current_period_end": 1719792000,
                        }
                    ]
                },
            }
        )

        assert fields["active"] is False
        assert fields["end_date"] == datetime(2024, 7, 1, tzinfo=timezone.utc)

    def test_tier_id_for_service(self):
        assert subscription_service.tier_id_for_service("Premium") == "premium-tier"


class TestSubscriptionPersistence:
    """Test create, update, delete and lookups."""

    @pytest.mark.asyncio
    async def test_create_links_tier_from_service(
        self, test_db: AsyncSession, test_user: User, catalog
    ):
        subscription = await _create(test_db, test_user, "price_pro")

        assert subscription.tier_id == "pro-tier"

    @pytest.mark.asyncio
    async def test_create_with_unknown_price_fails(
        self, test_db: AsyncSession, test_user: User, catalog
    ):
        with pytest.raises(subscription_service.PriceNotFoundError):
            await _create(test_db, test_user, "price_missing")

    @pytest.mark.asyncio
    async def test_update_relinks_tier(self, test_db: AsyncSession, test_user: User, catalog):
        await _create(test_db, test_user)

        updated = await subscription_service.update_stripe_subscription(
            test_db, "sub_1", {"price_id": "price_pro", "active": False}
        )

        assert updated.tier_id == "pro-tier"
        assert updated.active is False

    @pytest.mark.asyncio
    async def test_update_unknown_subscription_returns_none(self, test_db: AsyncSession):
        assert await subscription_service.update_stripe_subscription(test_db, "nope", {}) is None

    @pytest.mark.asyncio
    async def test_update_without_matching_tier_fails(
        self, test_db: AsyncSession, test_user: User, catalog
    ):
        test_db.add(Service(id="prod_gold", name="Gold", created=NOW))
        await test_db.flush()
        test_db.add(Price(id="price_gold", service_id="prod_gold", currency="usd", type="recurring", created=NOW))
        await test_db.commit()
        await _create(test_db, test_user)

        with pytest.raises(LookupError, match="Gold"):
            await subscription_service.update_stripe_subscription(
                test_db, "sub_1", {"price_id": "price_gold"}
            )

    @pytest.mark.asyncio
    async def test_lookups_only_return_active(
        self, test_db: AsyncSession, test_user: User, catalog
    ):
        await _create(test_db, test_user)

        assert len(await subscription_service.get_subscriptions_by_customer_id(test_db, "cus_owner")) == 1
        assert len(await subscription_service.get_subscriptions_by_user_id(test_db, test_user.id)) == 1

        await subscription_service.update_stripe_subscription(test_db, "sub_1", {"active": False})

        assert await subscription_service.get_subscriptions_by_customer_id(test_db, "cus_owner") == []

    @pytest.mark.asyncio
    async def test_delete(self, test_db: AsyncSession, test_user: User, catalog):
        await _create(test_db, test_user)

        assert await subscription_service.delete_stripe_subscription(test_db, "sub_1") == 1
        assert await subscription_service.delete_stripe_subscription(test_db, "sub_1") == 0

    @pytest.mark.asyncio
    async def test_tiers_ordered_by_price(self, test_db: AsyncSession, test_tiers):
        tiers = await subscription_service.get_tiers(test_db)

        assert [tier.id for tier in tiers] == ["basic-tier", "pro-tier"]
