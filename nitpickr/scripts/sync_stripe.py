"""
Synchronize billing data from Stripe.

Fetches active products and prices and all subscriptions from Stripe,
replaces the local services, prices, subscriptions and tiers, and seeds
the fixed Basic/Pro/Premium tiers.

Usage:
    python -m nitpickr.scripts.sync_stripe
"""

import asyncio
import sys
from datetime import datetime, timezone
from typing import Any, Iterable

import redis.asyncio as redis
import stripe
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from nitpickr.config.settings import get_settings
from nitpickr.database import AsyncSessionLocal
from nitpickr.infrastructure.cache import QueryCache
from nitpickr.infrastructure.redis import close_redis_client, get_redis_client
from nitpickr.models import Price, Service, Subscription, Tier, User
from nitpickr.services.subscriptions import subscription_fields, tier_id_for_service

FIXED_TIERS = [
    {
        "id": "basic-tier",
        "name": "Basic",
        "description": "Basic tier",
        "features": [
            "1 Team",
            "50 Views Per Week",
            "10MB Storage",
            "1 Customized AI Analysis Per Week",
        ],
        "max_teams": 1,
        "max_storage": 1024,
        "max_api_calls": 1000,
        "price": 0,
        "limits": {"views": 5, "analysis": 1},
    },
    {
        "id": "pro-tier",
        "name": "Pro",
        "description": "Pro tier",
        "features": [
            "5 Teams",
            "1000 Views Per Week",
            "200MB Storage",
            "100 Customized AI Analysis Per Week",
        ],
        "max_teams": 5,
        "max_storage": 10240,
        "max_api_calls": 10000,
        "price": 2900,
        "limits": {"views": 1000, "analysis": 100},
    },
    {
        "id": "premium-tier",
        "name": "Premium",
        "description": "Premium tier",
        "features": [
            "50 Teams",
            "10000 Views Per Week",
            "1000MB Storage",
            "1000 Customized AI Analysis Per Week",
        ],
        "max_teams": 50,
        "max_storage": 102400,
        "max_api_calls": 100000,
        "price": 4900,
        "limits": {"views": 10000, "analysis": 1000},
    },
]


class SyncError(RuntimeError):
    """Raised when Stripe returns nothing to sync."""


def _created(value: Any) -> datetime:
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def service_from_product(product: Any) -> Service:
    images = product.get("images") or []
    return Service(
        id=product["id"],
        name=product["name"],
        description=product.get("description") or "",
        features=[feature["name"] for feature in product.get("features") or []],
        image=images[0] if images else "",
        created=_created(product["created"]),
    )


def price_from_stripe(price: Any) -> Price:
    unit_amount = price.get("unit_amount")
    return Price(
        id=price["id"],
        billing_scheme=price.get("billing_scheme"),
        currency=price["currency"],
        service_id=price["product"],
        amount=unit_amount / 100 if unit_amount else None,
        price_metadata=price.get("recurring"),
        type=price["type"],
        created=_created(price["created"]),
    )


def fetch_stripe_catalog() -> tuple[list, list, list]:
    """Return (products, prices, subscriptions) from the Stripe API."""
    settings = get_settings()
    if not settings.stripe_secret_key:
        raise SyncError("STRIPE_SECRET_KEY environment variable not set")
    stripe.api_key = settings.stripe_secret_key

    products = list(stripe.Product.list(active=True).auto_paging_iter())
    prices = list(stripe.Price.list(active=True).auto_paging_iter())
    subscriptions = list(stripe.Subscription.list(status="all").auto_paging_iter())
    return products, prices, subscriptions


async def _seed_subscriptions(db: AsyncSession, subscriptions: Iterable[Any]) -> int:
    created = 0
    for data in subscriptions:
        fields = subscription_fields(data)
        price_id = fields["price_id"]
        price = await db.get(Price, price_id) if price_id else None
        if price is None:
            print(f"⚠️  No price found for subscription {data['id']}, skipping.")
            continue
        service = await db.get(Service, price.service_id)

        result = await db.execute(select(User).where(User.billing_id == data["customer"]))
        user = result.scalar_one_or_none()
        if user is None:
            print(
                f"⚠️  No user found for customer {data['customer']}, "
                f"skipping subscription {data['id']}."
            )
            continue

        db.add(
            Subscription(
                id=data["id"],
                customer_id=data["customer"],
                tier_id=tier_id_for_service(service.name),
                user_id=user.id,
                **fields,
            )
        )
        created += 1
    await db.commit()
    return created


async def sync_catalog(
    db: AsyncSession,
    products: list,
    prices: list,
    subscriptions: list,
) -> dict[str, int]:
    """
    Replace local billing data with the given Stripe objects.

    Services, prices and tiers are rewritten in one transaction; the
    subscriptions are inserted afterwards so they can reference the new
    prices.

    Returns:
        Counts of services, prices and subscriptions after the sync

    Raises:
        SyncError: If there are no products or no prices
    """
    if not prices:
        raise SyncError("No prices found on Stripe")
    if not products:
        raise SyncError("No products found on Stripe")

    await db.execute(delete(Price))
    await db.execute(delete(Service))
    await db.execute(delete(Subscription))
    await db.execute(delete(Tier))
    # Rows deleted above must not be matched by identity below
    db.expunge_all()
    db.add_all(Tier(**data) for data in FIXED_TIERS)
    db.add_all(service_from_product(product) for product in products)
    await db.flush()
    db.add_all(price_from_stripe(price) for price in prices)
    await db.commit()

    await _seed_subscriptions(db, subscriptions)

    stats = {}
    for label, model in (("products", Service), ("prices", Price), ("subscriptions", Subscription)):
        stats[label] = await db.scalar(select(func.count()).select_from(model))
    return stats


async def main() -> int:
    print("🔄 Starting sync with Stripe")
    try:
        products, prices, subscriptions = await asyncio.to_thread(fetch_stripe_catalog)
        async with AsyncSessionLocal() as db:
            stats = await sync_catalog(db, products, prices, subscriptions)
    except (SyncError, stripe.StripeError) as e:
        print(f"❌ Error syncing with Stripe: {e}")
        return 1

    print(f"  - Products synced: {stats['products']}")
    print(f"  - Prices synced: {stats['prices']}")
    print(f"  - Subscriptions synced: {stats['subscriptions']}")

    if get_settings().redis_cache_enabled:
        try:
            await QueryCache(await get_redis_client()).invalidate("Service")
        except redis.RedisError as e:
            print(f"⚠️  Could not clear cached products: {e}")
        finally:
            await close_redis_client()

    print("✅ Sync completed successfully")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
