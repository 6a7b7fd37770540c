"""
Subscription persistence.

Keeps Subscription rows in sync with Stripe. The tier a subscription
grants is derived from the name of the Stripe product its price belongs
to: product "Pro" -> tier "pro-tier".
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from nitpickr.models import Price, Subscription, Tier

logger = logging.getLogger(__name__)


class PriceNotFoundError(LookupError):
    """Raised when a subscription references a price that was never synced."""


def tier_id_for_service(service_name: str) -> str:
    return f"{service_name.lower()}-tier"


def from_stripe_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def subscription_fields(data: dict) -> dict:
    """Subscription row fields from a Stripe subscription object."""
    items = (data.get("items") or {}).get("data") or [{}]
    item = items[0]
    price_id = (item.get("price") or {}).get("id")
    # Newer API versions report the billing period on the subscription item
    start = (
        data.get("current_period_start")
        or item.get("current_period_start")
        or data.get("start_date")
    )
    end = data.get("current_period_end") or item.get("current_period_end") or start
    return {
        "active": data.get("status") in ("active", "trialing"),
        "start_date": from_stripe_timestamp(start),
        "end_date": from_stripe_timestamp(end),
        "cancel_at": from_stripe_timestamp(data.get("cancel_at")),
        "price_id": price_id,
    }


async def _get_price(db: AsyncSession, price_id: str) -> Optional[Price]:
    result = await db.execute(
        select(Price).options(selectinload(Price.service)).where(Price.id == price_id)
    )
    return result.scalar_one_or_none()


async def create_stripe_subscription(
    db: AsyncSession,
    *,
    id: str,
    customer_id: str,
    active: bool,
    start_date: datetime,
    end_date: datetime,
    price_id: str,
    user_id: Optional[UUID] = None,
    team_id: Optional[UUID] = None,
    cancel_at: Optional[datetime] = None,
) -> Subscription:
    """
    Insert a subscription linked to the tier of its price's service.

    Raises:
        PriceNotFoundError: If ``price_id`` is unknown
    """
    price = await _get_price(db, price_id)
    if price is None:
        raise PriceNotFoundError(f"Price with ID {price_id} not found")

    subscription = Subscription(
        id=id,
        customer_id=customer_id,
        active=active,
        start_date=start_date,
        end_date=end_date,
        cancel_at=cancel_at,
        price_id=price_id,
        tier_id=tier_id_for_service(price.service.name),
        user_id=user_id,
        team_id=team_id,
    )
    db.add(subscription)
    await db.commit()
    logger.info(f"Created subscription {id} with tier {subscription.tier_id}")
    return subscription


async def update_stripe_subscription(
    db: AsyncSession, subscription_id: str, data: dict[str, Any]
) -> Optional[Subscription]:
    """
    Apply ``data`` to a subscription.

    User subscriptions are re-linked to the tier named after the service
    of their (possibly new) price.

    Raises:
        LookupError: If the price's service has no matching tier
    """
    subscription = await db.get(Subscription, subscription_id)
    if subscription is None:
        return None

    for field, value in data.items():
        setattr(subscription, field, value)

    if subscription.user_id and subscription.price_id:
        price = await _get_price(db, subscription.price_id)
        if price is not None and price.service is not None:
            result = await db.execute(select(Tier).where(Tier.name == price.service.name))
            tier = result.scalar_one_or_none()
            if tier is None:
                service_name = price.service.name
                await db.rollback()
                raise LookupError(f"Tier for service {service_name} not found")
            subscription.tier_id = tier.id
    elif subscription.user_id:
        logger.warning(f"No price for subscription {subscription_id}; tier left unchanged")

    await db.commit()
    return subscription


async def delete_stripe_subscription(db: AsyncSession, subscription_id: str) -> int:
    result = await db.execute(delete(Subscription).where(Subscription.id == subscription_id))
    await db.commit()
    return result.rowcount


async def get_subscriptions_by_customer_id(
    db: AsyncSession, customer_id: str
) -> list[Subscription]:
    """Active subscriptions of a Stripe customer, with their tiers."""
    result = await db.execute(
        select(Subscription)
        .options(selectinload(Subscription.tier))
        .where(Subscription.customer_id == customer_id, Subscription.active.is_(True))
    )
    return list(result.scalars().all())


async def get_subscriptions_by_team_id(db: AsyncSession, team_id: UUID) -> list[Subscription]:
    result = await db.execute(
        select(Subscription).where(Subscription.team_id == team_id, Subscription.active.is_(True))
    )
    return list(result.scalars().all())


async def get_subscriptions_by_user_id(db: AsyncSession, user_id: UUID) -> list[Subscription]:
    result = await db.execute(
        select(Subscription).where(Subscription.user_id == user_id, Subscription.active.is_(True))
    )
    return list(result.scalars().all())


async def get_by_subscription_id(db: AsyncSession, subscription_id: str) -> Optional[Subscription]:
    return await db.get(Subscription, subscription_id)


async def get_tiers(db: AsyncSession) -> list[Tier]:
    result = await db.execute(select(Tier).order_by(Tier.price))
    return list(result.scalars().all())
