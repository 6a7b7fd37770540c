"""
Stripe customer helpers.

Resolves the Stripe customer a checkout or billing portal session is
created for: the team's customer for team billing, the user's own
customer when user billing is enabled.
"""

import asyncio
import logging
from typing import Optional

import stripe
from sqlalchemy.ext.asyncio import AsyncSession

from nitpickr.config.settings import get_settings
from nitpickr.infrastructure.cache import QueryCache
from nitpickr.models import Team, User

logger = logging.getLogger(__name__)

settings = get_settings()
stripe.api_key = settings.stripe_secret_key or ""

BILLING_PROVIDER = "stripe"


async def get_stripe_customer_id(
    team: Team,
    db: AsyncSession,
    user: Optional[User] = None,
    cache: Optional[QueryCache] = None,
) -> str:
    """
    Return the team's Stripe customer id, creating the customer on first use.

    The new customer carries the team id in its metadata and the acting
    user's email and name.
    """
    if team.billing_id:
        return team.billing_id

    params = {"metadata": {"teamId": str(team.id)}}
    if user is not None:
        params["email"] = user.email
        params["name"] = user.name
    customer = await asyncio.to_thread(stripe.Customer.create, **params)

    team.billing_id = customer.id
    team.billing_provider = BILLING_PROVIDER
    await db.commit()
    if cache is not None:
        await cache.invalidate("Team")
    logger.info(f"Created Stripe customer {customer.id} for team {team.slug}")
    return customer.id


async def get_stripe_customer_id_for_user(
    user: User, db: AsyncSession, cache: Optional[QueryCache] = None
) -> Optional[str]:
    """
    Return the user's Stripe customer id, creating it on first use.

    Returns None when user billing is disabled.
    """
    if not settings.stripe_user_billing_enabled:
        return None

    if user.billing_id:
        return user.billing_id

    customer = await asyncio.to_thread(
        stripe.Customer.create,
        email=user.email,
        name=user.name,
        metadata={"userId": str(user.id)},
    )
    user.billing_id = customer.id
    user.billing_provider = BILLING_PROVIDER
    await db.commit()
    if cache is not None:
        await cache.invalidate("User")
    logger.info(f"Created Stripe customer {customer.id} for user {user.id}")
    return customer.id


async def get_or_create_stripe_customer(
    user: User, db: AsyncSession, cache: Optional[QueryCache] = None
) -> str:
    """
    Like get_stripe_customer_id_for_user, but first reuses an existing
    Stripe customer with the same email.
    """
    if user.billing_id:
        return user.billing_id

    existing = await asyncio.to_thread(stripe.Customer.list, email=user.email, limit=1)
    if existing.data:
        customer_id = existing.data[0].id
    else:
        customer = await asyncio.to_thread(
            stripe.Customer.create,
            email=user.email,
            name=user.name,
            metadata={"userId": str(user.id)},
        )
        customer_id = customer.id

    user.billing_id = customer_id
    user.billing_provider = BILLING_PROVIDER
    await db.commit()
    if cache is not None:
        await cache.invalidate("User")
    return customer_id


async def get_billing_customer_id(
    db: AsyncSession,
    user: Optional[User] = None,
    team: Optional[Team] = None,
    cache: Optional[QueryCache] = None,
) -> str:
    """
    Customer id for a billing operation; user billing wins when enabled.

    Raises:
        ValueError: If neither a user (with user billing) nor a team is given
    """
    if settings.stripe_user_billing_enabled and user is not None:
        customer_id = await get_stripe_customer_id_for_user(user, db, cache)
        if customer_id:
            return customer_id
    if team is not None:
        return await get_stripe_customer_id(team, db, user, cache)

    raise ValueError("No valid billing context found")
