"""
Billing API routes.

Stripe Checkout and Billing Portal sessions for users and teams, the
product catalogue with the caller's subscriptions, and the Stripe
webhook that keeps subscription rows in sync.
"""

import asyncio
import json
import logging
from typing import Optional

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from nitpickr.config.settings import get_settings
from nitpickr.database import get_db
from nitpickr.infrastructure.cache import QueryCache
from nitpickr.infrastructure.stripe_client import (
    get_billing_customer_id,
    get_stripe_customer_id_for_user,
)
from nitpickr.middleware.auth import get_current_active_user, require_team_access
from nitpickr.middleware.usage import get_query_cache
from nitpickr.models import Price, Service, Subscription, Team, TeamMember, Tier, User
from nitpickr.permissions import throw_if_not_allowed
from nitpickr.services import subscriptions as subscription_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])
team_router = APIRouter(prefix="/api/teams", tags=["payments"])

settings = get_settings()

PRODUCT_ORDER = ["Basic", "Pro", "Premium"]


class CheckoutSessionRequest(BaseModel):
    """Schema for creating a checkout session."""

    price: str = Field(..., min_length=1)
    quantity: int = Field(1, ge=1)


def _serialize_price(price: Price) -> dict:
    return {
        "id": price.id,
        "serviceId": price.service_id,
        "billingScheme": price.billing_scheme,
        "currency": price.currency,
        "amount": price.amount,
        "metadata": price.price_metadata,
        "type": price.type,
        "created": price.created.isoformat() if price.created else None,
    }


def _serialize_service(service: Service) -> dict:
    return {
        "id": service.id,
        "name": service.name,
        "description": service.description,
        "features": service.features or [],
        "image": service.image,
        "created": service.created.isoformat() if service.created else None,
        "prices": [_serialize_price(price) for price in service.prices],
    }


def _serialize_tier(tier: Tier) -> dict:
    return {
        "id": tier.id,
        "name": tier.name,
        "description": tier.description,
        "features": tier.features or [],
        "maxTeams": tier.max_teams,
        "maxStorage": tier.max_storage,
        "maxApiCalls": tier.max_api_calls,
        "price": tier.price,
        "limits": tier.limits,
    }


def _serialize_subscription(subscription: Subscription) -> dict:
    return {
        "id": subscription.id,
        "customerId": subscription.customer_id,
        "priceId": subscription.price_id,
        "tierId": subscription.tier_id,
        "active": subscription.active,
        "startDate": subscription.start_date.isoformat() if subscription.start_date else None,
        "endDate": subscription.end_date.isoformat() if subscription.end_date else None,
        "cancelAt": subscription.cancel_at.isoformat() if subscription.cancel_at else None,
        "userId": str(subscription.user_id) if subscription.user_id else None,
        "teamId": str(subscription.team_id) if subscription.team_id else None,
    }


def sort_products(products: list[dict]) -> list[dict]:
    """Order products Basic, Pro, Premium; unknown names keep their place at the end."""

    def position(product: dict) -> int:
        name = product.get("name")
        return PRODUCT_ORDER.index(name) if name in PRODUCT_ORDER else len(PRODUCT_ORDER)

    return sorted(products, key=position)


@router.get("/products")
async def get_products(
    db: AsyncSession = Depends(get_db),
    cache: QueryCache = Depends(get_query_cache),
    current_user: User = Depends(get_current_active_user),
):
    """
    Product catalogue with prices, the caller's active subscriptions and all tiers.
    """
    try:
        customer_id = await get_stripe_customer_id_for_user(current_user, db, cache)
    except stripe.StripeError as e:
        logger.error(f"Stripe customer lookup failed for {current_user.id}: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Payment error: {e}")

    async def load_products() -> list[dict]:
        result = await db.execute(select(Service).options(selectinload(Service.prices)))
        return sort_products([_serialize_service(service) for service in result.scalars().all()])

    products = await cache.get_or_load("Service", "findMany", {"include": "prices"}, load_products)

    prices = {price["id"]: price for product in products for price in product["prices"]}
    products_by_id = {product["id"]: product for product in products}

    subscriptions = []
    if customer_id:
        for subscription in await subscription_service.get_subscriptions_by_customer_id(
            db, customer_id
        ):
            price = prices.get(subscription.price_id)
            if price is None:
                continue
            data = _serialize_subscription(subscription)
            data["price"] = price
            data["product"] = {
                key: value
                for key, value in products_by_id[price["serviceId"]].items()
                if key != "prices"
            }
            subscriptions.append(data)

    tiers = await subscription_service.get_tiers(db)

    return {
        "products": products,
        "subscriptions": subscriptions,
        "tiers": [_serialize_tier(tier) for tier in tiers],
    }


async def _create_checkout_session(customer_id: str, request: CheckoutSessionRequest, return_url: str):
    return await asyncio.to_thread(
        stripe.checkout.Session.create,
        customer=customer_id,
        mode="subscription",
        line_items=[{"price": request.price, "quantity": request.quantity}],
        success_url=return_url,
        cancel_url=return_url,
    )


async def _billing_customer(
    db: AsyncSession, cache: QueryCache, user: User, team: Optional[Team] = None
) -> str:
    try:
        return await get_billing_customer_id(db, user=user, team=team, cache=cache)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except stripe.StripeError as e:
        logger.error(f"Stripe customer lookup failed: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Payment error: {e}")


@router.post("/create-checkout-session")
async def create_checkout_session(
    checkout: CheckoutSessionRequest,
    db: AsyncSession = Depends(get_db),
    cache: QueryCache = Depends(get_query_cache),
    current_user: User = Depends(get_current_active_user),
):
    """Start a Stripe Checkout subscription for the current user."""
    customer_id = await _billing_customer(db, cache, current_user)
    try:
        session = await _create_checkout_session(
            customer_id, checkout, f"{settings.app_url}/settings/subscription"
        )
    except stripe.StripeError as e:
        logger.error(f"Stripe checkout creation failed: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Payment error: {e}")

    return {"id": session.id, "url": session.url}


@router.post("/create-portal-link")
async def create_portal_link(
    db: AsyncSession = Depends(get_db),
    cache: QueryCache = Depends(get_query_cache),
    current_user: User = Depends(get_current_active_user),
):
    """Stripe Billing Portal link for the current user."""
    customer_id = await _billing_customer(db, cache, current_user)
    try:
        session = await asyncio.to_thread(
            stripe.billing_portal.Session.create,
            customer=customer_id,
            return_url=f"{settings.app_url}/settings/subscription",
        )
    except stripe.StripeError as e:
        logger.error(f"Stripe portal creation failed: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Payment error: {e}")

    return {"url": session.url}


@team_router.post("/{slug}/payments/create-checkout-session")
async def create_team_checkout_session(
    checkout: CheckoutSessionRequest,
    access: tuple[Team, TeamMember] = Depends(require_team_access),
    db: AsyncSession = Depends(get_db),
    cache: QueryCache = Depends(get_query_cache),
    current_user: User = Depends(get_current_active_user),
):
    """Start a Stripe Checkout subscription billed to the team."""
    team, membership = access
    throw_if_not_allowed(membership.role, "team_payments", "create")

    customer_id = await _billing_customer(db, cache, current_user, team)
    try:
        session = await _create_checkout_session(
            customer_id, checkout, f"{settings.app_url}/teams/{team.slug}/billing"
        )
    except stripe.StripeError as e:
        logger.error(f"Stripe checkout creation failed for team {team.slug}: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Payment error: {e}")

    return {"id": session.id, "url": session.url}


@team_router.post("/{slug}/payments/create-portal-link")
async def create_team_portal_link(
    access: tuple[Team, TeamMember] = Depends(require_team_access),
    db: AsyncSession = Depends(get_db),
    cache: QueryCache = Depends(get_query_cache),
    current_user: User = Depends(get_current_active_user),
):
    """Stripe Billing Portal link for the team's billing."""
    team, membership = access
    throw_if_not_allowed(membership.role, "team_payments", "create")

    customer_id = await _billing_customer(db, cache, current_user, team)
    try:
        session = await asyncio.to_thread(
            stripe.billing_portal.Session.create,
            customer=customer_id,
            return_url=f"{settings.app_url}/teams/{team.slug}/billing",
        )
    except stripe.StripeError as e:
        logger.error(f"Stripe portal creation failed for team {team.slug}: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Payment error: {e}")

    return {"url": session.url}


# Webhook
async def _subscription_owner(db: AsyncSession, customer_id: str) -> dict:
    result = await db.execute(select(User).where(User.billing_id == customer_id))
    user = result.scalar_one_or_none()
    if user is not None:
        return {"user_id": user.id}
    result = await db.execute(select(Team).where(Team.billing_id == customer_id))
    team = result.scalars().first()
    if team is not None:
        return {"team_id": team.id}
    return {}


async def _upsert_subscription(db: AsyncSession, data: dict) -> None:
    fields = subscription_service.subscription_fields(data)
    existing = await subscription_service.get_by_subscription_id(db, data["id"])
    if existing is not None:
        updates = {
            key: value
            for key, value in fields.items()
            if value is not None or key == "cancel_at"
        }
        await subscription_service.update_stripe_subscription(db, existing.id, updates)
        return

    if not fields["price_id"]:
        logger.warning(f"Subscription {data['id']} has no price; skipping")
        return

    owner = await _subscription_owner(db, data["customer"])
    await subscription_service.create_stripe_subscription(
        db,
        id=data["id"],
        customer_id=data["customer"],
        **fields,
        **owner,
    )


@router.post("/webhook")
async def stripe_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    """
    Receive Stripe events.

    Subscription created/updated/deleted events update the subscription
    rows; other event types are acknowledged and ignored.
    """
    if not settings.stripe_webhook_secret:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Webhook secret not configured"
        )

    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")
    try:
        stripe.Webhook.construct_event(payload, sig_header, settings.stripe_webhook_secret)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning(f"Stripe webhook verification failed: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signature")

    event = json.loads(payload)
    event_type = event.get("type", "")
    data = (event.get("data") or {}).get("object") or {}

    try:
        if event_type in ("customer.subscription.created", "customer.subscription.updated"):
            await _upsert_subscription(db, data)
        elif event_type == "customer.subscription.deleted":
            await subscription_service.delete_stripe_subscription(db, data["id"])
        else:
            logger.debug(f"Unhandled Stripe event type {event_type}")
    except LookupError as e:
        logger.warning(f"Stripe event {event_type} not applied: {e}")

    return {"received": True}
