"""
Billing models mirrored from Stripe.

Services (Stripe products) and their prices are imported by the
sync_stripe script; tiers define the usage limits a subscription grants.
"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nitpickr.models.base import Base, utc_now


class Service(Base):
    """Stripe product."""

    __tablename__ = "services"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    features: Mapped[list] = mapped_column(JSON, default=list)
    image: Mapped[str] = mapped_column(String(1024), default="")
    created: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    prices: Mapped[list["Price"]] = relationship(
        "Price", back_populates="service", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, name={self.name})>"


class Price(Base):
    """Stripe price attached to a service."""

    __tablename__ = "prices"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    service_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("services.id", ondelete="CASCADE"), nullable=False, index=True
    )
    billing_scheme: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    currency: Mapped[str] = mapped_column(String(10), nullable=False)
    amount: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    # Stripe "recurring" object (interval, interval_count, ...)
    price_metadata: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    created: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    service: Mapped["Service"] = relationship("Service", back_populates="prices")

    def __repr__(self) -> str:
        return f"<Price(id={self.id}, service_id={self.service_id}, amount={self.amount})>"


class Tier(Base):
    """Plan definition with usage limits."""

    __tablename__ = "tiers"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    features: Mapped[list] = mapped_column(JSON, default=list)
    max_teams: Mapped[int] = mapped_column(Integer, default=1)
    max_storage: Mapped[int] = mapped_column(Integer, default=1024)
    max_api_calls: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    price: Mapped[int] = mapped_column(Integer, default=0)
    # Per-resource limits, e.g. {"views": 50, "analysis": 1}; JSON object or JSON string
    limits: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)

    subscriptions: Mapped[list["Subscription"]] = relationship(
        "Subscription", back_populates="tier"
    )

    def __repr__(self) -> str:
        return f"<Tier(id={self.id}, name={self.name})>"


class Subscription(Base):
    """Stripe subscription owned by a user or a team."""

    __tablename__ = "subscriptions"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    customer_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    price_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    tier_id: Mapped[Optional[str]] = mapped_column(
        String(100), ForeignKey("tiers.id", ondelete="SET NULL"), nullable=True
    )
    active: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    cancel_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    user_id: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True
    )
    team_id: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("teams.id", ondelete="CASCADE"), nullable=True, index=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, onupdate=utc_now, nullable=False
    )

    tier: Mapped[Optional["Tier"]] = relationship("Tier", back_populates="subscriptions")
    user: Mapped[Optional["User"]] = relationship("User", back_populates="subscriptions")
    team: Mapped[Optional["Team"]] = relationship("Team", back_populates="subscriptions")

    def __repr__(self) -> str:
        return f"<Subscription(id={self.id}, customer_id={self.customer_id}, active={self.active})>"


class ResourceUsage(Base):
    """Persisted usage counter, the fallback when Redis has no value."""

    __tablename__ = "resource_usage"

    entity_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    entity_type: Mapped[str] = mapped_column(String(20), primary_key=True)
    resource_type: Mapped[str] = mapped_column(String(255), primary_key=True)
    usage: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, onupdate=utc_now, nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<ResourceUsage({self.entity_type}:{self.entity_id}:{self.resource_type}"
            f"={self.usage})>"
        )
