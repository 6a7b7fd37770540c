"""
User model.

Users own nitpicks, issues, comments and votes, belong to teams through
TeamMember rows, and may carry their own Stripe customer id.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nitpickr.models.base import Base, utc_now

# Longest display name kept on a user record
MAX_NAME_LENGTH = 104


class User(Base):
    """Registered Nitpickr user."""

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    # Credentials
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    hashed_password: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Profile
    name: Mapped[str] = mapped_column(String(MAX_NAME_LENGTH), nullable=False)
    image: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    email_verified: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Billing
    billing_id: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    billing_provider: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Security
    invalid_login_attempts: Mapped[int] = mapped_column(Integer, default=0)
    locked_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, onupdate=utc_now, nullable=False
    )

    # Relationships
    memberships: Mapped[list["TeamMember"]] = relationship(
        "TeamMember", back_populates="user", cascade="all, delete-orphan"
    )
    subscriptions: Mapped[list["Subscription"]] = relationship(
        "Subscription", back_populates="user"
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"

    @staticmethod
    def normalize_name(name: Optional[str]) -> Optional[str]:
        """Truncate a display name to the stored maximum."""
        if name:
            return name[:MAX_NAME_LENGTH]
        return name
