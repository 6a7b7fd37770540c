"""
Real estate, nitpick and issue models.

A RealEstate row is a listing imported from the AI/search backend. Users
save listings as Nitpicks (optionally inside a team) and discuss the
RealEstateIssues flagged on them with comments and votes.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nitpickr.models.base import Base, utc_now


class RealEstate(Base):
    """Listing as stored by the search backend."""

    __tablename__ = "real_estates"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)

    address: Mapped[str] = mapped_column(String(512), nullable=False)
    price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    bedrooms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    bathrooms: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    area: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    garage: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    lot_size: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    year_built: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    property_history: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    listing_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    images: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    geo: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    town: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    postal_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    extra_info: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)

    nitpicks: Mapped[list["Nitpick"]] = relationship(
        "Nitpick", back_populates="real_estate", cascade="all, delete-orphan"
    )
    issues: Mapped[list["RealEstateIssue"]] = relationship(
        "RealEstateIssue", back_populates="real_estate", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<RealEstate(id={self.id}, address={self.address})>"


class Nitpick(Base):
    """A user's saved listing, scoped to a team."""

    __tablename__ = "nitpicks"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    team_id: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("teams.id", ondelete="CASCADE"), nullable=True, index=True
    )
    real_estate_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("real_estates.id", ondelete="CASCADE"), nullable=False, index=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)

    real_estate: Mapped["RealEstate"] = relationship("RealEstate", back_populates="nitpicks")

    def __repr__(self) -> str:
        return f"<Nitpick(id={self.id}, user_id={self.user_id}, real_estate_id={self.real_estate_id})>"


class RealEstateIssue(Base):
    """Concern about a property, raised by the AI backend or a user."""

    __tablename__ = "real_estate_issues"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    real_estate_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("real_estates.id", ondelete="CASCADE"), nullable=False, index=True
    )
    category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    area: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    severity: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # None for issues generated by the AI backend
    created_by: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    team_id: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("teams.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)

    real_estate: Mapped["RealEstate"] = relationship("RealEstate", back_populates="issues")
    comments: Mapped[list["IssueComment"]] = relationship(
        "IssueComment", back_populates="issue", cascade="all, delete-orphan",
        order_by="IssueComment.created_at",
    )
    votes: Mapped[list["IssueVote"]] = relationship(
        "IssueVote", back_populates="issue", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<RealEstateIssue(id={self.id}, category={self.category}, title={self.title})>"


class IssueComment(Base):
    """Comment on an issue."""

    __tablename__ = "issue_comments"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    issue_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("real_estate_issues.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_by: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    team_id: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("teams.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)

    issue: Mapped["RealEstateIssue"] = relationship("RealEstateIssue", back_populates="comments")

    def __repr__(self) -> str:
        return f"<IssueComment(id={self.id}, issue_id={self.issue_id})>"


class IssueVote(Base):
    """A user's vote on an issue; one per (issue, user)."""

    __tablename__ = "issue_votes"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    issue_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("real_estate_issues.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    team_id: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("teams.id", ondelete="SET NULL"), nullable=True
    )
    # +1 thumbs up, -1 thumbs down
    vote: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, onupdate=utc_now, nullable=False
    )

    issue: Mapped["RealEstateIssue"] = relationship("RealEstateIssue", back_populates="votes")

    __table_args__ = (UniqueConstraint("issue_id", "user_id", name="uq_issue_vote_user"),)

    def __repr__(self) -> str:
        return f"<IssueVote(issue_id={self.issue_id}, user_id={self.user_id}, vote={self.vote})>"
