"""
Database models for Nitpickr.

- Users, teams, memberships and invitations
- Billing: Stripe services, prices, tiers, subscriptions, usage counters
- Real estate listings, nitpicks, issues, comments and votes
- Uploaded files and team event log
"""

from nitpickr.models.audit import AuditLog
from nitpickr.models.file import StoredFile
from nitpickr.models.real_estate import (
    IssueComment,
    IssueVote,
    Nitpick,
    RealEstate,
    RealEstateIssue,
)
from nitpickr.models.subscription import Price, ResourceUsage, Service, Subscription, Tier
from nitpickr.models.team import Invitation, Role, Team, TeamMember
from nitpickr.models.user import User

__all__ = [
    "User",
    "Team",
    "TeamMember",
    "Invitation",
    "Role",
    "Service",
    "Price",
    "Tier",
    "Subscription",
    "ResourceUsage",
    "RealEstate",
    "Nitpick",
    "RealEstateIssue",
    "IssueComment",
    "IssueVote",
    "StoredFile",
    "AuditLog",
]
