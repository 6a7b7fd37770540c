"""
Team membership operations and the team event log.
"""

import logging
import re
from typing import Any, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from nitpickr.models import AuditLog, Role, Team, TeamMember

logger = logging.getLogger(__name__)

# Team events recorded in the audit log
MEMBER_CREATED = "member.created"
MEMBER_REMOVED = "member.removed"
INVITATION_CREATED = "invitation.created"
INVITATION_REMOVED = "invitation.removed"


def slugify(text: str) -> str:
    """Lowercase, replace runs of non-alphanumerics with "-", trim dashes."""
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


async def get_teams_for_user(db: AsyncSession, user_id: UUID) -> list[Team]:
    result = await db.execute(
        select(Team)
        .join(TeamMember, TeamMember.team_id == Team.id)
        .where(TeamMember.user_id == user_id)
        .order_by(Team.created_at)
    )
    return list(result.scalars().all())


async def create_team(db: AsyncSession, user_id: UUID, name: str, slug: str) -> Team:
    """Create a team with ``user_id`` as its OWNER."""
    team = Team(name=name, slug=slug)
    db.add(team)
    await db.flush()
    db.add(TeamMember(team_id=team.id, user_id=user_id, role=Role.OWNER))
    await db.commit()
    await db.refresh(team)
    logger.info(f"Created team {slug} owned by {user_id}")
    return team


async def add_team_member(
    db: AsyncSession, team_id: UUID, user_id: UUID, role: Role
) -> TeamMember:
    """Add a user to a team; an existing membership keeps its role."""
    result = await db.execute(
        select(TeamMember).where(TeamMember.team_id == team_id, TeamMember.user_id == user_id)
    )
    member = result.scalar_one_or_none()
    if member is None:
        member = TeamMember(team_id=team_id, user_id=user_id, role=role)
        db.add(member)
        await db.flush()
    return member


async def count_owners(db: AsyncSession, team_id: UUID) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(TeamMember)
        .where(TeamMember.team_id == team_id, TeamMember.role == Role.OWNER)
    )
    return result.scalar_one()


async def _ensure_not_last_owner(db: AsyncSession, member: TeamMember) -> None:
    if member.role == Role.OWNER and await count_owners(db, member.team_id) <= 1:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A team must keep at least one owner",
        )


async def remove_team_member(db: AsyncSession, team_id: UUID, user_id: UUID) -> TeamMember:
    """
    Remove a user from a team.

    Raises:
        HTTPException: 404 if not a member, 409 if it is the last owner
    """
    result = await db.execute(
        select(TeamMember).where(TeamMember.team_id == team_id, TeamMember.user_id == user_id)
    )
    member = result.scalar_one_or_none()
    if member is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Team member not found")

    await _ensure_not_last_owner(db, member)
    await db.delete(member)
    await db.flush()
    return member


async def update_member_role(
    db: AsyncSession, team_id: UUID, user_id: UUID, role: Role
) -> TeamMember:
    """
    Change a member's role.

    Raises:
        HTTPException: 404 if not a member, 409 when demoting the last owner
    """
    result = await db.execute(
        select(TeamMember).where(TeamMember.team_id == team_id, TeamMember.user_id == user_id)
    )
    member = result.scalar_one_or_none()
    if member is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Team member not found")

    if role != Role.OWNER:
        await _ensure_not_last_owner(db, member)
    member.role = role
    await db.flush()
    return member


def record_event(
    db: AsyncSession,
    team_id: UUID,
    event_type: str,
    actor_id: Optional[UUID] = None,
    resource: Optional[str] = None,
    resource_id: Optional[Any] = None,
    context_data: Optional[dict] = None,
) -> AuditLog:
    """Add a team event to the session; committed with the surrounding change."""
    entry = AuditLog(
        team_id=team_id,
        actor_id=actor_id,
        event_type=event_type,
        resource=resource,
        resource_id=str(resource_id) if resource_id is not None else None,
        context_data=context_data,
    )
    db.add(entry)
    logger.info(f"Team {team_id} event {event_type} by {actor_id}")
    return entry
