"""
Team management API routes.

Provides team CRUD, membership management, invitations and the team
event log. Every team route checks the caller's role against the
permission map in ``nitpickr.permissions``.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nitpickr.config.settings import get_settings
from nitpickr.database import get_db
from nitpickr.infrastructure.cache import QueryCache
from nitpickr.infrastructure.email import send_team_invite_email
from nitpickr.middleware.auth import get_current_active_user, require_team_access
from nitpickr.middleware.usage import get_query_cache
from nitpickr.models import AuditLog, Invitation, Role, Team, TeamMember, User
from nitpickr.permissions import throw_if_not_allowed
from nitpickr.security import generate_invitation_token
from nitpickr.services import teams as team_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/teams", tags=["teams"])
invitations_router = APIRouter(prefix="/api/invitations", tags=["teams"])

settings = get_settings()


# Pydantic schemas
class TeamCreate(BaseModel):
    """Schema for creating a new team."""

    name: str = Field(..., min_length=1, max_length=255)


class TeamUpdate(BaseModel):
    """Schema for updating a team."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    slug: Optional[str] = Field(None, min_length=1, max_length=100, pattern=r"^[a-z0-9-]+$")
    domain: Optional[str] = Field(None, max_length=255)


class TeamResponse(BaseModel):
    """Schema for team response."""

    id: UUID
    name: str
    slug: str
    domain: Optional[str] = None
    default_role: Role
    created_at: datetime

    class Config:
        from_attributes = True


class MemberResponse(BaseModel):
    id: UUID
    user_id: UUID
    name: str
    email: str
    image: Optional[str] = None
    role: Role
    created_at: datetime


class MemberRoleUpdate(BaseModel):
    member_id: UUID = Field(..., alias="memberId")
    role: Role

    class Config:
        populate_by_name = True


class InvitationCreate(BaseModel):
    email: EmailStr
    role: Role = Role.MEMBER


class InvitationResponse(BaseModel):
    """Schema for invitation response."""

    id: UUID
    team_id: UUID
    email: str
    role: Role
    expires: datetime
    invited_by: UUID
    created_at: datetime

    class Config:
        from_attributes = True


class AcceptInvitationRequest(BaseModel):
    invite_token: str = Field(..., alias="inviteToken", min_length=1)

    class Config:
        populate_by_name = True


class AuditLogResponse(BaseModel):
    id: UUID
    event_type: str
    actor_id: Optional[UUID] = None
    resource: Optional[str] = None
    resource_id: Optional[str] = None
    context_data: Optional[dict] = None
    created_at: datetime

    class Config:
        from_attributes = True


# Teams
@router.get("", response_model=List[TeamResponse])
async def list_teams(
    db: AsyncSession = Depends(get_db),
    cache: QueryCache = Depends(get_query_cache),
    current_user: User = Depends(get_current_active_user),
):
    """List the teams the current user belongs to."""

    async def load_teams() -> list[dict]:
        teams = await team_service.get_teams_for_user(db, current_user.id)
        return [TeamResponse.model_validate(team).model_dump(mode="json") for team in teams]

    return await cache.get_or_load("Team", "findMany", {"userId": str(current_user.id)}, load_teams)


@router.post("", response_model=TeamResponse, status_code=status.HTTP_201_CREATED)
async def create_team(
    team: TeamCreate,
    db: AsyncSession = Depends(get_db),
    cache: QueryCache = Depends(get_query_cache),
    current_user: User = Depends(get_current_active_user),
):
    """
    Create a team owned by the current user. The slug is derived from the name.

    Raises:
        HTTPException: 400 if the name has no usable characters, 409 if the slug is taken
    """
    slug = team_service.slugify(team.name)
    if not slug:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Team name must contain letters or digits",
        )

    result = await db.execute(select(Team).where(Team.slug == slug))
    if result.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A team with the name already exists.",
        )

    created = await team_service.create_team(db, current_user.id, team.name, slug)
    await cache.invalidate("Team")
    return created


@router.get("/{slug}", response_model=TeamResponse)
async def get_team(access: tuple[Team, TeamMember] = Depends(require_team_access)):
    team, membership = access
    throw_if_not_allowed(membership.role, "team", "read")
    return team


@router.put("/{slug}", response_model=TeamResponse)
async def update_team(
    team_update: TeamUpdate,
    access: tuple[Team, TeamMember] = Depends(require_team_access),
    db: AsyncSession = Depends(get_db),
    cache: QueryCache = Depends(get_query_cache),
):
    """
    Update name, slug or domain of a team.

    Raises:
        HTTPException: 409 if the new slug is taken
    """
    team, membership = access
    throw_if_not_allowed(membership.role, "team", "update")

    update_data = team_update.model_dump(exclude_unset=True)
    new_slug = update_data.get("slug")
    if new_slug and new_slug != team.slug:
        result = await db.execute(select(Team).where(Team.slug == new_slug))
        if result.scalar_one_or_none():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Team with slug '{new_slug}' already exists",
            )

    for field, value in update_data.items():
        setattr(team, field, value)

    await db.commit()
    await db.refresh(team)
    await cache.invalidate("Team")
    return team


@router.delete("/{slug}")
async def delete_team(
    access: tuple[Team, TeamMember] = Depends(require_team_access),
    db: AsyncSession = Depends(get_db),
    cache: QueryCache = Depends(get_query_cache),
):
    team, membership = access
    throw_if_not_allowed(membership.role, "team", "delete")

    await db.delete(team)
    await db.commit()
    await cache.invalidate("Team")
    logger.info(f"Deleted team {team.slug}")
    return {"message": f"Team {team.slug} deleted"}


# Members
@router.get("/{slug}/members", response_model=List[MemberResponse])
async def list_members(
    access: tuple[Team, TeamMember] = Depends(require_team_access),
    db: AsyncSession = Depends(get_db),
):
    team, membership = access
    throw_if_not_allowed(membership.role, "team_member", "read")

    result = await db.execute(
        select(TeamMember, User)
        .join(User, User.id == TeamMember.user_id)
        .where(TeamMember.team_id == team.id)
        .order_by(TeamMember.created_at)
    )
    return [
        MemberResponse(
            id=member.id,
            user_id=user.id,
            name=user.name,
            email=user.email,
            image=user.image,
            role=member.role,
            created_at=member.created_at,
        )
        for member, user in result.all()
    ]


@router.delete("/{slug}/members")
async def remove_member(
    member_id: UUID = Query(..., alias="memberId"),
    access: tuple[Team, TeamMember] = Depends(require_team_access),
    db: AsyncSession = Depends(get_db),
    cache: QueryCache = Depends(get_query_cache),
):
    """
    Remove a user (``memberId`` is the user id) from the team.

    Raises:
        HTTPException: 404 if not a member, 409 if it is the last owner
    """
    team, membership = access
    throw_if_not_allowed(membership.role, "team_member", "delete")

    removed = await team_service.remove_team_member(db, team.id, member_id)
    team_service.record_event(
        db,
        team.id,
        team_service.MEMBER_REMOVED,
        actor_id=membership.user_id,
        resource="team_member",
        resource_id=removed.user_id,
        context_data={"role": removed.role.value},
    )
    await db.commit()
    await cache.invalidate("Team")
    return {"message": "Member removed"}


@router.put("/{slug}/members")
async def leave_team(
    access: tuple[Team, TeamMember] = Depends(require_team_access),
    db: AsyncSession = Depends(get_db),
    cache: QueryCache = Depends(get_query_cache),
):
    """
    Leave the team.

    Raises:
        HTTPException: 409 if the caller is the last owner
    """
    team, membership = access
    throw_if_not_allowed(membership.role, "team", "leave")

    await team_service.remove_team_member(db, team.id, membership.user_id)
    team_service.record_event(
        db,
        team.id,
        team_service.MEMBER_REMOVED,
        actor_id=membership.user_id,
        resource="team_member",
        resource_id=membership.user_id,
        context_data={"left": True},
    )
    await db.commit()
    await cache.invalidate("Team")
    return {"message": "You have left the team"}


@router.patch("/{slug}/members")
async def update_member_role(
    role_update: MemberRoleUpdate,
    access: tuple[Team, TeamMember] = Depends(require_team_access),
    db: AsyncSession = Depends(get_db),
):
    """
    Change the role of a member.

    Raises:
        HTTPException: 404 if not a member, 409 when demoting the last owner
    """
    team, membership = access
    throw_if_not_allowed(membership.role, "team_member", "update")

    member = await team_service.update_member_role(
        db, team.id, role_update.member_id, role_update.role
    )
    await db.commit()
    return {"userId": str(member.user_id), "teamId": str(team.id), "role": member.role.value}


# Invitations
@router.get("/{slug}/invitations", response_model=List[InvitationResponse])
async def list_invitations(
    access: tuple[Team, TeamMember] = Depends(require_team_access),
    db: AsyncSession = Depends(get_db),
):
    team, membership = access
    throw_if_not_allowed(membership.role, "team_invitation", "read")

    result = await db.execute(
        select(Invitation).where(Invitation.team_id == team.id).order_by(Invitation.created_at)
    )
    return result.scalars().all()


@router.post(
    "/{slug}/invitations",
    response_model=InvitationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_invitation(
    invitation: InvitationCreate,
    access: tuple[Team, TeamMember] = Depends(require_team_access),
    db: AsyncSession = Depends(get_db),
):
    """
    Invite an email address to the team and send the invitation email.

    Raises:
        HTTPException: 409 if the address is already invited
    """
    team, membership = access
    throw_if_not_allowed(membership.role, "team_invitation", "create")

    email = invitation.email.lower()
    result = await db.execute(
        select(Invitation).where(Invitation.team_id == team.id, Invitation.email == email)
    )
    if result.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An invitation already exists for this email.",
        )

    db_invitation = Invitation(
        team_id=team.id,
        email=email,
        role=invitation.role,
        token=generate_invitation_token(),
        expires=datetime.now(timezone.utc) + timedelta(days=settings.invitation_expire_days),
        invited_by=membership.user_id,
    )
    db.add(db_invitation)
    await db.flush()
    team_service.record_event(
        db,
        team.id,
        team_service.INVITATION_CREATED,
        actor_id=membership.user_id,
        resource="team_invitation",
        resource_id=db_invitation.id,
        context_data={"email": email, "role": invitation.role.value},
    )
    await db.commit()
    await db.refresh(db_invitation)

    send_team_invite_email(email, team.name, db_invitation.token)
    return db_invitation


@router.delete("/{slug}/invitations")
async def delete_invitation(
    invitation_id: UUID = Query(..., alias="id"),
    access: tuple[Team, TeamMember] = Depends(require_team_access),
    db: AsyncSession = Depends(get_db),
):
    team, membership = access
    throw_if_not_allowed(membership.role, "team_invitation", "delete")

    invitation = await db.get(Invitation, invitation_id)
    if invitation is None or invitation.team_id != team.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invitation not found")

    await db.delete(invitation)
    team_service.record_event(
        db,
        team.id,
        team_service.INVITATION_REMOVED,
        actor_id=membership.user_id,
        resource="team_invitation",
        resource_id=invitation.id,
        context_data={"email": invitation.email},
    )
    await db.commit()
    return {"message": "Invitation deleted"}


@invitations_router.put("/accept")
async def accept_invitation(
    accept: AcceptInvitationRequest,
    db: AsyncSession = Depends(get_db),
    cache: QueryCache = Depends(get_query_cache),
    current_user: User = Depends(get_current_active_user),
):
    """
    Join a team with the role of the invitation, then delete the invitation.

    Raises:
        HTTPException: 404 for an unknown token, 403 if the invitation is
            addressed to another email, 410 if the invitation expired
    """
    result = await db.execute(select(Invitation).where(Invitation.token == accept.invite_token))
    invitation = result.scalar_one_or_none()
    if invitation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invitation not found")

    if invitation.email.lower() != current_user.email.lower():
        logger.warning(f"User {current_user.id} tried to accept invitation {invitation.id} for another email")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This invitation was sent to a different email address",
        )

    expires = invitation.expires
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    if expires < datetime.now(timezone.utc):
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="Invitation has expired")

    member = await team_service.add_team_member(
        db, invitation.team_id, current_user.id, invitation.role
    )
    team_service.record_event(
        db,
        invitation.team_id,
        team_service.MEMBER_CREATED,
        actor_id=current_user.id,
        resource="team_member",
        resource_id=current_user.id,
        context_data={"role": member.role.value, "invitation_id": str(invitation.id)},
    )
    await db.delete(invitation)
    await db.commit()
    await cache.invalidate("Team")

    team = await db.get(Team, invitation.team_id)
    return {"message": "Invitation accepted", "teamSlug": team.slug if team else None}


# Audit logs
@router.get("/{slug}/audit-logs", response_model=List[AuditLogResponse])
async def list_audit_logs(
    skip: int = 0,
    limit: int = Query(100, le=500),
    access: tuple[Team, TeamMember] = Depends(require_team_access),
    db: AsyncSession = Depends(get_db),
):
    """Team events, newest first."""
    team, membership = access
    throw_if_not_allowed(membership.role, "team_audit_log", "read")

    result = await db.execute(
        select(AuditLog)
        .where(AuditLog.team_id == team.id)
        .order_by(AuditLog.created_at.desc())
        .offset(skip)
        .limit(limit)
    )
    return result.scalars().all()
