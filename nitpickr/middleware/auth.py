"""
JWT authentication and team access middleware.

Provides FastAPI dependencies for:
- JWT token validation
- User authentication (required and optional)
- Team membership and role lookup
"""

from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nitpickr.database import get_db
from nitpickr.models import Team, TeamMember, User
from nitpickr.security import verify_token

# HTTP Bearer token schemes
security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


async def _user_from_token(token: str, db: AsyncSession) -> Optional[User]:
    try:
        payload = verify_token(token, "access")
        user_id = UUID(payload["sub"])
    except (JWTError, ValueError, KeyError):
        return None

    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Validate JWT token and return current user.

    Raises:
        HTTPException: If token is invalid or user not found
    """
    user = await _user_from_token(credentials.credentials, db)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    """
    Get current user and verify they are active.

    Raises:
        HTTPException: If user is inactive
    """
    if not current_user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user")
    return current_user


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """Return the authenticated user, or None for anonymous requests."""
    if credentials is None:
        return None
    user = await _user_from_token(credentials.credentials, db)
    if user is None or not user.is_active:
        return None
    return user


async def get_team_with_role(
    slug: str, user: User, db: AsyncSession
) -> tuple[Team, TeamMember]:
    """
    Load a team by slug together with the caller's membership.

    Raises:
        HTTPException: 404 if the team does not exist, 403 if the user is not a member
    """
    result = await db.execute(select(Team).where(Team.slug == slug))
    team = result.scalar_one_or_none()
    if team is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Team not found")

    result = await db.execute(
        select(TeamMember).where(TeamMember.team_id == team.id, TeamMember.user_id == user.id)
    )
    membership = result.scalar_one_or_none()
    if membership is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not a member of this team",
        )
    return team, membership


class TeamAccessChecker:
    """
    Dependency class for team-level access control.

    Resolves the ``slug`` path parameter to the team and the caller's
    membership.

    Usage:
        @router.get("/teams/{slug}/members")
        async def list_members(access: tuple = Depends(require_team_access)):
            team, membership = access
    """

    async def __call__(
        self,
        slug: str,
        current_user: User = Depends(get_current_active_user),
        db: AsyncSession = Depends(get_db),
    ) -> tuple[Team, TeamMember]:
        return await get_team_with_role(slug, current_user, db)


require_team_access = TeamAccessChecker()


async def is_team_member(user_id: UUID, team_id: UUID, db: AsyncSession) -> bool:
    result = await db.execute(
        select(TeamMember.id).where(TeamMember.team_id == team_id, TeamMember.user_id == user_id)
    )
    return result.first() is not None
