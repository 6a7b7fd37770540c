"""
Unit tests for authentication and team access dependencies.
"""

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from nitpickr.middleware.auth import (
    get_current_active_user,
    get_current_user,
    get_optional_user,
    get_team_with_role,
    is_team_member,
    require_team_access,
)
from nitpickr.models import Role, Team, User
from nitpickr.security import create_access_token, create_refresh_token

pytestmark = pytest.mark.unit


def _bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


class TestCurrentUser:
    """Test token to user resolution."""

    @pytest.mark.asyncio
    async def test_valid_access_token(self, test_db: AsyncSession, test_user: User, access_token: str):
        user = await get_current_user(_bearer(access_token), test_db)

        assert user.id == test_user.id

    @pytest.mark.asyncio
    async def test_refresh_token_is_rejected(self, test_db: AsyncSession, refresh_token: str):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(_bearer(refresh_token), test_db)

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_garbage_token(self, test_db: AsyncSession):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(_bearer("not-a-jwt"), test_db)

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_inactive_user(self, test_user_inactive: User):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_active_user(test_user_inactive)

        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_optional_user(self, test_db: AsyncSession, test_user: User, test_user_inactive: User):
        inactive_token = create_access_token(
            user_id=test_user_inactive.id, email=test_user_inactive.email
        )
        active_token = create_access_token(user_id=test_user.id, email=test_user.email)

        assert await get_optional_user(None, test_db) is None
        assert await get_optional_user(_bearer(inactive_token), test_db) is None
        assert (await get_optional_user(_bearer(active_token), test_db)).id == test_user.id


class TestTeamAccess:
    """Test team membership lookup."""

    @pytest.mark.asyncio
    async def test_member_gets_team_and_role(
        self, test_db: AsyncSession, test_team: Team, test_member: User
    ):
        team, membership = await get_team_with_role("test-team", test_member, test_db)

        assert team.id == test_team.id
        assert membership.role == Role.MEMBER

    @pytest.mark.asyncio
    async def test_unknown_team(self, test_db: AsyncSession, test_user: User):
        with pytest.raises(HTTPException) as exc_info:
            await get_team_with_role("missing", test_user, test_db)

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_non_member(self, test_db: AsyncSession, test_team: Team, test_outsider: User):
        with pytest.raises(HTTPException) as exc_info:
            await require_team_access("test-team", test_outsider, test_db)

        assert exc_info.value.status_code == 403
        assert exc_info.value.detail == "You are not a member of this team"

    @pytest.mark.asyncio
    async def test_is_team_member(
        self, test_db: AsyncSession, test_team: Team, test_user: User, test_outsider: User
    ):
        assert await is_team_member(test_user.id, test_team.id, test_db) is True
        assert await is_team_member(test_outsider.id, test_team.id, test_db) is False
