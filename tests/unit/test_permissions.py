"""
Unit tests for the team role permission map.
"""

import pytest
from fastapi import HTTPException

from nitpickr.models import Role
from nitpickr.permissions import is_allowed, throw_if_not_allowed

pytestmark = pytest.mark.unit


class TestIsAllowed:
    """Test is_allowed for each role."""

    @pytest.mark.parametrize(
        "resource", ["team", "team_member", "team_invitation", "team_payments", "team_audit_log"]
    )
    def test_owner_can_do_everything(self, resource):
        for action in ("create", "read", "update", "delete", "leave"):
            assert is_allowed(Role.OWNER, resource, action)

    def test_admin_cannot_delete_team(self):
        assert is_allowed(Role.ADMIN, "team", "update")
        assert not is_allowed(Role.ADMIN, "team", "delete")

    def test_admin_manages_members_and_billing(self):
        assert is_allowed(Role.ADMIN, "team_member", "delete")
        assert is_allowed(Role.ADMIN, "team_invitation", "create")
        assert is_allowed(Role.ADMIN, "team_payments", "create")
        assert is_allowed(Role.ADMIN, "team_audit_log", "read")
        assert not is_allowed(Role.ADMIN, "team_audit_log", "delete")

    def test_member_is_read_only(self):
        assert is_allowed(Role.MEMBER, "team", "read")
        assert is_allowed(Role.MEMBER, "team", "leave")
        assert is_allowed(Role.MEMBER, "team_member", "read")
        assert not is_allowed(Role.MEMBER, "team_member", "delete")
        assert not is_allowed(Role.MEMBER, "team_invitation", "create")
        assert not is_allowed(Role.MEMBER, "team_payments", "create")
        assert not is_allowed(Role.MEMBER, "team_audit_log", "read")


class TestThrowIfNotAllowed:
    def test_allowed_passes(self):
        throw_if_not_allowed(Role.OWNER, "team", "delete")

    def test_denied_raises_forbidden(self):
        with pytest.raises(HTTPException) as exc_info:
            throw_if_not_allowed(Role.MEMBER, "team", "delete")

        assert exc_info.value.status_code == 403
        assert "delete on team" in exc_info.value.detail
