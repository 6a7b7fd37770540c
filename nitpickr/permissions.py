"""
Team role permissions.

Maps each team role to the resources it may act on and the actions
allowed on each. "*" grants every action on a resource.
"""

from dataclasses import dataclass
from typing import Literal, Union

from fastapi import HTTPException, status

from nitpickr.models.team import Role

Resource = Literal[
    "team",
    "team_member",
    "team_invitation",
    "team_payments",
    "team_audit_log",
]
Action = Literal["create", "read", "update", "delete", "leave"]


@dataclass(frozen=True)
class Permission:
    resource: Resource
    actions: Union[Literal["*"], tuple[Action, ...]]


PERMISSIONS: dict[Role, list[Permission]] = {
    Role.OWNER: [
        Permission("team", "*"),
        Permission("team_member", "*"),
        Permission("team_invitation", "*"),
        Permission("team_payments", "*"),
        Permission("team_audit_log", "*"),
    ],
    Role.ADMIN: [
        Permission("team", ("read", "update", "leave")),
        Permission("team_member", "*"),
        Permission("team_invitation", "*"),
        Permission("team_payments", "*"),
        Permission("team_audit_log", ("read",)),
    ],
    Role.MEMBER: [
        Permission("team", ("read", "leave")),
        Permission("team_member", ("read",)),
        Permission("team_invitation", ("read",)),
    ],
}


def is_allowed(role: Role, resource: Resource, action: Action) -> bool:
    """Return True if ``role`` may perform ``action`` on ``resource``."""
    for permission in PERMISSIONS.get(role, []):
        if permission.resource == resource and (
            permission.actions == "*" or action in permission.actions
        ):
            return True
    return False


def throw_if_not_allowed(role: Role, resource: Resource, action: Action) -> None:
    """
    Raise 403 unless ``role`` may perform ``action`` on ``resource``.

    Raises:
        HTTPException: If the role lacks the permission
    """
    if not is_allowed(role, resource, action):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"You are not allowed to perform {action} on {resource}",
        )
