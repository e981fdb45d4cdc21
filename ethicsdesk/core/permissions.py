"""
Permission System (RBAC)

Role checks for the platform roles. There is no role hierarchy: each
operation names the set of roles allowed to perform it.
"""
from typing import Iterable
from fastapi import HTTPException, status
from ethicsdesk.models.user import User, UserRole


class PermissionDenied(HTTPException):
    """Custom exception for permission denied errors."""

    def __init__(self, detail: str = "Permission denied"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail
        )


def require_roles(user: User, roles: Iterable[UserRole]) -> None:
    """
    Check that user holds one of ``roles``.

    Raises PermissionDenied otherwise.
    """
    roles = frozenset(roles)
    if user.role not in roles:
        allowed = ", ".join(sorted(role.value for role in roles))
        raise PermissionDenied(detail=f"This action requires one of the roles: {allowed}")


def can_modify_user(current_user: User, target_user: User) -> bool:
    """
    Check if current_user can modify target_user.

    Rules:
    - Admins can modify anyone in their organization
    - Users can modify themselves
    - Cross-organization modification is impossible (isolation layer)
    """
    if current_user.is_admin:
        return True
    return current_user.id == target_user.id
