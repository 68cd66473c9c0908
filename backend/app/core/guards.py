"""
Security guards for role-based access control.

Provides dependencies for protecting endpoints.
"""

from typing import List
from fastapi import Depends, HTTPException, status
from backend.app.models.enums import UserRole
from backend.app.core.dependencies import get_current_user


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/ledger/settle")
        async def settle(current_user: dict = Depends(require_role([UserRole.ACCOUNTANT]))):
            ...

    Args:
        allowed_roles: List of UserRole enums that are allowed to access the endpoint

    Returns:
        FastAPI dependency function that validates user role

    Raises:
        HTTPException 403 if user role is not in allowed_roles
    """
    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        user_role_str = current_user.get("role")

        if not user_role_str:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Role information missing from token"
            )

        try:
            user_role = UserRole(user_role_str)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Invalid role in token"
            )

        if user_role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {', '.join([r.value for r in allowed_roles])}"
            )

        return current_user

    return role_checker


# Common role sets
ANY_ROLE = [UserRole.ADMIN, UserRole.OWNER, UserRole.ACCOUNTANT, UserRole.VIEWER]
WRITE_ROLES = [UserRole.ADMIN, UserRole.OWNER, UserRole.ACCOUNTANT]
SETTINGS_ROLES = [UserRole.ADMIN, UserRole.OWNER]


def actor_of(current_user: dict) -> str:
    """Identifier recorded in the status change log for a user action."""
    return str(current_user.get("sub") or current_user.get("user_id"))
