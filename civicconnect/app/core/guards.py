"""
Security guards for role-based access control.

Provides dependencies for protecting endpoints. Per-report decisions
(ownership, assignment, status targets) live in `core.policy`.
"""

import hmac
from typing import List, Optional
from fastapi import Depends, Header, HTTPException, Request, status
from civicconnect.app.core.config import settings
from civicconnect.app.models.enums import UserRole
from civicconnect.app.core.dependencies import get_current_user

LOCAL_ADDRESSES = {"127.0.0.1", "::1", "localhost", "::ffff:127.0.0.1"}


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.get("/fieldworker/reports")
        async def list_assigned(current_user: dict = Depends(require_role([UserRole.EMPLOYEE]))):
            ...

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
                detail=f"User role {user_role.value} is not authorized to access this route"
            )

        return current_user

    return role_checker


def require_admin(current_user: dict = Depends(get_current_user)) -> dict:
    """Dependency for admin-only endpoints."""
    if current_user.get("role") != UserRole.ADMIN.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )

    return current_user


def require_employee(current_user: dict = Depends(get_current_user)) -> dict:
    """Dependency for field-worker endpoints."""
    if current_user.get("role") != UserRole.EMPLOYEE.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Field worker access required"
        )

    return current_user


def verify_trusted_source(
    request: Request,
    admin_creation_token: Optional[str] = Header(default=None, alias="Admin-Creation-Token"),
) -> None:
    """
    Gate for the admin bootstrap path.

    Allowed from a loopback client, or from anywhere when the
    `Admin-Creation-Token` header matches the configured secret.
    """
    client_host = request.client.host if request.client else None
    if client_host in LOCAL_ADDRESSES:
        return

    expected = settings.admin_creation_token
    if expected and admin_creation_token and hmac.compare_digest(admin_creation_token, expected):
        return

    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Admin creation is only allowed from trusted sources"
    )
