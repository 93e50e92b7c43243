"""
Admin API Endpoints.

Provides admin-only user management endpoints with audit logging, plus
the trusted-source path that bootstraps admin accounts.
"""

from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from civicconnect.app.db.session import get_db
from civicconnect.app.models.user import User
from civicconnect.app.models.enums import UserRole
from civicconnect.app.models.notification import NotificationPriority, NotificationType
from civicconnect.app.schemas.auth import AdminCreate, UserResponse
from civicconnect.app.schemas.user import (
    UserListResponse, UserStatusUpdate, UserRoleUpdate,
    AdminActionResponse, AuditTrailResponse, AuditLogResponse
)
from civicconnect.app.core.config import settings
from civicconnect.app.core.exceptions import ConflictError
from civicconnect.app.core.guards import require_admin, verify_trusted_source
from civicconnect.app.core.policy import Actor, authorize_role_change, authorize_user_status_change
from civicconnect.app.core.security import get_password_hash
from civicconnect.app.core.token_revocation import revoke_all_user_tokens, clear_user_token_revocation
from civicconnect.app.services.audit import log_admin_action, log_event, AuditAction, get_audit_trail
from civicconnect.app.services.notification_service import NotificationService
from civicconnect.app.services.report_query import UserFilters, fetch_users, page_request

router = APIRouter(prefix="/admin", tags=["Admin"])


async def _get_target_user(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    target_user = result.scalar_one_or_none()

    if not target_user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    return target_user


@router.post(
    "/create",
    response_model=AdminActionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(verify_trusted_source)]
)
async def create_admin(
    payload: AdminCreate,
    db: AsyncSession = Depends(get_db)
):
    """
    Create an admin account.

    Only reachable from localhost or with the `Admin-Creation-Token` header.
    """
    email = payload.email.lower()
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        raise ConflictError("Email already in use", details={"email": email})

    admin_user = User(
        first_name=payload.first_name,
        last_name=payload.last_name,
        email=email,
        hashed_password=get_password_hash(payload.password),
        phone_number=payload.phone_number,
        role=UserRole.ADMIN,
        is_active=True,
    )
    db.add(admin_user)
    await db.commit()
    await db.refresh(admin_user)

    await log_event(
        db=db,
        action=AuditAction.ADMIN_CREATED,
        target_user_id=admin_user.id,
        target_email=admin_user.email
    )

    return AdminActionResponse(
        message=f"Admin '{admin_user.email}' has been created",
        user=UserResponse.model_validate(admin_user)
    )


async def _user_page(db: AsyncSession, filters: UserFilters, page, limit, sort_by, sort_order) -> UserListResponse:
    config = settings.admin_panel
    paging = page_request(page, limit, config.users_default_page_size, config.users_max_page_size)
    users, total = await fetch_users(db, filters, paging, sort_by, sort_order)
    return UserListResponse(
        users=[UserResponse.model_validate(u) for u in users],
        pagination=paging.meta(total)
    )


@router.get("/admins", response_model=UserListResponse)
async def list_admins(
    page: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """List admin accounts (admin-only)."""
    return await _user_page(db, UserFilters(role=[UserRole.ADMIN]), page, limit, None, None)


@router.get("/users", response_model=UserListResponse)
async def list_users(
    role: Optional[str] = Query(None),
    is_active: Optional[str] = Query(None, description="'true' or 'false'"),
    search: Optional[str] = Query(None, description="Matches first name, last name or email"),
    page: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
    sort_by: Optional[str] = Query(None),
    sort_order: Optional[str] = Query(None),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    List all users in the system (admin-only).

    Returns a filtered, paginated user list with role and status information.
    """
    filters = UserFilters.parse(role=role, is_active=is_active, search=search)
    return await _user_page(db, filters, page, limit, sort_by, sort_order)


@router.patch("/users/{user_id}/status", response_model=AdminActionResponse)
async def update_user_status(
    user_id: int,
    request: UserStatusUpdate,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Activate or deactivate a user (admin-only).

    Deactivation revokes all of the user's active tokens and leaves them a
    high-priority notice; reactivation clears the revocation.
    """
    authorize_user_status_change(Actor.from_payload(admin), user_id)
    target_user = await _get_target_user(db, user_id)

    target_user.is_active = request.is_active
    if not request.is_active:
        reason = f" Reason: {request.reason}" if request.reason else ""
        await NotificationService.create_notification(
            db,
            recipient_id=target_user.id,
            title="Account Deactivated",
            message=f"Your account has been deactivated.{reason}",
            type=NotificationType.SYSTEM,
            priority=NotificationPriority.HIGH,
        )
    await db.commit()
    await db.refresh(target_user)

    if request.is_active:
        await clear_user_token_revocation(user_id)
        action = AuditAction.USER_ACTIVATED
    else:
        await revoke_all_user_tokens(user_id)
        action = AuditAction.USER_DEACTIVATED

    await log_admin_action(
        db=db,
        admin=admin,
        action=action,
        target_user_id=target_user.id,
        target_email=target_user.email,
        metadata={"reason": request.reason} if request.reason else None
    )

    state = "activated" if request.is_active else "deactivated"
    return AdminActionResponse(
        message=f"User '{target_user.email}' has been {state}",
        user=UserResponse.model_validate(target_user)
    )


@router.patch("/users/{user_id}/role", response_model=AdminActionResponse)
async def update_user_role(
    user_id: int,
    request: UserRoleUpdate,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Change a user's role (admin-only). Takes effect on the next request."""
    authorize_role_change(Actor.from_payload(admin), user_id)
    target_user = await _get_target_user(db, user_id)

    previous = target_user.role
    target_user.role = request.role
    await NotificationService.create_notification(
        db,
        recipient_id=target_user.id,
        title="Role Updated",
        message=f"Your role has been changed from {previous.value} to {request.role.value}.",
        type=NotificationType.SYSTEM,
    )
    await db.commit()
    await db.refresh(target_user)

    await log_admin_action(
        db=db,
        admin=admin,
        action=AuditAction.ROLE_CHANGED,
        target_user_id=target_user.id,
        target_email=target_user.email,
        metadata={"from": previous.value, "to": request.role.value}
    )

    return AdminActionResponse(
        message=f"User role updated to {request.role.value}",
        user=UserResponse.model_validate(target_user)
    )


@router.get("/audit-logs", response_model=AuditTrailResponse)
async def get_audit_logs(
    user_id: Optional[int] = Query(None, description="Filter by target user ID"),
    actor_id: Optional[int] = Query(None, description="Filter by acting user ID"),
    action: Optional[str] = Query(None, description="Filter by action type"),
    limit: int = Query(100, ge=1, le=500, description="Maximum records to return"),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Get audit trail with optional filtering (admin-only).

    Returns recent audit logs for security monitoring and compliance.
    """
    logs, total = await get_audit_trail(
        db=db,
        target_user_id=user_id,
        actor_id=actor_id,
        action=action,
        limit=limit
    )

    return AuditTrailResponse(
        logs=[AuditLogResponse.model_validate(log) for log in logs],
        total=total
    )
