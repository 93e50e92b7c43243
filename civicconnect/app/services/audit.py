"""
Audit logging service for tracking security events and admin actions.

Provides centralized logging for compliance and security monitoring.
"""

from typing import Optional, Dict, Any, List, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc, func
from civicconnect.app.models.audit_log import AuditLog


class AuditAction:
    """Standardized audit action constants."""
    USER_ACTIVATED = "USER_ACTIVATED"
    USER_DEACTIVATED = "USER_DEACTIVATED"
    USER_REGISTERED = "USER_REGISTERED"
    ADMIN_CREATED = "ADMIN_CREATED"
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    ROLE_CHANGED = "ROLE_CHANGED"
    PASSWORD_RESET_REQUESTED = "PASSWORD_RESET_REQUESTED"
    PASSWORD_RESET = "PASSWORD_RESET"

    # Reports
    REPORT_ASSIGNED = "REPORT_ASSIGNED"
    BULK_STATUS_UPDATE = "BULK_STATUS_UPDATE"
    BULK_ASSIGN = "BULK_ASSIGN"
    BULK_DELETE = "BULK_DELETE"

    NOTIFICATION_BROADCAST = "NOTIFICATION_BROADCAST"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    actor_email: Optional[str] = None,
    target_user_id: Optional[int] = None,
    target_email: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None
) -> AuditLog:
    """
    Log a security or admin event to the audit log.

    Commits on its own, so call it after the audited change is committed.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_id: ID of user performing the action
        actor_email: Email of actor
        target_user_id: ID of user being acted upon (if applicable)
        target_email: Email of target
        metadata: Additional context as JSON
        ip_address: IP address of the request

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        actor_email=actor_email,
        action=action,
        target_user_id=target_user_id,
        target_email=target_email,
        meta_data=metadata,
        ip_address=ip_address
    )

    db.add(audit_log)
    await db.commit()
    await db.refresh(audit_log)

    return audit_log


async def log_admin_action(
    db: AsyncSession,
    admin: dict,
    action: str,
    target_user_id: Optional[int] = None,
    target_email: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """Log an admin action; `admin` is the authenticated token payload."""
    return await log_event(
        db=db,
        action=action,
        actor_id=admin.get("user_id"),
        actor_email=admin.get("sub"),
        target_user_id=target_user_id,
        target_email=target_email,
        metadata=metadata
    )


async def log_auth_event(
    db: AsyncSession,
    action: str,
    user_id: Optional[int],
    email: Optional[str],
    ip_address: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Log an authentication event (login success/failure).

    Args:
        action: AuditAction.LOGIN_SUCCESS or AuditAction.LOGIN_FAILED
        metadata: Additional context (e.g., failure reason)
    """
    return await log_event(
        db=db,
        action=action,
        actor_id=user_id,
        actor_email=email,
        ip_address=ip_address,
        metadata=metadata
    )


async def get_audit_trail(
    db: AsyncSession,
    target_user_id: Optional[int] = None,
    actor_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> Tuple[List[AuditLog], int]:
    """
    Retrieve audit trail with optional filtering.

    Returns:
        (most recent logs up to `limit`, total matching count)
    """
    query = select(AuditLog)

    if target_user_id:
        query = query.where(AuditLog.target_user_id == target_user_id)

    if actor_id:
        query = query.where(AuditLog.actor_id == actor_id)

    if action:
        query = query.where(AuditLog.action == action)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0

    query = query.order_by(desc(AuditLog.timestamp), desc(AuditLog.id)).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all()), total
