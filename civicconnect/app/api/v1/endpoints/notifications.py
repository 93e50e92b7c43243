"""
Notification API endpoints: the caller's inbox and admin broadcast.
"""

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from civicconnect.app.db.session import get_db
from civicconnect.app.core.dependencies import get_current_user
from civicconnect.app.core.guards import require_admin
from civicconnect.app.services.notification_service import NotificationService
from civicconnect.app.services.report_query import PageRequest
from civicconnect.app.services.audit import log_admin_action, AuditAction
from civicconnect.app.schemas.notification import (
    NotificationResponse, NotificationListResponse, NotificationEnvelope,
    UnreadCountResponse, MarkAllReadResponse, BroadcastRequest, BroadcastResponse,
)

router = APIRouter(prefix="/notifications", tags=["Notifications"])
admin_router = APIRouter(prefix="/admin/notifications", tags=["Admin - Notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    unread_only: bool = Query(False),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List current user's notifications, newest first."""
    paging = PageRequest(page=page, limit=limit)
    items, total = await NotificationService.list_for_user(
        db, current_user["user_id"], unread_only=unread_only, offset=paging.offset, limit=paging.limit
    )
    unread = await NotificationService.unread_count(db, current_user["user_id"])

    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in items],
        unread_count=unread,
        pagination=paging.meta(total)
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    count = await NotificationService.unread_count(db, current_user["user_id"])
    return UnreadCountResponse(unread_count=count)


@router.patch("/read-all", response_model=MarkAllReadResponse)
async def mark_all_notifications_read(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Mark all notifications as read."""
    count = await NotificationService.mark_all_read(db, current_user["user_id"])
    await db.commit()
    return MarkAllReadResponse(updated_count=count)


@router.patch("/{notification_id}/read", response_model=NotificationEnvelope)
async def mark_notification_read(
    notification_id: int = Path(...),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Mark a specific notification as read."""
    notif = await NotificationService.mark_read(db, notification_id, current_user["user_id"])
    await db.commit()
    await db.refresh(notif)
    return NotificationEnvelope(notification=NotificationResponse.model_validate(notif))


# --- Admin Broadcast ---

@admin_router.post("/broadcast", response_model=BroadcastResponse)
async def broadcast_notification(
    req: BroadcastRequest,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Send a notification to every active user, or to one role."""
    count = await NotificationService.broadcast(
        db, req.title, req.message, role=req.role, type=req.type, priority=req.priority
    )
    await db.commit()

    await log_admin_action(
        db=db,
        admin=admin,
        action=AuditAction.NOTIFICATION_BROADCAST,
        metadata={"role": req.role.value if req.role else None, "recipients": count}
    )
    return BroadcastResponse(recipients=count)
