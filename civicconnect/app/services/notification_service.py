"""
Notification Service.

Handles creation and state management of notifications.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, desc
from typing import Optional, List, Tuple

from civicconnect.app.core.exceptions import ResourceNotFoundError
from civicconnect.app.core.timeutils import utcnow
from civicconnect.app.models.notification import Notification, NotificationType, NotificationPriority
from civicconnect.app.models.user import User
from civicconnect.app.models.enums import UserRole


class NotificationService:

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        recipient_id: int,
        title: str,
        message: str,
        type: NotificationType = NotificationType.SYSTEM,
        priority: NotificationPriority = NotificationPriority.NORMAL,
        related_model: Optional[str] = None,
        related_id: Optional[int] = None,
    ) -> Notification:
        """Create a single notification. Caller commits."""
        notif = Notification(
            recipient_id=recipient_id,
            type=type,
            title=title,
            message=message,
            priority=priority,
            related_model=related_model,
            related_id=related_id,
        )
        db.add(notif)
        await db.flush()
        return notif

    @staticmethod
    async def broadcast(
        db: AsyncSession,
        title: str,
        message: str,
        role: Optional[UserRole] = None,
        type: NotificationType = NotificationType.SYSTEM,
        priority: NotificationPriority = NotificationPriority.NORMAL,
    ) -> int:
        """Broadcast to all active users, or to one role. Caller commits."""
        query = select(User.id).where(User.is_active.is_(True))
        if role:
            query = query.where(User.role == role)

        result = await db.execute(query)
        user_ids = result.scalars().all()

        notifications = [
            Notification(
                recipient_id=uid,
                title=title,
                message=message,
                type=type,
                priority=priority,
            )
            for uid in user_ids
        ]

        if notifications:
            db.add_all(notifications)

        return len(notifications)

    @staticmethod
    async def list_for_user(
        db: AsyncSession,
        user_id: int,
        unread_only: bool = False,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Notification], int]:
        """Inbox page, newest first, plus total matching count."""
        query = select(Notification).where(Notification.recipient_id == user_id)
        if unread_only:
            query = query.where(Notification.is_read.is_(False))

        total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0
        result = await db.execute(
            query.order_by(desc(Notification.created_at), desc(Notification.id)).offset(offset).limit(limit)
        )
        return list(result.scalars().all()), total

    @staticmethod
    async def unread_count(db: AsyncSession, user_id: int) -> int:
        result = await db.execute(
            select(func.count(Notification.id)).where(
                Notification.recipient_id == user_id,
                Notification.is_read.is_(False),
            )
        )
        return result.scalar() or 0

    @staticmethod
    async def mark_read(db: AsyncSession, notification_id: int, user_id: int) -> Notification:
        """
        Mark a notification as read.

        Idempotent: an already-read notification keeps its original `read_at`.
        Raises ResourceNotFoundError when the notification is missing or not
        addressed to `user_id`.
        """
        result = await db.execute(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.recipient_id == user_id,
            )
        )
        notif = result.scalar_one_or_none()
        if not notif:
            raise ResourceNotFoundError("Notification", notification_id)

        if not notif.is_read:
            notif.is_read = True
            notif.read_at = utcnow()
            await db.flush()
        return notif

    @staticmethod
    async def mark_all_read(db: AsyncSession, user_id: int) -> int:
        """Mark all unread notifications for user as read."""
        stmt = update(Notification).where(
            Notification.recipient_id == user_id,
            Notification.is_read.is_(False)
        ).values(
            is_read=True,
            read_at=utcnow()
        )
        result = await db.execute(stmt)
        return result.rowcount
