"""
Notification schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from civicconnect.app.models.enums import UserRole
from civicconnect.app.models.notification import NotificationType, NotificationPriority
from civicconnect.app.schemas.common import PaginationMeta


class NotificationResponse(BaseModel):
    id: int
    recipient_id: int
    type: NotificationType
    title: str
    message: str
    priority: NotificationPriority
    related_model: Optional[str]
    related_id: Optional[int]
    is_read: bool
    created_at: datetime
    read_at: Optional[datetime]

    class Config:
        from_attributes = True


class NotificationListResponse(BaseModel):
    success: bool = True
    notifications: List[NotificationResponse]
    unread_count: int
    pagination: PaginationMeta


class NotificationEnvelope(BaseModel):
    success: bool = True
    notification: NotificationResponse


class UnreadCountResponse(BaseModel):
    success: bool = True
    unread_count: int


class MarkAllReadResponse(BaseModel):
    success: bool = True
    updated_count: int


class BroadcastRequest(BaseModel):
    role: Optional[UserRole] = Field(default=None, description="Restrict to one role; all active users when omitted")
    type: NotificationType = NotificationType.SYSTEM
    priority: NotificationPriority = NotificationPriority.NORMAL
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)


class BroadcastResponse(BaseModel):
    success: bool = True
    recipients: int
