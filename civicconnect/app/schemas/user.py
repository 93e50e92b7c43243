"""
User management schemas (profile, admin user list, status/role changes, audit trail).
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from civicconnect.app.models.enums import UserRole
from civicconnect.app.schemas.auth import UserResponse
from civicconnect.app.schemas.common import PaginationMeta


class ProfileUpdate(BaseModel):
    """Only these fields are user-editable."""
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    phone_number: Optional[str] = Field(default=None, max_length=30)


class UserListResponse(BaseModel):
    success: bool = True
    users: List[UserResponse]
    pagination: PaginationMeta


class UserStatusUpdate(BaseModel):
    is_active: bool
    reason: Optional[str] = Field(None, description="Reason (for audit log and notification)")


class UserRoleUpdate(BaseModel):
    role: UserRole


class AdminActionResponse(BaseModel):
    """Schema for admin action response."""
    success: bool = True
    message: str
    user: UserResponse


class AuditLogResponse(BaseModel):
    """Schema for audit log entry."""
    id: int
    actor_id: Optional[int]
    actor_email: Optional[str]
    action: str
    target_user_id: Optional[int]
    target_email: Optional[str]
    meta_data: Optional[dict]
    ip_address: Optional[str]
    timestamp: datetime

    class Config:
        from_attributes = True


class AuditTrailResponse(BaseModel):
    """Schema for audit trail list."""
    success: bool = True
    logs: List[AuditLogResponse]
    total: int
