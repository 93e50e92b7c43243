"""
Authentication Pydantic schemas.

Defines request and response schemas for authentication endpoints.
"""

from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import Optional
from civicconnect.app.models.enums import UserRole


class UserRegister(BaseModel):
    """
    Schema for user registration.

    Used by POST /auth/register. Only `user` and `employee` may be
    requested here; anything else is registered as `user`.
    """
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=6, description="Password (min 6 characters)")
    phone_number: Optional[str] = Field(default=None, max_length=30)
    role: Optional[str] = Field(default=None, description="'employee' to register a field worker")


class AdminCreate(BaseModel):
    """Schema for POST /admin/create (trusted sources only)."""
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone_number: Optional[str] = Field(default=None, max_length=30)


class UserLogin(BaseModel):
    email: EmailStr = Field(..., description="Email address")
    password: str = Field(..., min_length=1, description="Password")


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    password: str = Field(..., min_length=6)


class UserResponse(BaseModel):
    """
    Schema for user information response.

    Used by GET /auth/me and embedded in token responses.
    """
    id: int
    first_name: str
    last_name: str
    email: str
    phone_number: Optional[str] = None
    role: UserRole
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    """
    Schema for JWT token response.

    Returned by successful register/login/reset operations.
    """
    success: bool = True
    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer", description="Token type")
    user: UserResponse


class UserEnvelope(BaseModel):
    success: bool = True
    user: UserResponse
