"""
User API endpoints: own profile and the admin user directory.
"""

from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from civicconnect.app.db.session import get_db
from civicconnect.app.models.user import User
from civicconnect.app.schemas.auth import UserResponse, UserEnvelope
from civicconnect.app.schemas.user import ProfileUpdate, UserListResponse
from civicconnect.app.core.config import settings
from civicconnect.app.core.dependencies import get_current_user
from civicconnect.app.core.guards import require_admin
from civicconnect.app.services.report_query import UserFilters, fetch_users, page_request

router = APIRouter(prefix="/users", tags=["Users"])


async def _load_user(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    return user


@router.get("/me", response_model=UserEnvelope)
async def get_me(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    user = await _load_user(db, current_user["user_id"])
    return UserEnvelope(user=UserResponse.model_validate(user))


@router.patch("/profile", response_model=UserEnvelope)
async def update_profile(
    payload: ProfileUpdate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Update the caller's profile.

    Only first name, last name and phone number can be changed here; email,
    role and password have their own flows.
    """
    user = await _load_user(db, current_user["user_id"])

    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(user, field, value)

    await db.commit()
    await db.refresh(user)
    return UserEnvelope(user=UserResponse.model_validate(user))


@router.get("", response_model=UserListResponse)
async def list_users(
    role: Optional[str] = Query(None),
    is_active: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    page: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
    sort_by: Optional[str] = Query(None),
    sort_order: Optional[str] = Query(None),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """List users (admin-only) with role, status and text filters."""
    config = settings.admin_panel
    filters = UserFilters.parse(role=role, is_active=is_active, search=search)
    paging = page_request(page, limit, config.users_default_page_size, config.users_max_page_size)
    users, total = await fetch_users(db, filters, paging, sort_by, sort_order)

    return UserListResponse(
        users=[UserResponse.model_validate(u) for u in users],
        pagination=paging.meta(total)
    )
