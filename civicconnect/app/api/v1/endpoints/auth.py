"""
Authentication API endpoints.

Register, login, current user, and the password reset flow.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from civicconnect.app.db.session import get_db
from civicconnect.app.models.user import User
from civicconnect.app.models.enums import UserRole
from civicconnect.app.schemas.auth import (
    UserRegister, UserLogin, TokenResponse, UserResponse, UserEnvelope,
    ForgotPasswordRequest, ResetPasswordRequest,
)
from civicconnect.app.schemas.common import MessageResponse
from civicconnect.app.core.config import settings
from civicconnect.app.core.exceptions import ConflictError, InternalServiceError, InvalidArgumentError, ResourceNotFoundError
from civicconnect.app.core.security import get_password_hash, verify_password, generate_reset_token, hash_reset_token
from civicconnect.app.core.jwt import create_user_token
from civicconnect.app.core.dependencies import get_current_user
from civicconnect.app.core.timeutils import as_utc, utcnow
from civicconnect.app.services.audit import log_auth_event, log_event, AuditAction
from civicconnect.app.services.mailer import EmailDeliveryError, send_email

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _client_ip(request: Request):
    return request.client.host if request.client else None


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserRegister,
    db: AsyncSession = Depends(get_db)
):
    """
    Register a new user.

    Only citizens and field workers can self-register; any other requested
    role is registered as a citizen. Admins come from /admin/create.
    """
    email = user_data.email.lower()
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        raise ConflictError("Email already in use", details={"email": email})

    role = UserRole.EMPLOYEE if user_data.role == UserRole.EMPLOYEE.value else UserRole.USER

    new_user = User(
        first_name=user_data.first_name,
        last_name=user_data.last_name,
        email=email,
        hashed_password=get_password_hash(user_data.password),
        phone_number=user_data.phone_number,
        role=role,
        is_active=True,
    )

    db.add(new_user)
    await db.commit()
    await db.refresh(new_user)

    await log_event(
        db=db,
        action=AuditAction.USER_REGISTERED,
        actor_id=new_user.id,
        actor_email=new_user.email,
        metadata={"role": role.value}
    )

    return TokenResponse(access_token=create_user_token(new_user), user=UserResponse.model_validate(new_user))


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: UserLogin,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Login user and return JWT token.

    Logs successful and failed login attempts for security monitoring.
    """
    email = credentials.email.lower()
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()

    if not user or not verify_password(credentials.password, user.hashed_password):
        await log_auth_event(
            db=db,
            action=AuditAction.LOGIN_FAILED,
            user_id=user.id if user else None,
            email=email,
            ip_address=_client_ip(request),
            metadata={"reason": "Invalid password" if user else "User not found"}
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        await log_auth_event(
            db=db,
            action=AuditAction.LOGIN_FAILED,
            user_id=user.id,
            email=email,
            ip_address=_client_ip(request),
            metadata={"reason": "Account is inactive"}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Your account has been deactivated. Please contact support."
        )

    user.last_login = utcnow()
    await db.commit()
    await db.refresh(user)

    await log_auth_event(
        db=db,
        action=AuditAction.LOGIN_SUCCESS,
        user_id=user.id,
        email=user.email,
        ip_address=_client_ip(request)
    )

    return TokenResponse(access_token=create_user_token(user), user=UserResponse.model_validate(user))


@router.get("/me", response_model=UserEnvelope)
async def get_current_user_info(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get current authenticated user information."""
    result = await db.execute(select(User).where(User.id == current_user["user_id"]))
    user = result.scalar_one_or_none()

    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    return UserEnvelope(user=UserResponse.model_validate(user))


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    payload: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db)
):
    """
    Email a password reset link.

    Only the SHA-256 digest of the token is stored. If the email cannot
    be sent the token is cleared again.
    """
    email = payload.email.lower()
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if not user:
        raise ResourceNotFoundError("User", message="There is no user with that email address")

    raw_token, token_digest, expires = generate_reset_token()
    user.reset_password_token = token_digest
    user.reset_password_expires = expires
    await db.commit()

    reset_url = f"{settings.public_base_url}/{settings.api_version}/auth/reset-password/{raw_token}"
    body = (
        "Forgot your password? Submit a PATCH request with your new password to: "
        f"{reset_url}\nIf you didn't forget your password, please ignore this email."
    )
    try:
        await send_email(user.email, "Your password reset token (valid for 10 minutes)", body)
    except EmailDeliveryError:
        user.reset_password_token = None
        user.reset_password_expires = None
        await db.commit()
        raise InternalServiceError("There was an error sending the email. Try again later!")

    await log_event(db=db, action=AuditAction.PASSWORD_RESET_REQUESTED, actor_id=user.id, actor_email=user.email)
    return MessageResponse(message="Token sent to email")


@router.patch("/reset-password/{token}", response_model=TokenResponse)
async def reset_password(
    token: str,
    payload: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db)
):
    """Set a new password using a valid, unexpired reset token."""
    result = await db.execute(select(User).where(User.reset_password_token == hash_reset_token(token)))
    user = result.scalar_one_or_none()

    if not user or not user.reset_password_expires or as_utc(user.reset_password_expires) <= utcnow():
        raise InvalidArgumentError("Token is invalid or has expired")

    user.hashed_password = get_password_hash(payload.password)
    user.reset_password_token = None
    user.reset_password_expires = None
    await db.commit()
    await db.refresh(user)

    await log_event(db=db, action=AuditAction.PASSWORD_RESET, actor_id=user.id, actor_email=user.email)
    return TokenResponse(access_token=create_user_token(user), user=UserResponse.model_validate(user))
