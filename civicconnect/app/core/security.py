"""
Password hashing and password-reset token helpers.
"""

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Tuple

from passlib.context import CryptContext

from civicconnect.app.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def hash_reset_token(raw_token: str) -> str:
    """Only the SHA-256 digest of a reset token is ever persisted."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def generate_reset_token() -> Tuple[str, str, datetime]:
    """
    Create a password reset token.

    Returns:
        (raw token for the emailed link, digest to store, expiry timestamp)
    """
    raw_token = secrets.token_hex(20)
    expires = datetime.now(timezone.utc) + timedelta(minutes=settings.password_reset_expire_minutes)
    return raw_token, hash_reset_token(raw_token), expires
