"""
Token Revocation System using Redis.

Implements token blacklisting to immediately invalidate JWT tokens
when users are deactivated. Redis errors fail open: they are logged
and the request proceeds.
"""

import logging

import civicconnect.app.core.redis_client as redis_module
from civicconnect.app.core.config import settings

logger = logging.getLogger("civicconnect.auth.revocation")

# Redis key prefixes
TOKEN_BLACKLIST_PREFIX = "blacklist:token:"
USER_TOKENS_PREFIX = "user:tokens:"


def _token_ttl_seconds() -> int:
    # Tokens expire on their own after this, so the marker can too
    return settings.access_token_expire_minutes * 60


def _user_key(user_id: int) -> str:
    return f"{USER_TOKENS_PREFIX}{user_id}:revoked"


async def revoke_token(token: str, user_id: int) -> bool:
    """Revoke a single JWT token by adding it to the blacklist."""
    try:
        await redis_module.redis_client.setex(
            f"{TOKEN_BLACKLIST_PREFIX}{token}",
            _token_ttl_seconds(),
            str(user_id)
        )
        return True
    except Exception:
        logger.exception("Failed to revoke token for user %s", user_id)
        return False


async def is_token_revoked(token: str) -> bool:
    try:
        exists = await redis_module.redis_client.exists(f"{TOKEN_BLACKLIST_PREFIX}{token}")
        return exists > 0
    except Exception:
        logger.exception("Token revocation check failed")
        return False


async def revoke_all_user_tokens(user_id: int) -> bool:
    """
    Revoke every token issued to a user.

    Called on deactivation; token validation checks this flag, so all
    sessions end immediately.
    """
    try:
        await redis_module.redis_client.setex(_user_key(user_id), _token_ttl_seconds(), "1")
        return True
    except Exception:
        logger.exception("Failed to revoke tokens for user %s", user_id)
        return False


async def are_user_tokens_revoked(user_id: int) -> bool:
    try:
        exists = await redis_module.redis_client.exists(_user_key(user_id))
        return exists > 0
    except Exception:
        logger.exception("User token revocation check failed for user %s", user_id)
        return False


async def clear_user_token_revocation(user_id: int) -> bool:
    """Clear the revocation flag; called when a user is reactivated."""
    try:
        await redis_module.redis_client.delete(_user_key(user_id))
        return True
    except Exception:
        logger.exception("Failed to clear token revocation for user %s", user_id)
        return False
