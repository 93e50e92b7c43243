"""
Fixed-window request rate limiting backed by Redis.

Each (scope, caller) pair gets a counter that expires with the window.
Redis failures fail open.
"""

import logging
import time

from fastapi import Depends, Request

from civicconnect.app.core.config import RateLimitRule
from civicconnect.app.core.dependencies import get_current_user
from civicconnect.app.core.exceptions import RateLimitExceededError
from civicconnect.app.core.redis_client import get_redis

logger = logging.getLogger("civicconnect.ratelimit")

RATE_LIMIT_PREFIX = "ratelimit:"


def rate_limiter(scope: str, rule: RateLimitRule):
    """
    Dependency factory enforcing `rule` per authenticated user (or client IP).

    Usage:
        @router.get("/dashboard/analytics",
                    dependencies=[Depends(rate_limiter("analytics", settings.admin_panel.analytics_rate_limit))])
    """
    async def limiter(
        request: Request,
        current_user: dict = Depends(get_current_user),
        redis=Depends(get_redis),
    ) -> None:
        caller = current_user.get("user_id") or (request.client.host if request.client else "anonymous")
        window = int(time.time()) // rule.window_seconds
        key = f"{RATE_LIMIT_PREFIX}{scope}:{caller}:{window}"

        try:
            count = await redis.incr(key)
            if count == 1:
                await redis.expire(key, rule.window_seconds)
        except Exception:
            logger.exception("Rate limiter unavailable for scope %s", scope)
            return

        if count > rule.max_requests:
            retry_after = rule.window_seconds - int(time.time()) % rule.window_seconds
            logger.warning("Rate limit exceeded: scope=%s caller=%s", scope, caller)
            raise RateLimitExceededError(retry_after=retry_after)

    return limiter
