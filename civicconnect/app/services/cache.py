"""
Caching service for admin analytics.

Process-local TTL cache keyed by view and window. A TTL of 0 disables
caching; every read path computes the same result without it.
"""

from datetime import timedelta
from typing import Dict, Any, Optional

from civicconnect.app.core.config import settings
from civicconnect.app.core.timeutils import utcnow

_cache_store: Dict[str, dict] = {}


class CacheService:

    @staticmethod
    def key(view: str, window: str) -> str:
        return f"analytics:{view}:{window}"

    @staticmethod
    async def get(key: str) -> Optional[Any]:
        entry = _cache_store.get(key)
        if not entry:
            return None

        if utcnow() > entry["expires_at"]:
            del _cache_store[key]
            return None

        return entry["data"]

    @staticmethod
    async def set(key: str, data: Any, ttl_seconds: Optional[int] = None):
        ttl = settings.admin_panel.analytics_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            return
        _cache_store[key] = {
            "data": data,
            "expires_at": utcnow() + timedelta(seconds=ttl)
        }

    @staticmethod
    async def clear():
        _cache_store.clear()
