"""
Best-effort cache wrapper.

CRITICAL: Cache failures never fail a ledger operation. A failed read is a
miss, a failed write or delete is logged and dropped. Stale entries are
bounded by their TTL.
"""

from typing import Any, Optional

import structlog

from expense_tracker.services.cache.interface import CacheInterface

logger = structlog.get_logger(__name__)


class SafeCache(CacheInterface):
    """Wraps any cache and swallows its failures after logging them."""

    def __init__(self, inner: CacheInterface):
        self._inner = inner

    @property
    def inner(self) -> CacheInterface:
        return self._inner

    async def get(self, key: str) -> Optional[Any]:
        try:
            return await self._inner.get(key)
        except Exception as e:
            logger.warning("cache_read_failed", key=key, error=str(e))
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            await self._inner.set(key, value, ttl_seconds)
        except Exception as e:
            logger.warning("cache_write_failed", key=key, error=str(e))

    async def delete(self, key: str) -> None:
        try:
            await self._inner.delete(key)
        except Exception as e:
            logger.warning("cache_delete_failed", key=key, error=str(e))
