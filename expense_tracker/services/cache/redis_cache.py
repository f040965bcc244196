"""
Redis Cache Implementation

Values are JSON-encoded strings stored with a native Redis expiry.
Every key is prefixed so several deployments can share one database.
"""

import json
from typing import Any, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from expense_tracker.config import RedisSettings, get_settings
from expense_tracker.services.cache.interface import CacheError, CacheInterface


class RedisCache(CacheInterface):
    """Redis-backed cache."""

    def __init__(
        self,
        settings: Optional[RedisSettings] = None,
        client: Optional[redis.Redis] = None,
    ):
        self._settings = settings or get_settings().redis
        self._client = client or redis.from_url(
            self._settings.url,
            decode_responses=True,
        )

    def _key(self, key: str) -> str:
        return f"{self._settings.key_prefix}{key}"

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self._client.get(self._key(key))
        except RedisError as e:
            raise CacheError(f"Redis get failed for {key}: {e}")
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise CacheError(f"Corrupt cache entry {key}: {e}")

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            await self._client.set(self._key(key), json.dumps(value), ex=ttl_seconds)
        except RedisError as e:
            raise CacheError(f"Redis set failed for {key}: {e}")

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(self._key(key))
        except RedisError as e:
            raise CacheError(f"Redis delete failed for {key}: {e}")

    async def close(self) -> None:
        await self._client.aclose()
