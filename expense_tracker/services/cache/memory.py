"""Process-local cache used by tests and single-process runs."""

import copy
import time
from typing import Any, Callable, Optional

from expense_tracker.services.cache.interface import CacheInterface


class InMemoryCache(CacheInterface):
    """
    Dictionary cache with lazy expiry.

    Expired entries are dropped when read. The clock is injectable so tests
    can move time forward.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._entries: dict[str, tuple[float, Any]] = {}
        self._clock = clock

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return copy.deepcopy(value)

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        self._entries[key] = (self._clock() + ttl_seconds, copy.deepcopy(value))

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def keys(self) -> list[str]:
        """Keys currently held, expired or not."""
        return list(self._entries)
