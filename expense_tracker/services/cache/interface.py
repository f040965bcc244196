"""
Abstract Cache Interface

Values are JSON-compatible documents (dicts, lists, scalars). Models are
stored as `model_dump(mode="json")` and re-validated on read.

Keys are deterministic strings built by the component that owns them:
- `categories:{owner_id}`
- `payment-methods:{owner_id}:{include_inactive}`
- `expenses:summary:{owner_id}`
"""

from abc import ABC, abstractmethod
from typing import Any, Optional


class CacheInterface(ABC):
    """Key-value cache with per-entry time to live."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """
        Read a cached value.

        Returns:
            The value, or None on a miss or an expired entry
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """
        Store a value for at most `ttl_seconds`.
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Evict a key. Deleting a missing key is not an error."""
        pass


class CacheError(Exception):
    """A cache backend failed."""
    pass
