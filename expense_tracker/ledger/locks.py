"""
Per-owner mutual exclusion.

CRITICAL: Every read-modify-write sequence on one owner's data (uniqueness
checks, default flag changes, expense mutations) runs while holding that
owner's lock. Locks are not reentrant: code holding a lock must call the
storage layer directly, never another locking store method.
"""

import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

# Lock key for system-wide data (the shared category catalog)
SYSTEM_LOCK_KEY = "__system__"


class OwnerLocks:
    """
    Registry of asyncio locks keyed by owner id.

    Entries are weak: a lock that nobody holds, waits on or references is
    dropped, and the next request for that owner creates a fresh one.
    """

    def __init__(self):
        self._locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()

    def __contains__(self, owner_id: Optional[str]) -> bool:
        key = owner_id if owner_id is not None else SYSTEM_LOCK_KEY
        return key in self._locks

    def lock_for(self, owner_id: Optional[str]) -> asyncio.Lock:
        key = owner_id if owner_id is not None else SYSTEM_LOCK_KEY
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, owner_id: Optional[str]) -> AsyncIterator[None]:
        """Hold the owner's lock for the duration of the block."""
        async with self.lock_for(owner_id):
            yield
