"""Keyed Locks: in-process mutual exclusion scoped to one entity (a vote, a circle).

Invariants:
    - Callers sharing a key are serialized; different keys never block each other
    - A lock entry exists only while some task holds or awaits it
    - Acquisition order across keys is always vote -> circle (never the reverse)

Design Decisions:
    - asyncio.Lock per key, created on demand: single-writer section per vote
      inside one process; multi-process deployments additionally rely on
      SELECT ... FOR UPDATE row locks and conditional UPDATEs
    - Reference counting instead of WeakValueDictionary so the registry can be
      inspected in tests (active_keys)
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Hashable


class KeyedLockRegistry:
    """Registry of asyncio locks addressed by hashable keys."""

    def __init__(self):
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._waiters: dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, *key: Hashable) -> AsyncIterator[None]:
        """Hold the lock for `key` for the duration of the block."""
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def active_keys(self) -> list[Hashable]:
        return list(self._locks)


# Process-wide registry shared by all request handlers
lock_registry = KeyedLockRegistry()


def get_lock_registry() -> KeyedLockRegistry:
    """FastAPI dependency for the process-wide lock registry."""
    return lock_registry
