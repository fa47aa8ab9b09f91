"""Per-order locks serializing lifecycle transitions within the process."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from weakref import WeakValueDictionary

logger = logging.getLogger(__name__)


class OrderLockRegistry:
    """Hands out one asyncio.Lock per key.

    Locks are held weakly so keys with no waiters are dropped. Transitions
    on different keys never wait on each other.
    """

    def __init__(self) -> None:
        self._locks: WeakValueDictionary[str, asyncio.Lock] = WeakValueDictionary()

    def _get(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for ``key`` for the duration of the block."""
        lock = self._get(key)
        if lock.locked():
            logger.debug("Waiting for lock on %s", key)
        async with lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)


_registry: OrderLockRegistry | None = None


def get_order_locks() -> OrderLockRegistry:
    """Get the process-wide lock registry."""
    global _registry
    if _registry is None:
        _registry = OrderLockRegistry()
    return _registry
