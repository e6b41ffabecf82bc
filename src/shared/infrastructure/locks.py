"""
Concurrency Primitives
======================

asyncio-based guards used by the escalation engine and scheduler.

- SingleFlightGate: at most one holder; a second caller is rejected, not queued.
- KeyedLock: one lock per key (complaint id), created on demand and dropped
  once no coroutine holds or waits for it.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable

from src.core import ConcurrentSweepRejectedException


class SingleFlightGate:
    """
    Reject-if-busy gate.

    `hold()` raises ConcurrentSweepRejectedException when the gate is taken.
    The check and the acquire happen without an intervening await, so the
    test-and-set is atomic on a single event loop.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        """True while a holder is inside the gate."""
        return self._lock.locked()

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[None]:
        if self._lock.locked():
            raise ConcurrentSweepRejectedException()
        async with self._lock:
            yield

    async def wait_idle(self) -> None:
        """Block until the current holder, if any, leaves the gate."""
        async with self._lock:
            pass


class KeyedLock:
    """Registry of per-key asyncio locks."""

    def __init__(self) -> None:
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._waiters: Dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
