"""
Per-key asyncio locks.

``KeyedLock`` hands out one ``asyncio.Lock`` per key so work on different
(guild, user) pairs never waits on each other while work on the same pair is
serialised. Locks are reference counted and dropped once nobody holds or waits
on them, so the map only ever contains keys that are in use.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable


class KeyedLock:
    """A map of asyncio locks keyed by arbitrary hashable values."""

    def __init__(self) -> None:
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._waiters: Dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        """Acquire the lock for ``key`` for the duration of the ``async with`` block."""
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._waiters[key] - 1
            if remaining:
                self._waiters[key] = remaining
            else:
                del self._waiters[key]
                del self._locks[key]

    def is_held(self, key: Hashable) -> bool:
        """True while some task holds or waits for the lock of ``key``."""
        return key in self._waiters

    def __len__(self) -> int:
        return len(self._locks)
