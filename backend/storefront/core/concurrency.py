"""
Per-key asyncio locks.

Serializes work that touches the same key (a counter, a transaction id)
while letting different keys proceed concurrently. A key's lock lives only
while someone holds or waits for it.
"""
import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class KeyedLock:
    """A lazily created asyncio.Lock per key, dropped once nobody uses it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for ``key`` for the duration of the block."""
        # Bookkeeping never awaits, so it needs no guard of its own
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    @property
    def active_keys(self) -> int:
        """Number of keys currently held or waited on."""
        return len(self._locks)
