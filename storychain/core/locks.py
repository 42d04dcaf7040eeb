"""
locks.py — Keyed asyncio Locks
==============================
One asyncio.Lock per key, alive only while someone holds or waits on it.

Holders and waiters are counted; the last one out removes the entry, so
the table never grows past the keys currently in use. A waiter queued on a
key always shares the lock with whoever holds that key, even if the thing
the key names was deleted and re-created in between.

USAGE:
------
    locks = KeyedLocks()
    async with locks.hold("ABC123"):
        ...
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


class KeyedLocks:
    def __init__(self):
        self._entries: dict[str, _Entry] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._entries[key]

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
