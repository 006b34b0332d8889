"""Per-session mutation locks."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class SessionLocks:
    """Serializes ledger mutations per session code.

    Locks are created on demand and dropped once nobody holds or waits
    for them, so idle sessions cost nothing.

    Example:
        >>> locks = SessionLocks()
        >>> async with locks.hold("AB12C"):
        ...     ...  # read-modify-write of session AB12C
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, code: str) -> AsyncIterator[None]:
        lock = self._locks.get(code)
        if lock is None:
            lock = self._locks[code] = asyncio.Lock()
        self._users[code] = self._users.get(code, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[code] -= 1
            if self._users[code] == 0:
                del self._users[code]
                del self._locks[code]

    def is_locked(self, code: str) -> bool:
        lock = self._locks.get(code)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
