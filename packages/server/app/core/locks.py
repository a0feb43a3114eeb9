"""
Per-owner mutation serialisation.

Structural mutations for one owner run one at a time so cycle detection and
status cascades always traverse a stable graph. Different owners never share
a lock.
"""

from __future__ import annotations

import asyncio
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator


class OwnerLocks:
    """Registry of asyncio locks keyed by owner id, dropped when idle."""

    def __init__(self) -> None:
        self._locks: dict[uuid.UUID, asyncio.Lock] = {}
        self._waiters: dict[uuid.UUID, int] = {}

    @asynccontextmanager
    async def hold(self, owner_id: uuid.UUID) -> AsyncIterator[None]:
        if owner_id not in self._locks:
            self._locks[owner_id] = asyncio.Lock()
        self._waiters[owner_id] = self._waiters.get(owner_id, 0) + 1
        lock = self._locks[owner_id]
        try:
            async with lock:
                yield
        finally:
            self._waiters[owner_id] -= 1
            if self._waiters[owner_id] == 0:
                del self._waiters[owner_id]
                del self._locks[owner_id]

    def __len__(self) -> int:
        return len(self._locks)


_owner_locks = OwnerLocks()


def owner_lock(owner_id: uuid.UUID):
    """Serialise mutations for ``owner_id`` within this process."""
    return _owner_locks.hold(owner_id)
