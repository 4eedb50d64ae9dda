"""
Per-deal mutual exclusion for the workflow service.

Mutations of one deal run one at a time (load -> validate -> apply -> save
inside the same critical section); different deals never wait on each other.
Locks are created on first use and dropped again once no task holds or
waits on them.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class DealLockRegistry:
    """Hands out one asyncio.Lock per deal id."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def is_locked(self, deal_id: str) -> bool:
        lock = self._locks.get(deal_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, deal_id: str) -> AsyncIterator[None]:
        """
        Hold the lock for deal_id for the duration of the block.

        Usage:
            async with locks.hold(deal.id):
                deal = await repository.load_deal(deal.id)
                ...
        """
        lock = self._locks.setdefault(deal_id, asyncio.Lock())
        self._users[deal_id] = self._users.get(deal_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[deal_id] -= 1
            if self._users[deal_id] == 0:
                del self._users[deal_id]
                del self._locks[deal_id]
