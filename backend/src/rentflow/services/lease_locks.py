"""Per-lease asyncio locks.

Serializes mutations of a single lease inside one process. Cross-process
safety comes from the conditional UPDATEs issued by the services; the lock only
keeps concurrent requests in this process from racing each other to them.
"""

import asyncio
import weakref


class LeaseLockRegistry:
    """Hands out one ``asyncio.Lock`` per lease id.

    Locks are held weakly, so an entry disappears once no coroutine is using it.
    """

    def __init__(self) -> None:
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def lock_for(self, lease_id: str) -> asyncio.Lock:
        lock = self._locks.get(lease_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[lease_id] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)


lease_locks = LeaseLockRegistry()
