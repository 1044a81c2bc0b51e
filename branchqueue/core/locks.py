import asyncio
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator


class ServicePointLocks:
    """One asyncio.Lock per service point; writers for a point run one at a time.

    Locks for unrelated service points never contend. Several points are
    always acquired in sorted order so two transfers cannot deadlock.
    """

    def __init__(self):
        self._locks: dict[uuid.UUID, asyncio.Lock] = {}

    def _lock_for(self, key: uuid.UUID) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks.setdefault(key, asyncio.Lock())
        return lock

    @asynccontextmanager
    async def hold(self, *service_point_ids: uuid.UUID) -> AsyncIterator[None]:
        ordered = sorted({sp for sp in service_point_ids if sp is not None}, key=str)
        acquired: list[asyncio.Lock] = []
        try:
            for sp in ordered:
                lock = self._lock_for(sp)
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


service_point_locks = ServicePointLocks()
