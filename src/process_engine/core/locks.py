"""
流程请求级互斥锁
"""
import asyncio
import weakref
from contextlib import asynccontextmanager


class RequestLockRegistry:
    """按请求ID分配的 asyncio 锁，无人持有时自动回收"""

    def __init__(self):
        self._locks = weakref.WeakValueDictionary()

    def get(self, request_id: str) -> asyncio.Lock:
        lock = self._locks.get(request_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[request_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, request_id: str):
        """持有指定请求的锁"""
        lock = self.get(request_id)
        async with lock:
            yield lock

    def __len__(self):
        return len(self._locks)
