"""按计划 ID 串行化生命周期命令

同一计划上的命令单写者执行；不同计划互不阻塞。
锁按需创建，最后一个持有/等待者退出后即从表中移除。
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class PlanLockRegistry:
    def __init__(self):
        self._locks: Dict[int, asyncio.Lock] = {}
        # 每个计划当前的持有者 + 等待者数量
        self._users: Dict[int, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, plan_id: int) -> AsyncIterator[None]:
        lock = self._locks.setdefault(plan_id, asyncio.Lock())
        self._users[plan_id] = self._users.get(plan_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[plan_id] -= 1
            if self._users[plan_id] == 0:
                del self._users[plan_id]
                del self._locks[plan_id]


# 进程内全局锁表：所有请求共享，保证跨会话的串行化
plan_locks = PlanLockRegistry()
