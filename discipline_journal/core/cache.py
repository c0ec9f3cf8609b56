import json
import logging
from datetime import timedelta
from typing import Any, Union

from discipline_journal.models.db import redis_client

logger = logging.getLogger(__name__)


class RedisCache:
    """
    Redis 缓存封装类，未启用 Redis 时所有操作都是空操作
    """
    def __init__(self, prefix: str = "trade_journal:", client=None):
        self.prefix = prefix
        self._client = client

    @property
    def client(self):
        return self._client if self._client is not None else redis_client

    def _make_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def get(self, key: str) -> Any:
        if not self.client:
            return None
        data = await self.client.get(self._make_key(key))
        if data is None:
            return None
        try:
            return json.loads(data)
        except (TypeError, ValueError):
            return data

    async def set(self, key: str, value: Any, expire: Union[int, timedelta, None] = None) -> bool:
        if not self.client:
            return False
        return await self.client.set(self._make_key(key), json.dumps(value), ex=expire)

    async def delete(self, key: str) -> bool:
        if not self.client:
            return False
        return await self.client.delete(self._make_key(key)) > 0


# 全局缓存实例
cache = RedisCache()
