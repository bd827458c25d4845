"""
条目级锁

同一条目的两次处理（编辑触发的重建与手动重新上传）不能交错执行
"删除全部片段 → 插入全部片段"。ItemLockManager 按条目 ID 串行化片段替换：

- 配置了 redis_url：使用 Redis 分布式锁，多实例部署下同样有效
- 未配置：使用进程内 asyncio.Lock（单实例模式）

锁只包住数据库写入，向量在加锁前就已计算完毕。
"""

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncIterator

import redis.asyncio as aioredis

from knowledge_pipeline.config import get_settings

logger = logging.getLogger(__name__)


class ItemLockManager:
    """按条目 ID 加锁"""

    def __init__(self, redis_url: str | None = None, timeout: int | None = None, key_prefix: str | None = None):
        settings = get_settings()
        self.timeout = timeout or settings.item_lock_timeout_seconds
        self.key_prefix = key_prefix or settings.item_lock_key_prefix
        self._client = None
        self._local_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

        redis_url = redis_url if redis_url is not None else settings.redis_url
        if redis_url:
            self._client = aioredis.from_url(redis_url)
            logger.info(f"条目锁使用 Redis: {redis_url}")
        else:
            logger.info("Redis 未配置，条目锁使用进程内锁")

    @property
    def distributed(self) -> bool:
        return self._client is not None

    def _local_lock(self, item_id: str) -> asyncio.Lock:
        lock = self._local_locks.get(item_id)
        if lock is None:
            lock = asyncio.Lock()
            self._local_locks[item_id] = lock
        return lock

    @asynccontextmanager
    async def lock(self, item_id: str) -> AsyncIterator[None]:
        """
        获取条目锁

        Redis 锁设置了超时，持有进程崩溃后锁会自动释放。
        """
        if self._client is not None:
            async with self._client.lock(
                f"{self.key_prefix}{item_id}",
                timeout=self.timeout,
                blocking_timeout=self.timeout,
            ):
                yield
            return

        local_lock = self._local_lock(item_id)
        async with local_lock:
            yield

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            logger.info("Redis 连接已关闭")


@lru_cache(maxsize=1)
def get_item_lock_manager() -> ItemLockManager:
    return ItemLockManager()
