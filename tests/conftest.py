"""
测试公共夹具

- 配置：切换到 test 环境、hash 向量、进程内条目锁、临时存储目录
- 数据库：内存 SQLite（aiosqlite + StaticPool），每个测试独立建表
"""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from knowledge_pipeline import models  # noqa: F401
from knowledge_pipeline.config import get_settings
from knowledge_pipeline.db.base import Base
from knowledge_pipeline.infra.item_lock import get_item_lock_manager


@pytest.fixture(autouse=True)
def test_settings(tmp_path):
    settings = get_settings()
    original = settings.model_dump()

    settings.environment = "test"
    settings.embedding_provider = "hash"
    settings.embedding_dim = 1024
    settings.redis_url = None
    settings.storage_root = str(tmp_path / "storage")
    settings.reprocess_item_delay_seconds = 0
    settings.external_retry_base_delay_seconds = 0
    settings.chunk_max_chars = 1500
    settings.chunk_overlap_chars = 200
    get_item_lock_manager.cache_clear()

    yield settings

    for key, value in original.items():
        setattr(settings, key, value)
    get_item_lock_manager.cache_clear()


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s
