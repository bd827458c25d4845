"""
异步引擎与会话

- SessionLocal: 请求和后台任务共用的会话工厂（expire_on_commit=False）
- get_db: FastAPI 依赖，每个请求一个会话
- init_models: dev/test 环境直接建表
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from knowledge_pipeline.config import get_settings
from knowledge_pipeline.db.base import Base

settings = get_settings()


def _engine_options(database_url: str) -> dict:
    """
    连接池参数

    SQLite（测试环境）不支持 pool_size 等参数，只对服务端数据库启用连接池配置。
    """
    if database_url.startswith("sqlite"):
        return {}
    return {
        "pool_pre_ping": True,  # 获取连接前先测试是否有效
        "pool_size": 10,
        "max_overflow": 20,
        "pool_timeout": 30,
        "pool_recycle": 1800,   # 防止数据库端超时断开
    }


engine = create_async_engine(
    settings.database_url,
    echo=False,
    future=True,
    **_engine_options(settings.database_url),
)

SessionLocal = async_sessionmaker(
    engine,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with SessionLocal() as session:
        yield session


async def init_models() -> None:
    from knowledge_pipeline import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
