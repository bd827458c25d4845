"""
API 依赖注入函数

使用示例：
    @router.post("/v1/knowledge/items")
    async def create(
        db: AsyncSession = Depends(get_db_session),
        actor_id: str | None = Depends(get_actor_id),
    ):
        pass
"""

from fastapi import Header

from knowledge_pipeline.db.session import get_db


async def get_actor_id(x_user_id: str | None = Header(default=None)) -> str | None:
    """
    当前操作人

    认证由上游网关完成，这里只读取 X-User-Id 头，用于 created_by / changed_by。
    """
    return x_user_id or None


# 重新导出数据库会话获取函数，方便路由模块导入
get_db_session = get_db
