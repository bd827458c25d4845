"""
健康检查接口

存活探测，同时检查数据库连接。
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_pipeline.api.deps import get_db_session

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def healthcheck(db: AsyncSession = Depends(get_db_session)) -> dict:
    """数据库不可用时 database 为 error，服务本身仍返回 200"""
    try:
        await db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as e:
        logger.error(f"数据库健康检查失败: {e}")
        database = "error"
    return {"status": "ok", "database": database}
