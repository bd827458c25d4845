"""
应用实例

启动时：
- dev/test 环境直接 create_all，其他环境依赖 Alembic
- 上次进程中断时仍为 processing 的条目置为 error
关闭时释放条目锁的 Redis 连接。

错误响应统一为 {"detail": ..., "code": ...}，HTTPException.detail 为字典时其余字段原样带回。
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from knowledge_pipeline.api.routes import api_router
from knowledge_pipeline.config import get_settings
from knowledge_pipeline.db.session import SessionLocal, init_models
from knowledge_pipeline.infra.item_lock import get_item_lock_manager
from knowledge_pipeline.infra.logging import setup_logging
from knowledge_pipeline.middleware import RequestTraceMiddleware
from knowledge_pipeline.services.processing import mark_interrupted_items

setup_logging()
logger = logging.getLogger(__name__)

settings = get_settings()

AUTO_CREATE_ENVIRONMENTS = ("dev", "development", "test")


async def _recover_interrupted_items() -> None:
    try:
        async with SessionLocal() as session:
            await mark_interrupted_items(session)
    except SQLAlchemyError as e:
        # 首次启动时表可能还不存在
        logger.warning(f"检测中断条目时出错: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"{settings.app_name} 启动, environment={settings.environment}")
    if settings.environment in AUTO_CREATE_ENVIRONMENTS:
        await init_models()
    await _recover_interrupted_items()

    yield

    await get_item_lock_manager().close()
    logger.info(f"{settings.app_name} 已停止")


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.add_middleware(RequestTraceMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(api_router)


def _error_body(detail, default_code: str) -> dict:
    if not isinstance(detail, dict):
        return {"detail": detail, "code": default_code}
    body = {k: v for k, v in detail.items() if k not in ("code", "detail")}
    body["detail"] = detail.get("detail") or ""
    body["code"] = detail.get("code") or default_code
    return body


@app.exception_handler(HTTPException)
async def http_exception_handler(_: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.detail, "UNKNOWN_ERROR"),
        headers=exc.headers,
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    # ctx 中可能是 model_validator 抛出的 ValueError 对象
    errors = []
    for err in exc.errors():
        err = dict(err)
        if "ctx" in err:
            err["ctx"] = {k: str(v) for k, v in err["ctx"].items()}
        errors.append(err)
    return errors


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_: Request, exc: RequestValidationError):
    return JSONResponse(status_code=422, content={"detail": jsonable_errors(exc), "code": "VALIDATION_ERROR"})
