"""
请求追踪中间件

- X-Request-ID：沿用调用方传入的值，没有则生成
- X-Organization-ID：可选，写入日志上下文
- 每个请求一行访问日志，级别随状态码变化；/health 的成功请求不记录
- 响应头带回 X-Request-ID 和 X-Response-Time
"""

import logging
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from knowledge_pipeline.infra.logging import StageTimer, set_organization_id, set_request_id

logger = logging.getLogger(__name__)

QUIET_PATHS = ("/health", "/favicon.ico")


def _log_level(request: Request, status_code: int) -> int | None:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    if request.url.path in QUIET_PATHS:
        return None
    return logging.INFO


class RequestTraceMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        set_request_id(request_id)
        set_organization_id(request.headers.get("X-Organization-ID"))
        timer = StageTimer()

        try:
            response = await call_next(request)
        except Exception:
            elapsed = timer.summary()["total_ms"]
            logger.exception(
                f"{request.method} {request.url.path} 未处理的异常 ({elapsed:.0f}ms)",
                extra={"method": request.method, "path": request.url.path, "duration_ms": elapsed},
            )
            raise

        elapsed = timer.summary()["total_ms"]
        level = _log_level(request, response.status_code)
        if level is not None:
            logger.log(
                level,
                f"{request.method} {request.url.path} {response.status_code} {elapsed:.0f}ms",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": elapsed,
                },
            )

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{elapsed:.0f}ms"
        return response
