"""
日志配置

- 开发/测试环境输出单行文本，其他环境输出 JSON（可用 LOG_JSON 覆盖）
- 每条日志带上当前请求的 request_id 和 organization_id（由请求追踪中间件写入 contextvar）
- logger.info(..., extra={...}) 中的字段在 JSON 模式下放入 "extra"

    setup_logging()
    logger = logging.getLogger(__name__)
    logger.info(f"条目 {item_id} 处理完成", extra={"item_id": item_id, "chunk_count": 3})
"""

import json
import logging
import sys
import time
from contextvars import ContextVar
from datetime import datetime, timezone

from knowledge_pipeline.config import get_settings

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
organization_id_var: ContextVar[str | None] = ContextVar("organization_id", default=None)

# 第三方库只保留 WARNING 以上
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "openai", "pypdf", "sqlalchemy.engine")

_RECORD_FIELDS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message", "asctime", "request_id", "organization_id",
}


def set_request_id(request_id: str) -> None:
    request_id_var.set(request_id)


def set_organization_id(organization_id: str | None) -> None:
    organization_id_var.set(organization_id)


class LogContextFilter(logging.Filter):
    """把 contextvar 中的追踪字段挂到 LogRecord 上"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        record.organization_id = organization_id_var.get() or "-"
        return True


class JsonLogFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in ("request_id", "organization_id"):
            value = getattr(record, key, "-")
            if value != "-":
                payload[key] = value

        extra = {k: v for k, v in vars(record).items() if k not in _RECORD_FIELDS and not k.startswith("_")}
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


TEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(request_id).8s] %(name)s - %(message)s"


def setup_logging(level: str | None = None, json_format: bool | None = None) -> None:
    settings = get_settings()
    log_level = getattr(logging, (level or settings.log_level).upper(), logging.INFO)

    if json_format is None:
        json_format = settings.log_json
    if json_format is None:
        json_format = settings.environment not in ("dev", "development", "test")

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(LogContextFilter())
    handler.setFormatter(JsonLogFormatter() if json_format else logging.Formatter(TEXT_FORMAT, "%Y-%m-%d %H:%M:%S"))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class StageTimer:
    """
    分阶段计时

        timer = StageTimer()
        timer.lap("chunk")
        timer.lap("embed")
        timer.summary()  # {"chunk_ms": 3.1, "embed_ms": 147.0, "total_ms": 150.1}
    """

    def __init__(self):
        self._start = self._last = time.perf_counter()
        self._laps: dict[str, float] = {}

    def lap(self, name: str) -> None:
        now = time.perf_counter()
        self._laps[f"{name}_ms"] = round((now - self._last) * 1000, 2)
        self._last = now

    def summary(self) -> dict[str, float]:
        return {**self._laps, "total_ms": round((time.perf_counter() - self._start) * 1000, 2)}
