"""
外部 API 重试

对限流的第三方 API 调用：只在 HTTP 429 时做指数退避重试，
等待时间为 base_delay * 2**attempt，最多 max_attempts 次。
其他状态码立即返回给调用方，网络异常直接向上抛出。
"""

import asyncio
import logging
from typing import Any

import httpx

from knowledge_pipeline.config import get_settings

logger = logging.getLogger(__name__)


async def fetch_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    max_attempts: int | None = None,
    base_delay: float | None = None,
    **kwargs: Any,
) -> httpx.Response:
    """
    发送请求，遇到 429 时退避重试

    Returns:
        最后一次的响应（可能仍是 429，由调用方处理）
    """
    settings = get_settings()
    if max_attempts is None:
        max_attempts = settings.external_retry_max_attempts
    if base_delay is None:
        base_delay = settings.external_retry_base_delay_seconds

    max_attempts = max(max_attempts, 1)
    for attempt in range(max_attempts):
        response = await client.request(method, url, **kwargs)
        if response.status_code != 429 or attempt == max_attempts - 1:
            return response
        delay = base_delay * (2 ** attempt)
        logger.warning(f"{method} {url} 返回 429，{delay:.1f}s 后重试 ({attempt + 1}/{max_attempts})")
        await asyncio.sleep(delay)
    return response
