"""
导入编排服务

文件导入：
    1. 原始文件先写入对象存储（提取失败时源文件仍可追溯）
    2. 创建条目（processing，source_file_path 指向存储路径）
    3. 按 MIME/扩展名选择提取器，提取失败 → 条目 error，不进入切分
    4. 写入 content 和 original_content 快照，进入共享处理流程

URL 导入：
    1. 校验 URL，带 User-Agent 抓取（仅 429 退避重试）
    2. HTML 提取正文，内容不足直接失败（不创建条目）
    3. 创建条目（source_url + 抓取时间元数据），进入共享处理流程
"""

import logging
import os
from dataclasses import dataclass

import httpx
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from knowledge_pipeline.config import get_settings
from knowledge_pipeline.exceptions import ExtractionError, UrlFetchError
from knowledge_pipeline.infra.http_retry import fetch_with_retry
from knowledge_pipeline.infra.storage import LocalObjectStorage, build_storage_path, get_storage
from knowledge_pipeline.infra.url_utils import url_hostname, validate_url
from knowledge_pipeline.models import KnowledgeItem
from knowledge_pipeline.pipeline import operator_registry
from knowledge_pipeline.pipeline.extractors import select_extractor
from knowledge_pipeline.services.knowledge_store import (
    create_item,
    mark_error,
    materialize_resolved_content,
    utcnow,
)
from knowledge_pipeline.services.processing import ProcessResult, process_item

logger = logging.getLogger(__name__)

# 任何文件类型提取后都必须达到的最少字符数
MIN_FILE_TEXT_CHARS = 50
INSUFFICIENT_TEXT_MESSAGE = "File does not contain enough text to process."


@dataclass
class ImportResult:
    item: KnowledgeItem
    process: ProcessResult

    def to_dict(self) -> dict:
        return {
            "success": self.process.success,
            "item_id": self.item.id,
            "title": self.item.title,
            "status": self.item.status,
            "chunk_count": self.process.chunk_count,
            "char_count": self.process.char_count,
            "error": self.process.error,
        }


def _default_title(filename: str) -> str:
    stem, _ = os.path.splitext(filename)
    return stem or filename or "Documento"


def extract_file_text(data: bytes, filename: str, mime_type: str | None) -> tuple[str, str]:
    """
    按文件类型提取文本

    Returns:
        (文本, 条目 source 标记)
    """
    extractor_name, source = select_extractor(filename, mime_type)
    extractor = operator_registry.require("extractor", extractor_name)()
    extracted = extractor.extract(data)
    text = extracted.text.strip()
    if len(text) < MIN_FILE_TEXT_CHARS:
        raise ExtractionError(INSUFFICIENT_TEXT_MESSAGE)
    return text, source


async def import_file(
    session: AsyncSession,
    *,
    organization_id: str,
    filename: str,
    data: bytes,
    mime_type: str | None,
    type: str,
    title: str | None = None,
    agent_id: str | None = None,
    created_by: str | None = None,
    storage: LocalObjectStorage | None = None,
) -> ImportResult:
    """
    导入上传的文件

    Raises:
        StorageError: 文件写入失败（此时尚未创建条目）
        ExtractionError: 提取失败，条目已标记为 error（item_id 在异常上）
    """
    storage = storage or get_storage()
    storage_path = await storage.upload(build_storage_path(organization_id, filename), data)

    _, source = select_extractor(filename, mime_type)
    item = await create_item(
        session,
        organization_id=organization_id,
        agent_id=agent_id,
        title=title or _default_title(filename),
        type=type,
        source=source,
        source_file_path=storage_path,
        metadata={"file_name": filename, "file_size": len(data), "file_type": mime_type or ""},
        created_by=created_by,
    )

    try:
        text, _ = await run_in_threadpool(extract_file_text, data, filename, mime_type)
    except ExtractionError as e:
        await mark_error(session, item, str(e))
        raise ExtractionError(str(e), item_id=item.id) from e

    logger.info(f"文件 {filename} 提取 {len(text)} 个字符", extra={"item_id": item.id})
    item.content = text
    item.extra_metadata = {**(item.extra_metadata or {}), "original_content": text}
    await materialize_resolved_content(session, item)
    await session.commit()

    result = await process_item(session, item, item.resolved_content or text)
    return ImportResult(item=item, process=result)


async def fetch_page(url: str, client: httpx.AsyncClient | None = None) -> str:
    """抓取网页 HTML，非 2xx 或网络错误抛出 UrlFetchError"""
    settings = get_settings()
    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=settings.url_fetch_timeout_seconds, follow_redirects=True)
    try:
        response = await fetch_with_retry(
            client,
            "GET",
            url,
            headers={
                "User-Agent": settings.url_fetch_user_agent,
                "Accept": "text/html,application/xhtml+xml",
            },
        )
    except httpx.HTTPError as e:
        raise UrlFetchError(f"Failed to fetch URL: {e}") from e
    finally:
        if owns_client:
            await client.aclose()

    if not response.is_success:
        raise UrlFetchError(f"Failed to fetch URL: {response.status_code} {response.reason_phrase}")
    if len(response.content) > settings.url_max_bytes:
        raise UrlFetchError(f"Page is too large ({len(response.content)} bytes)")
    return response.text


async def import_url(
    session: AsyncSession,
    *,
    organization_id: str,
    url: str,
    type: str,
    title: str | None = None,
    agent_id: str | None = None,
    created_by: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> ImportResult:
    """
    导入网页

    Raises:
        ValueError: URL 格式非法
        UrlFetchError: 抓取失败
        ExtractionError: 正文不足（不创建条目）
    """
    url = validate_url(url)
    html = await fetch_page(url, client=client)

    extractor = operator_registry.require("extractor", "html")()
    extracted = await run_in_threadpool(extractor.extract, html)
    hostname = url_hostname(url)
    page_title = title or extracted.title or hostname

    item = await create_item(
        session,
        organization_id=organization_id,
        agent_id=agent_id,
        title=page_title,
        content=extracted.text,
        type=type,
        source="import_url",
        source_url=url,
        metadata={
            "url": url,
            "domain": hostname,
            "scraped_at": utcnow().isoformat(),
            "original_content": extracted.text,
            **extracted.metadata,
        },
        created_by=created_by,
    )
    logger.info(f"网页 {url} 提取 {len(extracted.text)} 个字符", extra={"item_id": item.id})

    result = await process_item(session, item, item.resolved_content or extracted.text)
    return ImportResult(item=item, process=result)
