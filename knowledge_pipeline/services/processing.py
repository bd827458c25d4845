"""
切分与向量化处理服务

所有来源（文本、文件、URL、向导合成、编辑后重建）共用同一处理流程：
    文本 → Chunker → "标题\\n\\n片段" → Embedding → replace_chunks → published / error

两种向量化策略：
- 首次入库 (allow_fallback=True)：向量服务不可用时写入零向量，条目仍然发布，
  needs_reindex 保持为 true，等待之后的重建扫描补齐向量
- 重处理 (allow_fallback=False)：向量服务错误直接导致条目 error

维度/数量不符在两种策略下都是致命错误。
"""

import asyncio
import logging
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from knowledge_pipeline.config import get_settings
from knowledge_pipeline.exceptions import ChunkingError, EmbeddingError, IngestionError
from knowledge_pipeline.infra.embeddings import embed_with_fallback
from knowledge_pipeline.infra.logging import StageTimer
from knowledge_pipeline.models import KnowledgeItem
from knowledge_pipeline.pipeline import operator_registry
from knowledge_pipeline.pipeline.base import BaseChunkerOperator
from knowledge_pipeline.services.knowledge_store import (
    create_item,
    list_dirty_items,
    mark_error,
    mark_published,
    replace_chunks,
    utcnow,
)

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Processing interrupted by service restart"
NO_CONTENT_MESSAGE = "No content to process"


@dataclass
class ProcessResult:
    """单个条目的处理结果"""
    item_id: str
    success: bool
    status: str
    chunk_count: int = 0
    char_count: int = 0
    used_fallback_embeddings: bool = False
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "success": self.success,
            "status": self.status,
            "chunk_count": self.chunk_count,
            "char_count": self.char_count,
            "used_fallback_embeddings": self.used_fallback_embeddings,
            "error": self.error,
        }


@dataclass
class ReprocessSummary:
    processed: int
    successful: int
    failed: int
    total_chunks: int
    results: list[ProcessResult]

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "successful": self.successful,
            "failed": self.failed,
            "total_chunks": self.total_chunks,
            "results": [r.to_dict() for r in self.results],
        }


def get_chunker() -> BaseChunkerOperator:
    """按配置从注册表获取切分器"""
    settings = get_settings()
    chunker_cls = operator_registry.require("chunker", settings.chunker_name)
    return chunker_cls(max_chars=settings.chunk_max_chars, overlap_chars=settings.chunk_overlap_chars)


async def _fail_item(session: AsyncSession, item: KnowledgeItem, message: str) -> ProcessResult:
    """回滚本次处理的写入，把条目置为 error"""
    item_id = item.id
    await session.rollback()
    await session.refresh(item)
    await mark_error(session, item, message)
    return ProcessResult(item_id=item_id, success=False, status="error", error=message)


async def process_item(
    session: AsyncSession,
    item: KnowledgeItem,
    text: str,
    *,
    allow_fallback: bool = True,
    extra_metadata: dict | None = None,
) -> ProcessResult:
    """
    对一个条目执行完整的切分 + 向量化 + 片段替换

    任何失败都会把条目置为 error 并记录错误信息，不会让条目停留在 processing。
    """
    settings = get_settings()
    timer = StageTimer()
    item_id = item.id

    try:
        pieces = get_chunker().chunk(text or "")
        if not pieces:
            raise ChunkingError(NO_CONTENT_MESSAGE)
        timer.lap("chunk")

        inputs = [f"{item.title}\n\n{piece.text}" for piece in pieces]
        vectors, used_fallback = await embed_with_fallback(inputs, allow_fallback=allow_fallback)
        timer.lap("embed")

        await replace_chunks(session, item, pieces, vectors)
        timer.lap("store")

        char_count = len(text)
        metadata_patch = {
            "char_count": char_count,
            "chunk_count": len(pieces),
            "processed_at": utcnow().isoformat(),
            "embedding_model": settings.embedding_model,
            "embedding_dim": settings.embedding_dim,
            "embedding_fallback": used_fallback,
            **(extra_metadata or {}),
        }
        await mark_published(session, item, metadata_patch, clear_reindex=not used_fallback)
    except (ChunkingError, EmbeddingError, IngestionError, SQLAlchemyError) as e:
        logger.error(f"条目 {item_id} 处理失败: {e}", extra={"item_id": item_id})
        return await _fail_item(session, item, str(e))
    except Exception as e:
        logger.error(f"条目 {item_id} 处理时出现未预期错误: {e!r}", extra={"item_id": item_id}, exc_info=True)
        return await _fail_item(session, item, f"Unexpected processing error: {e!r}")

    metrics = timer.summary()
    logger.info(
        f"条目 {item_id} 处理完成: {len(pieces)} 个片段, {metrics['total_ms']:.0f}ms",
        extra={"item_id": item_id, "chunk_count": len(pieces), **metrics},
    )
    return ProcessResult(
        item_id=item_id,
        success=True,
        status=item.status,
        chunk_count=len(pieces),
        char_count=char_count,
        used_fallback_embeddings=used_fallback,
    )


async def create_text_item(
    session: AsyncSession,
    *,
    organization_id: str,
    title: str,
    content: str,
    type: str = "manual",
    source: str = "manual",
    category: str | None = None,
    scope: str = "global",
    product_id: str | None = None,
    agent_id: str | None = None,
    global_item_id: str | None = None,
    inherits_global: bool = False,
    metadata: dict | None = None,
    created_by: str | None = None,
) -> tuple[KnowledgeItem, ProcessResult]:
    """创建文本条目（保存 original_content 快照）并立即处理"""
    item = await create_item(
        session,
        organization_id=organization_id,
        title=title,
        content=content,
        type=type,
        source=source,
        category=category,
        scope=scope,
        product_id=product_id,
        agent_id=agent_id,
        global_item_id=global_item_id,
        inherits_global=inherits_global,
        metadata={**(metadata or {}), "original_content": content},
        created_by=created_by,
    )
    result = await process_item(session, item, item.resolved_content or content)
    return item, result


async def process_existing_item(session: AsyncSession, item_id: str, content: str) -> ProcessResult:
    """处理入口：对已创建的条目执行首次入库"""
    item = await session.get(KnowledgeItem, item_id)
    if item is None:
        raise LookupError(f"Item {item_id} not found")
    if not (item.extra_metadata or {}).get("original_content"):
        item.extra_metadata = {**(item.extra_metadata or {}), "original_content": content}
    item.status = "processing"
    await session.commit()
    return await process_item(session, item, content)


async def reprocess_items(
    session: AsyncSession,
    *,
    item_id: str | None = None,
    item_ids: list[str] | None = None,
    organization_id: str | None = None,
) -> ReprocessSummary:
    """
    显式重新向量化

    只处理 metadata 中保存了 original_content 的条目，向量服务错误不降级。
    """
    settings = get_settings()
    stmt = select(KnowledgeItem).where(KnowledgeItem.is_active.is_(True))
    if item_id:
        stmt = stmt.where(KnowledgeItem.id == item_id)
    elif item_ids:
        stmt = stmt.where(KnowledgeItem.id.in_(item_ids))
    elif organization_id:
        stmt = stmt.where(KnowledgeItem.organization_id == organization_id)
    else:
        raise ValueError("itemId, itemIds or organizationId is required")

    result = await session.execute(stmt.order_by(KnowledgeItem.created_at))
    items = [i for i in result.scalars().all() if (i.extra_metadata or {}).get("original_content")]
    logger.info(f"重处理 {len(items)} 个条目")

    results: list[ProcessResult] = []
    for index, item in enumerate(items):
        if index > 0 and settings.reprocess_item_delay_seconds > 0:
            await asyncio.sleep(settings.reprocess_item_delay_seconds)

        await session.refresh(item)
        item.status = "processing"
        item.error_message = None
        await session.commit()
        results.append(
            await process_item(
                session,
                item,
                item.extra_metadata["original_content"],
                allow_fallback=False,
                extra_metadata={"reprocessed_at": utcnow().isoformat()},
            )
        )

    successful = sum(1 for r in results if r.success)
    return ReprocessSummary(
        processed=len(results),
        successful=successful,
        failed=len(results) - successful,
        total_chunks=sum(r.chunk_count for r in results),
        results=results,
    )


async def reindex_dirty_items(session: AsyncSession, organization_id: str) -> list[ProcessResult]:
    """
    重建扫描：对所有 needs_reindex=true 的有效条目重新切分和向量化

    单个条目失败只记录日志，不影响其余条目。
    """
    items = await list_dirty_items(session, organization_id)
    results: list[ProcessResult] = []
    for item in items:
        # 前一个条目失败时会回滚，回滚使会话中的对象全部过期
        await session.refresh(item)
        text = item.resolved_content or item.content or ""
        result = await process_item(session, item, text)
        if not result.success:
            logger.error(f"重建条目 {result.item_id} 失败: {result.error}", extra={"item_id": result.item_id})
        results.append(result)
    logger.info(f"重建扫描完成: organization={organization_id}, {len(results)} 个条目")
    return results


async def run_reindex_sweep(organization_id: str, session_factory: async_sessionmaker | None = None) -> None:
    """
    后台重建扫描（编辑请求执行后触发，fire-and-forget）

    使用独立会话，错误只记录不抛出。
    """
    if session_factory is None:
        from knowledge_pipeline.db.session import SessionLocal
        session_factory = SessionLocal

    async with session_factory() as session:
        try:
            await reindex_dirty_items(session, organization_id)
        except SQLAlchemyError as e:
            logger.error(f"后台重建扫描失败: organization={organization_id}: {e}", exc_info=True)


async def mark_interrupted_items(session: AsyncSession) -> int:
    """服务启动时把停留在 processing 的条目置为 error"""
    result = await session.execute(
        update(KnowledgeItem)
        .where(KnowledgeItem.status == "processing")
        .values(status="error", error_message=INTERRUPTED_MESSAGE)
    )
    await session.commit()
    count = result.rowcount or 0
    if count:
        logger.warning(f"{count} 个条目处理被服务重启中断，已标记为 error")
    return count
