"""
知识条目 / 片段存储服务

所有对 knowledge_items 和 knowledge_chunks 的写入都经过这里：

- create_item: 唯一确定 source 来源的入口，新条目状态为 processing
- replace_chunks: 在条目锁内"删除全部 → 插入全部"，同一事务提交
- mark_published / mark_error: 一次处理的终态
- materialize_resolved_content: 派生内容的唯一写入点，
  每条修改路径（创建、直接编辑、编辑请求执行、软删除）都必须调用
- list_dirty_items: needs_reindex=true 且 is_active=true 的条目，供重建扫描使用
"""

import hashlib
import logging
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_pipeline.exceptions import IngestionError
from knowledge_pipeline.infra.item_lock import get_item_lock_manager
from knowledge_pipeline.models import KnowledgeChunk, KnowledgeItem, KnowledgeItemHistory
from knowledge_pipeline.pipeline.base import ChunkPiece

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


async def create_item(
    session: AsyncSession,
    *,
    organization_id: str,
    title: str,
    source: str,
    content: str | None = None,
    type: str = "manual",
    category: str | None = None,
    scope: str = "global",
    status: str = "processing",
    product_id: str | None = None,
    agent_id: str | None = None,
    source_url: str | None = None,
    source_file_path: str | None = None,
    metadata: dict | None = None,
    global_item_id: str | None = None,
    inherits_global: bool = False,
    created_by: str | None = None,
) -> KnowledgeItem:
    """
    创建知识条目并提交

    content 不为空时立即物化 resolved_content。
    """
    if source_url and source_file_path:
        raise IngestionError("source_url and source_file_path are mutually exclusive")

    item = KnowledgeItem(
        organization_id=organization_id,
        title=title,
        content=content,
        type=type,
        category=category,
        scope=scope,
        status=status,
        product_id=product_id,
        agent_id=agent_id,
        source=source,
        source_url=source_url,
        source_file_path=source_file_path,
        extra_metadata=dict(metadata or {}),
        global_item_id=global_item_id,
        inherits_global=inherits_global,
        is_active=True,
        needs_reindex=False,
        version=1,
        created_by=created_by,
        updated_by=created_by,
    )
    session.add(item)
    await session.flush()

    if content is not None:
        await materialize_resolved_content(session, item)

    await session.commit()
    logger.info(f"创建知识条目: {item.id} ({source}, status={status})")
    return item


async def get_item(session: AsyncSession, item_id: str, organization_id: str | None = None) -> KnowledgeItem | None:
    item = await session.get(KnowledgeItem, item_id)
    if item is None:
        return None
    if organization_id is not None and item.organization_id != organization_id:
        return None
    return item


async def materialize_resolved_content(
    session: AsyncSession,
    item: KnowledgeItem,
    _visited: set[str] | None = None,
) -> bool:
    """
    重新计算 resolved_content

    - 继承全局条目（inherits_global 且全局条目仍有效）时：全局条目的 resolved_content + 空行 + 本条目 content
    - 否则等于 content
    - 内容哈希变化时 version+1 并置 needs_reindex=true
    - 之后级联到所有继承本条目的有效条目

    Returns:
        本条目的物化内容是否发生变化
    """
    visited = _visited if _visited is not None else set()
    visited.add(item.id)

    resolved = item.content or ""
    if item.inherits_global and item.global_item_id:
        parent = await session.get(KnowledgeItem, item.global_item_id)
        if parent is not None and parent.is_active:
            parent_text = parent.resolved_content or parent.content or ""
            resolved = f"{parent_text}\n\n{resolved}" if parent_text else resolved

    new_hash = content_hash(resolved)
    changed = new_hash != item.content_hash
    if changed:
        if item.content_hash is not None:
            item.version = (item.version or 1) + 1
        item.resolved_content = resolved
        item.content_hash = new_hash
        item.needs_reindex = True
        await session.flush()

    result = await session.execute(
        select(KnowledgeItem).where(
            KnowledgeItem.global_item_id == item.id,
            KnowledgeItem.inherits_global.is_(True),
            KnowledgeItem.is_active.is_(True),
        )
    )
    for child in result.scalars().all():
        if child.id not in visited:
            await materialize_resolved_content(session, child, visited)

    return changed


async def update_item(
    session: AsyncSession,
    item: KnowledgeItem,
    *,
    title: str | None = None,
    content: str | None = None,
    category: str | None = None,
    updated_by: str | None = None,
) -> bool:
    """修改条目字段并物化（不提交），返回物化内容是否变化"""
    if title is not None:
        item.title = title
    if content is not None:
        item.content = content
    if category is not None:
        item.category = category
    item.updated_by = updated_by
    return await materialize_resolved_content(session, item)


async def soft_delete_item(session: AsyncSession, item: KnowledgeItem, updated_by: str | None = None) -> None:
    """软删除：片段保留，只是不再参与检索和重建扫描"""
    item.is_active = False
    item.updated_by = updated_by
    await session.flush()
    await materialize_resolved_content(session, item)


async def record_history(
    session: AsyncSession,
    *,
    organization_id: str,
    item_id: str,
    change_type: str,
    change_source: str,
    change_description: str | None = None,
    changed_by: str | None = None,
    edit_request_id: str | None = None,
    previous_title: str | None = None,
    previous_content: str | None = None,
    previous_resolved_content: str | None = None,
    new_title: str | None = None,
    new_content: str | None = None,
    new_resolved_content: str | None = None,
) -> KnowledgeItemHistory:
    """追加一条变更历史（不提交）"""
    entry = KnowledgeItemHistory(
        organization_id=organization_id,
        item_id=item_id,
        edit_request_id=edit_request_id,
        change_type=change_type,
        change_source=change_source,
        change_description=change_description,
        changed_by=changed_by,
        previous_title=previous_title,
        previous_content=previous_content,
        previous_resolved_content=previous_resolved_content,
        new_title=new_title,
        new_content=new_content,
        new_resolved_content=new_resolved_content,
    )
    session.add(entry)
    await session.flush()
    return entry


async def replace_chunks(
    session: AsyncSession,
    item: KnowledgeItem,
    pieces: list[ChunkPiece],
    vectors: list[list[float]],
) -> list[KnowledgeChunk]:
    """
    整体替换条目的片段集合

    删除和插入在同一事务中提交，并由条目锁串行化，
    两次并发处理同一条目不会交错。
    """
    if len(pieces) != len(vectors):
        raise IngestionError(f"Chunk/vector count mismatch: {len(pieces)} chunks, {len(vectors)} vectors")

    async with get_item_lock_manager().lock(item.id):
        await session.execute(delete(KnowledgeChunk).where(KnowledgeChunk.item_id == item.id))
        chunks = [
            KnowledgeChunk(
                organization_id=item.organization_id,
                item_id=item.id,
                chunk_index=piece.index,
                content=piece.text,
                embedding=vector,
                extra_metadata=dict(piece.metadata),
            )
            for piece, vector in zip(pieces, vectors)
        ]
        session.add_all(chunks)
        await session.commit()
    return chunks


async def mark_published(session: AsyncSession, item: KnowledgeItem, metadata_patch: dict, clear_reindex: bool = True) -> None:
    """处理成功：status=published，合并元数据"""
    item.status = "published"
    item.error_message = None
    item.extra_metadata = {**(item.extra_metadata or {}), **metadata_patch}
    item.last_indexed_at = utcnow()
    if clear_reindex:
        item.needs_reindex = False
    await session.commit()


async def mark_error(session: AsyncSession, item: KnowledgeItem, message: str) -> None:
    """处理失败：status=error，错误信息对用户可见"""
    item.status = "error"
    item.error_message = message or "Unknown processing error"
    await session.commit()
    logger.warning(f"条目 {item.id} 处理失败: {item.error_message}")


async def list_dirty_items(session: AsyncSession, organization_id: str | None = None) -> list[KnowledgeItem]:
    """needs_reindex=true 且 is_active=true 的条目"""
    stmt = select(KnowledgeItem).where(
        KnowledgeItem.needs_reindex.is_(True),
        KnowledgeItem.is_active.is_(True),
    )
    if organization_id is not None:
        stmt = stmt.where(KnowledgeItem.organization_id == organization_id)
    result = await session.execute(stmt.order_by(KnowledgeItem.created_at))
    return list(result.scalars().all())


async def count_chunks(session: AsyncSession, item_id: str) -> int:
    result = await session.execute(select(KnowledgeChunk.id).where(KnowledgeChunk.item_id == item_id))
    return len(result.scalars().all())
