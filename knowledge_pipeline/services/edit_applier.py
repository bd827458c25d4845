"""
编辑请求执行服务 (Edit Applier)

前置条件：
- 请求存在（否则 EDIT_REQUEST_NOT_FOUND）
- 状态为 pending / confirmed（否则 "Request already {status}"）
- 未过期（否则置为 expired 并失败）

按顺序执行每项变更，每项变更与其历史记录在同一次提交中写入：
- update: 历史记录 previous_* + new_*，然后更新 content（标题/分类仅在提供时更新）
- create: 新条目 status=draft、source=conversation，历史记录只有 new_*
- delete: 历史记录只有 previous_*，然后软删除（片段保留）

单项失败只记录到 errors，不中断后续变更。全部执行后请求标记为 applied，
"applied" 表示"已尝试并记录"，不代表全部成功；响应中的 success 仅在没有错误时为 true。

执行结束后返回组织内所有 needs_reindex=true 的有效条目，由调用方触发后台重建。
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from pydantic import TypeAdapter, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_pipeline.config import get_settings
from knowledge_pipeline.exceptions import EditRequestError
from knowledge_pipeline.models import KnowledgeEditRequest, KnowledgeItem
from knowledge_pipeline.models.knowledge_edit_request import APPLICABLE_STATUSES
from knowledge_pipeline.schemas.edit import CreateChange, DeleteChange, ProposedChange, UpdateChange
from knowledge_pipeline.services.knowledge_store import (
    get_item,
    list_dirty_items,
    materialize_resolved_content,
    record_history,
    soft_delete_item,
    update_item,
    utcnow,
)

logger = logging.getLogger(__name__)

CHANGE_SOURCE = "conversation"

_change_adapter = TypeAdapter(ProposedChange)


class ChangeError(Exception):
    """单项变更失败"""


@dataclass
class AppliedChange:
    action: str
    item_id: str
    title: str | None = None

    def to_dict(self) -> dict:
        return {"action": self.action, "item_id": self.item_id, "title": self.title}


@dataclass
class ApplyResult:
    request_id: str
    organization_id: str
    applied_changes: list[AppliedChange] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    dirty_item_ids: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "applied_changes": [c.to_dict() for c in self.applied_changes],
            "errors": self.errors,
            "reindexed_items": len(self.dirty_item_ids),
        }


def _as_aware(value: datetime) -> datetime:
    # SQLite 读出的时间不带时区
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


async def _load_applicable_request(session: AsyncSession, request_id: str) -> KnowledgeEditRequest:
    request = await session.get(KnowledgeEditRequest, request_id)
    if request is None:
        raise EditRequestError(f"Edit request {request_id} not found", code="EDIT_REQUEST_NOT_FOUND")

    if request.status not in APPLICABLE_STATUSES:
        raise EditRequestError(f"Request already {request.status}", code="EDIT_REQUEST_NOT_APPLICABLE")

    if _as_aware(request.expires_at) < utcnow():
        request.status = "expired"
        await session.commit()
        logger.info(f"编辑请求 {request_id} 已过期")
        raise EditRequestError("Edit request expired", code="EDIT_REQUEST_EXPIRED")

    return request


async def _apply_update(
    session: AsyncSession,
    request: KnowledgeEditRequest,
    change: UpdateChange,
    actor_id: str | None,
) -> AppliedChange:
    item = await get_item(session, change.item_id, request.organization_id)
    if item is None or not item.is_active:
        raise ChangeError(f"Item {change.item_id} not found")

    new_content = change.proposed_content if change.proposed_content is not None else item.content
    await record_history(
        session,
        organization_id=request.organization_id,
        item_id=item.id,
        edit_request_id=request.id,
        change_type="update",
        change_source=CHANGE_SOURCE,
        change_description=request.user_request,
        changed_by=actor_id,
        previous_title=item.title,
        previous_content=item.content,
        previous_resolved_content=item.resolved_content,
        new_title=change.proposed_title or item.title,
        new_content=new_content,
    )
    await update_item(
        session,
        item,
        title=change.proposed_title or None,
        content=new_content,
        category=change.category,
        updated_by=actor_id,
    )
    return AppliedChange(action="update", item_id=item.id, title=item.title)


async def _apply_create(
    session: AsyncSession,
    request: KnowledgeEditRequest,
    change: CreateChange,
    actor_id: str | None,
) -> AppliedChange:
    settings = get_settings()
    title = change.proposed_title or settings.default_new_item_title
    item = KnowledgeItem(
        organization_id=request.organization_id,
        title=title,
        content=change.proposed_content,
        category=change.category or "general",
        scope=change.scope or "global",
        product_id=change.product_id,
        type="manual",
        source=CHANGE_SOURCE,
        status="draft",
        is_active=True,
        needs_reindex=False,
        version=1,
        extra_metadata={"original_content": change.proposed_content, "edit_request_id": request.id},
        created_by=actor_id,
        updated_by=actor_id,
    )
    session.add(item)
    await session.flush()
    await materialize_resolved_content(session, item)

    await record_history(
        session,
        organization_id=request.organization_id,
        item_id=item.id,
        edit_request_id=request.id,
        change_type="create",
        change_source=CHANGE_SOURCE,
        change_description=request.user_request,
        changed_by=actor_id,
        new_title=title,
        new_content=change.proposed_content,
        new_resolved_content=item.resolved_content,
    )
    return AppliedChange(action="create", item_id=item.id, title=title)


async def _apply_delete(
    session: AsyncSession,
    request: KnowledgeEditRequest,
    change: DeleteChange,
    actor_id: str | None,
) -> AppliedChange:
    item = await get_item(session, change.item_id, request.organization_id)
    if item is None or not item.is_active:
        raise ChangeError(f"Item {change.item_id} not found")

    await record_history(
        session,
        organization_id=request.organization_id,
        item_id=item.id,
        edit_request_id=request.id,
        change_type="delete",
        change_source=CHANGE_SOURCE,
        change_description=request.user_request,
        changed_by=actor_id,
        previous_title=item.title,
        previous_content=item.content,
        previous_resolved_content=item.resolved_content,
    )
    await soft_delete_item(session, item, updated_by=actor_id)
    return AppliedChange(action="delete", item_id=item.id, title=item.title)


async def apply_edit_request(
    session: AsyncSession,
    request_id: str,
    actor_id: str | None = None,
) -> ApplyResult:
    """
    执行编辑请求

    Raises:
        EditRequestError: 请求不存在、已是终态或已过期
    """
    request = await _load_applicable_request(session, request_id)
    result = ApplyResult(request_id=request.id, organization_id=request.organization_id)
    raw_changes = list(request.proposed_changes or [])

    for position, raw in enumerate(raw_changes, start=1):
        try:
            change = _change_adapter.validate_python(raw)
        except ValidationError as e:
            result.errors.append(f"Change {position}: invalid change descriptor ({e.error_count()} errors)")
            continue

        try:
            if isinstance(change, UpdateChange):
                applied = await _apply_update(session, request, change, actor_id)
            elif isinstance(change, CreateChange):
                applied = await _apply_create(session, request, change, actor_id)
            else:
                applied = await _apply_delete(session, request, change, actor_id)
            await session.commit()
        except ChangeError as e:
            # 目标不存在时尚未写入任何内容
            result.errors.append(str(e))
            continue
        except SQLAlchemyError as e:
            logger.error(f"编辑请求 {request_id} 第 {position} 项变更失败: {e}", exc_info=True)
            await session.rollback()
            await session.refresh(request)
            result.errors.append(f"Change {position} ({change.action}) failed: {e}")
            continue

        result.applied_changes.append(applied)

    await session.refresh(request)
    dirty_items = await list_dirty_items(session, request.organization_id)
    result.dirty_item_ids = [i.id for i in dirty_items]

    request.status = "applied"
    request.applied_at = utcnow()
    request.apply_errors = list(result.errors)
    await session.commit()

    logger.info(
        f"编辑请求 {request.id} 已执行: {len(result.applied_changes)} 成功, "
        f"{len(result.errors)} 失败, {len(result.dirty_item_ids)} 个条目待重建"
    )
    return result
