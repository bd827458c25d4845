"""
知识条目接口

- POST  /v1/knowledge/items            创建文本条目并立即处理
- PATCH /v1/knowledge/items/{item_id}  直接编辑（写历史、物化、可选重处理）
- POST  /v1/knowledge/process          首次入库处理
- POST  /v1/knowledge/reprocess        按 original_content 重新向量化
- POST  /v1/knowledge/reindex          重建 needs_reindex 条目
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_pipeline.api.deps import get_actor_id, get_db_session
from knowledge_pipeline.api.errors import http_error
from knowledge_pipeline.schemas.knowledge import (
    ItemCreateRequest,
    ItemResponse,
    ItemUpdateRequest,
    ProcessRequest,
    ProcessResponse,
    ReindexRequest,
    ReindexResponse,
    ReprocessRequest,
    ReprocessResponse,
)
from knowledge_pipeline.services.knowledge_store import get_item, record_history, update_item
from knowledge_pipeline.services.processing import (
    create_text_item,
    process_existing_item,
    process_item,
    reindex_dirty_items,
    reprocess_items,
    run_reindex_sweep,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/v1/knowledge/items", response_model=ProcessResponse, status_code=status.HTTP_201_CREATED)
async def create_item_endpoint(
    payload: ItemCreateRequest,
    db: AsyncSession = Depends(get_db_session),
    actor_id: str | None = Depends(get_actor_id),
):
    """
    创建文本条目

    条目先以 processing 状态写入，再切分和向量化；处理失败时条目为 error，
    响应中 success=false 并带上错误信息。
    """
    item, result = await create_text_item(
        db,
        organization_id=payload.organization_id,
        title=payload.title,
        content=payload.content,
        type=payload.type,
        source=payload.source,
        category=payload.category,
        scope=payload.scope,
        product_id=payload.product_id,
        agent_id=payload.agent_id,
        global_item_id=payload.global_item_id,
        inherits_global=payload.inherits_global,
        created_by=actor_id,
    )
    return ProcessResponse(**result.to_dict())


@router.patch("/v1/knowledge/items/{item_id}", response_model=ItemResponse)
async def update_item_endpoint(
    payload: ItemUpdateRequest,
    background_tasks: BackgroundTasks,
    item_id: str = Path(..., description="Knowledge item ID"),
    db: AsyncSession = Depends(get_db_session),
    actor_id: str | None = Depends(get_actor_id),
):
    """直接编辑条目，内容变化后依赖此条目的继承条目交给后台重建"""
    item = await get_item(db, item_id)
    if item is None or not item.is_active:
        raise http_error(status.HTTP_404_NOT_FOUND, "ITEM_NOT_FOUND", f"Item {item_id} not found")

    await record_history(
        db,
        organization_id=item.organization_id,
        item_id=item.id,
        change_type="update",
        change_source="manual",
        changed_by=actor_id,
        previous_title=item.title,
        previous_content=item.content,
        previous_resolved_content=item.resolved_content,
        new_title=payload.title or item.title,
        new_content=payload.content if payload.content is not None else item.content,
    )
    changed = await update_item(
        db,
        item,
        title=payload.title,
        content=payload.content,
        category=payload.category,
        updated_by=actor_id,
    )
    if payload.content is not None:
        item.extra_metadata = {**(item.extra_metadata or {}), "original_content": payload.content}
    await db.commit()

    if payload.reprocess and changed:
        await process_item(db, item, item.resolved_content or "")
        background_tasks.add_task(run_reindex_sweep, item.organization_id)

    return ItemResponse.from_item(item)


@router.post("/v1/knowledge/process", response_model=ProcessResponse)
async def process_endpoint(
    payload: ProcessRequest,
    db: AsyncSession = Depends(get_db_session),
):
    try:
        result = await process_existing_item(db, payload.item_id, payload.content)
    except LookupError as e:
        raise http_error(status.HTTP_404_NOT_FOUND, "ITEM_NOT_FOUND", str(e))
    return ProcessResponse(**result.to_dict())


@router.post("/v1/knowledge/reprocess", response_model=ReprocessResponse)
async def reprocess_endpoint(
    payload: ReprocessRequest,
    db: AsyncSession = Depends(get_db_session),
):
    """重处理不降级为零向量，向量服务错误会让条目进入 error"""
    summary = await reprocess_items(
        db,
        item_id=payload.item_id,
        item_ids=payload.item_ids,
        organization_id=payload.organization_id,
    )
    return ReprocessResponse(**summary.to_dict())


@router.post("/v1/knowledge/reindex", response_model=ReindexResponse)
async def reindex_endpoint(
    payload: ReindexRequest,
    db: AsyncSession = Depends(get_db_session),
):
    results = await reindex_dirty_items(db, payload.organization_id)
    return ReindexResponse(
        reindexed_items=sum(1 for r in results if r.success),
        results=[ProcessResponse(**r.to_dict()) for r in results],
    )
