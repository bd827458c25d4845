"""
自然语言编辑接口

- POST /v1/knowledge/edit-requests        解析编辑指令，生成待确认的变更集
- POST /v1/knowledge/edit-requests/apply  执行已确认的变更集，随后后台重建
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_pipeline.api.deps import get_actor_id, get_db_session
from knowledge_pipeline.api.errors import edit_request_http_error
from knowledge_pipeline.exceptions import EditRequestError
from knowledge_pipeline.schemas.edit import (
    ApplyEditRequest,
    ApplyEditResponse,
    EditRequestCreate,
    EditRequestResponse,
)
from knowledge_pipeline.services.edit_applier import apply_edit_request
from knowledge_pipeline.services.edit_broker import interpret_edit_request
from knowledge_pipeline.services.processing import run_reindex_sweep

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/v1/knowledge/edit-requests", response_model=EditRequestResponse)
async def create_edit_request(
    payload: EditRequestCreate,
    db: AsyncSession = Depends(get_db_session),
    actor_id: str | None = Depends(get_actor_id),
):
    """LLM 不可用时返回 understood=false，不会报错也不会保存任何内容"""
    result = await interpret_edit_request(
        db,
        organization_id=payload.organization_id,
        user_request=payload.user_request,
        created_by=actor_id,
    )
    return EditRequestResponse(**result.to_dict())


@router.post("/v1/knowledge/edit-requests/apply", response_model=ApplyEditResponse)
async def apply_edit_request_endpoint(
    payload: ApplyEditRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db_session),
    actor_id: str | None = Depends(get_actor_id),
):
    try:
        result = await apply_edit_request(db, payload.request_id, actor_id=actor_id)
    except EditRequestError as e:
        raise edit_request_http_error(e)

    if result.dirty_item_ids:
        background_tasks.add_task(run_reindex_sweep, result.organization_id)

    return ApplyEditResponse(**result.to_dict())
