"""
向导与内容增强接口

- POST /v1/knowledge/wizard                        一轮向导对话
- POST /v1/knowledge/wizard/synthesize             字段 + FAQ 合成文档（可选直接入库）
- POST /v1/knowledge/wizard/generate               按分类生成文档
- GET  /v1/knowledge/enhance/questions/{item_type} 增强引导问题
- POST /v1/knowledge/enhance                       增强条目内容
"""

import logging

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_pipeline.api.deps import get_actor_id, get_db_session
from knowledge_pipeline.api.errors import http_error, llm_http_error
from knowledge_pipeline.exceptions import LLMError
from knowledge_pipeline.schemas.wizard import (
    EnhanceQuestionsResponse,
    EnhanceRequest,
    EnhanceResponse,
    GenerateContentRequest,
    GenerateContentResponse,
    SynthesizeRequest,
    SynthesizeResponse,
    WizardTurnRequest,
    WizardTurnResponse,
)
from knowledge_pipeline.services.enhance import enhance_content, get_enhancement_questions
from knowledge_pipeline.services.processing import create_text_item
from knowledge_pipeline.services.wizard import (
    generate_category_content,
    run_wizard_turn,
    synthesize_document,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/v1/knowledge/wizard", response_model=WizardTurnResponse, response_model_by_alias=True)
async def wizard_turn(payload: WizardTurnRequest):
    """格式错误由服务层降级为兜底回复，这里只处理调用失败"""
    try:
        return await run_wizard_turn(
            user_message=payload.user_message,
            recent_messages=payload.recent_messages,
            current_slots=payload.current_slots,
            wizard_type=payload.wizard_type,
        )
    except LLMError as e:
        raise llm_http_error(e)


@router.post("/v1/knowledge/wizard/synthesize", response_model=SynthesizeResponse)
async def synthesize(
    payload: SynthesizeRequest,
    db: AsyncSession = Depends(get_db_session),
    actor_id: str | None = Depends(get_actor_id),
):
    """
    合成知识文档

    请求带 organizationId 时，合成结果作为 source=wizard 的条目写入并处理。
    """
    try:
        document = await synthesize_document(payload.slots, payload.faqs, payload.wizard_type)
    except ValueError as e:
        raise http_error(status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR", str(e))
    except LLMError as e:
        raise llm_http_error(e)

    response = SynthesizeResponse(title=document["title"], content=document["content"])
    if payload.organization_id:
        item, result = await create_text_item(
            db,
            organization_id=payload.organization_id,
            title=document["title"],
            content=document["content"],
            type=payload.wizard_type,
            source="wizard",
            category=payload.category,
            scope="product" if payload.product_id else "global",
            product_id=payload.product_id,
            agent_id=payload.agent_id,
            metadata={"wizard_slots": payload.slots, "wizard_faq_count": len(payload.faqs)},
            created_by=actor_id,
        )
        response.item_id = item.id
        response.status = result.status
        response.chunk_count = result.chunk_count
    return response


@router.post("/v1/knowledge/wizard/generate", response_model=GenerateContentResponse, response_model_by_alias=True)
async def generate(payload: GenerateContentRequest):
    try:
        data = await generate_category_content(
            category=payload.category,
            scope=payload.scope,
            product_name=payload.product_name,
            collected_info=payload.collected_info,
            conversation_excerpts=payload.conversation_excerpts,
        )
    except LLMError as e:
        raise llm_http_error(e)
    return GenerateContentResponse.model_validate(data)


@router.get(
    "/v1/knowledge/enhance/questions/{item_type}",
    response_model=EnhanceQuestionsResponse,
    response_model_by_alias=True,
)
async def enhance_questions(item_type: str = Path(..., description="Knowledge item type")):
    return EnhanceQuestionsResponse.model_validate(get_enhancement_questions(item_type))


@router.post("/v1/knowledge/enhance", response_model=EnhanceResponse)
async def enhance(payload: EnhanceRequest):
    try:
        data = await enhance_content(
            item_type=payload.item_type,
            title=payload.title,
            current_content=payload.current_content,
            answers=payload.answers,
        )
    except LLMError as e:
        raise llm_http_error(e)
    return EnhanceResponse(**data)
