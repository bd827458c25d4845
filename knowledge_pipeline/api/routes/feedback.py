"""
反馈分类接口

只返回分类和修改建议，不修改知识库或智能体配置。
"""

from fastapi import APIRouter

from knowledge_pipeline.api.errors import llm_http_error
from knowledge_pipeline.exceptions import LLMError
from knowledge_pipeline.schemas.feedback import FeedbackClassification, FeedbackClassifyRequest
from knowledge_pipeline.services.feedback import classify_feedback

router = APIRouter()


@router.post("/v1/knowledge/feedback/classify", response_model=FeedbackClassification)
async def classify(payload: FeedbackClassifyRequest):
    try:
        return await classify_feedback(
            customer_message=payload.customer_message,
            agent_answer=payload.agent_answer,
            user_feedback=payload.user_feedback,
            rag_context=payload.rag_context,
            agent_rules_summary=payload.agent_rules_summary,
        )
    except LLMError as e:
        raise llm_http_error(e)
