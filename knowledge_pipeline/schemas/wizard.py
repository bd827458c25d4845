"""向导对话、内容合成、分类内容生成与内容增强模型"""

from typing import Literal

from pydantic import BaseModel, Field

from knowledge_pipeline.schemas.common import CamelModel

WizardStage = Literal["discovery", "slots", "faq_generation", "complete"]
WizardType = Literal["general", "faq", "policy", "product"]


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class FaqPair(BaseModel):
    question: str
    answer: str


class WizardTurnRequest(CamelModel):
    user_message: str = Field(..., min_length=1)
    recent_messages: list[ChatMessage] = Field(default_factory=list)
    current_slots: dict[str, str] = Field(default_factory=dict)
    wizard_type: WizardType = "general"


class WizardTurnResponse(CamelModel):
    """一轮向导对话的结构化输出（对外使用 camelCase）"""
    message: str
    stage: WizardStage
    next_question: str | None = None
    slot_updates: dict[str, str] = Field(default_factory=dict)
    missing_slots: list[str] = Field(default_factory=list)
    suggested_questions: list[str] = Field(default_factory=list)
    faq_answered: FaqPair | None = None


class SynthesizeRequest(CamelModel):
    slots: dict[str, str] = Field(default_factory=dict)
    faqs: list[FaqPair] = Field(default_factory=list)
    wizard_type: WizardType = "general"
    # 提供 organizationId 时，合成的文档直接入库
    organization_id: str | None = None
    agent_id: str | None = None
    product_id: str | None = None
    category: str | None = None


class SynthesizeResponse(BaseModel):
    title: str
    content: str
    item_id: str | None = None
    status: str | None = None
    chunk_count: int | None = None


class GenerateContentRequest(CamelModel):
    category: str = Field(..., min_length=1)
    scope: Literal["global", "product"] = "global"
    product_name: str | None = None
    collected_info: dict[str, str] = Field(default_factory=dict)
    conversation_excerpts: list[str] = Field(default_factory=list)


class GenerateContentResponse(CamelModel):
    title: str
    content: str
    key_points: list[str] = Field(default_factory=list)


class EnhanceQuestionsResponse(CamelModel):
    item_type: str
    type_label: str
    questions: list[str]


class EnhanceRequest(CamelModel):
    item_type: str = "general"
    title: str | None = None
    current_content: str | None = None
    answers: list[str] = Field(default_factory=list)


class EnhanceResponse(BaseModel):
    title: str
    content: str
