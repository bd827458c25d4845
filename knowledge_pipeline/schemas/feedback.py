"""反馈分类模型"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from knowledge_pipeline.schemas.common import CamelModel

FeedbackClass = Literal["KB_FACT", "AGENT_RULE", "MISSING_INFO", "FLOW_TOOL"]


class KbUpdatePatch(BaseModel):
    title: str = ""
    content: str = ""
    type: Literal["faq", "policy", "product", "general"] = "general"
    tags: list[str] = Field(default_factory=list)


class AgentRulePatch(BaseModel):
    rule: str = ""
    example_good_response: str = ""


class WizardQuestionPatch(BaseModel):
    question: str = ""
    slot: str = ""


class FlowToolPatch(BaseModel):
    rule: str = ""
    trigger: str = ""


class FeedbackPatch(BaseModel):
    model_config = ConfigDict(extra="ignore")

    kb_update: KbUpdatePatch | None = None
    agent_rule_update: AgentRulePatch | None = None
    wizard_question: WizardQuestionPatch | None = None
    flow_tool_update: FlowToolPatch | None = None


class FeedbackClassifyRequest(CamelModel):
    customer_message: str | None = None
    agent_answer: str = Field(..., min_length=1)
    user_feedback: str = Field(..., min_length=1)
    rag_context: str | None = None
    agent_rules_summary: str | None = None
    agent_id: str | None = None
    organization_id: str | None = None


class FeedbackClassification(BaseModel):
    """分类结果：只是建议，不直接修改知识库"""
    classification: FeedbackClass
    reason: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    patch: FeedbackPatch = Field(default_factory=FeedbackPatch)
