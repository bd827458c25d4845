"""
编辑请求相关模型

LLM 返回的 proposed_changes 是不可信的 JSON，在持久化之前
按 action 字段校验为三种变更之一：

- update: 必须引用已有 item_id，proposed_title / proposed_content 为空表示不变
- create: item_id 为空，proposed_content 必填
- delete: 必须引用已有 item_id
"""

from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from knowledge_pipeline.schemas.common import CamelModel

Scope = Literal["global", "product"]


class _ChangeBase(BaseModel):
    model_config = ConfigDict(extra="ignore")

    category: str | None = None
    change_summary: str | None = None
    current_title: str | None = None
    current_content: str | None = None
    scope: Scope | None = None
    product_slug: str | None = None
    # 由服务端根据 product_slug 解析，不信任模型输出
    product_id: str | None = None


class UpdateChange(_ChangeBase):
    action: Literal["update"]
    item_id: str = Field(..., min_length=1)
    proposed_title: str | None = None
    proposed_content: str | None = None


class CreateChange(_ChangeBase):
    action: Literal["create"]
    item_id: None = None
    proposed_title: str | None = None
    proposed_content: str = Field(..., min_length=1)


class DeleteChange(_ChangeBase):
    action: Literal["delete"]
    item_id: str = Field(..., min_length=1)


ProposedChange = Annotated[Union[UpdateChange, CreateChange, DeleteChange], Field(discriminator="action")]


class EditProposal(BaseModel):
    """LLM 对编辑指令的解析结果"""
    model_config = ConfigDict(extra="ignore")

    understood: bool = False
    needs_clarification: str | None = None
    proposed_changes: list[ProposedChange] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    explanation: str | None = None


class EditRequestCreate(CamelModel):
    organization_id: str = Field(..., min_length=1)
    user_request: str = Field(..., min_length=1)


class EditRequestResponse(BaseModel):
    """编辑请求解析结果：understood=false 时不持久化任何内容"""
    success: bool
    understood: bool
    request_id: str | None = None
    needs_clarification: str | None = None
    proposed_changes: list[ProposedChange] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    explanation: str | None = None
    expires_at: datetime | None = None


class ApplyEditRequest(CamelModel):
    request_id: str = Field(..., min_length=1)


class AppliedChange(BaseModel):
    action: str
    item_id: str
    title: str | None = None


class ApplyEditResponse(BaseModel):
    """执行结果：请求始终标记为 applied，success 仅表示没有逐条错误"""
    success: bool
    applied_changes: list[AppliedChange]
    errors: list[str]
    reindexed_items: int
