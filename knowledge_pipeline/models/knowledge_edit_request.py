"""
知识编辑请求模型 (KnowledgeEditRequest)

用户用自然语言描述修改，LLM 解析为结构化变更集后保存为待确认请求。
请求有有效期，过期后不可执行。

状态流转：
    pending ──确认──→ confirmed
       │                 │
       ├──执行──→ applied（终态）
       └──超时──→ expired（终态）
"""

from datetime import datetime

from sqlalchemy import DateTime, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from knowledge_pipeline.db.base import Base
from knowledge_pipeline.models.mixins import TimestampMixin, UuidPK

EDIT_REQUEST_STATUSES = ("pending", "confirmed", "applied", "expired")
APPLICABLE_STATUSES = ("pending", "confirmed")


class KnowledgeEditRequest(TimestampMixin, Base):
    """编辑请求表"""
    __tablename__ = "knowledge_edit_requests"

    id: Mapped[UuidPK]
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    user_request: Mapped[str] = mapped_column(Text, nullable=False)
    # 有序的变更列表，每项结构见 schemas.edit.ProposedChange
    proposed_changes: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    warnings: Mapped[list | None] = mapped_column(JSON, default=list)
    explanation: Mapped[str | None] = mapped_column(Text)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    applied_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    # 执行时收集的逐条错误
    apply_errors: Mapped[list | None] = mapped_column(JSON)

    created_by: Mapped[str | None] = mapped_column(String(64))
