"""
知识条目变更历史 (KnowledgeItemHistory)

只追加的审计记录：每一次对条目内容的创建/更新/删除都会写入一行，
记录变更前后的快照以及触发变更的操作者和请求。
"""

from datetime import datetime

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from knowledge_pipeline.db.base import Base
from knowledge_pipeline.models.mixins import UuidPK

CHANGE_TYPES = ("create", "update", "delete")


class KnowledgeItemHistory(Base):
    """
    变更历史表

    - create: previous_* 为空
    - delete: new_* 为空
    - item_id 不设外键，历史记录独立于条目存在
    """
    __tablename__ = "knowledge_item_history"

    id: Mapped[UuidPK]
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    item_id: Mapped[str | None] = mapped_column(String(36), index=True)
    edit_request_id: Mapped[str | None] = mapped_column(String(36), index=True)

    previous_title: Mapped[str | None] = mapped_column(String(500))
    previous_content: Mapped[str | None] = mapped_column(Text)
    previous_resolved_content: Mapped[str | None] = mapped_column(Text)

    new_title: Mapped[str | None] = mapped_column(String(500))
    new_content: Mapped[str | None] = mapped_column(Text)
    new_resolved_content: Mapped[str | None] = mapped_column(Text)

    change_type: Mapped[str] = mapped_column(String(20), nullable=False)
    # conversation / manual / system
    change_source: Mapped[str | None] = mapped_column(String(50))
    change_description: Mapped[str | None] = mapped_column(Text)
    changed_by: Mapped[str | None] = mapped_column(String(64))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
