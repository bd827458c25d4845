"""
知识条目模型 (KnowledgeItem)

知识条目代表知识库中的一条逻辑知识（文档、FAQ、政策、产品说明等）。
条目内容会被切分成多个 KnowledgeChunk 进行向量化存储。

生命周期：
    processing ──成功──→ published
        │                    │
        └──失败──→ error     └── 编辑后 needs_reindex=true → 重新切分/向量化

软删除：is_active=false，永不物理删除（保证历史记录的引用完整性）
"""

from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from knowledge_pipeline.db.base import Base
from knowledge_pipeline.models.mixins import TimestampMixin, UuidPK

ITEM_STATUSES = ("draft", "processing", "published", "error")


class KnowledgeItem(TimestampMixin, Base):
    """
    知识条目表

    字段说明：
    - content: 调用方写入的原始内容
    - resolved_content: 物化后的内容（继承全局条目时拼接全局内容），
      只允许 materialize_resolved_content 写入
    - needs_reindex: 内容变更后置为 true，只有成功重建切片才会清除
    - extra_metadata: 字符数、切片数、向量模型、处理时间、original_content 快照等
    """
    __tablename__ = "knowledge_items"
    __table_args__ = (
        CheckConstraint(
            "source_url IS NULL OR source_file_path IS NULL",
            name="ck_knowledge_items_single_source",
        ),
        CheckConstraint(
            "status <> 'error' OR error_message IS NOT NULL",
            name="ck_knowledge_items_error_message",
        ),
    )

    id: Mapped[UuidPK]

    # 所属组织（租户）
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    agent_id: Mapped[str | None] = mapped_column(String(36), index=True)
    product_id: Mapped[str | None] = mapped_column(
        ForeignKey("products.id", ondelete="SET NULL"), index=True,
    )

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    content: Mapped[str | None] = mapped_column(Text)
    resolved_content: Mapped[str | None] = mapped_column(Text)
    content_hash: Mapped[str | None] = mapped_column(String(64))

    # 类型：manual / product / faq / policy / instruction / general
    type: Mapped[str] = mapped_column(String(50), nullable=False, default="manual")
    category: Mapped[str | None] = mapped_column(String(50))
    # 作用域：global（全组织）/ product（绑定某个产品）
    scope: Mapped[str] = mapped_column(String(20), nullable=False, default="global")

    # 状态：draft / processing / published / error
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="processing", index=True)
    error_message: Mapped[str | None] = mapped_column(Text)

    # 来源：import_txt / import_md / import_pdf / import_docx / import_url / conversation / manual / wizard
    source: Mapped[str | None] = mapped_column(String(50))
    source_url: Mapped[str | None] = mapped_column(Text)
    source_file_path: Mapped[str | None] = mapped_column(Text)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    needs_reindex: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    last_indexed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # 继承全局条目：resolved_content = 全局条目内容 + 本条目内容
    global_item_id: Mapped[str | None] = mapped_column(
        ForeignKey("knowledge_items.id", ondelete="SET NULL"), index=True,
    )
    inherits_global: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # 每次物化内容变化时递增
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # 注意：数据库列名为 metadata，属性名使用 extra_metadata 避免与 SQLAlchemy 冲突
    extra_metadata: Mapped[dict | None] = mapped_column("metadata", JSON, default=dict)

    created_by: Mapped[str | None] = mapped_column(String(64))
    updated_by: Mapped[str | None] = mapped_column(String(64))
