"""
知识片段模型 (KnowledgeChunk) - 语义检索的基本单位

数据流向: KnowledgeItem → Chunker → Embedding → KnowledgeChunk

每次（重）处理都会整体删除并重建条目的全部片段，片段从不单独修改。
"""

from sqlalchemy import ForeignKey, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from knowledge_pipeline.db.base import Base
from knowledge_pipeline.models.mixins import TimestampMixin, UuidPK


class KnowledgeChunk(TimestampMixin, Base):
    """片段表：chunk_index 从 0 开始连续编号，同一条目内唯一"""
    __tablename__ = "knowledge_chunks"
    __table_args__ = (
        UniqueConstraint("item_id", "chunk_index", name="uq_knowledge_chunks_item_index"),
    )

    id: Mapped[UuidPK]
    # 所属组织（冗余存储，便于查询过滤）
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    item_id: Mapped[str] = mapped_column(
        ForeignKey("knowledge_items.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    # 固定维度的向量（默认 1024），维度在写入前由 Embedding 客户端校验
    embedding: Mapped[list] = mapped_column(JSON, nullable=False)
    # {"char_count": 1234, "token_estimate": 309}
    extra_metadata: Mapped[dict | None] = mapped_column("metadata", JSON, default=dict)
