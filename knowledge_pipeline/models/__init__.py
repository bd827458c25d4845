"""
数据模型层 (ORM Models)

数据模型关系图：
    Product (产品)
       │
       └── KnowledgeItem (知识条目) ──┬── KnowledgeChunk (片段 + 向量)
                                      └── KnowledgeItemHistory (变更历史)

    KnowledgeEditRequest (编辑请求) ──执行──→ KnowledgeItem + KnowledgeItemHistory
"""

from knowledge_pipeline.models.knowledge_chunk import KnowledgeChunk
from knowledge_pipeline.models.knowledge_edit_request import KnowledgeEditRequest
from knowledge_pipeline.models.knowledge_item import KnowledgeItem
from knowledge_pipeline.models.knowledge_item_history import KnowledgeItemHistory
from knowledge_pipeline.models.product import Product

__all__ = [
    "KnowledgeChunk",
    "KnowledgeEditRequest",
    "KnowledgeItem",
    "KnowledgeItemHistory",
    "Product",
]
