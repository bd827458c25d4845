"""知识条目、处理和导入相关的请求/响应模型"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from knowledge_pipeline.schemas.common import CamelModel

Scope = Literal["global", "product"]


class ItemCreateRequest(CamelModel):
    """创建文本条目请求"""
    organization_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=500)
    content: str = Field(..., min_length=1)
    type: str = Field(default="manual", max_length=50, description="manual/product/faq/policy/instruction/general")
    category: str | None = Field(default=None, max_length=50)
    scope: Scope = "global"
    product_id: str | None = None
    agent_id: str | None = None
    source: str = Field(default="manual", max_length=50)
    global_item_id: str | None = None
    inherits_global: bool = False


class ItemUpdateRequest(CamelModel):
    """直接编辑条目请求（未提供的字段保持不变）"""
    title: str | None = Field(default=None, min_length=1, max_length=500)
    content: str | None = Field(default=None, min_length=1)
    category: str | None = Field(default=None, max_length=50)
    reprocess: bool = Field(default=True, description="编辑后立即重新切分和向量化")

    @model_validator(mode="after")
    def ensure_any_field(self):
        if self.title is None and self.content is None and self.category is None:
            raise ValueError("title、content 或 category 至少提供一个")
        return self


class ItemResponse(BaseModel):
    """知识条目响应"""
    id: str
    organization_id: str
    title: str
    type: str
    category: str | None = None
    scope: str
    product_id: str | None = None
    status: str
    error_message: str | None = None
    source: str | None = None
    source_url: str | None = None
    source_file_path: str | None = None
    is_active: bool
    needs_reindex: bool
    version: int
    metadata: dict | None = None
    created_at: datetime | None = None

    @classmethod
    def from_item(cls, item) -> "ItemResponse":
        return cls(
            id=item.id,
            organization_id=item.organization_id,
            title=item.title,
            type=item.type,
            category=item.category,
            scope=item.scope,
            product_id=item.product_id,
            status=item.status,
            error_message=item.error_message,
            source=item.source,
            source_url=item.source_url,
            source_file_path=item.source_file_path,
            is_active=item.is_active,
            needs_reindex=item.needs_reindex,
            version=item.version,
            metadata=item.extra_metadata,
            created_at=item.created_at,
        )


class ProcessRequest(CamelModel):
    """首次入库处理请求"""
    item_id: str = Field(..., min_length=1)
    content: str


class ProcessResponse(BaseModel):
    """单个条目处理结果"""
    success: bool
    item_id: str
    status: str
    chunk_count: int = 0
    char_count: int = 0
    used_fallback_embeddings: bool = False
    error: str | None = None


class ReprocessRequest(CamelModel):
    """重处理请求：itemId / itemIds / organizationId 三选一"""
    item_id: str | None = None
    item_ids: list[str] | None = None
    organization_id: str | None = None

    @model_validator(mode="after")
    def ensure_selector(self):
        if not self.item_id and not self.item_ids and not self.organization_id:
            raise ValueError("itemId、itemIds 或 organizationId 必须提供其一")
        return self


class ReprocessResponse(BaseModel):
    processed: int
    successful: int
    failed: int
    total_chunks: int
    results: list[ProcessResponse]


class ReindexRequest(CamelModel):
    organization_id: str = Field(..., min_length=1)


class ReindexResponse(BaseModel):
    reindexed_items: int
    results: list[ProcessResponse]


class ImportUrlRequest(CamelModel):
    """URL 导入请求"""
    url: str = Field(..., min_length=1)
    organization_id: str = Field(..., min_length=1)
    title: str | None = Field(default=None, max_length=500)
    type: str = Field(default="general", max_length=50)
    agent_id: str | None = None


class ImportResponse(BaseModel):
    """文件 / URL 导入响应"""
    success: bool
    item_id: str
    title: str
    status: str
    chunk_count: int = 0
    char_count: int = 0
    error: str | None = None
