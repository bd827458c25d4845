"""
产品模型 (Product)

产品/服务目录中的一项。知识条目可以绑定到某个产品（scope=product）。
编辑请求中 LLM 给出的 product_slug 在保存前解析为 product_id。
"""

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from knowledge_pipeline.db.base import Base
from knowledge_pipeline.models.mixins import TimestampMixin, UuidPK


class Product(TimestampMixin, Base):
    """产品表：slug 在组织内唯一"""
    __tablename__ = "products"
    __table_args__ = (
        UniqueConstraint("organization_id", "slug", name="uq_products_org_slug"),
    )

    id: Mapped[UuidPK]
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
