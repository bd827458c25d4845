"""
模型公共字段

- UuidPK: 字符串 UUID 主键，插入时由应用生成
- TimestampMixin: created_at / updated_at，由数据库填充

使用示例：
    class Product(TimestampMixin, Base):
        __tablename__ = "products"
        id: Mapped[UuidPK]
"""

from datetime import datetime
from typing import Annotated
from uuid import uuid4

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column


def new_uuid() -> str:
    return str(uuid4())


# String(36): xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx
UuidPK = Annotated[str, mapped_column(String(36), primary_key=True, default=new_uuid)]


class TimestampMixin:
    """创建/更新时间（带时区），updated_at 在每次 UPDATE 时刷新"""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
