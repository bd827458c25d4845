"""ORM 声明式基类，Base.metadata 供 init_models 和 Alembic 使用"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass
