"""
ORM基础模型

提供主键、时间戳、表名生成与常用的 CRUD 操作
"""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar, List, Optional, TYPE_CHECKING

from sqlalchemy import DateTime, Integer, func
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import (
    Mapped,
    Query,
    Session,
    declarative_base,
    declared_attr,
    mapped_column,
    object_session,
)

if TYPE_CHECKING:
    from typing_extensions import Self

from .utils import to_snake_case


# 声明基类
Base = declarative_base()


class CoreModel(Base):
    """ORM基础模型类

    提供功能：
    - 自增主键 id
    - 自动表名生成（驼峰转下划线）
    - 创建/更新时间戳
    - 常用 CRUD 方法

    使用示例:
        from ytag.orm import CoreModel, init_database

        init_database("sqlite:///./test.db")

        class BlogPost(CoreModel):
            # __tablename__ 自动生成为 "blog_post"
            title: Mapped[str] = mapped_column(String(200))

        post = BlogPost(title="Hello")
        post.save(commit=True)
    """
    __abstract__ = True

    # query 属性在 init_database 后通过 scoped_session.query_property() 设置
    if TYPE_CHECKING:
        query: ClassVar[Query[Self]]
    query = None

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True, comment="主键ID")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False),
        server_default=func.now(),
        comment="创建时间"
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=False),
        nullable=True,
        onupdate=func.now(),
        comment="更新时间"
    )

    # 自动根据类名创建表名
    @declared_attr.directive
    def __tablename__(cls) -> str:
        """驼峰命名转下划线"""
        name = cls.__name__
        if '_' in name:
            raise ValueError(f'{name}字符中包含下划线，无法转换')
        return to_snake_case(name)

    def __repr__(self):
        return f"<{self.__class__.__name__} id={self.id}>"

    @property
    def session(self) -> Session:
        """获取当前 session

        优先使用对象已关联的 session，其次使用 query 属性绑定的 scoped session。
        """
        session = object_session(self)
        if session is not None:
            return session
        return self.__class__.get_session()

    @classmethod
    def get_session(cls) -> Session:
        """获取类级别的 session"""
        # 未映射的抽象基类不能访问 query_property
        if sa_inspect(cls, raiseerr=False) is not None and cls.query is not None:
            return cls.query.session
        from .db_session import db_manager
        return db_manager.get_session()

    # ==================== CRUD 操作方法 ====================

    def save(self, commit: bool = False) -> Self:
        """保存对象（自动判断新增或更新）

        标签的协调发生在 flush 阶段，commit=False 时需要由调用方提交或 flush。

        Args:
            commit: 是否立即提交，默认False

        Returns:
            self: 返回自身，支持链式调用
        """
        session = self.session
        session.add(self)
        if commit:
            session.commit()
        return self

    def delete(self, commit: bool = False) -> None:
        """删除对象

        Args:
            commit: 是否立即提交，默认False
        """
        session = self.session
        session.delete(self)
        if commit:
            session.commit()

    @classmethod
    def save_all(cls, objects: list, commit: bool = False) -> list:
        """批量保存对象"""
        if not objects:
            return objects
        session = cls.get_session()
        session.add_all(objects)
        if commit:
            session.commit()
        return objects

    @classmethod
    def get(cls, id) -> Optional[Self]:
        """根据主键获取对象"""
        return cls.get_session().get(cls, id)

    @classmethod
    def get_all(cls) -> List[Self]:
        """获取所有对象"""
        return cls.query.order_by(cls.id).all()


__all__ = [
    "Base",
    "CoreModel",
]
