"""标签模型定义

提供 Tag / Tagging 的抽象模型和一键创建模型的工厂函数。

使用方式：
=========

级别1：零配置快速启用（推荐）
-------------------
    from ytag.taggable import create_tag_models

    tags = create_tag_models()
    Tag, Tagging = tags.Tag, tags.Tagging

    class Article(CoreModel, TaggableMixin):
        __tag_model__ = Tag
        __tagging_model__ = Tagging
        __tag_contexts__ = ("tag", "category")

级别2：完全自定义（继承抽象类）
------------------------
    from ytag.orm import CoreModel
    from ytag.taggable import AbstractTag, AbstractTagging

    class Tag(CoreModel, AbstractTag):
        __tablename__ = "my_tag"

    class Tagging(CoreModel, AbstractTagging):
        __tablename__ = "my_tagging"
        __tag_model__ = Tag
"""

from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple, Type
import uuid

from sqlalchemy import ForeignKey, Index, Integer, String, delete, exists, select
from sqlalchemy.orm import Mapped, declared_attr, mapped_column, relationship

from ytag.log import get_logger

logger = get_logger()


class AbstractTag:
    """标签抽象模型

    字段说明:
        - name: 标签名称，跨实体类型、跨上下文共享

    Tag 不会因为最后一条 Tagging 被删除而自动删除，
    需要清理时显式调用 delete_orphans()。
    """

    # 由工厂函数或子类设置，delete_orphans 使用
    __tagging_model__: Type["AbstractTagging"] = None

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        comment="标签名称"
    )

    def __repr__(self):
        return f"<{self.__class__.__name__} id={self.id} name={self.name!r}>"

    @classmethod
    def find_by_names(cls, names: Sequence[str], session=None) -> List["AbstractTag"]:
        """按名称批量查找标签（按 id 排序）"""
        if not names:
            return []
        session = session or cls.query.session
        stmt = select(cls).where(cls.name.in_(list(names))).order_by(cls.id)
        return list(session.scalars(stmt))

    @classmethod
    def delete_orphans(cls, session=None, commit: bool = False) -> int:
        """删除没有任何 Tagging 引用的标签

        Returns:
            删除的行数
        """
        tagging_model = cls.__tagging_model__
        if tagging_model is None:
            raise ValueError(f"{cls.__name__} 未设置 __tagging_model__，无法判断孤儿标签")

        session = session or cls.query.session
        stmt = (
            delete(cls)
            .where(~exists().where(tagging_model.tag_id == cls.id))
            .execution_options(synchronize_session="fetch")
        )
        result = session.execute(stmt)
        if commit:
            session.commit()
        logger.info(f"清理孤儿标签 {result.rowcount} 个")
        return result.rowcount


def tagging_indexes(tablename: str) -> Tuple[Index, Index]:
    """Tagging 表的复合索引"""
    return (
        Index(f"ix_{tablename}_taggable_context", "taggable_type", "taggable_id", "context"),
        Index(f"ix_{tablename}_tag_type", "tag_id", "taggable_type"),
    )


class AbstractTagging:
    """标签关联抽象模型

    一行记录表示某个实体在某个上下文下拥有某个标签。

    字段说明:
        - tag_id: 标签ID
        - taggable_type: 实体类型（类名）
        - taggable_id: 实体ID
        - context: 标签上下文
        - tagger_type / tagger_id: 打标签的人（只存储，不解释）

    子类必须设置 __tag_model__。
    """

    __tag_model__: Type[AbstractTag] = None

    @declared_attr
    def tag_id(cls) -> Mapped[int]:
        return mapped_column(
            Integer,
            ForeignKey(cls.__tag_model__.__table__.c.id, ondelete="CASCADE"),
            nullable=False,
            comment="标签ID"
        )

    @declared_attr
    def tag(cls):
        return relationship(cls.__tag_model__, lazy="joined")

    taggable_type: Mapped[str] = mapped_column(String(100), nullable=False, comment="实体类型")
    taggable_id: Mapped[int] = mapped_column(Integer, nullable=False, comment="实体ID")
    context: Mapped[str] = mapped_column(String(128), nullable=False, comment="标签上下文")
    tagger_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, comment="标记者类型")
    tagger_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, comment="标记者ID")

    @declared_attr.directive
    def __table_args__(cls):
        return tagging_indexes(cls.__tablename__)

    def __repr__(self):
        return (
            f"<{self.__class__.__name__} {self.taggable_type}#{self.taggable_id} "
            f"{self.context}:{self.tag_id}>"
        )


# ==================== 工厂 ====================

def _generate_tablename(base_name: str, prefix: str = "") -> str:
    return f"{prefix}{base_name}" if prefix else base_name


def _create_model_class(
    name: str,
    bases: Tuple[Type, ...],
    tablename: str,
    extra_attrs: dict = None,
    table_args: tuple = None,
) -> Type:
    """动态创建模型类

    使用唯一类名，避免 SQLAlchemy registry 冲突（Tag -> Tag_a1b2c3d4）
    """
    unique_name = f"{name}_{uuid.uuid4().hex[:8]}"

    attrs = {
        "__tablename__": tablename,
        "__abstract__": False,
        "__table_args__": (table_args or ()) + ({"extend_existing": True},),
    }
    if extra_attrs:
        attrs.update(extra_attrs)

    return type(unique_name, bases, attrs)


@dataclass
class TagModels:
    """标签模型容器

    属性:
        Tag: 标签模型
        Tagging: 标签关联模型

    使用示例:
        tags = create_tag_models(table_prefix="sys_")

        class Article(CoreModel, TaggableMixin):
            __tag_model__ = tags.Tag
            __tagging_model__ = tags.Tagging
    """
    Tag: Type
    Tagging: Type

    def as_dict(self) -> dict:
        """返回模型字典，方便作为 Taggable 类属性展开"""
        return {
            "__tag_model__": self.Tag,
            "__tagging_model__": self.Tagging,
        }


def create_tag_models(
    base: Type = None,
    table_prefix: str = None,
    tag_table: str = None,
    tagging_table: str = None,
    tag_mixin: Type = None,
    tagging_mixin: Type = None,
) -> TagModels:
    """创建标签模型

    Args:
        base: 模型基类，默认 CoreModel
        table_prefix: 表名前缀，默认读取 TaggingSettings.table_prefix
        tag_table: 标签表名，默认读取 TaggingSettings.tag_table
        tagging_table: 关联表名，默认读取 TaggingSettings.tagging_table
        tag_mixin: 可选的 Tag 扩展 Mixin
        tagging_mixin: 可选的 Tagging 扩展 Mixin

    Returns:
        TagModels 容器
    """
    from ytag.config import get_tagging_settings
    settings = get_tagging_settings()

    if base is None:
        from ytag.orm import CoreModel
        base = CoreModel

    prefix = settings.table_prefix if table_prefix is None else table_prefix
    tag_tablename = _generate_tablename(tag_table or settings.tag_table, prefix)
    tagging_tablename = _generate_tablename(tagging_table or settings.tagging_table, prefix)

    tag_bases = (tag_mixin, base, AbstractTag) if tag_mixin else (base, AbstractTag)
    Tag = _create_model_class("Tag", tag_bases, tag_tablename)

    tagging_bases = (tagging_mixin, base, AbstractTagging) if tagging_mixin else (base, AbstractTagging)
    Tagging = _create_model_class(
        "Tagging",
        tagging_bases,
        tagging_tablename,
        extra_attrs={"__tag_model__": Tag},
        table_args=tagging_indexes(tagging_tablename),
    )
    Tag.__tagging_model__ = Tagging

    logger.debug(f"创建标签模型: {tag_tablename}, {tagging_tablename}")
    return TagModels(Tag=Tag, Tagging=Tagging)


__all__ = [
    "AbstractTag",
    "AbstractTagging",
    "TagModels",
    "create_tag_models",
    "tagging_indexes",
]
