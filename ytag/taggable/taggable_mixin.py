"""标签管理 Mixin

为模型提供多上下文标签能力。

使用示例:
    from ytag.orm import CoreModel
    from ytag.taggable import TaggableMixin, create_tag_models

    tags = create_tag_models()

    class Article(CoreModel, TaggableMixin):
        __tag_model__ = tags.Tag
        __tagging_model__ = tags.Tagging
        __tag_contexts__ = ("tag", "category")

        title = mapped_column(String(200))

    article = Article(title="Python 教程")
    article.write_context("tag", "python, web")
    article.write_context("category", ["教程"])
    article.save(commit=True)

    article.read_context("tag")        # ['python', 'web']
    Article.tagged_with(["python"]).all()
"""

from collections.abc import Iterable, Mapping
from typing import Any, Dict, List, Optional, Tuple, Type, TYPE_CHECKING

from sqlalchemy import and_, event, select
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import declared_attr, foreign, object_session, relationship
from sqlalchemy.orm.attributes import flag_dirty

from ytag.exceptions import TagModelNotConfiguredException

from . import query as tag_query
from .cache import TagCache
from .parser import parse_tags
from .registry import tag_registry

if TYPE_CHECKING:
    from .tag_model import AbstractTag, AbstractTagging


def _is_list_like(value: Any) -> bool:
    return isinstance(value, Iterable) and not isinstance(value, (str, bytes, Mapping))


class TaggableMixin:
    """标签管理 Mixin

    配置属性:
        __tag_model__: 标签模型类（必须）
        __tagging_model__: 标签关联模型类（必须）
        __tag_contexts__: 声明的上下文，不设置时使用默认上下文 "tag"

    类创建时上下文注册到 tag_registry，之后通过上下文名读写：
        article.read_context("category")
        article.write_context("category", ["fruit"])

    写入只修改内存缓存，flush 时由标签同步钩子写入数据库。
    """

    # ==================== 配置 ====================

    __tag_model__: Type["AbstractTag"] = None
    __tagging_model__: Type["AbstractTagging"] = None
    __tag_contexts__: Tuple[str, ...] = ()

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if cls.__dict__.get("__abstract__", False):
            return
        contexts = cls.__tag_contexts__
        if isinstance(contexts, str):
            contexts = (contexts,)
        tag_registry.register(cls, *contexts)

    @declared_attr
    def taggings(cls):
        Tagging = cls.__tagging_model__
        if Tagging is None:
            raise TagModelNotConfiguredException(cls.__name__, "__tagging_model__")
        return relationship(
            Tagging,
            primaryjoin=lambda: and_(
                foreign(Tagging.taggable_id) == cls.id,
                Tagging.taggable_type == cls.__name__,
            ),
            order_by=lambda: Tagging.id,
            cascade="all",
            overlaps="taggings",
        )

    # ==================== 内部方法 ====================

    @classmethod
    def _tag_models(cls) -> Tuple[Type["AbstractTag"], Type["AbstractTagging"]]:
        """获取 (Tag, Tagging) 模型类"""
        Tagging = cls.__tagging_model__
        if Tagging is None:
            raise TagModelNotConfiguredException(cls.__name__, "__tagging_model__")
        Tag = cls.__tag_model__ or getattr(Tagging, "__tag_model__", None)
        if Tag is None:
            raise TagModelNotConfiguredException(cls.__name__, "__tag_model__")
        return Tag, Tagging

    def _tag_session(self):
        session = object_session(self)
        if session is not None:
            return session
        query = getattr(self.__class__, "query", None)
        if query is not None:
            return query.session
        raise RuntimeError(f"{self.__class__.__name__} 实例未关联 session，无法加载标签")

    def _tag_cache(self) -> TagCache:
        cache = self.__dict__.get("_ytag_cache")
        if cache is None:
            cache = TagCache()
            self._ytag_cache = cache
        return cache

    def _populated_tag_cache(self) -> TagCache:
        """获取缓存，未填充时一次性加载实例的全部上下文"""
        cache = self._tag_cache()
        if cache.populated:
            return cache

        state = sa_inspect(self)
        if not state.has_identity:
            cache.populate(())
            return cache

        Tag, Tagging = self._tag_models()
        stmt = (
            select(Tagging.context, Tag.name)
            .join(Tag, Tag.id == Tagging.tag_id)
            .where(
                Tagging.taggable_type == self.__class__.__name__,
                Tagging.taggable_id == state.identity[0],
            )
            .order_by(Tagging.id)
        )
        session = self._tag_session()
        with session.no_autoflush:
            cache.populate(session.execute(stmt).all())
        return cache

    def _validate_context(self, context: str) -> str:
        return tag_registry.validate_context(self.__class__, context)

    def _default_context(self) -> str:
        return tag_registry.ordered_contexts(self.__class__)[0]

    # ==================== 上下文读写 ====================

    def read_context(self, context: str) -> List[str]:
        """读取上下文的标签列表

        Raises:
            InvalidTagContextException: 上下文未声明
        """
        self._validate_context(context)
        return self._populated_tag_cache().read(context)

    def write_context(self, context: str, value: Any, tagger: Any = None) -> None:
        """写入上下文的标签列表

        Args:
            context: 上下文名
            value: 标签名列表，或分隔字符串（如 "red, blue"）
            tagger: 打标签的人，随 Tagging 一起保存

        Raises:
            InvalidTagContextException: 上下文未声明
            TagParseException: 字符串格式错误
        """
        self._validate_context(context)
        value = parse_tags(value)
        if _is_list_like(value):
            value = list(value)

        cache = self._populated_tag_cache()
        cache.write(context, value, tagger)
        # 只修改了缓存的实例也要进入 flush
        flag_dirty(self)

    def tag_contexts(self) -> Tuple[str, ...]:
        """声明的上下文（按声明顺序）"""
        return tag_registry.ordered_contexts(self.__class__)

    def is_tags_dirty(self, context: Optional[str] = None) -> bool:
        cache = self.__dict__.get("_ytag_cache")
        return cache is not None and cache.is_dirty(context)

    def reload_tags(self) -> None:
        """丢弃缓存和未保存的写入，下次读取时从数据库重新加载"""
        self._tag_cache().reset()

    def tag_errors(self) -> Dict[str, List[str]]:
        """检查写入过的上下文，返回 {context: [错误信息]}"""
        cache = self.__dict__.get("_ytag_cache")
        if cache is None:
            return {}

        errors: Dict[str, List[str]] = {}
        for context in cache.dirty_contexts():
            value = cache.read(context)
            if not isinstance(value, list):
                errors.setdefault(context, []).append("必须是列表")
            elif not all(isinstance(name, str) for name in value):
                errors.setdefault(context, []).append("标签名必须是字符串")
        return errors

    # ==================== 便捷方法 ====================

    def get_tags(self, context: str = None) -> List[str]:
        return self.read_context(context or self._default_context())

    def set_tags(self, value: Any, context: str = None, tagger: Any = None) -> None:
        self.write_context(context or self._default_context(), value, tagger)

    def add_tags(self, names: Any, context: str = None, tagger: Any = None) -> None:
        """在现有标签后追加（已存在的忽略）"""
        context = context or self._default_context()
        current = self.read_context(context)
        added = [name for name in parse_tags(names) if name not in current]
        self.write_context(context, current + added, tagger)

    def remove_tags(self, names: Any, context: str = None) -> None:
        context = context or self._default_context()
        removed = set(parse_tags(names))
        cache = self._populated_tag_cache()
        self.write_context(
            context,
            [name for name in self.read_context(context) if name not in removed],
            cache.tagger_for(context),
        )

    def has_tag(self, name: str, context: str = None) -> bool:
        """检查标签是否存在，不指定上下文时检查所有上下文"""
        if context is not None:
            return name in self.read_context(context)
        return any(name in self.read_context(ctx) for ctx in self.tag_contexts())

    # ==================== 关联视图 ====================

    def taggings_for_context(self, context: str) -> List["AbstractTagging"]:
        """该上下文已保存的 Tagging 行"""
        self._validate_context(context)
        if self.id is None:
            return []
        _, Tagging = self._tag_models()
        stmt = (
            select(Tagging)
            .where(
                Tagging.taggable_type == self.__class__.__name__,
                Tagging.taggable_id == self.id,
                Tagging.context == context,
            )
            .order_by(Tagging.id)
        )
        return list(self._tag_session().scalars(stmt))

    def tags_for_context(self, context: str) -> List["AbstractTag"]:
        """该上下文已保存的 Tag 行"""
        return [tagging.tag for tagging in self.taggings_for_context(context)]

    # ==================== 查询 ====================

    @classmethod
    def tagged_with(cls, names, on=None, all: bool = False, min: Optional[int] = None, sifter: bool = False):
        """查找带有指定标签的实体，参见 query.tagged_with"""
        return tag_query.tagged_with(cls, names, on=on, all=all, min=min, sifter=sifter)

    @classmethod
    def popular_tags(cls, on=None, min: Optional[int] = None) -> tag_query.TagCountQuery:
        """按使用次数排序的标签，参见 query.popular_tags"""
        return tag_query.popular_tags(cls, on=on, min=min)

    def tagged_similar(self, on=None) -> tag_query.TagCountQuery:
        """共享标签的同类实体，参见 query.tagged_similar"""
        return tag_query.tagged_similar(self, on=on)


# ==================== 生命周期事件 ====================

@event.listens_for(TaggableMixin, "load", propagate=True)
def _reset_cache_on_load(target, context):
    target.__dict__.pop("_ytag_cache", None)


@event.listens_for(TaggableMixin, "refresh", propagate=True)
def _reset_cache_on_refresh(target, context, attrs):
    # 只处理完整刷新（session.refresh），过期属性的重新加载保留缓存
    if attrs is None:
        target.__dict__.pop("_ytag_cache", None)


__all__ = ["TaggableMixin"]
