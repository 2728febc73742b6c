"""标签查询构建

所有聚合查询都基于 count_tags()：按实体的全部列分组、统计匹配的 Tagging 数量
（tags_count），并把结果封闭为子查询。封闭后的结果是 TagCountQuery，
一个不可变的值对象，后续的过滤/排序都作用在子查询上，不会破坏聚合语义。

使用示例:
    from ytag.taggable import tagged_with, popular_tags

    query = tagged_with(Article, ["python", "web"], on="tag", min=2)
    for article in query.all():
        print(article.title, article.tags_count)

    # 在已聚合的结果上继续过滤
    query = query.where(query.entity.title.like("%教程%")).limit(10)

    # 作为子查询条件嵌入其他查询
    stmt = select(Article).where(tagged_with(Article, ["python"], sifter=True))
"""

from dataclasses import dataclass, replace
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Type, Union

from sqlalchemy import Select, and_, distinct, false, func, or_, select
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import aliased

from ytag.log import get_logger

from .parser import parse_tags
from .registry import tag_registry

logger = get_logger()

ContextArg = Union[None, str, Sequence[str]]


def _count_label() -> str:
    from ytag.config import get_tagging_settings
    return get_tagging_settings().count_label


def _resolve_session(model: Type, session=None):
    if session is not None:
        return session
    query = getattr(model, "query", None)
    if query is not None:
        return query.session
    from ytag.orm import db_manager
    return db_manager.get_session()


@dataclass(frozen=True, eq=False)
class TagCountQuery:
    """已封闭的计数查询

    属性:
        model: 结果实体类型
        relation: 分组计数后的子查询
        entity: 映射到子查询的实体别名，过滤条件应引用它的列
        count_column: 子查询中的计数列

    所有链式方法都返回新对象，原对象不变。
    """
    model: Type
    relation: Any
    entity: Any
    count_column: Any
    label: str = "tags_count"
    criteria: Tuple = ()
    ordering: Tuple = ()
    limit_value: Optional[int] = None
    offset_value: Optional[int] = None

    # ==================== 链式方法 ====================

    def where(self, *criteria) -> "TagCountQuery":
        return replace(self, criteria=self.criteria + criteria)

    def min_count(self, value: int) -> "TagCountQuery":
        """tags_count >= value"""
        return self.where(self.count_column >= value)

    def exact_count(self, value: int) -> "TagCountQuery":
        """tags_count == value"""
        return self.where(self.count_column == value)

    def order_by(self, *clauses) -> "TagCountQuery":
        """替换排序，默认按 tags_count 降序"""
        return replace(self, ordering=clauses)

    def limit(self, value: Optional[int]) -> "TagCountQuery":
        return replace(self, limit_value=value)

    def offset(self, value: Optional[int]) -> "TagCountQuery":
        return replace(self, offset_value=value)

    def materialize(self) -> "TagCountQuery":
        """把当前的过滤、排序和分页再次封闭为子查询"""
        relation = self.statement.subquery()
        return TagCountQuery(
            model=self.model,
            relation=relation,
            entity=aliased(self.model, relation),
            count_column=relation.c[self.label],
            label=self.label,
        )

    # ==================== 语句 ====================

    @property
    def statement(self) -> Select:
        """SELECT entity, tags_count"""
        stmt = select(self.entity, self.count_column)
        if self.criteria:
            stmt = stmt.where(*self.criteria)
        stmt = stmt.order_by(*(self.ordering or (self.count_column.desc(), self.entity.id)))
        if self.limit_value is not None:
            stmt = stmt.limit(self.limit_value)
        if self.offset_value is not None:
            stmt = stmt.offset(self.offset_value)
        return stmt

    def id_statement(self) -> Select:
        """只选择 id 列的语句（忽略排序和分页）"""
        stmt = select(self.entity.id)
        if self.criteria:
            stmt = stmt.where(*self.criteria)
        return stmt

    def as_sifter(self):
        """model.id IN (SELECT id ...)，可嵌入其他查询的 where"""
        return self.model.id.in_(self.id_statement())

    # ==================== 执行 ====================

    def rows(self, session=None) -> List[Any]:
        """执行并返回 (entity, tags_count) 行"""
        return list(_resolve_session(self.model, session).execute(self.statement).all())

    def all(self, session=None) -> List[Any]:
        """执行并返回实体列表，每个实体带 tags_count 属性"""
        result = []
        for entity, count in self.rows(session):
            setattr(entity, self.label, count)
            result.append(entity)
        return result

    def first(self, session=None) -> Optional[Any]:
        result = self.limit(1).all(session)
        return result[0] if result else None

    def scalars(self, session=None) -> List[Any]:
        """执行并只返回实体"""
        return list(_resolve_session(self.model, session).scalars(self.statement))

    def count(self, session=None) -> int:
        """满足条件的实体数量（不受 limit/offset 影响）"""
        stmt = select(func.count()).select_from(self.id_statement().subquery())
        return _resolve_session(self.model, session).scalar(stmt)


def count_tags(model: Type, statement: Select, count_column: Any, label: str = None) -> TagCountQuery:
    """按实体全部列分组并统计标签数量，结果封闭为子查询

    Args:
        model: 实体类型
        statement: 已关联 Tag / Tagging 的查询
        count_column: 被统计的列（Tagging.id），按去重计数
        label: 计数列名，默认读取 TaggingSettings.count_label

    Returns:
        TagCountQuery，默认按计数降序
    """
    label = label or _count_label()
    columns = list(sa_inspect(model).columns)

    grouped = (
        statement
        .with_only_columns(*columns, func.count(distinct(count_column)).label(label), maintain_column_froms=True)
        .group_by(*columns)
    )
    relation = grouped.subquery()
    return TagCountQuery(
        model=model,
        relation=relation,
        entity=aliased(model, relation),
        count_column=relation.c[label],
        label=label,
    )


def with_tag_context(statement: Select, tagging_model: Type, on: ContextArg = None) -> Select:
    """限定 Tagging 的上下文（多个上下文之间为 OR），不传则不过滤"""
    contexts = [on] if isinstance(on, str) else list(on or ())
    if not contexts:
        return statement
    return statement.where(or_(*[tagging_model.context == context for context in contexts]))


def _join_tags(model: Type) -> Tuple[Select, Type, Type]:
    Tag, Tagging = model._tag_models()
    stmt = (
        select(model)
        .join(Tagging, and_(Tagging.taggable_id == model.id, Tagging.taggable_type == model.__name__))
        .join(Tag, Tag.id == Tagging.tag_id)
    )
    return stmt, Tag, Tagging


def _normalize_names(names: Union[str, Iterable[str]]) -> List[str]:
    if isinstance(names, str):
        names = parse_tags(names)
    return list(dict.fromkeys(names))


def tagged_with(
    model: Type,
    names: Union[str, Iterable[str]],
    on: ContextArg = None,
    all: bool = False,
    min: Optional[int] = None,
    sifter: bool = False,
):
    """查找带有指定标签的实体

    Args:
        model: Taggable 实体类型
        names: 标签名列表或分隔字符串
        on: 限定上下文，不传则在所有上下文中查找
        all: 必须包含全部标签（tags_count == len(names)）
        min: 至少匹配的标签数（tags_count >= min），all 为 True 时忽略
        sifter: 返回 model.id IN (...) 条件而不是查询对象

    Returns:
        TagCountQuery，或 sifter=True 时的条件表达式

    Raises:
        InvalidTagContextException: on 中包含未声明的上下文
    """
    contexts = tag_registry.validate_contexts(model, on)
    names = _normalize_names(names)

    stmt, Tag, Tagging = _join_tags(model)
    stmt = with_tag_context(stmt.where(Tag.name.in_(names)), Tagging, contexts)
    query = count_tags(model, stmt, Tagging.id)

    if all:
        query = query.exact_count(len(names))
    elif min is not None:
        query = query.min_count(min)

    if sifter:
        return query.as_sifter()
    return query


def tagged_with_sifter(model: Type, names: Union[str, Iterable[str]], **options):
    """tagged_with(..., sifter=True) 的简写"""
    options["sifter"] = True
    return tagged_with(model, names, **options)


def similar_contexts(instance: Any, on: ContextArg = None) -> List[str]:
    """相似度查询使用的上下文

    不指定 on 且实体声明了多个上下文时，排除默认上下文。
    """
    model = type(instance)
    if on is not None:
        return tag_registry.validate_contexts(model, on)

    contexts = list(tag_registry.ordered_contexts(model))
    if len(contexts) > 1:
        from ytag.config import get_tagging_settings
        default_context = get_tagging_settings().default_context
        contexts = [context for context in contexts if context != default_context]
    return contexts


def tagged_similar(instance: Any, on: ContextArg = None) -> TagCountQuery:
    """查找与实例共享标签的同类实体（不含实例自身），按共享数量降序

    实例在所考虑的上下文中没有任何标签时返回空结果。
    """
    model = type(instance)
    contexts = similar_contexts(instance, on)
    stmt, Tag, Tagging = _join_tags(model)

    conditions = []
    for context in contexts:
        names = instance.read_context(context)
        if isinstance(names, list) and names:
            conditions.append(and_(Tag.name.in_(names), Tagging.context == context))

    if conditions:
        stmt = stmt.where(or_(*conditions))
    else:
        stmt = stmt.where(false())

    if instance.id is not None:
        stmt = stmt.where(model.id != instance.id)

    logger.debug(f"相似查询 {model.__name__}#{instance.id} 上下文: {contexts}")
    return count_tags(model, stmt, Tagging.id)


def popular_tags(model: Type, on: ContextArg = None, min: Optional[int] = None) -> TagCountQuery:
    """统计某实体类型下各标签的使用次数，按次数降序

    返回的 TagCountQuery 以 Tag 为实体，每个 Tag 带 tags_count 属性。
    """
    contexts = tag_registry.validate_contexts(model, on)
    Tag, Tagging = model._tag_models()

    stmt = (
        select(Tag)
        .join(Tagging, Tagging.tag_id == Tag.id)
        .where(Tagging.taggable_type == model.__name__)
    )
    stmt = with_tag_context(stmt, Tagging, contexts)
    query = count_tags(Tag, stmt, Tagging.id)
    if min is not None:
        query = query.min_count(min)
    return query


__all__ = [
    "TagCountQuery",
    "count_tags",
    "with_tag_context",
    "tagged_with",
    "tagged_with_sifter",
    "similar_contexts",
    "tagged_similar",
    "popular_tags",
]
