"""标签上下文注册表

进程级注册表，记录每个实体类型声明过的标签上下文。
模型类创建时（即进程启动导入模型时）由 TaggableMixin 注册，
之后可调用 freeze() 锁定为只读。

使用示例:
    from ytag.taggable import tag_registry

    tag_registry.register("Article", "tag", "category")
    tag_registry.contexts("Article")            # frozenset({'tag', 'category'})
    tag_registry.validate_context("Article", "colour")
    # InvalidTagContextException: colour is not a valid tag context for Article
"""

from typing import Any, Dict, FrozenSet, List, Optional, Tuple, Type, Union

from ytag.exceptions import InvalidTagContextException
from ytag.log import get_logger

logger = get_logger()

EntityType = Union[str, Type[Any]]


def _type_name(entity_type: EntityType) -> str:
    if isinstance(entity_type, str):
        return entity_type
    return entity_type.__name__


def _default_context() -> str:
    from ytag.config import get_tagging_settings
    return get_tagging_settings().default_context


class TagContextRegistry:
    """标签上下文注册表

    实体类型以类名为键（与 Tagging.taggable_type 一致），上下文按声明顺序保存。
    同一个类名只能属于一个类：另一个同名类注册时抛出 ValueError，
    否则两者会共用上下文和 Tagging 行。
    """

    def __init__(self):
        # dict 作为有序集合使用
        self._contexts: Dict[str, Dict[str, None]] = {}
        # 类名 -> 注册该名称的类
        self._owners: Dict[str, type] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _check_writable(self):
        if self._frozen:
            raise RuntimeError("标签上下文注册表已锁定，不能再注册上下文")

    def register_context(self, entity_type: EntityType, context: str) -> None:
        """为实体类型注册一个上下文（幂等）"""
        self._check_writable()
        if not isinstance(context, str) or not context.strip():
            raise ValueError(f"标签上下文名必须是非空字符串: {context!r}")

        name = _type_name(entity_type)
        if isinstance(entity_type, type):
            self._claim(name, entity_type)
        contexts = self._contexts.setdefault(name, {})
        if context not in contexts:
            contexts[context] = None
            logger.debug(f"注册标签上下文: {name}.{context}")

    def _claim(self, name: str, cls: type) -> None:
        owner = self._owners.setdefault(name, cls)
        if owner is not cls:
            raise ValueError(
                f"实体类型名 {name} 已被 {owner.__module__}.{owner.__qualname__} 注册，"
                f"不能再用于 {cls.__module__}.{cls.__qualname__}"
            )

    def register(self, entity_type: EntityType, *contexts: str) -> Tuple[str, ...]:
        """批量注册上下文

        不传上下文时注册默认上下文（TaggingSettings.default_context）。

        Returns:
            该类型当前全部上下文（按声明顺序）
        """
        if not contexts:
            contexts = (_default_context(),)
        for context in contexts:
            self.register_context(entity_type, context)
        return self.ordered_contexts(entity_type)

    def contexts(self, entity_type: EntityType) -> FrozenSet[str]:
        """获取实体类型的上下文集合"""
        return frozenset(self._contexts.get(_type_name(entity_type), ()))

    def ordered_contexts(self, entity_type: EntityType) -> Tuple[str, ...]:
        """获取实体类型的上下文（按声明顺序）"""
        return tuple(self._contexts.get(_type_name(entity_type), ()))

    def is_registered(self, entity_type: EntityType, context: Optional[str] = None) -> bool:
        name = _type_name(entity_type)
        if context is None:
            return name in self._contexts
        return context in self._contexts.get(name, ())

    def validate_context(self, entity_type: EntityType, context: Any) -> str:
        """验证上下文已声明

        Returns:
            上下文名

        Raises:
            InvalidTagContextException: 上下文未声明
        """
        name = _type_name(entity_type)
        contexts = self._contexts.get(name, {})
        if not isinstance(context, str) or context not in contexts:
            raise InvalidTagContextException(context, name, list(contexts))
        return context

    def validate_contexts(self, entity_type: EntityType, on: Union[None, str, List[str], Tuple[str, ...]]) -> List[str]:
        """规范化并验证查询参数 on

        None 返回空列表，字符串视为单个上下文。
        """
        if on is None:
            return []
        if isinstance(on, str):
            on = [on]
        return [self.validate_context(entity_type, context) for context in on]

    def freeze(self) -> None:
        """锁定注册表，之后的注册会抛出 RuntimeError"""
        self._frozen = True
        logger.info(f"标签上下文注册表已锁定，共 {len(self._contexts)} 个实体类型")

    def clear(self) -> None:
        """清空注册表并解除锁定（主要用于测试）"""
        self._contexts.clear()
        self._owners.clear()
        self._frozen = False

    def snapshot(self) -> Dict[str, Tuple[str, ...]]:
        """导出注册表内容"""
        return {name: tuple(contexts) for name, contexts in self._contexts.items()}

    def restore(self, snapshot: Dict[str, Tuple[str, ...]]) -> None:
        """从 snapshot() 的结果恢复（主要用于测试）"""
        self.clear()
        for name, contexts in snapshot.items():
            self.register(name, *contexts)

    def __contains__(self, entity_type: EntityType) -> bool:
        return self.is_registered(entity_type)

    def __repr__(self) -> str:
        return f"<TagContextRegistry types={len(self._contexts)} frozen={self._frozen}>"


# 进程级注册表
tag_registry = TagContextRegistry()


__all__ = ["TagContextRegistry", "tag_registry"]
