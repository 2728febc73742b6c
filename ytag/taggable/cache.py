"""标签缓存与脏标记

每个 Taggable 实例持有一个 TagCache：
- 上下文名 -> 有序标签名列表
- 写入过但尚未同步到数据库的上下文（按写入顺序）及写入时的 tagger
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple


class TagCache:
    """实例级标签缓存

    缓存只在内存中，不持久化。首次读取时由 populate() 一次性填充所有上下文，
    写入后上下文被标记为脏，flush 成功后由 mark_reconciled() 清除。

    使用示例:
        cache = TagCache()
        cache.populate([("tag", "red"), ("tag", "blue"), ("category", "fruit")])
        cache.read("tag")                 # ['red', 'blue']
        cache.write("tag", ["green"])
        cache.dirty_contexts()            # ('tag',)
    """

    def __init__(self):
        self._values: Dict[str, Any] = {}
        # dict 作为有序集合，值为写入时的 tagger
        self._dirty: Dict[str, Any] = {}
        self.populated = False

    def read(self, context: str) -> Any:
        """读取上下文的标签列表（返回副本），从未填充的上下文返回空列表"""
        value = self._values.get(context)
        if value is None:
            return []
        if isinstance(value, list):
            return list(value)
        return value

    def write(self, context: str, value: Any, tagger: Any = None) -> None:
        """覆盖上下文的值并标记为脏

        重复写入同一上下文不改变其在脏集合中的顺序，tagger 以最后一次为准。
        """
        self._values[context] = value
        self._dirty[context] = tagger

    def populate(self, rows: Iterable[Tuple[str, str]]) -> None:
        """用 (context, name) 行填充缓存，已写入的脏上下文不会被覆盖"""
        loaded: Dict[str, List[str]] = {}
        for context, name in rows:
            loaded.setdefault(context, []).append(name)

        for context, names in loaded.items():
            if context not in self._dirty:
                self._values[context] = names
        self.populated = True

    def contexts(self) -> Tuple[str, ...]:
        """缓存中出现过的上下文"""
        return tuple(self._values)

    def dirty_contexts(self) -> Tuple[str, ...]:
        return tuple(self._dirty)

    def is_dirty(self, context: Optional[str] = None) -> bool:
        if context is None:
            return bool(self._dirty)
        return context in self._dirty

    def tagger_for(self, context: str) -> Any:
        return self._dirty.get(context)

    def mark_reconciled(self, context: str, names: List[str]) -> None:
        """同步成功后记录最终（去重后）的标签列表并清除脏标记"""
        self._values[context] = list(names)
        self._dirty.pop(context, None)

    def clear_dirty(self, contexts: Optional[Iterable[str]] = None) -> None:
        if contexts is None:
            self._dirty.clear()
            return
        for context in contexts:
            self._dirty.pop(context, None)

    def reset(self) -> None:
        """丢弃全部缓存和脏标记，下次读取时重新从数据库加载"""
        self._values.clear()
        self._dirty.clear()
        self.populated = False

    def as_dict(self) -> Dict[str, Any]:
        return {context: self.read(context) for context in self._values}

    def __repr__(self) -> str:
        return f"<TagCache populated={self.populated} dirty={list(self._dirty)}>"


__all__ = ["TagCache"]
