"""标签同步事件钩子

在 flush 时把实例缓存中写入过的上下文同步为 Tag / Tagging 行：

1. 校验所有待同步实例，任一失败则在写库前抛出 TagValidationException
2. 按写入顺序逐个上下文处理：先删除该上下文已有的 Tagging，再查找/创建 Tag，
   最后为每个不重复的标签名创建一条 Tagging
3. flush 成功后（after_flush_postexec）清除脏标记，缓存更新为去重后的列表

flush 失败时脏标记和缓存保持不变，调用方回滚后可以直接重试。
同一次 flush 中前面上下文已执行的删除只能由调用方的事务回滚撤销。
"""

from itertools import chain
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import delete, event, select
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import InstanceState, Session

from ytag.exceptions import TagValidationException
from ytag.log import get_logger

from .taggable_mixin import TaggableMixin

logger = get_logger()

_RECONCILED_KEY = "ytag_reconciled"

# 钩子开关
_hook_active = False


def _tagger_reference(tagger: Any) -> Tuple[Optional[str], Any]:
    """tagger -> (tagger_type, tagger_id)

    ORM 实例记录类名和 id，其他值直接作为 tagger_id。
    """
    if tagger is None:
        return None, None
    state = sa_inspect(tagger, raiseerr=False)
    if isinstance(state, InstanceState):
        return type(tagger).__name__, getattr(tagger, "id", None)
    return None, tagger


class TagReconciler:
    """单次 flush 内的标签同步器

    同一次 flush 中新建的 Tag 会被记录下来，后续实例/上下文直接复用，
    不会为同一个名称创建两行 Tag。
    """

    def __init__(self, session: Session):
        self.session = session
        self._tags: Dict[Tuple[type, str], Any] = {}
        self.reconciled: List[Tuple[Any, str, List[str]]] = []

    @staticmethod
    def dirty_instances(session: Session) -> List[TaggableMixin]:
        """session 中有待同步上下文的 Taggable 实例"""
        deleted = session.deleted
        return [
            obj for obj in chain(session.new, session.dirty)
            if isinstance(obj, TaggableMixin)
            and obj not in deleted
            and obj.is_tags_dirty()
        ]

    def validate(self, instances: List[TaggableMixin]) -> None:
        for instance in instances:
            errors = instance.tag_errors()
            if errors:
                raise TagValidationException(type(instance).__name__, errors)

    def run(self) -> List[Tuple[Any, str, List[str]]]:
        instances = self.dirty_instances(self.session)
        if not instances:
            return self.reconciled

        self.validate(instances)
        for instance in instances:
            self.reconcile(instance)
        return self.reconciled

    def reconcile(self, instance: TaggableMixin) -> None:
        """同步单个实例的全部脏上下文"""
        model = type(instance)
        Tag, Tagging = model._tag_models()
        cache = instance._tag_cache()
        state = sa_inspect(instance)
        persistent = state.has_identity
        taggable_id = state.identity[0] if persistent else None

        for context in cache.dirty_contexts():
            names = list(dict.fromkeys(cache.read(context)))

            if persistent:
                # 先删后建
                self.session.execute(
                    delete(Tagging).where(
                        Tagging.taggable_type == model.__name__,
                        Tagging.taggable_id == taggable_id,
                        Tagging.context == context,
                    ).execution_options(synchronize_session="fetch")
                )
            else:
                self._discard_pending_taggings(instance, context)

            tags = self._find_or_create_tags(Tag, names)
            tagger_type, tagger_id = _tagger_reference(cache.tagger_for(context))

            for name in names:
                tagging = Tagging(
                    tag=tags[name],
                    taggable_type=model.__name__,
                    context=context,
                    tagger_type=tagger_type,
                    tagger_id=tagger_id,
                )
                if persistent:
                    tagging.taggable_id = taggable_id
                    self.session.add(tagging)
                else:
                    instance.taggings.append(tagging)

            self.reconciled.append((instance, context, names))
            logger.debug(f"同步标签 {model.__name__}#{taggable_id} {context}: {names}")

        if persistent:
            self.session.expire(instance, ["taggings"])

    def _discard_pending_taggings(self, instance: TaggableMixin, context: str) -> None:
        """移除集合中该上下文未持久化的 Tagging

        flush 失败并回滚后，上次追加的 Tagging 仍留在实例的 taggings 集合里，
        重新 add 时又被级联进 session，重试前必须丢弃。
        """
        for tagging in list(instance.taggings):
            if tagging.context != context or sa_inspect(tagging).has_identity:
                continue
            instance.taggings.remove(tagging)
            if tagging in self.session:
                self.session.expunge(tagging)

    def _find_or_create_tags(self, Tag: type, names: List[str]) -> Dict[str, Any]:
        """按名称查找标签，不存在的创建

        查找顺序：本次 flush 已处理过的 -> session 中待插入的 -> 数据库（一次批量查询）
        """
        found: Dict[str, Any] = {}
        missing = []
        for name in names:
            tag = self._tags.get((Tag, name))
            if tag is not None:
                found[name] = tag
            else:
                missing.append(name)

        if not missing:
            return found

        for obj in self.session.new:
            if isinstance(obj, Tag) and obj.name in missing:
                found.setdefault(obj.name, obj)

        lookup = [name for name in missing if name not in found]
        if lookup:
            stmt = select(Tag).where(Tag.name.in_(lookup)).order_by(Tag.id)
            for tag in self.session.scalars(stmt):
                found.setdefault(tag.name, tag)

        created = []
        for name in missing:
            if name not in found:
                tag = Tag(name=name)
                self.session.add(tag)
                found[name] = tag
                created.append(name)
            self._tags[(Tag, name)] = found[name]

        if created:
            logger.debug(f"创建标签: {created}")
        return found


# ==================== 事件钩子 ====================

def _before_flush(session, flush_context, instances):
    session.info.pop(_RECONCILED_KEY, None)
    if not _hook_active:
        return

    reconciled = TagReconciler(session).run()
    if reconciled:
        session.info[_RECONCILED_KEY] = reconciled


def _after_flush_postexec(session, flush_context):
    reconciled = session.info.pop(_RECONCILED_KEY, None)
    if not reconciled:
        return

    for instance, context, names in reconciled:
        instance._tag_cache().mark_reconciled(context, names)


def activate_tagging_hook():
    """激活标签同步钩子

    注册 Session 的 before_flush / after_flush_postexec 监听器（只注册一次）。
    init_database() 会自动调用。

    使用示例:
        from ytag.taggable import activate_tagging_hook

        activate_tagging_hook()

        article.write_context("tag", ["python"])
        session.commit()  # flush 时自动同步 Tagging
    """
    global _hook_active

    if not event.contains(Session, "before_flush", _before_flush):
        event.listen(Session, "before_flush", _before_flush)
    if not event.contains(Session, "after_flush_postexec", _after_flush_postexec):
        event.listen(Session, "after_flush_postexec", _after_flush_postexec)

    if not _hook_active:
        logger.info("标签同步钩子已激活")
    _hook_active = True


def deactivate_tagging_hook():
    """停用标签同步钩子

    监听器保持注册，此函数只是关闭开关，使监听器不再生效
    """
    global _hook_active
    _hook_active = False


def is_tagging_hook_active() -> bool:
    """检查标签同步钩子是否激活"""
    return _hook_active


__all__ = [
    "TagReconciler",
    "activate_tagging_hook",
    "deactivate_tagging_hook",
    "is_tagging_hook_active",
]
