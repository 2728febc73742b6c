"""标签系统模块

提供多上下文、多态的标签功能。

导出:
    - create_tag_models / TagModels: 一键创建 Tag / Tagging 模型
    - AbstractTag / AbstractTagging: 标签抽象模型
    - TaggableMixin: 标签管理 Mixin
    - tag_registry: 进程级上下文注册表
    - tagged_with / tagged_similar / popular_tags: 聚合查询
    - activate_tagging_hook: 激活 flush 时的标签同步

使用示例:
    from ytag.orm import CoreModel, init_database
    from ytag.taggable import TaggableMixin, create_tag_models

    # 1. 创建标签模型（项目级别，一次性）
    tags = create_tag_models()

    # 2. 业务模型使用 TaggableMixin，声明上下文
    class Article(CoreModel, TaggableMixin):
        __tag_model__ = tags.Tag
        __tagging_model__ = tags.Tagging
        __tag_contexts__ = ("tag", "category")

        title = mapped_column(String(200))

    # 3. 初始化数据库（同时激活标签同步钩子）
    init_database("sqlite:///./app.db")

    # 4. 读写标签（按上下文名）
    article = Article(title="Python 入门")
    article.write_context("tag", "python, web")
    article.write_context("category", ["教程"])
    article.save(commit=True)

    article.read_context("tag")          # ['python', 'web']
    article.add_tags("fastapi")          # 默认上下文
    article.save(commit=True)

    # 5. 查询
    Article.tagged_with(["python", "web"], all=True).all()
    Article.tagged_with("python", on="tag", min=1).count()
    article.tagged_similar().all()       # 共享标签的其他文章
    Article.popular_tags(min=2).all()    # 每个 Tag 带 tags_count
"""

from .parser import parse_tags, format_tags
from .registry import TagContextRegistry, tag_registry
from .tag_model import AbstractTag, AbstractTagging, TagModels, create_tag_models
from .cache import TagCache
from .taggable_mixin import TaggableMixin
from .reconcile import (
    TagReconciler,
    activate_tagging_hook,
    deactivate_tagging_hook,
    is_tagging_hook_active,
)
from .query import (
    TagCountQuery,
    count_tags,
    with_tag_context,
    tagged_with,
    tagged_with_sifter,
    tagged_similar,
    popular_tags,
)

__all__ = [
    "parse_tags",
    "format_tags",
    "TagContextRegistry",
    "tag_registry",
    "AbstractTag",
    "AbstractTagging",
    "TagModels",
    "create_tag_models",
    "TagCache",
    "TaggableMixin",
    "TagReconciler",
    "activate_tagging_hook",
    "deactivate_tagging_hook",
    "is_tagging_hook_active",
    "TagCountQuery",
    "count_tags",
    "with_tag_context",
    "tagged_with",
    "tagged_with_sifter",
    "tagged_similar",
    "popular_tags",
]
