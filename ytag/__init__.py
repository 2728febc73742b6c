"""
ytag - SQLAlchemy 多上下文标签库

提供标签模型、标签同步、标签聚合查询，以及日志、配置、异常等基础功能
"""

from .version import __version__, __author__, __description__

# 导出标签模块
from .taggable import (
    TaggableMixin,
    create_tag_models,
    TagModels,
    AbstractTag,
    AbstractTagging,
    tag_registry,
    TagContextRegistry,
    parse_tags,
    format_tags,
    TagCache,
    TagReconciler,
    activate_tagging_hook,
    deactivate_tagging_hook,
    TagCountQuery,
    count_tags,
    with_tag_context,
    tagged_with,
    tagged_similar,
    popular_tags,
)

# 导出ORM基类
from .orm import (
    Base,
    CoreModel,
    init_database,
    get_engine,
    db_session_scope,
)

# 导出异常
from .exceptions import (
    Err,
    ErrorCode,
    BusinessException,
    ValidationException,
    InvalidTagContextException,
    TagParseException,
    TagValidationException,
)

# 导出配置
from .config import (
    AppSettings,
    TaggingSettings,
    load_yaml_config,
    configure_tagging,
    get_tagging_settings,
)

# 导出日志
from .log import setup_logger, setup_root_logger, get_logger

__all__ = [
    "__version__",
    "__author__",
    "__description__",
    # 标签
    "TaggableMixin",
    "create_tag_models",
    "TagModels",
    "AbstractTag",
    "AbstractTagging",
    "tag_registry",
    "TagContextRegistry",
    "parse_tags",
    "format_tags",
    "TagCache",
    "TagReconciler",
    "activate_tagging_hook",
    "deactivate_tagging_hook",
    "TagCountQuery",
    "count_tags",
    "with_tag_context",
    "tagged_with",
    "tagged_similar",
    "popular_tags",
    # ORM
    "Base",
    "CoreModel",
    "init_database",
    "get_engine",
    "db_session_scope",
    # 异常
    "Err",
    "ErrorCode",
    "BusinessException",
    "ValidationException",
    "InvalidTagContextException",
    "TagParseException",
    "TagValidationException",
    # 配置
    "AppSettings",
    "TaggingSettings",
    "load_yaml_config",
    "configure_tagging",
    "get_tagging_settings",
    # 日志
    "setup_logger",
    "setup_root_logger",
    "get_logger",
]
