"""日志模块

提供日志配置与获取：
- setup_logger / setup_root_logger: 日志记录器配置
- get_logger: 按模块名自动推断的日志记录器

使用示例:
    from ytag.log import setup_root_logger, get_logger

    setup_root_logger(level="DEBUG", log_file="logs/app.log")

    logger = get_logger()
    logger.info("标签模块已加载")
"""

from .logger import (
    setup_logger,
    setup_root_logger,
    setup_sql_logger,
    create_formatter,
    MicrosecondFormatter,
    DEFAULT_LOG_FORMAT,
    get_logger,
)

__all__ = [
    "setup_logger",
    "setup_root_logger",
    "setup_sql_logger",
    "create_formatter",
    "MicrosecondFormatter",
    "DEFAULT_LOG_FORMAT",
    "get_logger",
]
