"""配置模块

提供配置管理功能：
- AppSettings: 应用基础配置，支持 YAML + 环境变量
- 子配置类: TaggingSettings, DatabaseSettings, LoggingSettings
- ConfigLoader: YAML 配置加载器
- get_tagging_settings / configure_tagging: 进程级标签配置

快速开始:
    from ytag.config import AppSettings, load_yaml_config, configure_tagging

    settings = load_yaml_config("config/settings.yaml", AppSettings)
    configure_tagging(settings=settings.tagging)

配置优先级: 环境变量 > YAML 文件 > 默认值
"""

from .settings import (
    AppSettings,
    TaggingSettings,
    DatabaseSettings,
    LoggingSettings,
    get_tagging_settings,
    configure_tagging,
    reset_tagging_settings,
)

from .loader import (
    ConfigLoader,
    load_yaml_config,
)

__all__ = [
    "AppSettings",
    "TaggingSettings",
    "DatabaseSettings",
    "LoggingSettings",
    "get_tagging_settings",
    "configure_tagging",
    "reset_tagging_settings",
    "ConfigLoader",
    "load_yaml_config",
]
