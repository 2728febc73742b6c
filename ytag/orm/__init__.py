"""ORM 基础模块

提供声明基类、基础模型和数据库会话管理。

使用示例:
    from ytag.orm import CoreModel, init_database, db_session_scope

    init_database("sqlite:///:memory:")
"""

from .core_model import Base, CoreModel
from .db_session import (
    db_manager,
    DatabaseManager,
    init_database,
    get_engine,
    db_session_scope,
    with_db_session,
)
from .utils import to_snake_case

__all__ = [
    "Base",
    "CoreModel",
    "db_manager",
    "DatabaseManager",
    "init_database",
    "get_engine",
    "db_session_scope",
    "with_db_session",
    "to_snake_case",
]
