"""
数据库会话管理模块

提供数据库引擎创建、会话管理等功能。

公开 API:
- db_manager: 数据库管理器单例
- init_database(): 初始化数据库连接
- get_engine(): 获取数据库引擎
- db_session_scope(): 上下文管理器方式管理 session
- with_db_session(): 装饰器方式管理 session
"""

from typing import Optional, Callable, Any, TypeVar, Generator
from contextlib import contextmanager
from functools import wraps
import logging
import os
import time

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, scoped_session, Session
from sqlalchemy.pool import QueuePool, StaticPool

from ytag.log import get_logger

_logger = get_logger("ytag.orm.session")

T = TypeVar('T')

__all__ = [
    'db_manager',
    'DatabaseManager',
    'init_database',
    'get_engine',
    'db_session_scope',
    'with_db_session',
]


class DatabaseManager:
    """数据库管理器（单例）

    封装数据库连接状态和会话管理，提供统一的访问接口。

    使用示例:
        from ytag.orm import db_manager

        db_manager.init(database_url="sqlite:///./test.db")
        engine = db_manager.engine
        session = db_manager.get_session()
    """
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._engine = None
        self._session_scope = None
        self._session_maker = None
        self._initialized = True

    # ==================== 属性访问 ====================

    @property
    def engine(self):
        """获取数据库引擎（只读）

        Raises:
            RuntimeError: 数据库未初始化时
        """
        if self._engine is None:
            raise RuntimeError("数据库未初始化，请先调用 init_database()")
        return self._engine

    @property
    def session_scope(self):
        """获取 scoped session（只读）

        Raises:
            RuntimeError: 数据库未初始化时
        """
        if self._session_scope is None:
            raise RuntimeError("数据库未初始化，请先调用 init_database()")
        return self._session_scope

    @property
    def is_initialized(self) -> bool:
        """检查数据库是否已初始化"""
        return self._engine is not None and self._session_scope is not None

    # ==================== 核心方法 ====================

    def init(
        self,
        database_url: str = None,
        echo: bool = False,
        pool_size: int = 5,
        max_overflow: int = 10,
        pool_timeout: int = 30,
        pool_recycle: int = 3600,
        pool_pre_ping: bool = True,
        sql_log_enabled: bool = False,
        logger: logging.Logger = None,
        scopefunc: Callable = None,
        config: Any = None,
        logging_config: Any = None,
        auto_setup_query: bool = True,
        enable_tagging: bool = True,
    ):
        """初始化数据库连接

        Args:
            database_url: 数据库连接URL（如果提供 config 则忽略）
            echo: 是否输出SQL语句（如果提供 config 则忽略）
            pool_size: 连接池大小（如果提供 config 则忽略）
            max_overflow: 最大溢出连接数（如果提供 config 则忽略）
            pool_timeout: 连接超时时间（如果提供 config 则忽略）
            pool_recycle: 连接回收时间（如果提供 config 则忽略）
            pool_pre_ping: 连接前是否ping（如果提供 config 则忽略）
            sql_log_enabled: 是否启用SQL日志（如果提供 logging_config 则忽略）
            logger: 日志记录器
            scopefunc: session作用域函数，默认按线程隔离
            config: 数据库配置对象（DatabaseSettings）
            logging_config: 日志配置对象（LoggingSettings）
            auto_setup_query: 是否自动设置 CoreModel.query 属性，默认 True
            enable_tagging: 是否激活标签同步钩子，默认 True

        Returns:
            tuple: (engine, session_scope)

        使用示例:
            from ytag.orm import init_database, db_session_scope

            engine, session = init_database("sqlite:///./test.db")

            # 配置对象方式
            engine, session = init_database(
                config=settings.database,
                logging_config=settings.logging,
            )
        """
        if config is not None:
            database_url = getattr(config, "url", database_url)
            echo = getattr(config, "echo", echo)
            pool_size = getattr(config, "pool_size", pool_size)
            max_overflow = getattr(config, "max_overflow", max_overflow)
            pool_timeout = getattr(config, "pool_timeout", pool_timeout)
            pool_recycle = getattr(config, "pool_recycle", pool_recycle)
            pool_pre_ping = getattr(config, "pool_pre_ping", pool_pre_ping)

        if logging_config is not None:
            sql_log_enabled = getattr(logging_config, "sql_log_enabled", sql_log_enabled)

        if not database_url:
            raise ValueError("database_url 是必需的，请通过参数或 config 提供")

        if logger is None:
            logger = _logger

        logger.info(f"数据库配置URL: {database_url}")

        engine_echo = "debug" if sql_log_enabled else echo

        if database_url.startswith("sqlite:///") or database_url == "sqlite://":
            db_path = database_url[len("sqlite:///"):]
            is_memory_db = db_path in ("", ":memory:")

            try:
                if is_memory_db:
                    # 内存数据库：使用 StaticPool（单连接）
                    logger.info("SQLite内存数据库")
                    self._engine = create_engine(
                        database_url,
                        echo=engine_echo,
                        connect_args={"check_same_thread": False},
                        poolclass=StaticPool,
                    )
                else:
                    logger.info(f"SQLite文件数据库路径: {os.path.abspath(db_path)}")
                    self._engine = create_engine(
                        database_url,
                        echo=engine_echo,
                        connect_args={
                            "check_same_thread": False,
                            "timeout": pool_timeout,
                        },
                        poolclass=QueuePool,
                        pool_size=pool_size,
                        max_overflow=max_overflow,
                        pool_timeout=pool_timeout,
                        pool_pre_ping=pool_pre_ping,
                        pool_recycle=pool_recycle,
                    )
            except Exception as e:
                logger.error(f"创建SQLite数据库引擎失败: {str(e)}")
                raise
        else:
            try:
                self._engine = create_engine(
                    database_url,
                    echo=engine_echo,
                    pool_pre_ping=pool_pre_ping,
                    pool_size=pool_size,
                    max_overflow=max_overflow,
                    pool_timeout=pool_timeout,
                    pool_recycle=pool_recycle,
                )
                logger.info("数据库引擎创建成功")
            except Exception as e:
                logger.error(f"创建数据库引擎失败: {str(e)}")
                raise

        # SQL执行时间记录
        if sql_log_enabled:
            sql_logger = logging.getLogger("sqlalchemy.engine")

            @event.listens_for(self._engine, "before_cursor_execute")
            def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
                conn.info.setdefault('query_start_time', []).append(time.time())

            @event.listens_for(self._engine, "after_cursor_execute")
            def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
                total_time = time.time() - conn.info['query_start_time'].pop()
                sql_logger.debug(f"[执行耗时: {total_time*1000:.2f}ms]")

            logger.info("SQL执行时间记录已启用")

        self._session_maker = sessionmaker(
            autocommit=False,
            autoflush=True,
            bind=self._engine,
        )
        self._session_scope = scoped_session(self._session_maker, scopefunc=scopefunc)

        # 延迟导入避免循环依赖
        if auto_setup_query:
            from .core_model import CoreModel
            CoreModel.query = self._session_scope.query_property()
            logger.info("CoreModel.query 属性已自动设置")

        if enable_tagging:
            from ytag.taggable.reconcile import activate_tagging_hook
            activate_tagging_hook()

        logger.info("数据库session创建成功")

        return self._engine, self._session_scope

    def get_session(self) -> Session:
        """获取 scoped session（低级 API）

        直接使用需要自行管理提交、回滚和清理，推荐使用 db_session_scope()。
        """
        if self._session_scope is None:
            raise RuntimeError("数据库未初始化，请先调用 init_database()")
        return self._session_scope()

    def cleanup(self):
        """移除当前作用域的 session，归还连接（幂等）"""
        if self._session_scope is not None and self._session_scope.registry.has():
            self._session_scope.remove()
            _logger.debug("session_scope 移除完成")

    def dispose(self):
        """释放引擎并重置状态（主要用于测试）"""
        self.cleanup()
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._session_scope = None
        self._session_maker = None


# ==================== 全局单例 ====================

db_manager = DatabaseManager()


# ==================== 公开 API 函数 ====================

def init_database(
    database_url: str = None,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 3600,
    pool_pre_ping: bool = True,
    sql_log_enabled: bool = False,
    logger: logging.Logger = None,
    scopefunc: Callable = None,
    config: Any = None,
    logging_config: Any = None,
    auto_setup_query: bool = True,
    enable_tagging: bool = True,
):
    """初始化数据库连接

    这是 db_manager.init() 的便捷包装函数。
    详细参数说明请参考 DatabaseManager.init()。

    Returns:
        tuple: (engine, session_scope)
    """
    return db_manager.init(
        database_url=database_url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        pool_pre_ping=pool_pre_ping,
        sql_log_enabled=sql_log_enabled,
        logger=logger,
        scopefunc=scopefunc,
        config=config,
        logging_config=logging_config,
        auto_setup_query=auto_setup_query,
        enable_tagging=enable_tagging,
    )


def get_engine():
    """获取数据库引擎

    Raises:
        RuntimeError: 数据库未初始化时
    """
    return db_manager.engine


@contextmanager
def db_session_scope(auto_commit: bool = True) -> Generator[Session, None, None]:
    """session 上下文管理器

    自动提交或回滚，并在结束时清理 session。

    使用示例:
        with db_session_scope() as session:
            article = Article(title="hello")
            article.write_context("tag", ["python"])
            session.add(article)
        # 自动提交（标签随之同步）
    """
    session = db_manager.get_session()
    try:
        yield session
        if auto_commit:
            session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        db_manager.cleanup()


def with_db_session(auto_commit: bool = True):
    """数据库 session 装饰器

    自动为函数注入 session 作为第一个参数。

    使用示例:
        @with_db_session()
        def retag(session, article_id, names):
            article = session.get(Article, article_id)
            article.set_tags(names)
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            with db_session_scope(auto_commit=auto_commit) as session:
                return func(session, *args, **kwargs)
        return wrapper

    return decorator
