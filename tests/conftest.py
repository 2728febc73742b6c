"""
Pytest 公共配置和 Fixtures

提供测试所需的公共资源：
- 内存数据库引擎
- 绑定 CoreModel.query 的 scoped session
- 临时文件
"""

import os
import tempfile

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

from ytag.config import reset_tagging_settings
from ytag.orm import Base, CoreModel
from ytag.taggable import activate_tagging_hook

# 导入测试模型，确保表注册到 Base.metadata
import tests.helpers  # noqa: F401


# ==================== 基础 Fixtures ====================

@pytest.fixture(scope="session")
def temp_dir():
    """创建临时目录"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def temp_file(temp_dir):
    """创建临时文件的工厂函数"""
    created_files = []

    def _create_file(filename: str, content: str = "") -> str:
        filepath = os.path.join(temp_dir, filename)
        if os.path.dirname(filepath):
            os.makedirs(os.path.dirname(filepath), exist_ok=True)
        with open(filepath, "w", encoding="utf-8") as f:
            f.write(content)
        created_files.append(filepath)
        return filepath

    yield _create_file

    for f in created_files:
        if os.path.exists(f):
            os.remove(f)


@pytest.fixture
def sample_yaml_config(temp_file):
    """示例 YAML 配置文件"""
    content = """
database:
  url: "sqlite:///:memory:"
  echo: false
logging:
  level: "DEBUG"
  enable_console: false
tagging:
  default_context: "tag"
  delimiter: ";"
  count_label: "hits"
"""
    return temp_file("config/settings.yaml", content)


# ==================== 数据库 Fixtures ====================

@pytest.fixture
def memory_engine():
    """内存数据库引擎（StaticPool，单连接）"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(memory_engine):
    """建表并绑定 CoreModel.query，返回 scoped session"""
    activate_tagging_hook()
    Base.metadata.create_all(bind=memory_engine)
    SessionLocal = sessionmaker(autoflush=False, bind=memory_engine)
    session_scope = scoped_session(SessionLocal)
    CoreModel.query = session_scope.query_property()
    yield session_scope
    session_scope.remove()


@pytest.fixture(autouse=True)
def _reset_tagging_settings():
    reset_tagging_settings()
    yield
    reset_tagging_settings()
