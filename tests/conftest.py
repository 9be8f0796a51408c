"""
Pytest 公共配置和 Fixtures

提供测试所需的公共资源：
- 内存数据库引擎
- 绑定 CoreModel.query 的 scoped_session
- 软删除钩子
"""

import os
import tempfile
from typing import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

from yparanoid.orm import Base, CoreModel
from yparanoid.orm.paranoid import activate_paranoid_hook, is_paranoid_active


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
        with open(filepath, "w", encoding="utf-8") as f:
            f.write(content)
        created_files.append(filepath)
        return filepath

    yield _create_file

    for f in created_files:
        if os.path.exists(f):
            os.remove(f)


# ==================== 数据库 Fixtures ====================

@pytest.fixture(autouse=True)
def paranoid_hook():
    """确保软删除钩子处于激活状态（个别测试会停用它）"""
    if not is_paranoid_active():
        activate_paranoid_hook()
    yield
    if not is_paranoid_active():
        activate_paranoid_hook()


@pytest.fixture(scope="function")
def memory_engine():
    """创建内存数据库引擎

    StaticPool 保证所有操作使用同一个连接
    """
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture
def session_scope(memory_engine) -> Generator[scoped_session, None, None]:
    """建表并把 CoreModel.query 绑定到 scoped_session"""
    Base.metadata.create_all(bind=memory_engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=memory_engine)
    scope = scoped_session(SessionLocal)
    CoreModel.query = scope.query_property()
    try:
        yield scope
    finally:
        scope.remove()


@pytest.fixture
def session(session_scope):
    """当前 scoped_session 对应的 Session"""
    return session_scope()
