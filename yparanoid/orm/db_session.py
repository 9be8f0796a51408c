"""
数据库会话管理模块

提供数据库引擎创建、会话管理等功能。

公开 API:
- db_manager: 数据库管理器单例
- init_database(): 初始化数据库连接
- get_engine(): 获取数据库引擎
- db_session_scope(): 上下文管理器
- with_db_session(): 装饰器方式管理 session
"""

import asyncio
import logging
from contextlib import contextmanager
from contextvars import ContextVar, Token
from functools import wraps
from typing import Any, Callable, Generator, TypeVar
from uuid import uuid4

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

from yparanoid.log import get_logger

_logger = get_logger("yparanoid.orm.session")

T = TypeVar('T')

__all__ = [
    'db_manager',
    'init_database',
    'get_engine',
    'db_session_scope',
    'with_db_session',
]


class DatabaseManager:
    """数据库管理器（单例）

    session 按作用域 ID 划分（ContextVar），不同线程、不同 asyncio 任务互不共享。

    使用示例:
        from yparanoid.orm import db_manager

        db_manager.init(database_url="sqlite:///./test.db")
        engine = db_manager.engine
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
        self._scope_id_var: ContextVar[str] = ContextVar('db_scope_id', default='')
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
    def session_scope(self) -> scoped_session:
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
        logger: logging.Logger = None,
        scopefunc: Callable = None,
        config: Any = None,
        auto_setup_query: bool = True,
    ):
        """初始化数据库连接

        Args:
            database_url: 数据库连接URL（如果提供 config 则忽略）
            echo: 是否输出SQL语句
            pool_size: 连接池大小（非内存数据库）
            max_overflow: 最大溢出连接数
            pool_timeout: 连接超时时间
            pool_recycle: 连接回收时间
            pool_pre_ping: 连接前是否ping
            logger: 日志记录器
            scopefunc: session作用域函数，默认按作用域ID划分
            config: 数据库配置对象（DatabaseSettings），提供后自动提取配置
            auto_setup_query: 是否自动设置 CoreModel.query 属性，默认 True

        Returns:
            tuple: (engine, session_scope)

        使用示例:
            from yparanoid.config import DatabaseSettings
            from yparanoid.orm import init_database, db_session_scope

            engine, session = init_database("sqlite:///./test.db")
            engine, session = init_database(config=DatabaseSettings())

            with db_session_scope() as session:
                session.query(Widget).all()
        """
        if config is not None:
            database_url = getattr(config, "url", database_url) or database_url
            echo = getattr(config, "echo", echo)
            pool_size = getattr(config, "pool_size", pool_size)
            max_overflow = getattr(config, "max_overflow", max_overflow)
            pool_timeout = getattr(config, "pool_timeout", pool_timeout)
            pool_recycle = getattr(config, "pool_recycle", pool_recycle)
            pool_pre_ping = getattr(config, "pool_pre_ping", pool_pre_ping)

        if not database_url:
            raise ValueError("database_url 是必需的，请通过参数或 config 提供")

        if logger is None:
            logger = _logger

        logger.info(f"数据库配置URL: {database_url}")

        try:
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                # 内存数据库：使用 StaticPool（单连接）
                self._engine = create_engine(
                    database_url,
                    echo=echo,
                    connect_args={"check_same_thread": False},
                    poolclass=StaticPool,
                )
                logger.info("SQLite内存数据库引擎创建成功（StaticPool）")
            elif database_url.startswith("sqlite:///"):
                self._engine = create_engine(
                    database_url,
                    echo=echo,
                    connect_args={"check_same_thread": False, "timeout": pool_timeout},
                    pool_pre_ping=pool_pre_ping,
                )
                logger.info("SQLite文件数据库引擎创建成功")
            else:
                self._engine = create_engine(
                    database_url,
                    echo=echo,
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

        self._session_maker = sessionmaker(
            autocommit=False,
            autoflush=True,
            bind=self._engine,
        )

        if scopefunc is None:
            scopefunc = self._get_scope_id
        self._session_scope = scoped_session(self._session_maker, scopefunc=scopefunc)

        # 延迟导入避免循环依赖
        if auto_setup_query:
            from .core_model import CoreModel
            CoreModel.query = self._session_scope.query_property()
            logger.info("CoreModel.query 属性已自动设置")

        logger.info("数据库session创建成功")
        return self._engine, self._session_scope

    def get_session(self) -> Session:
        """获取 scoped session（低级 API）

        直接使用时需要自行提交、回滚并移除 session，
        优先使用 db_session_scope() 或 @with_db_session。
        """
        if self._session_scope is None:
            raise RuntimeError("数据库未初始化，请先调用 init_database()")
        return self._session_scope()

    def _close_scope(self, token: Token) -> None:
        """作用域结束：移除当前 session，并把作用域ID恢复为进入前的值"""
        scope_id = self._scope_id_var.get()
        try:
            if self._session_scope is not None and self._session_scope.registry.has():
                self._session_scope.remove()
                _logger.debug(f"[scope_id={scope_id}] session 已移除")
        finally:
            self._scope_id_var.reset(token)

    # ==================== 作用域ID（内部使用） ====================

    def _enter_scope(self, scope_id: str = None) -> Token:
        if not scope_id:
            scope_id = uuid4().hex[:8]
        return self._scope_id_var.set(scope_id)

    def _get_scope_id(self) -> str:
        value = self._scope_id_var.get()
        if not value:
            value = uuid4().hex[:8]
            self._scope_id_var.set(value)
        return value


# ==================== 全局单例 ====================

db_manager = DatabaseManager()


# ==================== 公开 API 函数 ====================

def init_database(database_url: str = None, **kwargs):
    """初始化数据库连接

    db_manager.init() 的便捷包装，参数参考 DatabaseManager.init()。

    Returns:
        tuple: (engine, session_scope)
    """
    return db_manager.init(database_url=database_url, **kwargs)


def get_engine():
    """获取数据库引擎"""
    return db_manager.engine


@contextmanager
def db_session_scope(scope_id: str = None, auto_commit: bool = True) -> Generator[Session, None, None]:
    """数据库 session 上下文管理器

    正常退出时提交（auto_commit=True），异常时回滚，最后移除 session。
    可以嵌套：内层使用独立的 session，退出后外层的 session 不受影响。

    使用示例:
        with db_session_scope() as session:
            widget = Widget(name="a")
            session.add(widget)
    """
    token = db_manager._enter_scope(scope_id)
    try:
        session = db_manager.get_session()
        try:
            yield session
            if auto_commit:
                session.commit()
        except Exception:
            session.rollback()
            raise
    finally:
        db_manager._close_scope(token)


def with_db_session(scope_id: str = None, auto_commit: bool = True):
    """数据库 session 装饰器

    自动为函数注入 session 作为第一个参数，支持同步和异步函数。

    使用示例:
        @with_db_session()
        def purge_destroyed(session):
            Widget.delete_all(Widget.deleted_at.is_not(None))

        purge_destroyed()
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        func_scope_id = scope_id or f"{func.__name__}-{{rand}}"

        @wraps(func)
        def sync_wrapper(*args, **kwargs) -> T:
            with db_session_scope(func_scope_id.replace("{rand}", uuid4().hex[:6]), auto_commit) as session:
                return func(session, *args, **kwargs)

        @wraps(func)
        async def async_wrapper(*args, **kwargs) -> T:
            token = db_manager._enter_scope(func_scope_id.replace("{rand}", uuid4().hex[:6]))
            try:
                session = db_manager.get_session()
                try:
                    result = await func(session, *args, **kwargs)
                    if auto_commit:
                        session.commit()
                    return result
                except Exception:
                    session.rollback()
                    raise
            finally:
                db_manager._close_scope(token)

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator
