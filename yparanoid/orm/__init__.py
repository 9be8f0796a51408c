"""ORM模块

- CoreModel: 核心模型基类，包含ID、时间戳、CRUD、基础读操作
- BaseModel: 业务模型基类，继承 CoreModel 并默认启用软删除
- 数据库会话管理
- 软删除扩展（paranoid）

使用示例:
    from yparanoid.orm import BaseModel, init_database

    init_database("sqlite:///./test.db")

    class Article(BaseModel):
        title: Mapped[str] = mapped_column(String(200))

    article.destroy(commit=True)
    Article.all_with_destroyed()
"""

from .id_model import IdModel, Base
from .core_model import CoreModel
from .base_model import BaseModel
from .db_session import (
    db_manager,
    init_database,
    get_engine,
    db_session_scope,
    with_db_session,
)
from .paranoid import (
    MarkerPolicy,
    ParanoidMixin,
    SimpleParanoidMixin,
    generate_paranoid_mixin_class,
    OnDestroy,
    PARANOID_DEPENDENT_KEY,
    read_operation,
    exclusive_scope,
    with_exclusive_scope,
    activate_paranoid_hook,
    deactivate_paranoid_hook,
)

__all__ = [
    "IdModel",
    "Base",
    "CoreModel",
    "BaseModel",
    "db_manager",
    "init_database",
    "get_engine",
    "db_session_scope",
    "with_db_session",
    "MarkerPolicy",
    "ParanoidMixin",
    "SimpleParanoidMixin",
    "generate_paranoid_mixin_class",
    "OnDestroy",
    "PARANOID_DEPENDENT_KEY",
    "read_operation",
    "exclusive_scope",
    "with_exclusive_scope",
    "activate_paranoid_hook",
    "deactivate_paranoid_hook",
]
