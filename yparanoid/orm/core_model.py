"""
ORM基础模型

提供常用的CRUD操作与基础读操作
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, ClassVar, List, Optional, TYPE_CHECKING

from sqlalchemy import DateTime, func, inspect, select
from sqlalchemy.orm import Mapped, mapped_column, declared_attr, Session, Query

if TYPE_CHECKING:
    from typing_extensions import Self

from .id_model import IdModel
from .paranoid.query_surface import read_operation
from .utils import to_snake_case


class CoreModel(IdModel):
    """ORM基础模型类

    继承自 IdModel，提供功能：
    - 自动表名生成（驼峰转下划线）
    - 创建 / 更新时间戳
    - 常用CRUD操作方法
    - 基础读操作 get / find / all / first / count / exists

    基础读操作都带有 ``@read_operation`` 标记，软删除模型会自动获得
    ``*_with_destroyed`` 与 ``*_destroyed_only`` 两个变体。

    使用示例:
        from yparanoid.orm import CoreModel, init_database

        init_database("sqlite:///./test.db")

        class Tag(CoreModel):
            label: Mapped[str] = mapped_column(String(50))

        Tag(label="a").save(commit=True)
        Tag.find(label="a")
        Tag.count(Tag.label.like("a%"))
    """
    __abstract__ = True

    __allow_unmapped__ = True

    # query 属性需要在 init_database 后通过 scoped_session.query_property() 设置
    if TYPE_CHECKING:
        query: ClassVar[Query[Self]]

    @declared_attr.directive
    def __tablename__(cls) -> str:
        """驼峰命名转下划线"""
        name = cls.__name__
        if '_' in name:
            raise ValueError(f'{name}字符中包含下划线，无法转换')
        return to_snake_case(name)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False),
        server_default=func.now(),
        comment="创建时间"
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=False),
        nullable=True,
        onupdate=func.now(),
        comment="更新时间"
    )

    def __repr__(self):
        return f"<{self.__class__.__name__} id={self.id}>"

    @classmethod
    def get_session(cls) -> Session:
        """获取当前session

        优先从 query 属性获取，不可用时从全局 scoped_session 获取
        """
        query = getattr(cls, "query", None)
        if query is not None:
            return query.session
        from .db_session import db_manager
        return db_manager.get_session()

    @property
    def session(self) -> Session:
        return type(self).get_session()

    # ==================== CRUD 操作方法 ====================

    def save(self, commit: bool = False) -> Self:
        """保存对象（自动判断新增或更新）

        Args:
            commit: 是否立即提交，默认False

        Returns:
            self: 返回自身，支持链式调用
        """
        self.session.add(self)
        self._commit(commit)
        return self

    def add(self, commit: bool = False) -> Self:
        """添加对象到session，等同于 save()"""
        return self.save(commit)

    def update(self, commit: bool = False, **kwargs) -> Self:
        """更新对象属性

        使用示例:
            user.update(name="new_name", commit=True)
        """
        for key, value in kwargs.items():
            if hasattr(self, key):
                setattr(self, key, value)
        self._commit(commit)
        return self

    def delete(self, commit: bool = False):
        """通过 session 删除对象（软删除模型会被钩子转为软删除）"""
        self.session.delete(self)
        self._commit(commit)

    def to_dict(self, exclude: set = None) -> dict:
        """转换为字典

        Args:
            exclude: 需要排除的字段集合
        """
        exclude = exclude or set()
        return {
            c.key: getattr(self, c.key)
            for c in inspect(self).mapper.column_attrs
            if c.key not in exclude
        }

    def _commit(self, commit: bool = False):
        if commit:
            self.session.commit()

    # ==================== 基础读操作 ====================

    @classmethod
    @read_operation
    def get(cls, id: Any):
        """根据ID获取对象，不存在返回None

        总是查询数据库，不直接使用 identity map 中的对象
        """
        return cls.query.filter(cls.id == id).first()

    @classmethod
    @read_operation
    def find(cls, *criteria, **filters) -> List[Any]:
        """按条件查询列表

        使用示例:
            User.find(User.age > 18)
            User.find(name="tom")
        """
        return cls.query.filter(*criteria).filter_by(**filters).all()

    @classmethod
    @read_operation
    def all(cls) -> List[Any]:
        """获取所有记录"""
        return cls.query.all()

    @classmethod
    @read_operation
    def first(cls, *criteria, **filters):
        """按条件获取第一条记录，不存在返回None"""
        return cls.query.filter(*criteria).filter_by(**filters).first()

    @classmethod
    @read_operation
    def count(cls, *criteria, **filters) -> int:
        """按条件计数"""
        stmt = select(func.count()).select_from(cls).where(*criteria).filter_by(**filters)
        return cls.get_session().scalar(stmt)

    @classmethod
    @read_operation
    def exists(cls, *criteria, **filters) -> bool:
        """是否存在满足条件的记录"""
        return cls.first(*criteria, **filters) is not None
