"""业务模型基类

继承自 SimpleParanoidMixin 和 CoreModel，默认启用软删除。
"""

from typing import Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from .core_model import CoreModel
from .paranoid import SimpleParanoidMixin, read_operation


class BaseModel(SimpleParanoidMixin, CoreModel):
    """业务模型基类

    继承自:
        - SimpleParanoidMixin: 软删除功能（deleted_at），需排在 CoreModel 之前
        - CoreModel: ID、时间戳、CRUD、基础读操作

    方法来源速查表:

        来自 CoreModel:
            - get(id) / find(...) / all() / first(...) / count(...) / exists(...)
            - save(commit) / update(commit, **kwargs) / to_dict()

        来自 SimpleParanoidMixin:
            - destroy() / destroy_by_id(id) / destroy_all(...)   软删除
            - restore() / Model.restore(id)                      恢复
            - delete() / Model.delete(id) / delete_all(...)      物理删除
            - is_destroyed                                       属性
            - 以上每个读操作的 *_with_destroyed / *_destroyed_only 变体

        BaseModel 新增:
            - get_by_name(name)

    使用示例:
        class Article(BaseModel):
            title: Mapped[str] = mapped_column(String(200))

        a = Article(name="intro", title="Hello").save(commit=True)
        a.destroy(commit=True)
        Article.get_by_name_with_destroyed("intro")
    """
    __abstract__ = True

    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, default=None, comment="名称")

    @classmethod
    @read_operation
    def get_by_name(cls, name: str):
        """根据名称获取对象"""
        return cls.first(name=name)
