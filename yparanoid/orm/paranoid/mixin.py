"""软删除Mixin

ParanoidMixin 把模型的删除语义改为"设置删除标记"：

- destroy() / session.delete()：设置删除标记，before_destroy / after_destroy 照常触发
- restore()：清除删除标记，默认级联恢复依赖的子记录
- delete() / delete_all()：真正的物理删除，不受默认过滤影响
- 普通查询自动过滤已删除记录，``*_with_destroyed`` / ``*_destroyed_only`` 查询已删除记录

宿主模型需要提供 ``query``（scoped_session.query_property()）以及 ``find`` 等基础读操作，
通常直接继承 CoreModel 即可，ParanoidMixin 需排在 CoreModel 之前。
"""

from __future__ import annotations

from typing import Any, ClassVar, List, Optional, Type

from sqlalchemy import Column, DateTime, inspect, update, delete as delete_stmt
from sqlalchemy.ext.hybrid import hybrid_method
from sqlalchemy.orm import Session
from sqlalchemy.orm.util import identity_key
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.sql.type_api import TypeEngine

from yparanoid.log import get_logger
from .cascade import destroy_dependents, restore_dependents
from .exceptions import ParanoidConfigurationError
from .hook import activate_paranoid_hook, get_paranoid_settings, is_paranoid_active
from .marker_policy import MarkerPolicy, build_inverse_predicate, utc_now
from .query_surface import install_derived_operations
from .registry import paranoid_registry
from .relationships import primary_key_name
from .scope import exclusive_scope, filtered_scope

logger = get_logger()


def _is_concrete_model(cls) -> bool:
    """是否为需要注册的具体模型类

    注意：不能用 getattr(cls, '__abstract__', False)，因为这会继承父类的值
    """
    if cls.__dict__.get("__abstract__", False):
        return False
    # 只处理 declarative 模型，纯 Mixin 组合跳过
    return hasattr(cls, "registry") and hasattr(cls, "metadata")


class ParanoidMixin:
    """软删除Mixin

    通过类属性 ``__paranoid__`` 指定删除标记策略，默认使用 deleted_at 时间戳。
    标记字段需要由模型（或 generate_paranoid_mixin_class 生成的 Mixin）自行定义。

    使用示例:
        class Ticket(ParanoidMixin, CoreModel):
            __paranoid__ = MarkerPolicy(field_name="is_deleted", destroyed_value=True, not_destroyed_value=False)
            is_deleted: Mapped[bool] = mapped_column(default=False)

        ticket.destroy()
        Ticket.restore(ticket.id)
    """

    __paranoid__: ClassVar[MarkerPolicy] = MarkerPolicy()

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)

        if not _is_concrete_model(cls):
            return

        if not isinstance(cls.__paranoid__, MarkerPolicy):
            raise ParanoidConfigurationError(
                cls.__name__, f"__paranoid__ 必须是 MarkerPolicy，实际为 {type(cls.__paranoid__).__name__}"
            )

        if not is_paranoid_active():
            activate_paranoid_hook()

        # 此时 declarative 尚未完成映射，表结构相关的校验推迟到 mapper 配置完成后
        paranoid_registry.register(cls)
        install_derived_operations(cls)

    @classmethod
    def _paranoid_session(cls) -> Session:
        return cls.query.session

    # ==================== 生命周期钩子 ====================

    def before_destroy(self) -> Optional[bool]:
        """删除前钩子，返回 False 取消删除"""
        return None

    def after_destroy(self) -> None:
        """删除标记写入后钩子"""

    @property
    def is_destroyed(self) -> bool:
        """检查对象是否已被软删除"""
        policy = type(self).__paranoid__
        return policy.is_destroyed_value(getattr(self, policy.field_name))

    # ==================== 软删除 ====================

    def destroy(self, commit: bool = False) -> bool:
        """软删除当前对象

        依次执行 before_destroy、写入删除标记、级联删除依赖的子记录、after_destroy。

        Args:
            commit: 是否立即提交，默认False

        Returns:
            True 表示已删除；before_destroy 返回 False 或记录早已删除时返回 False
        """
        if self.before_destroy() is False:
            logger.info(f"before_destroy 取消了删除: {self!r}")
            return False

        if not self.destroy_without_callbacks():
            logger.info(f"记录不存在或已删除，跳过: {self!r}")
            return False

        if get_paranoid_settings().cascade_destroy:
            destroy_dependents(self)

        self.after_destroy()
        self._paranoid_commit(commit)
        return True

    def destroy_without_callbacks(self) -> int:
        """写入删除标记，不触发钩子也不级联

        语句总是在默认过滤下执行（即使处于 exclusive scope 中），已删除的记录不会被重新打上标记。

        Returns:
            受影响的行数
        """
        cls = type(self)
        policy = cls.__paranoid__
        session = self._paranoid_session()
        # pending 对象先写入，拿到主键；flush 过程中（session.delete 的级联）不能再次 flush
        if inspect(self).pending:
            session.flush()

        pk_name = primary_key_name(cls)
        value = policy.resolve_destroyed_value()
        stmt = (
            update(cls)
            .where(getattr(cls, pk_name) == getattr(self, pk_name))
            .values({policy.field_name: value})
            .execution_options(synchronize_session=False)
        )
        with filtered_scope():
            result = session.execute(stmt)

        if result.rowcount:
            # 同步内存中的值，不产生脏标记
            set_committed_value(self, policy.field_name, value)
            logger.debug(f"软删除 {cls.__name__}[{getattr(self, pk_name)}]")
        return result.rowcount

    @classmethod
    def destroy_by_id(cls, id: Any, commit: bool = False) -> bool:
        """按主键软删除，记录不存在（或已删除）时返回 False"""
        instance = cls.get(id)
        if instance is None:
            return False
        return instance.destroy(commit)

    @classmethod
    def destroy_all(cls, *criteria, commit: bool = False, **filters) -> List[Any]:
        """按条件逐条软删除（每条记录都会触发钩子）

        Returns:
            实际被删除的对象列表
        """
        destroyed = [instance for instance in cls.find(*criteria, **filters) if instance.destroy()]
        cls._paranoid_commit_cls(commit)
        return destroyed

    # ==================== 恢复 ====================

    @hybrid_method
    def restore(self, include_destroyed_dependents: bool = None, commit: bool = False) -> int:
        """恢复当前对象，参见类方法形式 ``Model.restore(id, ...)``"""
        cls = type(self)
        return cls.restore(getattr(self, primary_key_name(cls)), include_destroyed_dependents, commit)

    @restore.expression
    def restore(cls, id: Any, include_destroyed_dependents: bool = None, commit: bool = False) -> int:
        """按主键恢复已删除的记录

        在 exclusive scope 中清除删除标记，随后按需级联恢复依赖的已删除子记录。
        自身恢复失败时不会进入级联；级联中途失败时已恢复的部分保留。
        恢复未删除的记录不做任何修改。

        Args:
            id: 主键
            include_destroyed_dependents: 是否级联恢复，默认取配置 restore_dependents_by_default
            commit: 是否立即提交，默认False

        Returns:
            自身被恢复的行数（0 或 1）

        使用示例:
            Order.restore(order_id)
            Order.restore(order_id, include_destroyed_dependents=False)
        """
        if include_destroyed_dependents is None:
            include_destroyed_dependents = get_paranoid_settings().restore_dependents_by_default

        policy = cls.__paranoid__
        session = cls._paranoid_session()
        pk_name = primary_key_name(cls)
        marker = cls.__table__.columns[policy.field_name]

        stmt = (
            update(cls)
            .where(getattr(cls, pk_name) == id, build_inverse_predicate(policy, marker))
            .values({policy.field_name: policy.not_destroyed_value})
            .execution_options(synchronize_session=False)
        )
        with exclusive_scope():
            result = session.execute(stmt)

        if result.rowcount:
            instance = session.identity_map.get(identity_key(cls, id))
            if instance is not None:
                set_committed_value(instance, policy.field_name, policy.not_destroyed_value)
            logger.debug(f"恢复 {cls.__name__}[{id}]")

        if include_destroyed_dependents:
            restore_dependents(cls, id)

        cls._paranoid_commit_cls(commit)
        return result.rowcount

    # ==================== 物理删除 ====================

    @hybrid_method
    def delete(self, commit: bool = False) -> int:
        """物理删除当前对象，参见类方法形式 ``Model.delete(id)``"""
        cls = type(self)
        return cls.delete(getattr(self, primary_key_name(cls)), commit)

    @delete.expression
    def delete(cls, id: Any, commit: bool = False) -> int:
        """按主键物理删除，无论记录是否已软删除

        Returns:
            删除的行数
        """
        return cls.delete_all(getattr(cls, primary_key_name(cls)) == id, commit=commit)

    @classmethod
    def delete_all(cls, *criteria, commit: bool = False, **filters) -> int:
        """按条件物理删除，在 exclusive scope 中执行

        Returns:
            删除的行数

        使用示例:
            Widget.delete_all(Widget.created_at < threshold)
            Widget.delete_all(name="tmp")
        """
        session = cls._paranoid_session()
        stmt = (
            delete_stmt(cls)
            .where(*criteria)
            .filter_by(**filters)
            .execution_options(synchronize_session="fetch")
        )
        with exclusive_scope():
            result = session.execute(stmt)

        logger.debug(f"物理删除 {cls.__name__}: {result.rowcount} 行")
        cls._paranoid_commit_cls(commit)
        return result.rowcount

    # ==================== 提交 ====================

    def _paranoid_commit(self, commit: bool = False):
        if commit:
            self._paranoid_session().commit()

    @classmethod
    def _paranoid_commit_cls(cls, commit: bool = False):
        if commit:
            cls._paranoid_session().commit()


def generate_paranoid_mixin_class(
    field_name: str = None,
    destroyed_value: Any = utc_now,
    not_destroyed_value: Any = None,
    field_type: TypeEngine = DateTime(timezone=False),
    class_name: str = "_ParanoidMixin",
) -> Type[ParanoidMixin]:
    """生成软删除Mixin类

    动态生成一个 ParanoidMixin 子类，带有删除标记字段与对应的删除标记策略。

    Args:
        field_name: 删除标记字段名，默认取配置 field_name（deleted_at）
        destroyed_value: 已删除取值，固定值或删除时求值的无参函数
        not_destroyed_value: 未删除取值
        field_type: 字段类型，为 None 时不生成字段（使用模型自己定义的字段）
        class_name: 生成的类名

    Returns:
        动态生成的Mixin类

    使用示例:
        from yparanoid.orm.paranoid import generate_paranoid_mixin_class

        FlagParanoidMixin = generate_paranoid_mixin_class(
            field_name="is_deleted",
            destroyed_value=True,
            not_destroyed_value=False,
            field_type=Boolean(),
        )

        class Comment(FlagParanoidMixin, CoreModel):
            body: Mapped[str] = mapped_column(String(500))
    """
    if field_name is None:
        field_name = get_paranoid_settings().field_name

    class_attributes = {
        "__paranoid__": MarkerPolicy(
            field_name=field_name,
            destroyed_value=destroyed_value,
            not_destroyed_value=not_destroyed_value,
        ),
    }

    if field_type is not None:
        if not_destroyed_value is None:
            class_attributes[field_name] = Column(field_name, field_type, nullable=True, default=None)
        else:
            class_attributes[field_name] = Column(
                field_name, field_type, nullable=False, default=not_destroyed_value
            )

    return type(class_name, (ParanoidMixin,), class_attributes)


_SimpleParanoidMixinBase = generate_paranoid_mixin_class(class_name="_SimpleParanoidMixinBase")


class SimpleParanoidMixin(_SimpleParanoidMixinBase):
    """简单的软删除Mixin

    预配置：deleted_at 时间戳字段，删除时写入当前 UTC 时间，未删除为 NULL。

    使用示例:
        class Widget(SimpleParanoidMixin, CoreModel):
            name: Mapped[str] = mapped_column(String(50))

        w = Widget(name="a").save(commit=True)
        w.destroy()
        Widget.all()                   # 不包含 w
        Widget.all_with_destroyed()    # 包含 w
        Widget.count_destroyed_only()  # 1
        w.restore()
    """
