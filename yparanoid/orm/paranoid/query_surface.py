"""派生查询操作

为每个基础读操作（get、find、first、all、count、exists …）派生两个变体：

- ``{op}_with_destroyed``：在 exclusive scope 中执行原操作，包含已删除记录
- ``{op}_destroyed_only``：在 exclusive scope 中执行原操作，并附加反向条件，只返回已删除记录

派生关系是一张静态表，在模型注册时根据 ``@read_operation`` 标记构建一次。
新增的基础读操作需要加上 ``@read_operation`` 才会获得两个变体。

使用示例:
    class Widget(BaseModel):
        name: Mapped[str] = mapped_column(String(50))

        @classmethod
        @read_operation
        def find_by_name(cls, name):
            return cls.find(name=name)

    Widget.count_with_destroyed()
    Widget.find_destroyed_only(Widget.name == "a")
    Widget.find_by_name_with_destroyed("a")
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List

from sqlalchemy import select
from sqlalchemy.sql import Select

from yparanoid.log import get_logger
from .exceptions import UnknownOperationError
from .hook import get_paranoid_settings, get_rewriter
from .marker_policy import build_inverse_predicate
from .scope import exclusive_scope, scoped_predicate, with_exclusive_scope

logger = get_logger()

_READ_OPERATION_MARK = "__paranoid_read_operation__"


class DerivedVariant(str, Enum):
    """派生变体（取值为方法名后缀）"""
    WITH_DESTROYED = "_with_destroyed"
    DESTROYED_ONLY = "_destroyed_only"


_VARIANT_DOCS = {
    DerivedVariant.WITH_DESTROYED: "包含已删除记录",
    DerivedVariant.DESTROYED_ONLY: "仅已删除记录",
}


def read_operation(fn: Callable) -> Callable:
    """标记一个类方法为基础读操作

    放在 ``@classmethod`` 内侧::

        @classmethod
        @read_operation
        def count(cls, ...): ...
    """
    setattr(fn, _READ_OPERATION_MARK, True)
    return fn


def _unwrap(attr):
    if isinstance(attr, (classmethod, staticmethod)):
        return attr.__func__
    return attr


def collect_read_operations(cls) -> List[str]:
    """按 MRO 收集类上所有带 @read_operation 标记的方法名"""
    names = []
    for klass in reversed(cls.__mro__):
        for name, attr in vars(klass).items():
            if getattr(_unwrap(attr), _READ_OPERATION_MARK, False) and name not in names:
                names.append(name)
    return names


@dataclass(frozen=True)
class DerivedOperation:
    """派生操作表中的一项"""
    name: str
    base: str
    variant: DerivedVariant


def build_operation_table(cls) -> Dict[str, DerivedOperation]:
    """构建派生操作表：派生名 → DerivedOperation"""
    table = {}
    for base in collect_read_operations(cls):
        for variant in DerivedVariant:
            name = f"{base}{variant.value}"
            table[name] = DerivedOperation(name=name, base=base, variant=variant)
    return table


def _destroyed_only_predicate(cls):
    policy = cls.__paranoid__

    def builder(from_obj):
        return build_inverse_predicate(policy, from_obj.columns[policy.field_name])

    return builder


def _make_derived(operation: DerivedOperation) -> classmethod:
    base = operation.base

    if operation.variant is DerivedVariant.WITH_DESTROYED:
        def derived(cls, *args, **kwargs):
            return with_exclusive_scope(getattr(cls, base), *args, **kwargs)
    else:
        def derived(cls, *args, **kwargs):
            with exclusive_scope(), scoped_predicate(cls.__table__, _destroyed_only_predicate(cls)):
                return getattr(cls, base)(*args, **kwargs)

    derived.__name__ = operation.name
    derived.__qualname__ = operation.name
    derived.__doc__ = f"{base}() 的{_VARIANT_DOCS[operation.variant]}版本"
    return classmethod(derived)


def install_derived_operations(cls) -> Dict[str, DerivedOperation]:
    """在模型类上安装派生操作

    类自身已定义同名属性时不覆盖。
    """
    table = build_operation_table(cls)
    for name, operation in table.items():
        if name in cls.__dict__:
            continue
        setattr(cls, name, _make_derived(operation))
    cls._paranoid_operations = table
    cls._paranoid_resolved = {}
    logger.debug(f"{cls.__name__} 派生查询操作: {sorted(table)}")
    return table


def resolve_operation(cls, name: str) -> Callable:
    """按名称解析派生操作，结果按类缓存

    Raises:
        UnknownOperationError: 名称不是已登记基础操作的派生名
    """
    resolved = cls.__dict__.get("_paranoid_resolved")
    if resolved is None:
        install_derived_operations(cls)
        resolved = cls._paranoid_resolved

    if name in resolved:
        return resolved[name]

    if name not in cls._paranoid_operations:
        raise UnknownOperationError(cls.__name__, name)

    fn = getattr(cls, name)
    resolved[name] = fn
    return fn


def select_with_destroyed(cls, *criteria) -> Select:
    """构建包含已删除记录的查询语句"""
    rewriter = get_rewriter()
    if rewriter is not None:
        option = rewriter.include_destroyed_option
    else:
        option = get_paranoid_settings().include_destroyed_option
    return select(cls).where(*criteria).execution_options(**{option: True})


def select_destroyed_only(cls, *criteria) -> Select:
    """构建只包含已删除记录的查询语句"""
    policy = cls.__paranoid__
    column = cls.__table__.columns[policy.field_name]
    return select_with_destroyed(cls, build_inverse_predicate(policy, column), *criteria)
