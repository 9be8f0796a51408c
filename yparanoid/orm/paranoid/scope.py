"""查询作用域

管理默认过滤条件的挂起（exclusive scope）与临时附加条件（scoped predicate）。

作用域状态保存在 ContextVar 中：
- 每个线程、每个 asyncio 任务各自独立，互不可见
- 进入时 set，退出时用 token reset，异常、提前返回、嵌套都能恢复到进入前的状态

使用示例:
    from yparanoid.orm.paranoid import exclusive_scope, with_exclusive_scope

    with exclusive_scope():
        Widget.all()   # 包含已删除记录

    total = with_exclusive_scope(Widget.count)
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Tuple, TypeVar, Union

from sqlalchemy.sql import FromClause
from sqlalchemy.sql.elements import ClauseElement, ColumnElement

T = TypeVar("T")

TableKey = Tuple[Any, str]

PredicateBuilder = Callable[[FromClause], ColumnElement]


def table_key(table) -> TableKey:
    """表的查找键：(schema, name)

    ORM 语句中出现的是带注解的 Table 副本，不能直接按对象比较
    """
    return (table.schema, table.name)


@dataclass(frozen=True)
class ScopedPredicate:
    """作用于某张表的附加条件"""
    key: TableKey
    predicate: Union[ColumnElement, PredicateBuilder]

    def resolve(self, from_obj: FromClause) -> ColumnElement:
        """针对具体的 FROM 对象（原表或别名）生成条件"""
        if isinstance(self.predicate, ClauseElement):
            return self.predicate
        return self.predicate(from_obj)


@dataclass(frozen=True)
class ScopeState:
    """作用域状态

    Attributes:
        exclusive: 是否挂起默认过滤条件
        predicates: 当前附加的条件
    """
    exclusive: bool = False
    predicates: Tuple[ScopedPredicate, ...] = ()

    def predicates_for(self, key: TableKey) -> Tuple[ScopedPredicate, ...]:
        return tuple(p for p in self.predicates if p.key == key)


_DEFAULT_STATE = ScopeState()

_scope_state: ContextVar[ScopeState] = ContextVar("paranoid_scope_state", default=_DEFAULT_STATE)


def current_scope() -> ScopeState:
    """获取当前执行上下文的作用域状态"""
    return _scope_state.get()


def is_exclusive() -> bool:
    """当前是否处于 exclusive scope"""
    return _scope_state.get().exclusive


@contextmanager
def exclusive_scope() -> Iterator[ScopeState]:
    """挂起默认过滤条件

    同时清空外层的附加条件，退出时恢复进入前的状态。
    """
    token = _scope_state.set(ScopeState(exclusive=True))
    try:
        yield _scope_state.get()
    finally:
        _scope_state.reset(token)


@contextmanager
def filtered_scope() -> Iterator[ScopeState]:
    """恢复默认过滤条件

    在外层 exclusive scope 或附加条件中也按普通作用域执行，退出时恢复进入前的状态。
    """
    token = _scope_state.set(_DEFAULT_STATE)
    try:
        yield _scope_state.get()
    finally:
        _scope_state.reset(token)


@contextmanager
def scoped_predicate(table, predicate: Union[ColumnElement, PredicateBuilder]) -> Iterator[ScopeState]:
    """为某张表临时附加一个条件

    Args:
        table: 目标表（Table 或映射类的 __table__）
        predicate: 条件表达式，或接收 FROM 对象返回条件的函数（支持别名）
    """
    state = _scope_state.get()
    entry = ScopedPredicate(key=table_key(table), predicate=predicate)
    token = _scope_state.set(
        ScopeState(exclusive=state.exclusive, predicates=state.predicates + (entry,))
    )
    try:
        yield _scope_state.get()
    finally:
        _scope_state.reset(token)


def with_exclusive_scope(fn: Callable[..., T], *args, **kwargs) -> T:
    """在 exclusive scope 中执行 fn 并返回其结果

    库内所有需要看到已删除记录的操作都经由此函数或 exclusive_scope()
    """
    with exclusive_scope():
        return fn(*args, **kwargs)
