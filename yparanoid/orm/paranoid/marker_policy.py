"""删除标记策略

定义模型的"已删除"语义：哪个字段、什么值表示已删除、什么值表示未删除。
并据此生成默认过滤条件与其反向条件。
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Union

from sqlalchemy.sql.elements import ColumnElement

from .exceptions import MarkerPolicyError


def utc_now() -> datetime:
    """当前 UTC 时间（去掉时区信息，与 DateTime(timezone=False) 列保持一致）"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class MarkerPolicy:
    """删除标记策略

    Attributes:
        field_name: 标记字段名
        destroyed_value: 已删除取值，可以是固定值，也可以是删除时才求值的无参函数
        not_destroyed_value: 未删除取值

    使用示例:
        from yparanoid.orm.paranoid import MarkerPolicy

        # 时间戳标记（默认）
        MarkerPolicy()

        # 布尔标记
        MarkerPolicy(field_name="is_deleted", destroyed_value=True, not_destroyed_value=False)
    """
    field_name: str = "deleted_at"
    destroyed_value: Union[Any, Callable[[], Any]] = utc_now
    not_destroyed_value: Any = None

    def __post_init__(self):
        if not self.field_name:
            raise MarkerPolicyError("标记字段名不能为空")
        # 计算值只能在删除时检查，这里只校验固定值
        if not callable(self.destroyed_value) and self.destroyed_value == self.not_destroyed_value:
            raise MarkerPolicyError(
                f"字段 {self.field_name} 的已删除取值与未删除取值相同: {self.destroyed_value!r}"
            )

    def resolve_destroyed_value(self) -> Any:
        """求出本次删除要写入的标记值"""
        if callable(self.destroyed_value):
            return self.destroyed_value()
        return self.destroyed_value

    def is_destroyed_value(self, value: Any) -> bool:
        """判断字段当前值是否表示已删除"""
        if self.not_destroyed_value is None:
            return value is not None
        return value != self.not_destroyed_value


def build_default_predicate(policy: MarkerPolicy, column) -> ColumnElement:
    """默认过滤条件：标记字段 == 未删除取值"""
    if policy.not_destroyed_value is None:
        return column.is_(None)
    return column == policy.not_destroyed_value


def build_inverse_predicate(policy: MarkerPolicy, column) -> ColumnElement:
    """反向过滤条件：只保留已删除记录

    非 NULL 的未删除取值使用 IS DISTINCT FROM，字段为 NULL 的记录同样视为已删除。
    """
    if policy.not_destroyed_value is None:
        return column.is_not(None)
    return column.is_distinct_from(policy.not_destroyed_value)
