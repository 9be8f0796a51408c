"""反向关联访问器

父模型的一对多 / 一对一关系与子模型上的多对一关系配对后（back_populates 或 backref），
在子模型上安装 ``<多对一关系名>_with_destroyed()``，即使父记录已删除也能取到。

使用示例:
    class Order(BaseModel):
        items = relationship("OrderItem", back_populates="order")

    class OrderItem(BaseModel):
        order_id: Mapped[int] = mapped_column(ForeignKey("order.id"))
        order = relationship("Order", back_populates="items")

    item.order                    # 父记录已删除时为 None
    item.order_with_destroyed()   # 仍能取到已删除的父记录
"""

from __future__ import annotations

from typing import Callable, List, Optional

from sqlalchemy import inspect

from yparanoid.log import get_logger
from .exceptions import ParanoidConfigurationError
from .query_surface import resolve_operation
from .relationships import RelationshipDescriptor, RelationshipKind, describe_relationship

logger = get_logger()

_ACCESSOR_MARK = "__paranoid_reverse_accessor__"

ACCESSOR_SUFFIX = "_with_destroyed"


def _reciprocal(parent_cls, descriptor: RelationshipDescriptor) -> Optional[RelationshipDescriptor]:
    """找到子模型上指回父模型的多对一关系"""
    if not descriptor.is_dependent_kind or not descriptor.reverse_name:
        return None
    child_relationships = inspect(descriptor.target_type).relationships
    if descriptor.reverse_name not in child_relationships:
        return None
    reciprocal = describe_relationship(child_relationships[descriptor.reverse_name])
    if reciprocal.kind is not RelationshipKind.MANY_TO_ONE:
        return None
    if not issubclass(parent_cls, reciprocal.target_type):
        return None
    return reciprocal


def _make_accessor(parent_cls, reciprocal: RelationshipDescriptor) -> Callable:
    foreign_key_field = reciprocal.foreign_key_field
    parent_key_field = reciprocal.parent_key_field

    def accessor(self):
        value = getattr(self, foreign_key_field)
        if value is None:
            return None
        first_with_destroyed = resolve_operation(parent_cls, "first_with_destroyed")
        return first_with_destroyed(getattr(parent_cls, parent_key_field) == value)

    accessor.__name__ = f"{reciprocal.name}{ACCESSOR_SUFFIX}"
    accessor.__doc__ = f"获取 {reciprocal.name}，包含已删除的 {parent_cls.__name__}"
    setattr(accessor, _ACCESSOR_MARK, True)
    return accessor


def install_reverse_accessor(parent_cls, relationship_name: str) -> str:
    """为父模型的一个关系在子模型上安装反向访问器

    幂等；子模型已有同名的自定义属性时不覆盖。

    Returns:
        访问器名称

    Raises:
        ParanoidConfigurationError: 关系不是一对多 / 一对一，或子模型上没有配对的多对一关系
    """
    relationships = inspect(parent_cls).relationships
    if relationship_name not in relationships:
        raise ParanoidConfigurationError(parent_cls.__name__, f"不存在关系 {relationship_name}")

    descriptor = describe_relationship(relationships[relationship_name])
    reciprocal = _reciprocal(parent_cls, descriptor)
    if reciprocal is None:
        raise ParanoidConfigurationError(
            parent_cls.__name__,
            f"关系 {relationship_name} 在 {descriptor.target_type.__name__} 上没有配对的多对一关系"
        )

    return _install(parent_cls, descriptor.target_type, reciprocal)


def _install(parent_cls, child_cls, reciprocal: RelationshipDescriptor) -> str:
    name = f"{reciprocal.name}{ACCESSOR_SUFFIX}"
    existing = getattr(child_cls, name, None)

    if existing is not None:
        if not getattr(existing, _ACCESSOR_MARK, False):
            logger.debug(f"{child_cls.__name__}.{name} 已由用户定义，跳过")
        return name

    setattr(child_cls, name, _make_accessor(parent_cls, reciprocal))
    logger.debug(f"安装反向访问器 {child_cls.__name__}.{name}")
    return name


def install_reverse_accessors(parent_cls) -> List[str]:
    """为父模型所有已配对的一对多 / 一对一关系安装反向访问器"""
    installed = []
    for rel in inspect(parent_cls).relationships:
        descriptor = describe_relationship(rel)
        reciprocal = _reciprocal(parent_cls, descriptor)
        if reciprocal is None:
            continue
        installed.append(_install(parent_cls, descriptor.target_type, reciprocal))
    return installed
