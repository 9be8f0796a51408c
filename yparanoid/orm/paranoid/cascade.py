"""级联恢复 / 级联删除

沿模型声明的依赖关系（一对一、一对多，且目标模型同样支持软删除）传播 restore 与 destroy。

- 恢复：父记录自身恢复完成后，逐条恢复外键指向它的已删除子记录，子记录再递归恢复自己的依赖
- 删除：父记录先设置删除标记，再逐条删除外键指向它的未删除子记录

父记录总是先于子记录处理，且只加载对方状态的子记录（恢复时只加载已删除，删除时只加载未删除），
循环依赖在回到已处理的记录时自然终止。

级联不是原子操作：某个子记录失败时剩余的级联中止，已完成的部分不会回退，
需要整体原子性时由调用方提供外层事务。
"""

from __future__ import annotations

from typing import Any, List

from sqlalchemy import inspect

from yparanoid.log import get_logger
from .exceptions import ParanoidConfigurationError
from .query_surface import resolve_operation
from .registry import paranoid_registry
from .relationships import RelationshipDescriptor, describe_relationships, primary_key_name
from .scope import filtered_scope

logger = get_logger()


def supports_restore(target_type) -> bool:
    """目标模型是否支持软删除与恢复"""
    return paranoid_registry.is_registered(target_type)


def dependent_relationships(cls) -> List[RelationshipDescriptor]:
    """模型的依赖关系：声明了级联且目标模型支持恢复"""
    return [
        descriptor for descriptor in describe_relationships(cls)
        if descriptor.cascade_on_parent_destroy and supports_restore(descriptor.target_type)
    ]


def _parent_key_value(parent_type, parent_id, descriptor: RelationshipDescriptor):
    """子记录外键引用的父记录字段值（通常就是父记录主键）"""
    if descriptor.parent_key_field == primary_key_name(parent_type):
        return parent_id
    parent = parent_type.get_with_destroyed(parent_id)
    if parent is None:
        return None
    return getattr(parent, descriptor.parent_key_field)


def restore_dependents(parent_type, parent_id) -> int:
    """级联恢复父记录的已删除子记录

    Args:
        parent_type: 父模型类
        parent_id: 父记录主键

    Returns:
        直接恢复的子记录数量（不含递归恢复的孙记录）
    """
    restored = 0
    for descriptor in dependent_relationships(parent_type):
        key = _parent_key_value(parent_type, parent_id, descriptor)
        if key is None:
            continue

        child_type = descriptor.target_type
        find_destroyed_only = resolve_operation(child_type, "find_destroyed_only")
        foreign_key = getattr(child_type, descriptor.foreign_key_field)
        children = find_destroyed_only(foreign_key == key)

        for child in children:
            try:
                child.restore()
            except Exception:
                logger.error(
                    f"级联恢复中断: {parent_type.__name__}[{parent_id}].{descriptor.name} -> {child!r}，"
                    f"此前已恢复 {restored} 条子记录"
                )
                raise
            restored += 1

        if children:
            logger.debug(f"级联恢复 {parent_type.__name__}[{parent_id}].{descriptor.name}: {len(children)} 条")

    return restored


def destroy_dependents(instance: Any) -> int:
    """级联删除实例的未删除子记录（子记录的 before_destroy / after_destroy 照常执行）

    Returns:
        成功删除的子记录数量
    """
    parent_type = type(instance)
    destroyed = 0
    for descriptor in dependent_relationships(parent_type):
        key = getattr(instance, descriptor.parent_key_field)
        if key is None:
            continue

        child_type = descriptor.target_type
        foreign_key = getattr(child_type, descriptor.foreign_key_field)
        with filtered_scope():
            children = child_type.find(foreign_key == key)
        for child in children:
            if child.destroy():
                destroyed += 1

    if destroyed:
        logger.debug(f"级联删除 {instance!r}: {destroyed} 条子记录")
    return destroyed


def validate_paranoid_class(cls) -> None:
    """校验软删除模型的配置（mapper 配置完成后执行）

    Raises:
        ParanoidConfigurationError: 标记字段不存在、主键不是单列、
            级联关系使用复合外键，或显式级联指向不支持软删除的模型
    """
    policy = cls.__paranoid__

    # 标记字段的列名与属性名需一致
    if (cls.__table__.columns.get(policy.field_name) is None
            or policy.field_name not in inspect(cls).column_attrs):
        raise ParanoidConfigurationError(cls.__name__, f"表 {cls.__table__.name} 中不存在删除标记字段 {policy.field_name}")

    try:
        primary_key_name(cls)
    except ValueError as e:
        raise ParanoidConfigurationError(cls.__name__, str(e)) from e

    for descriptor in describe_relationships(cls):
        if not descriptor.cascade_on_parent_destroy:
            continue

        target_name = descriptor.target_type.__name__
        if descriptor.composite:
            raise ParanoidConfigurationError(
                cls.__name__, f"级联关系 {descriptor.name} 使用复合外键，暂不支持"
            )

        if not supports_restore(descriptor.target_type):
            if descriptor.cascade_explicit:
                raise ParanoidConfigurationError(
                    cls.__name__, f"级联关系 {descriptor.name} 指向的 {target_name} 不支持软删除"
                )
            logger.debug(f"{cls.__name__}.{descriptor.name} 指向非软删除模型 {target_name}，不参与级联恢复")
