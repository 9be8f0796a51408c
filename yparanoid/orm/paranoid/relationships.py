"""关系描述

从 SQLAlchemy mapper 读取模型的关系定义，整理为软删除级联使用的只读描述。

级联恢复 / 级联删除的声明方式:
    from sqlalchemy.orm import relationship
    from yparanoid.orm.paranoid import OnDestroy, PARANOID_DEPENDENT_KEY

    class Order(BaseModel):
        # 显式声明：目标模型必须支持软删除，否则配置时报错
        items = relationship(
            "OrderItem",
            back_populates="order",
            info={PARANOID_DEPENDENT_KEY: OnDestroy.DESTROY}
        )

        # 隐式声明：沿用 SQLAlchemy 的 delete 级联，目标不支持软删除时忽略
        notes = relationship("OrderNote", back_populates="order", cascade="all, delete")
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from sqlalchemy import inspect
from sqlalchemy.orm import RelationshipProperty
from sqlalchemy.orm.interfaces import MANYTOMANY, MANYTOONE, ONETOMANY

# relationship.info 中声明依赖关系的键
PARANOID_DEPENDENT_KEY = "paranoid_dependent"


class RelationshipKind(str, Enum):
    """关系类型"""
    ONE_TO_ONE = "one_to_one"
    ONE_TO_MANY = "one_to_many"
    MANY_TO_ONE = "many_to_one"
    MANY_TO_MANY = "many_to_many"


class OnDestroy(str, Enum):
    """父记录删除时对子记录的处理方式

    - DESTROY: 子记录随父记录删除，并随父记录级联恢复
    - NOTHING: 不处理
    """
    DESTROY = "destroy"
    NOTHING = "nothing"


@dataclass(frozen=True)
class RelationshipDescriptor:
    """关系描述

    Attributes:
        name: 关系属性名
        target_type: 目标模型类
        kind: 关系类型
        foreign_key_field: 外键字段（属性名），一对多时在目标模型上，多对一时在本模型上
        parent_key_field: 被外键引用的字段（属性名），通常是父模型主键
        cascade_on_parent_destroy: 父记录删除 / 恢复时是否级联
        cascade_explicit: 级联是否通过 PARANOID_DEPENDENT_KEY 显式声明
        reverse_name: 目标模型上配对的反向关系名
        composite: 外键是否由多列组成
    """
    name: str
    target_type: type
    kind: RelationshipKind
    foreign_key_field: Optional[str]
    parent_key_field: Optional[str]
    cascade_on_parent_destroy: bool
    cascade_explicit: bool
    reverse_name: Optional[str]
    composite: bool = False

    @property
    def is_dependent_kind(self) -> bool:
        """一对一、一对多才可能是依赖关系"""
        return self.kind in (RelationshipKind.ONE_TO_ONE, RelationshipKind.ONE_TO_MANY)


def _relationship_kind(rel: RelationshipProperty) -> RelationshipKind:
    if rel.direction is MANYTOMANY:
        return RelationshipKind.MANY_TO_MANY
    if rel.direction is MANYTOONE:
        return RelationshipKind.MANY_TO_ONE
    if rel.direction is ONETOMANY and not rel.uselist:
        return RelationshipKind.ONE_TO_ONE
    return RelationshipKind.ONE_TO_MANY


def _parse_on_destroy(value) -> OnDestroy:
    """info 中的声明支持枚举或字符串"""
    if isinstance(value, OnDestroy):
        return value
    if isinstance(value, str):
        return OnDestroy(value.lower())
    raise ValueError(f"无法识别的 {PARANOID_DEPENDENT_KEY} 取值: {value!r}")


def _reverse_name(rel: RelationshipProperty) -> Optional[str]:
    if rel.back_populates:
        return rel.back_populates
    # backref 可以是字符串，也可以是 (name, kwargs) 形式
    if isinstance(rel.backref, str):
        return rel.backref
    if isinstance(rel.backref, tuple):
        return rel.backref[0]
    return None


def describe_relationship(rel: RelationshipProperty) -> RelationshipDescriptor:
    """把一个 RelationshipProperty 整理为 RelationshipDescriptor"""
    kind = _relationship_kind(rel)
    pairs = list(rel.local_remote_pairs or ())

    foreign_key_field = None
    parent_key_field = None
    if kind is not RelationshipKind.MANY_TO_MANY and pairs:
        local_col, remote_col = pairs[0]
        local_key = rel.parent.get_property_by_column(local_col).key
        remote_key = rel.mapper.get_property_by_column(remote_col).key
        if kind is RelationshipKind.MANY_TO_ONE:
            foreign_key_field, parent_key_field = local_key, remote_key
        else:
            foreign_key_field, parent_key_field = remote_key, local_key

    info = rel.info or {}
    if PARANOID_DEPENDENT_KEY in info:
        explicit = True
        cascade = _parse_on_destroy(info[PARANOID_DEPENDENT_KEY]) is OnDestroy.DESTROY
    else:
        explicit = False
        cascade = bool(rel.cascade.delete)

    return RelationshipDescriptor(
        name=rel.key,
        target_type=rel.mapper.class_,
        kind=kind,
        foreign_key_field=foreign_key_field,
        parent_key_field=parent_key_field,
        cascade_on_parent_destroy=cascade and kind in (RelationshipKind.ONE_TO_ONE, RelationshipKind.ONE_TO_MANY),
        cascade_explicit=explicit,
        reverse_name=_reverse_name(rel),
        composite=len(pairs) > 1,
    )


def primary_key_name(cls) -> str:
    """单列主键的属性名，复合主键时抛出 ValueError"""
    mapper = inspect(cls)
    if len(mapper.primary_key) != 1:
        raise ValueError(f"{cls.__name__} 需要单列主键，实际为 {len(mapper.primary_key)} 列")
    return mapper.get_property_by_column(mapper.primary_key[0]).key


def describe_relationships(cls) -> List[RelationshipDescriptor]:
    """读取模型类的全部关系描述（需要 mapper 已配置）"""
    return [describe_relationship(rel) for rel in inspect(cls).relationships]
