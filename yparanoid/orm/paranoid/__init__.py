"""软删除（paranoid）扩展

记录不做物理删除，而是设置删除标记；普通查询自动排除已删除记录。

使用示例:
    from yparanoid.orm import BaseModel
    from yparanoid.orm.paranoid import exclusive_scope

    class Widget(BaseModel):
        name: Mapped[str] = mapped_column(String(50))

    w.destroy()
    Widget.all()                   # 不包含 w
    Widget.all_with_destroyed()    # 包含 w
    Widget.count_destroyed_only()  # 1
    w.restore()

    with exclusive_scope():
        Widget.count()             # 包含已删除记录
"""

from .exceptions import (
    ParanoidError,
    MarkerPolicyError,
    ParanoidConfigurationError,
    UnknownOperationError,
)
from .marker_policy import (
    MarkerPolicy,
    utc_now,
    build_default_predicate,
    build_inverse_predicate,
)
from .scope import (
    ScopeState,
    current_scope,
    is_exclusive,
    exclusive_scope,
    filtered_scope,
    scoped_predicate,
    with_exclusive_scope,
)
from .registry import ParanoidRegistry, paranoid_registry
from .rewriter import ParanoidRewriter
from .hook import (
    activate_paranoid_hook,
    deactivate_paranoid_hook,
    is_paranoid_active,
    get_rewriter,
    configure_paranoid,
    get_paranoid_settings,
)
from .relationships import (
    RelationshipKind,
    OnDestroy,
    PARANOID_DEPENDENT_KEY,
    RelationshipDescriptor,
    describe_relationships,
)
from .query_surface import (
    DerivedVariant,
    read_operation,
    resolve_operation,
    select_with_destroyed,
    select_destroyed_only,
)
from .cascade import (
    supports_restore,
    restore_dependents,
    destroy_dependents,
    validate_paranoid_class,
)
from .reverse_accessor import install_reverse_accessor, install_reverse_accessors
from .mixin import ParanoidMixin, SimpleParanoidMixin, generate_paranoid_mixin_class

__all__ = [
    # 异常
    "ParanoidError",
    "MarkerPolicyError",
    "ParanoidConfigurationError",
    "UnknownOperationError",
    # 删除标记策略
    "MarkerPolicy",
    "utc_now",
    "build_default_predicate",
    "build_inverse_predicate",
    # 作用域
    "ScopeState",
    "current_scope",
    "is_exclusive",
    "exclusive_scope",
    "filtered_scope",
    "scoped_predicate",
    "with_exclusive_scope",
    # 注册表与钩子
    "ParanoidRegistry",
    "paranoid_registry",
    "ParanoidRewriter",
    "activate_paranoid_hook",
    "deactivate_paranoid_hook",
    "is_paranoid_active",
    "get_rewriter",
    "configure_paranoid",
    "get_paranoid_settings",
    # 关系与级联
    "RelationshipKind",
    "OnDestroy",
    "PARANOID_DEPENDENT_KEY",
    "RelationshipDescriptor",
    "describe_relationships",
    "supports_restore",
    "restore_dependents",
    "destroy_dependents",
    "validate_paranoid_class",
    "install_reverse_accessor",
    "install_reverse_accessors",
    # 派生查询
    "DerivedVariant",
    "read_operation",
    "resolve_operation",
    "select_with_destroyed",
    "select_destroyed_only",
    # Mixin
    "ParanoidMixin",
    "SimpleParanoidMixin",
    "generate_paranoid_mixin_class",
]
