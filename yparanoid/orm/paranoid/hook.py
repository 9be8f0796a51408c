"""软删除事件钩子"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import event
from sqlalchemy.orm import Session

from yparanoid.config import ParanoidSettings
from yparanoid.log import get_logger
from .registry import paranoid_registry
from .rewriter import ParanoidRewriter

logger = get_logger()

# session.info 中暂存待触发 after_destroy 的实例
_PENDING_AFTER_DESTROY_KEY = "paranoid_pending_after_destroy"

# 全局重写器实例
_rewriter: Optional[ParanoidRewriter] = None

_settings: Optional[ParanoidSettings] = None


def configure_paranoid(settings: ParanoidSettings) -> ParanoidSettings:
    """设置全局软删除配置

    钩子已激活时按新配置重建重写器。
    """
    global _settings, _rewriter
    _settings = settings
    if _rewriter is not None:
        _rewriter = ParanoidRewriter(
            registry=paranoid_registry,
            include_destroyed_option=settings.include_destroyed_option,
        )
    return _settings


def get_paranoid_settings() -> ParanoidSettings:
    """获取全局软删除配置（未设置时从环境变量创建）"""
    global _settings
    if _settings is None:
        _settings = ParanoidSettings()
    return _settings


def get_rewriter() -> Optional[ParanoidRewriter]:
    return _rewriter


def activate_paranoid_hook(
    include_destroyed_option: str = None,
    config: ParanoidSettings = None,
) -> ParanoidRewriter:
    """激活软删除钩子

    注册 Session 事件监听器：
    - do_orm_execute：重写 SELECT / UPDATE / DELETE，合并默认过滤条件
    - before_flush：把 session.delete() 标记的软删除模型实例转为软删除
    - after_flush_postexec：为上述实例级联删除依赖的子记录并触发 after_destroy

    模型类继承 ParanoidMixin 时会自动激活，一般无需手动调用。

    Args:
        include_destroyed_option: 关闭默认过滤的 execution_option 名称
        config: 软删除配置对象，提供后同时作为全局配置

    使用示例:
        from yparanoid.orm.paranoid import activate_paranoid_hook

        activate_paranoid_hook(include_destroyed_option="with_trashed")

        Widget.query.execution_options(with_trashed=True).all()
    """
    global _rewriter

    if config is not None:
        configure_paranoid(config)
    settings = get_paranoid_settings()

    _rewriter = ParanoidRewriter(
        registry=paranoid_registry,
        include_destroyed_option=include_destroyed_option or settings.include_destroyed_option,
    )

    for identifier, fn in _LISTENERS:
        if not event.contains(Session, identifier, fn):
            event.listen(Session, identifier, fn)

    logger.debug(f"软删除钩子已激活，选项名: {_rewriter.include_destroyed_option}")
    return _rewriter


def deactivate_paranoid_hook():
    """停用软删除钩子，移除全部事件监听器"""
    global _rewriter
    for identifier, fn in _LISTENERS:
        if event.contains(Session, identifier, fn):
            event.remove(Session, identifier, fn)
    _rewriter = None
    logger.debug("软删除钩子已停用")


def is_paranoid_active() -> bool:
    """检查软删除钩子是否激活"""
    return _rewriter is not None


def _do_orm_execute(orm_execute_state):
    if _rewriter is None:
        return
    # 刷新已持有对象的过期属性时不过滤，否则已删除对象无法加载自身的列
    if orm_execute_state.is_column_load:
        return
    if orm_execute_state.is_select or orm_execute_state.is_update or orm_execute_state.is_delete:
        orm_execute_state.statement = _rewriter.rewrite_statement(orm_execute_state.statement)


def _before_flush(session, flush_context, instances):
    """把 session.delete() 的软删除模型实例改为设置删除标记"""
    # 每次 flush 重新开始，失败的 flush 留下的实例不会触发 after_destroy
    pending = session.info[_PENDING_AFTER_DESTROY_KEY] = []

    for instance in list(session.deleted):
        if not paranoid_registry.is_registered(type(instance)):
            continue

        policy = type(instance).__paranoid__
        already_destroyed = policy.is_destroyed_value(getattr(instance, policy.field_name))

        if not already_destroyed:
            if instance.before_destroy() is False:
                logger.info(f"before_destroy 取消了删除: {instance!r}")
            else:
                setattr(instance, policy.field_name, policy.resolve_destroyed_value())
                pending.append(instance)
                logger.debug(f"session.delete() 转为软删除: {instance!r}")

        # 将对象从deleted集合移回，作为普通更新提交
        session.expunge(instance)
        session.add(instance)


def _after_flush_postexec(session, flush_context):
    """删除标记已写入：级联删除依赖的子记录，再触发 after_destroy"""
    # 延迟导入，避免循环依赖
    from .cascade import destroy_dependents

    pending = session.info.pop(_PENDING_AFTER_DESTROY_KEY, None)
    cascade = get_paranoid_settings().cascade_destroy
    for instance in pending or ():
        if cascade:
            destroy_dependents(instance)
        instance.after_destroy()


_LISTENERS = (
    ("do_orm_execute", _do_orm_execute),
    ("before_flush", _before_flush),
    ("after_flush_postexec", _after_flush_postexec),
)
