"""软删除模型注册表

记录所有启用软删除的模型类，提供：
- 表 → 模型类 / 删除标记策略 的查找（按 (schema, name) 建索引）
- mapper 配置完成后的延迟校验与反向访问器安装
"""

from __future__ import annotations

import threading
from typing import Dict, List, Optional

from sqlalchemy import event
from sqlalchemy.orm import Mapper

from yparanoid.log import get_logger
from .marker_policy import MarkerPolicy
from .scope import TableKey, table_key

logger = get_logger()


class ParanoidRegistry:
    """软删除模型注册表

    模型类在 ``__init_subclass__`` 阶段注册，此时 declarative 尚未完成映射，
    所以表索引在首次查找时才建立，校验推迟到 mapper 的 after_configured 事件。
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._classes: List[type] = []
        self._pending: List[type] = []
        self._by_table: Dict[TableKey, type] = {}
        self._index_dirty = False

    def register(self, cls: type) -> None:
        """注册模型类（重复注册忽略）"""
        with self._lock:
            if cls in self._classes:
                return
            self._classes.append(cls)
            self._pending.append(cls)
            self._index_dirty = True
        logger.debug(f"注册软删除模型: {cls.__name__}")

    def unregister(self, cls: type) -> None:
        with self._lock:
            if cls in self._classes:
                self._classes.remove(cls)
            if cls in self._pending:
                self._pending.remove(cls)
            self._index_dirty = True

    def is_registered(self, cls) -> bool:
        with self._lock:
            return cls in self._classes

    def classes(self) -> List[type]:
        with self._lock:
            return list(self._classes)

    def _rebuild_index(self) -> None:
        by_table: Dict[TableKey, type] = {}
        complete = True
        for cls in self._classes:
            table = getattr(cls, "__table__", None)
            if table is None:
                # 尚未完成映射，下次查找时重建
                complete = False
                continue
            # 单表继承时子类共享父类的表，以先注册者为准
            by_table.setdefault(table_key(table), cls)
        self._by_table = by_table
        self._index_dirty = not complete

    def class_for_table(self, table) -> Optional[type]:
        """根据表查找模型类，表未启用软删除时返回 None"""
        with self._lock:
            if self._index_dirty:
                self._rebuild_index()
            return self._by_table.get(table_key(table))

    def policy_for(self, table) -> Optional[MarkerPolicy]:
        """根据表查找删除标记策略"""
        cls = self.class_for_table(table)
        if cls is None:
            return None
        return cls.__paranoid__

    def configure(self) -> None:
        """处理待配置的模型类：校验并安装反向访问器

        校验失败的模型会被移出注册表，随后抛出第一个错误。
        """
        # 延迟导入，避免循环依赖
        from .cascade import validate_paranoid_class
        from .reverse_accessor import install_reverse_accessors

        with self._lock:
            pending = [cls for cls in self._pending if getattr(cls, "__table__", None) is not None]
            if not pending:
                return
            self._pending = [cls for cls in self._pending if cls not in pending]

        errors = []
        for cls in pending:
            try:
                validate_paranoid_class(cls)
            except Exception as e:
                logger.error(f"软删除模型配置无效，已取消注册: {e}")
                self.unregister(cls)
                errors.append(e)

        for cls in pending:
            if self.is_registered(cls):
                install_reverse_accessors(cls)

        if errors:
            raise errors[0]


# 全局注册表
paranoid_registry = ParanoidRegistry()


@event.listens_for(Mapper, "after_configured")
def _configure_paranoid_models():
    """mapper 全部配置完成后校验新注册的软删除模型"""
    paranoid_registry.configure()
