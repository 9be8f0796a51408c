"""SQL语句重写器 - 软删除默认过滤"""

from __future__ import annotations

from typing import List, TypeVar, Union

from sqlalchemy import Table
from sqlalchemy.orm import FromStatement
from sqlalchemy.orm.util import _ORMJoin
from sqlalchemy.sql import CompoundSelect, Delete, Executable, Join, Select, TableClause, Update
from sqlalchemy.sql.elements import ColumnElement, TextClause
from sqlalchemy.sql.selectable import AliasedReturnsRows
from sqlalchemy.sql.visitors import cloned_traverse

from .marker_policy import build_default_predicate
from .registry import ParanoidRegistry, paranoid_registry
from .scope import current_scope, table_key

Statement = TypeVar('Statement', bound=Union[Select, FromStatement, CompoundSelect, Executable])


class ParanoidRewriter:
    """SQL语句重写器

    为涉及软删除模型的语句合并（AND）过滤条件：
    - 默认过滤条件：只保留未删除记录，exclusive scope 或 execution_options 中可关闭
    - 作用域附加条件：scoped_predicate() 压入的条件，始终生效

    支持 SELECT（含 JOIN、别名、子查询、CTE、UNION）、UPDATE、DELETE。
    无法分析的 FROM 结构直接报错，不会放过已删除记录。

    使用示例:
        from yparanoid.orm.paranoid import ParanoidRewriter

        rewriter = ParanoidRewriter(include_destroyed_option="include_destroyed")
        stmt = rewriter.rewrite_statement(select(Widget))

        # 单条语句包含已删除记录
        select(Widget).execution_options(include_destroyed=True)
    """

    def __init__(
            self,
            registry: ParanoidRegistry = None,
            include_destroyed_option: str = "include_destroyed",
    ):
        """初始化重写器

        Args:
            registry: 软删除模型注册表，默认使用全局注册表
            include_destroyed_option: 关闭默认过滤的 execution_option 名称
        """
        self.registry = registry or paranoid_registry
        self.include_destroyed_option = include_destroyed_option

    def rewrite_statement(self, stmt: Statement) -> Statement:
        """重写SQL语句

        支持的语句类型：
        - Select
        - Update
        - Delete
        - CompoundSelect（UNION等）
        - FromStatement

        返回新的语句对象，调用方持有的语句不会被修改，可在不同作用域中重复执行。
        """
        bypass = self._is_bypassed(stmt)

        if isinstance(stmt, Select):
            return self.rewrite_select(stmt, bypass)

        if isinstance(stmt, (Update, Delete)):
            return self.rewrite_dml(stmt, bypass)

        if isinstance(stmt, CompoundSelect):
            return self.rewrite_compound_select(stmt, bypass)

        if isinstance(stmt, FromStatement):
            if isinstance(stmt.element, (Select, CompoundSelect)):
                element = stmt.element
                stmt = stmt._generate()
                if isinstance(element, Select):
                    stmt.element = self.rewrite_select(element, bypass)
                else:
                    stmt.element = self.rewrite_compound_select(element, bypass)
            # 原始SQL文本，无法处理
            return stmt

        raise NotImplementedError(f"不支持的语句类型: {type(stmt)}")

    def _is_bypassed(self, stmt) -> bool:
        if current_scope().exclusive:
            return True
        return bool(stmt.get_execution_options().get(self.include_destroyed_option))

    def rewrite_select(self, stmt: Select, bypass: bool = False) -> Select:
        """重写SELECT语句"""
        bypass = bypass or self._is_bypassed(stmt)
        froms = stmt.get_final_froms()
        if any(_has_nested_select(from_obj) for from_obj in froms):
            # 子查询 / CTE 的内部语句需要原地替换，先深拷贝整条语句
            stmt = cloned_traverse(stmt, {}, {})
            froms = stmt.get_final_froms()
        for from_obj in froms:
            stmt = self._analyze_from(stmt, from_obj, bypass)
        return stmt

    def rewrite_compound_select(self, stmt: CompoundSelect, bypass: bool = False) -> CompoundSelect:
        """重写复合SELECT语句（UNION等）"""
        bypass = bypass or self._is_bypassed(stmt)
        selects = []
        for select in stmt.selects:
            if isinstance(select, CompoundSelect):
                selects.append(self.rewrite_compound_select(select, bypass))
            else:
                selects.append(self.rewrite_select(select, bypass))
        stmt = stmt._generate()
        stmt.selects = selects
        return stmt

    def rewrite_dml(self, stmt: Union[Update, Delete], bypass: bool = False):
        """重写UPDATE / DELETE语句"""
        criteria = self._criteria_for(stmt.table, stmt.table, bypass)
        if criteria:
            stmt = stmt.where(*criteria)
        return stmt

    def _criteria_for(self, table, from_obj, bypass: bool) -> List[ColumnElement]:
        """为一个 FROM 对象生成要合并的条件

        Args:
            table: 底层的表，用于查找删除标记策略
            from_obj: 语句中实际出现的 FROM 对象（原表或别名），条件引用它的列
            bypass: 是否关闭默认过滤条件
        """
        criteria = []
        policy = self.registry.policy_for(table)

        if policy is not None and not bypass:
            column_obj = from_obj.columns.get(policy.field_name)
            if column_obj is not None:
                criteria.append(build_default_predicate(policy, column_obj))

        for entry in current_scope().predicates_for(table_key(table)):
            criteria.append(entry.resolve(from_obj))

        return criteria

    def _rewrite_aliased(self, aliased: AliasedReturnsRows, bypass: bool) -> None:
        """重写子查询 / CTE / 别名内部的语句（原地修改）"""
        element = aliased.element

        if isinstance(element, CompoundSelect):
            aliased.element = self.rewrite_compound_select(element, bypass)
            return

        if isinstance(element, Select):
            aliased.element = self.rewrite_select(element, bypass)
            return

        if isinstance(element, AliasedReturnsRows):
            self._rewrite_aliased(element, bypass)
            return

        raise NotImplementedError(f"不支持的子查询类型: {type(element)}")

    def _rewrite_from_join(self, stmt: Select, join_obj: Union[_ORMJoin, Join], bypass: bool) -> Select:
        """处理JOIN查询，左右两侧递归分析"""
        stmt = self._analyze_from(stmt, join_obj.left, bypass)
        stmt = self._analyze_from(stmt, join_obj.right, bypass)
        return stmt

    def _analyze_from(self, stmt: Select, from_obj, bypass: bool) -> Select:
        """分析FROM子句"""
        if isinstance(from_obj, Table):
            return self._rewrite_from_table(stmt, from_obj, from_obj, bypass)

        if isinstance(from_obj, (_ORMJoin, Join)):
            return self._rewrite_from_join(stmt, from_obj, bypass)

        if isinstance(from_obj, AliasedReturnsRows):
            # aliased(Model) 生成的表别名：条件引用别名的列
            if isinstance(from_obj.element, Table):
                return self._rewrite_from_table(stmt, from_obj.element, from_obj, bypass)
            self._rewrite_aliased(from_obj, bypass)
            return stmt

        if isinstance(from_obj, (TableClause, TextClause)):
            # 轻量表对象或原始SQL文本，没有映射信息
            return stmt

        raise NotImplementedError(f"不支持的FROM类型: {type(from_obj)}")

    def _rewrite_from_table(self, stmt: Select, table: Table, from_obj, bypass: bool) -> Select:
        """为表添加过滤条件"""
        criteria = self._criteria_for(table, from_obj, bypass)
        if not criteria:
            return stmt
        return stmt.filter(*criteria)


def _has_nested_select(from_obj) -> bool:
    """FROM 中是否含有子查询、CTE 等带内部语句的对象"""
    if isinstance(from_obj, (_ORMJoin, Join)):
        return _has_nested_select(from_obj.left) or _has_nested_select(from_obj.right)
    if isinstance(from_obj, AliasedReturnsRows):
        return not isinstance(from_obj.element, Table)
    return False
