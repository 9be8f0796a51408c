"""版本信息"""

__version__ = "0.1.0"
__author__ = "yparanoid"
__description__ = "SQLAlchemy 软删除扩展：默认过滤、级联恢复与派生查询"
