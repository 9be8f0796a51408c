"""
yparanoid - SQLAlchemy 软删除扩展

删除只设置删除标记，普通查询自动排除已删除记录，支持级联恢复与派生查询。
"""

from .version import __version__, __author__, __description__

from .log import get_logger, setup_logger
from .config import ParanoidSettings, AppSettings, load_yaml_config

__all__ = [
    "__version__",
    "__author__",
    "__description__",
    "get_logger",
    "setup_logger",
    "ParanoidSettings",
    "AppSettings",
    "load_yaml_config",
]
