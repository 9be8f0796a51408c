"""配置模块"""

from .settings import (
    ParanoidSettings,
    DatabaseSettings,
    LoggingSettings,
    AppSettings,
)
from .loader import ConfigLoader, load_yaml_config

__all__ = [
    "ParanoidSettings",
    "DatabaseSettings",
    "LoggingSettings",
    "AppSettings",
    "ConfigLoader",
    "load_yaml_config",
]
