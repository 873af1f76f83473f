"""
通用工具模块

- 日志管理：setup_logging、get_logger、set_log_level，以及SQL日志输出（SqlLogConfig、SqlLog）
- 路径处理：PathHelper，跨平台的用户配置目录
"""

from .logging_utils import SqlLog, SqlLogConfig, get_logger, set_log_level, setup_logging
from .path_utils import PathHelper

__all__ = [
    # ==================== 日志管理模块 ====================
    "setup_logging",
    "get_logger",
    "set_log_level",
    "SqlLogConfig",
    "SqlLog",
    # ==================== 路径处理模块 ====================
    "PathHelper",
]
