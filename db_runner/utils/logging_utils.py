"""
日志配置模块

提供统一的日志配置和管理功能，支持多级别日志输出、文件轮转、格式化等特性。
本模块封装了Python标准库logging模块，提供更友好的API。

主要功能：
- setup_logging: 快速配置日志系统
- get_logger: 获取指定名称的logger
- set_log_level: 动态调整日志级别
- SqlLogConfig / SqlLog: SQL显示配置与SQL日志输出（showSql、formatSql、showParams）
"""

import logging
import logging.handlers
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Sequence

import sqlglot
from sqlglot.errors import SqlglotError

from .path_utils import PathHelper

# 默认日志格式 - 包含时间、模块名、级别、消息和源码位置
DEFAULT_LOG_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - %(message)s "
    + "[%(filename)s:%(lineno)d]"
)

# 支持的日志级别映射
VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# SQL日志使用的logger名称
SQL_LOGGER_NAME = "db_runner.sql"


def setup_logging(
    app_name: str = "db_runner",
    level: str = "INFO",
    log_to_console: bool = False,
    log_to_file: bool = True,
    max_file_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
    log_format: str | None = None,
    log_dir: str | None = None,
) -> logging.Logger:
    """
    配置并初始化应用程序的日志系统

    提供灵活的日志配置选项，支持控制台和文件输出，自动创建日志目录。

    Args:
        app_name (str): 应用名称，用于创建日志目录和logger名称，默认"db_runner"
        level (str): 日志级别，可选值：DEBUG, INFO, WARNING, ERROR, CRITICAL，默认"INFO"
        log_to_console (bool): 是否输出到控制台，默认False
        log_to_file (bool): 是否输出到文件，默认True
        max_file_size (int): 单个日志文件最大大小（字节），默认10MB
        backup_count (int): 保留的备份日志文件数量，默认5个
        log_format (str | None): 自定义日志格式字符串，如果为None则使用默认格式
        log_dir (str | None): 自定义日志目录，如果为None则使用用户配置目录下的logs

    Returns:
        logging.Logger: 配置好的logger实例

    Raises:
        ValueError: 当日志级别无效或未启用任何输出方式时
        OSError: 当无法创建日志目录或文件时
        PermissionError: 当没有权限访问日志目录时

    Example:
        >>> logger = setup_logging("db_runner", "DEBUG", log_to_console=True)
        >>> logger.info("应用程序启动成功")
    """
    # 验证日志级别
    log_level = _validate_log_level(level)

    handlers_requested = log_to_console or log_to_file
    if not handlers_requested:
        raise ValueError("至少需要启用一种日志输出方式（控制台或文件）")

    # 设置日志格式
    format_to_use = log_format if log_format is not None else DEFAULT_LOG_FORMAT
    formatter = logging.Formatter(format_to_use)

    # 获取应用专用logger（避免使用root logger）
    logger = logging.getLogger(app_name)
    logger.setLevel(log_level)

    # 清除已有的handler，避免重复配置导致的重复日志
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    log_file: Optional[Path] = None
    log_file_exists = True

    # 配置文件handler（滚动日志）
    if log_to_file:
        if log_dir is None:
            log_dir_path = PathHelper.get_user_config_dir(app_name) / "logs"
        else:
            log_dir_path = Path(log_dir)

        try:
            log_dir_path.mkdir(parents=True, exist_ok=True)
        except PermissionError as e:
            raise PermissionError(f"没有权限创建日志目录 {log_dir_path}: {str(e)}")
        except OSError as e:
            raise OSError(f"无法创建日志目录 {log_dir_path}: {str(e)}")

        log_file = log_dir_path / f"{app_name}.log"
        log_file_exists = os.path.exists(log_file)

        try:
            file_handler = logging.handlers.RotatingFileHandler(
                filename=str(log_file),
                maxBytes=max_file_size,
                backupCount=backup_count,
                encoding="utf-8",
            )
        except PermissionError as e:
            raise PermissionError(f"没有权限写入日志文件 {log_file}: {str(e)}")
        except OSError as e:
            raise OSError(f"无法创建日志文件 {log_file}: {str(e)}")
        file_handler.setFormatter(formatter)
        file_handler.setLevel(log_level)
        logger.addHandler(file_handler)

    # 配置控制台handler
    if log_to_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        console_handler.setLevel(log_level)
        logger.addHandler(console_handler)

    # 只在文件不存在时才打印初始化信息，避免重复日志
    if not log_file_exists:
        logger.info(
            f"日志系统初始化完成 - 应用: {app_name}, "
            f"级别: {level.upper()}, 日志文件: {log_file}"
        )

    return logger


def _validate_log_level(level: str) -> int:
    """
    验证并转换日志级别字符串为对应的logging常量

    Args:
        level (str): 日志级别字符串（不区分大小写）

    Returns:
        int: 对应的logging级别常量

    Raises:
        ValueError: 当日志级别无效时抛出
    """
    level_upper = str(level).upper()
    if level_upper not in VALID_LOG_LEVELS:
        raise ValueError(f"无效的日志级别: '{level}'，有效值为: {VALID_LOG_LEVELS}")
    return LOG_LEVEL_MAP[level_upper]


def get_logger(name: str) -> logging.Logger:
    """
    获取指定名称的logger实例

    建议在模块级别使用此函数获取logger。

    Args:
        name (str): logger名称，通常使用模块名（如：__name__）

    Returns:
        logging.Logger: logger实例

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("模块初始化完成")
    """
    return logging.getLogger(name)


def set_log_level(logger_name: str, level: str) -> None:
    """
    动态设置指定logger的日志级别

    同时更新logger和所有关联handler的级别，确保立即生效。

    Args:
        logger_name (str): logger名称
        level (str): 新的日志级别字符串

    Raises:
        ValueError: 当日志级别无效时
    """
    log_level = _validate_log_level(level)
    logger = get_logger(logger_name)
    logger.setLevel(log_level)

    for handler in logger.handlers:
        handler.setLevel(log_level)


@dataclass(frozen=True)
class SqlLogConfig:
    """
    SQL显示配置

    Attributes:
        show_sql (bool): 是否在日志中显示执行的SQL
        format_sql (bool): 是否格式化显示的SQL
        show_params (bool): 是否同时显示绑定参数
        level (str): SQL日志的级别
    """

    show_sql: bool = False
    format_sql: bool = False
    show_params: bool = False
    level: str = "DEBUG"

    def __post_init__(self) -> None:
        _validate_log_level(self.level)


class SqlLog:
    """
    SQL日志输出器

    由配置显式初始化，并注入到执行器和会话中使用，不依赖全局状态。

    Example:
        >>> sql_log = SqlLog(SqlLogConfig(show_sql=True, show_params=True))
        >>> sql_log.log("SELECT * FROM t WHERE id = ?", (5,))
    """

    def __init__(
        self,
        config: Optional[SqlLogConfig] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config or SqlLogConfig()
        self.logger = logger or get_logger(SQL_LOGGER_NAME)
        self._level = _validate_log_level(self.config.level)

    @property
    def enabled(self) -> bool:
        return self.config.show_sql and self.logger.isEnabledFor(self._level)

    def log(self, sql: str, params: Optional[Sequence[Any]] = None) -> None:
        """
        输出SQL日志

        Args:
            sql: 执行的SQL语句
            params: 绑定参数
        """
        if not self.enabled:
            return

        text = self.format(sql) if self.config.format_sql else sql
        if self.config.show_params and params is not None:
            self.logger.log(self._level, f"\n[SQL] : {text}\n[Params] : {list(params)}")
        else:
            self.logger.log(self._level, f"\n[SQL] : {text}")

    @staticmethod
    def format(sql: str) -> str:
        """
        格式化SQL，无法解析时返回原始文本

        Args:
            sql: SQL语句

        Returns:
            str: 格式化后的SQL
        """
        try:
            return ";\n".join(sqlglot.transpile(sql, pretty=True))
        except SqlglotError:
            return sql

    def __repr__(self) -> str:
        return f"SqlLog(config={self.config!r})"
