"""
DB Runner - 事务化SQL执行层
==========================

基于 Python DB-API 2.0 连接的SQL执行工具。

主要特性:
- 命名参数SQL模板（``:name`` 占位符），按驱动的参数风格改写
- 无状态的参数化语句执行器（更新、查询、自增主键、批量、存储过程）
- 连接级事务会话，支持保存点
- 分组 TOML 配置 -> 连接池描述 -> SQLAlchemy 连接池数据源
- 命令行界面

使用示例:
    >>> from db_runner import TransactionalSession, dict_rows
    >>> with TransactionalSession.create("dev") as session:
    ...     rows = session.query("SELECT * FROM users WHERE id = :id", dict_rows, {"id": 1})
"""

__version__ = "0.1.0"
__license__ = "MIT"

from .core.binder import ParameterBinder
from .core.config import GroupedConfig, PoolConfigLoader, PoolDescriptor, identify_driver
from .core.exceptions import (
    BatchExecutionError,
    BindingError,
    ConfigError,
    ConnectionError,
    DatabaseError,
    DBRunnerError,
    TransactionError,
    TransactionFailed,
)
from .core.executor import SUCCESS_NO_INFO, ResultCursor, SqlExecutor
from .core.handlers import column_values, dict_rows, first_row, scalar, tuple_rows
from .core.named_sql import CompiledSql, NamedSqlParser, compile_sql
from .core.session import Savepoint, TransactionalSession, TransactionState
from .drivers.sqlalchemy_driver import PooledDataSource, close_all_data_sources, get_data_source

# 公共API导出列表
__all__ = [
    # SQL模板与执行
    "NamedSqlParser",
    "CompiledSql",
    "compile_sql",
    "ParameterBinder",
    "SqlExecutor",
    "ResultCursor",
    "SUCCESS_NO_INFO",
    # 结果处理
    "dict_rows",
    "tuple_rows",
    "first_row",
    "scalar",
    "column_values",
    # 事务会话
    "TransactionalSession",
    "TransactionState",
    "Savepoint",
    # 配置与数据源
    "GroupedConfig",
    "PoolConfigLoader",
    "PoolDescriptor",
    "identify_driver",
    "PooledDataSource",
    "get_data_source",
    "close_all_data_sources",
    # 异常类
    "DBRunnerError",
    "ConfigError",
    "BindingError",
    "DatabaseError",
    "ConnectionError",
    "BatchExecutionError",
    "TransactionError",
    "TransactionFailed",
]


def get_version() -> str:
    """
    获取当前模块版本号。

    Returns:
        str: 版本号字符串，格式为 'x.y.z'
    """
    return __version__
