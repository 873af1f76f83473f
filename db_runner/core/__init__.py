"""
SQL执行层核心模块

主要功能模块：
- named_sql: 命名参数SQL模板解析
- binder: 参数绑定
- executor: 无状态语句执行器
- handlers: 常用结果处理回调
- session: 事务会话
- config: 分组配置与连接池描述
- exceptions: 统一的异常体系
"""

from .binder import ParameterBinder
from .config import GroupedConfig, PoolConfigLoader, PoolDescriptor, identify_driver
from .exceptions import (
    BatchExecutionError,
    BindingError,
    ConfigError,
    ConnectionError,
    CursorClosedError,
    DatabaseError,
    DBRunnerError,
    InvalidPoolSetting,
    MalformedTemplate,
    MissingUrl,
    ParameterCountMismatch,
    SessionClosedError,
    SqlTemplateError,
    TransactionError,
    TransactionFailed,
    TransactionsUnsupported,
    UnknownConfigGroup,
    UnknownDriver,
    UnrecoverableError,
    UnresolvedParameter,
)
from .executor import SUCCESS_NO_INFO, ResultCursor, SqlExecutor
from .named_sql import CompiledSql, NamedSqlParser, compile_sql
from .session import Savepoint, TransactionalSession, TransactionState

__all__ = [
    # ==================== SQL模板 ====================
    "NamedSqlParser",
    "CompiledSql",
    "compile_sql",
    "ParameterBinder",
    # ==================== 执行与事务 ====================
    "SqlExecutor",
    "ResultCursor",
    "SUCCESS_NO_INFO",
    "TransactionalSession",
    "TransactionState",
    "Savepoint",
    # ==================== 配置 ====================
    "GroupedConfig",
    "PoolConfigLoader",
    "PoolDescriptor",
    "identify_driver",
    # ==================== 异常处理体系 ====================
    "DBRunnerError",
    "ConfigError",
    "UnknownConfigGroup",
    "MissingUrl",
    "UnknownDriver",
    "InvalidPoolSetting",
    "SqlTemplateError",
    "MalformedTemplate",
    "BindingError",
    "ParameterCountMismatch",
    "UnresolvedParameter",
    "DatabaseError",
    "UnrecoverableError",
    "ConnectionError",
    "CursorClosedError",
    "SessionClosedError",
    "BatchExecutionError",
    "TransactionError",
    "TransactionsUnsupported",
    "TransactionFailed",
]
