"""
DB-API 2.0 (PEP 249) 连接适配工具

PEP 249 没有统一的自动提交开关，也没有探测事务支持的接口，
本模块按主流驱动的实际行为提供统一入口：

- sqlite3: 通过 isolation_level 控制（None 表示自动提交）
- PyMySQL / pymssql: connection.autocommit(flag) 方法
- psycopg / psycopg2 / oracledb / pyodbc: connection.autocommit 属性

SQLAlchemy 连接池返回的代理连接会先解包为底层驱动连接再处理。
"""

import importlib
import sqlite3
from typing import Any

from ..utils.logging_utils import get_logger

logger = get_logger(__name__)

DEFAULT_PARAMSTYLE = "qmark"


def unwrap_connection(connection: Any) -> Any:
    """
    获取连接池代理背后的驱动连接

    Args:
        connection: DB-API 连接或 SQLAlchemy 连接池代理连接

    Returns:
        Any: 底层驱动连接，非代理连接原样返回
    """
    return getattr(connection, "dbapi_connection", None) or connection


def get_paramstyle(connection: Any) -> str:
    """
    获取连接所属驱动的参数风格

    Args:
        connection: DB-API 连接

    Returns:
        str: paramstyle，无法确定时返回 qmark
    """
    explicit = getattr(connection, "paramstyle", None)
    if isinstance(explicit, str):
        return explicit

    raw = unwrap_connection(connection)
    explicit = getattr(raw, "paramstyle", None)
    if isinstance(explicit, str):
        return explicit

    module_name = type(raw).__module__.split(".")[0]
    try:
        module = importlib.import_module(module_name)
    except ImportError:
        return DEFAULT_PARAMSTYLE
    return getattr(module, "paramstyle", DEFAULT_PARAMSTYLE)


def set_autocommit(connection: Any, flag: bool) -> None:
    """
    设置连接的自动提交模式

    Args:
        connection: DB-API 连接
        flag: True 开启自动提交，False 关闭

    Raises:
        Exception: 驱动抛出的异常原样传播
    """
    raw = unwrap_connection(connection)

    setter = getattr(raw, "set_autocommit", None)
    if callable(setter):
        setter(flag)
        return

    if isinstance(raw, sqlite3.Connection):
        # isolation_level 设为 None 时，已开启的事务会被提交
        raw.isolation_level = None if flag else ""
        if not flag and not raw.in_transaction:
            # sqlite3 只在 DML 前隐式 BEGIN，DDL 和 SAVEPOINT 需要显式开启事务
            raw.execute("BEGIN")
        return

    autocommit = getattr(raw, "autocommit", None)
    if callable(autocommit):
        autocommit(flag)
    else:
        raw.autocommit = flag
    logger.debug(f"连接自动提交模式已设置为: {flag}")


def supports_transactions(connection: Any) -> bool:
    """
    探测连接是否支持事务

    Args:
        connection: DB-API 连接

    Returns:
        bool: 是否支持事务

    Notes:
        - 连接声明了 supports_transactions（布尔值或可调用对象）时以其为准
        - 否则具备 rollback 方法的连接视为支持事务
    """
    raw = unwrap_connection(connection)
    declared = getattr(raw, "supports_transactions", None)
    if callable(declared):
        return bool(declared())
    if declared is not None:
        return bool(declared)
    return callable(getattr(raw, "rollback", None))
