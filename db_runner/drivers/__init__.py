"""
数据库驱动适配模块包

- dbapi: DB-API 2.0 连接的自动提交、参数风格和事务支持探测
- sqlalchemy_driver: 基于 SQLAlchemy 连接池的数据源

支持的数据库驱动：
- MySQL / MariaDB (PyMySQL)
- PostgreSQL (psycopg)
- Oracle (oracledb)
- SQL Server (pymssql)
- SQLite (内置支持)
"""

from .dbapi import get_paramstyle, set_autocommit, supports_transactions, unwrap_connection
from .sqlalchemy_driver import PooledDataSource, close_all_data_sources, get_data_source

__all__ = [
    "get_paramstyle",
    "set_autocommit",
    "supports_transactions",
    "unwrap_connection",
    "PooledDataSource",
    "get_data_source",
    "close_all_data_sources",
]
