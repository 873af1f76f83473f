"""
SQLAlchemy 连接池数据源模块

基于 SQLAlchemy 引擎的连接池，按 PoolDescriptor 创建数据源并提供原始 DB-API 连接。
连接池的回收、健康检查等策略完全交给 SQLAlchemy，本模块只负责：

- 将 JDBC 形式或 SQLAlchemy 形式的URL转换为 SQLAlchemy URL
- 将连接池数值配置映射到 QueuePool 参数
- 预先建立初始连接
- 按分组缓存数据源（线程安全）

获取到的连接是连接池代理连接，调用 close() 即归还连接池。
"""

import threading
from typing import Any, Dict, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.pool import QueuePool, StaticPool

from ..core.config import GroupedConfig, PoolConfigLoader, PoolDescriptor
from ..core.exceptions import ConfigError, ConnectionError
from ..utils.logging_utils import SqlLog, get_logger

logger = get_logger(__name__)

# 方言别名 -> SQLAlchemy 方言名
DIALECT_ALIASES: Dict[str, str] = {
    "postgres": "postgresql",
    "sqlserver": "mssql",
}

# DB-API 模块名 -> SQLAlchemy 驱动名（两者不一致的情况）
SQLALCHEMY_DRIVER_NAMES: Dict[str, str] = {
    "sqlite3": "pysqlite",
}

TEST_QUERY_DEFAULT = "SELECT 1"
ORACLE_TEST_QUERY = "SELECT 1 FROM DUAL"


def _from_jdbc(text: str) -> str:
    """
    将去掉 ``jdbc:`` 前缀的URL转换为 SQLAlchemy URL 字符串

    支持的形式：
    - ``mysql://host:3306/db``、``postgresql://host/db`` 等标准形式
    - ``sqlite:path``（``:memory:`` 表示内存数据库）
    - ``sqlserver://host:1433;databaseName=db``
    - ``oracle:thin:@//host:1521/service`` 和 ``oracle:thin:@host:1521:SID``
    """
    scheme, _, rest = text.partition(":")
    scheme = scheme.lower()

    if scheme == "sqlite":
        return f"sqlite:///{rest}"

    if scheme == "oracle":
        if rest.lower().startswith("thin:"):
            rest = rest[len("thin:") :]
        rest = rest.lstrip("@")
        if rest.startswith("//"):
            address, _, service = rest[2:].partition("/")
            return f"oracle://{address}/?service_name={service}" if service else f"oracle://{address}"
        host, _, sid = rest.rpartition(":")
        return f"oracle://{host}/{sid}"

    if ";" in rest:
        rest, _, props = rest.partition(";")
        options = dict(item.split("=", 1) for item in props.split(";") if "=" in item)
        database = options.get("databaseName") or options.get("database")
        if database:
            rest = f"{rest.rstrip('/')}/{database}"

    return f"{scheme}:{rest}"


def build_url(descriptor: PoolDescriptor) -> URL:
    """
    根据连接池描述构建 SQLAlchemy URL

    Args:
        descriptor: 连接池描述

    Returns:
        URL: SQLAlchemy URL，驱动名和用户名密码都已填充

    Raises:
        ConfigError: URL无法解析时
    """
    raw = descriptor.url.strip()
    if raw.lower().startswith("jdbc:"):
        raw = _from_jdbc(raw[len("jdbc:") :])

    try:
        url = make_url(raw)
    except ArgumentError as e:
        raise ConfigError(
            f"无法解析数据库URL: {descriptor.url}", error_code="INVALID_URL", config_key="url"
        ) from e

    dialect, _, driver = url.drivername.partition("+")
    dialect = DIALECT_ALIASES.get(dialect, dialect)
    if not driver:
        driver = SQLALCHEMY_DRIVER_NAMES.get(descriptor.driver, descriptor.driver)
    url = url.set(drivername=f"{dialect}+{driver}" if driver else dialect)

    # 配置中的用户名密码优先于URL中的
    if descriptor.user:
        url = url.set(username=descriptor.user)
    if descriptor.password:
        url = url.set(password=descriptor.password)
    return url


def _is_memory_sqlite(url: URL) -> bool:
    if url.get_backend_name() != "sqlite":
        return False
    database = url.database or ""
    return database in ("", ":memory:") or database.startswith("file::memory:")


class PooledDataSource:
    """
    连接池数据源

    Attributes:
        descriptor (PoolDescriptor): 连接池描述
        url (URL): SQLAlchemy URL
        engine (Engine): SQLAlchemy 引擎
        sql_log (SqlLog): 按描述中的SQL显示配置创建的SQL日志输出器

    Example:
        >>> descriptor = PoolConfigLoader(config).load("test")
        >>> with PooledDataSource(descriptor) as ds:
        ...     conn = ds.get_connection()
        ...     try:
        ...         ...
        ...     finally:
        ...         conn.close()  # 归还连接池
    """

    def __init__(self, descriptor: PoolDescriptor) -> None:
        """
        创建数据源并预先建立 initial_size 个连接

        Raises:
            ConfigError: URL无法解析时
            ConnectionError: 驱动不可用或预建连接失败时
        """
        self.descriptor = descriptor
        self.url = build_url(descriptor)
        self.sql_log = SqlLog(descriptor.sql_log)
        self._lock = threading.RLock()
        self._closed = False

        try:
            self.engine: Engine = create_engine(self.url, **self._engine_options())
        except (SQLAlchemyError, ImportError) as e:
            error_msg = f"无法创建数据源: {e.__class__.__name__}: {str(e)}"
            logger.error(error_msg)
            raise ConnectionError(
                error_msg, error_code="DRIVER_NOT_AVAILABLE", url=self.masked_url
            ) from e

        try:
            self._prewarm()
        except BaseException:
            self._closed = True
            self.engine.dispose()
            raise
        logger.info(f"数据源创建成功: {self.masked_url}")

    @property
    def masked_url(self) -> str:
        """隐藏密码后的URL"""
        return self.url.render_as_string(hide_password=True)

    @property
    def closed(self) -> bool:
        return self._closed

    def _engine_options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {
            "pool_pre_ping": True,
            "connect_args": dict(self.descriptor.properties),
        }
        if _is_memory_sqlite(self.url):
            # 内存数据库只能共享同一个连接
            options["poolclass"] = StaticPool
            options["connect_args"].setdefault("check_same_thread", False)
            return options

        options.update(
            {
                "poolclass": QueuePool,
                "pool_size": self.descriptor.max_active,
                "max_overflow": 0,
                "pool_timeout": self.descriptor.max_wait / 1000,
            }
        )
        return options

    def _prewarm(self) -> None:
        count = self.descriptor.initial_size
        if self.descriptor.max_active:
            count = min(count, self.descriptor.max_active)
        if count <= 0:
            return

        connections = []
        try:
            for _ in range(count):
                connections.append(self.get_connection())
        finally:
            for conn in connections:
                conn.close()
        logger.debug(f"已预先建立 {count} 个连接")

    def get_connection(self) -> Any:
        """
        从连接池获取连接

        Returns:
            Any: 连接池代理的 DB-API 连接，close() 后归还连接池

        Raises:
            ConnectionError: 数据源已关闭、等待超时或建立连接失败时
        """
        if self._closed:
            raise ConnectionError("数据源已关闭", error_code="DATA_SOURCE_CLOSED", url=self.masked_url)

        try:
            return self.engine.raw_connection()
        except PoolTimeoutError as e:
            error_msg = f"获取连接超时（{self.descriptor.max_wait}ms）: {str(e)}"
            logger.error(error_msg)
            raise ConnectionError(error_msg, error_code="POOL_TIMEOUT", url=self.masked_url) from e
        except SQLAlchemyError as e:
            error_msg = f"获取数据库连接失败: {e.__class__.__name__}: {str(e)}"
            logger.error(error_msg)
            raise ConnectionError(error_msg, url=self.masked_url) from e

    def test_connection(self) -> bool:
        """
        测试能否获取连接并执行简单查询

        Returns:
            bool: 连接是否可用
        """
        query = ORACLE_TEST_QUERY if self.url.get_backend_name() == "oracle" else TEST_QUERY_DEFAULT
        try:
            conn = self.get_connection()
        except ConnectionError:
            return False
        try:
            cursor = conn.cursor()
            try:
                cursor.execute(query)
                cursor.fetchall()
            finally:
                cursor.close()
            return True
        except Exception as e:
            logger.warning(f"连接测试失败: {e.__class__.__name__}: {str(e)}")
            return False
        finally:
            conn.close()

    def close(self) -> None:
        """关闭数据源并释放连接池中的全部连接，可重复调用"""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self.engine.dispose()
        logger.info(f"数据源已关闭: {self.masked_url}")

    def __enter__(self) -> "PooledDataSource":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        status = "closed" if self._closed else "open"
        return f"PooledDataSource(url='{self.masked_url}', status='{status}')"


# 按分组缓存的数据源
_data_sources: Dict[str, PooledDataSource] = {}
_data_sources_lock = threading.RLock()


def get_data_source(
    group: Optional[str] = None, config: Optional[GroupedConfig] = None
) -> PooledDataSource:
    """
    获取分组对应的数据源，同一分组只创建一次

    Args:
        group: 配置分组名，None 表示默认分组
        config: 分组配置，为 None 时从默认位置加载

    Returns:
        PooledDataSource: 数据源
    """
    name = group or ""
    with _data_sources_lock:
        data_source = _data_sources.get(name)
        if data_source is not None and not data_source.closed:
            return data_source

        if config is None:
            config = GroupedConfig.load_default()
        descriptor = PoolConfigLoader(config).load(name)
        data_source = PooledDataSource(descriptor)
        _data_sources[name] = data_source
        return data_source


def close_all_data_sources() -> None:
    """关闭全部缓存的数据源"""
    with _data_sources_lock:
        for name, data_source in list(_data_sources.items()):
            try:
                data_source.close()
            except Exception as e:
                logger.error(f"关闭数据源 [{name}] 失败: {str(e)}")
        _data_sources.clear()
