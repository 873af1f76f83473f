"""
连接池配置模块

使用 TOML 格式的分组配置描述数据源，将某个分组的键值对解析并校验为
连接池描述对象（PoolDescriptor）。解析过程只读取已经加载好的配置源，
不会打开任何数据库连接。

配置文件示例::

    # 顶层键值对属于默认分组 ""
    url = "sqlite:///data/app.db"
    showSql = true

    [test]
    url = "jdbc:mysql://localhost:3306/test"
    user = "root"
    pass = "123456"
    maxActive = 16
"""

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import tomli_w

from ..utils.logging_utils import SqlLogConfig, get_logger
from ..utils.path_utils import PathHelper
from .exceptions import (
    ConfigError,
    InvalidPoolSetting,
    MissingUrl,
    UnknownConfigGroup,
    UnknownDriver,
)

logger = get_logger(__name__)

DEFAULT_GROUP = ""
DEFAULT_CONFIG_NAME = "db.toml"

# 默认配置文件查找位置（按顺序）
DEFAULT_CONFIG_PATHS = ("config/db.toml",)

# 配置键的别名，按优先级排列
URL_KEYS = ("url", "jdbcUrl")
USER_KEYS = ("user", "username")
PASSWORD_KEYS = ("password", "pass")
DRIVER_KEYS = ("driver", "driverClassName")

# SQL显示相关的键，解析时会从分组中移除
SHOW_SQL_KEY = "showSql"
FORMAT_SQL_KEY = "formatSql"
SHOW_PARAMS_KEY = "showParams"
SQL_LEVEL_KEY = "sqlLevel"

# 连接池数值配置：配置键 -> (字段名, 默认值)
POOL_SETTINGS: Dict[str, Tuple[str, int]] = {
    "initialSize": ("initial_size", 0),
    "minIdle": ("min_idle", 0),
    "maxActive": ("max_active", 8),
    "maxWait": ("max_wait", 6000),
}

# URL协议 -> DB-API 驱动模块
DRIVER_MAP: Dict[str, str] = {
    "mysql": "pymysql",
    "mariadb": "pymysql",
    "postgresql": "psycopg",
    "postgres": "psycopg",
    "oracle": "oracledb",
    "mssql": "pymssql",
    "sqlserver": "pymssql",
    "sqlite": "sqlite3",
}

# SQLAlchemy 驱动名 -> DB-API 模块名（两者不一致的情况）
SQLALCHEMY_DRIVER_MODULES: Dict[str, str] = {
    "pysqlite": "sqlite3",
}

TRUE_VALUES = {"true", "yes", "on", "1"}
FALSE_VALUES = {"false", "no", "off", "0"}


def identify_driver(url: str, group: Optional[str] = None) -> str:
    """
    根据数据库URL识别 DB-API 驱动模块名

    Args:
        url: 数据库URL，支持 SQLAlchemy 形式（``mysql+pymysql://...``）
            和 JDBC 形式（``jdbc:mysql://...``）
        group: 所属配置分组，仅用于错误信息

    Returns:
        str: 驱动模块名，如 pymysql、psycopg、sqlite3

    Raises:
        UnknownDriver: 无法识别URL对应的驱动时

    Example:
        >>> identify_driver("jdbc:mysql://localhost:3306/test")
        'pymysql'
        >>> identify_driver("postgresql+psycopg2://localhost/test")
        'psycopg2'
    """
    text = url.strip()
    if text.lower().startswith("jdbc:"):
        text = text[len("jdbc:") :]

    scheme, sep, _ = text.partition(":")
    if not sep or not scheme:
        raise UnknownDriver(url, group)

    dialect, plus, driver = scheme.lower().partition("+")
    if plus and driver:
        return SQLALCHEMY_DRIVER_MODULES.get(driver, driver)

    try:
        return DRIVER_MAP[dialect]
    except KeyError:
        raise UnknownDriver(url, group) from None


@dataclass(frozen=True)
class PoolDescriptor:
    """
    连接池描述

    Attributes:
        url (str): 数据库URL
        user (Optional[str]): 用户名
        password (Optional[str]): 密码（不出现在 repr 中）
        driver (str): DB-API 驱动模块名
        initial_size (int): 初始化时预先建立的连接数
        min_idle (int): 最小空闲连接数
        max_active (int): 最大连接数，0 表示不限制
        max_wait (int): 获取连接的最长等待时间（毫秒）
        sql_log (SqlLogConfig): SQL显示配置
        properties (Dict[str, Any]): 其余配置项，作为驱动的连接参数
    """

    url: str
    user: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    driver: str = ""
    initial_size: int = 0
    min_idle: int = 0
    max_active: int = 8
    max_wait: int = 6000
    sql_log: SqlLogConfig = field(default_factory=SqlLogConfig)
    properties: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.url, str) or not self.url.strip():
            raise MissingUrl()
        for _, (name, _) in POOL_SETTINGS.items():
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise InvalidPoolSetting(name, value)


class GroupedConfig:
    """
    分组配置源

    分组名 -> 扁平键值对。顶层的标量键值对组成默认分组 ``""``，
    嵌套的表按点号拼接为分组名（``[a.b]`` -> ``"a.b"``）。

    Example:
        >>> config = GroupedConfig.from_mapping({"url": "sqlite:///a.db", "test": {"url": "sqlite:///b.db"}})
        >>> config.groups()
        ['', 'test']
    """

    def __init__(self, groups: Mapping[str, Mapping[str, Any]], source: Optional[str] = None):
        self._groups: Dict[str, Dict[str, Any]] = {
            name: dict(values) for name, values in groups.items()
        }
        self.source = source

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], source: Optional[str] = None) -> "GroupedConfig":
        """
        从嵌套字典构建分组配置

        Args:
            data: 配置字典，通常是 TOML 解析结果
            source: 配置来源描述（文件路径）

        Returns:
            GroupedConfig: 分组配置
        """
        groups: Dict[str, Dict[str, Any]] = {}
        cls._flatten(data, DEFAULT_GROUP, groups)
        return cls(groups, source)

    @classmethod
    def _flatten(
        cls, table: Mapping[str, Any], prefix: str, groups: Dict[str, Dict[str, Any]]
    ) -> None:
        values = {}
        for key, value in table.items():
            if isinstance(value, Mapping):
                name = f"{prefix}.{key}" if prefix else str(key)
                cls._flatten(value, name, groups)
            else:
                values[key] = value
        # 空表也作为分组保留
        if values or (prefix and not table):
            groups[prefix] = values

    @classmethod
    def from_file(cls, path: str | Path) -> "GroupedConfig":
        """
        从 TOML 文件加载分组配置

        Args:
            path: 配置文件路径

        Returns:
            GroupedConfig: 分组配置

        Raises:
            ConfigError: 文件不存在、无法读取或格式错误时
        """
        config_path = Path(path)
        try:
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            logger.error(f"配置文件TOML格式错误: {str(e)}")
            raise ConfigError(
                f"配置文件格式无效: {str(e)}",
                error_code="CONFIG_PARSE_ERROR",
                config_file=str(config_path),
            ) from e
        except OSError as e:
            logger.error(f"读取配置文件失败: {str(e)}")
            raise ConfigError(
                f"无法读取配置文件: {str(e)}",
                error_code="CONFIG_READ_ERROR",
                config_file=str(config_path),
            ) from e

        logger.debug(f"已加载配置文件: {config_path}")
        return cls.from_mapping(data, source=str(config_path))

    @classmethod
    def default_paths(cls) -> List[Path]:
        """默认配置文件的查找位置"""
        paths = [Path.cwd() / relative for relative in DEFAULT_CONFIG_PATHS]
        paths.append(PathHelper.get_user_config_dir(create=False) / DEFAULT_CONFIG_NAME)
        return paths

    @classmethod
    def load_default(cls) -> "GroupedConfig":
        """
        从默认位置加载配置

        依次查找 ``./config/db.toml`` 和用户配置目录下的 ``db.toml``。

        Raises:
            ConfigError: 所有位置都不存在配置文件时
        """
        candidates = cls.default_paths()
        for candidate in candidates:
            if candidate.is_file():
                return cls.from_file(candidate)
        raise ConfigError(
            f"未找到数据库配置文件，查找位置: {', '.join(str(p) for p in candidates)}",
            error_code="CONFIG_NOT_FOUND",
        )

    def groups(self) -> List[str]:
        """所有分组名（按名称排序）"""
        return sorted(self._groups)

    def has_group(self, group: Optional[str]) -> bool:
        return (group or DEFAULT_GROUP) in self._groups

    def get_group(self, group: Optional[str] = None) -> Dict[str, Any]:
        """
        获取分组的键值对副本

        Raises:
            UnknownConfigGroup: 分组不存在时
        """
        name = group or DEFAULT_GROUP
        if name not in self._groups:
            raise UnknownConfigGroup(name, self.source)
        return dict(self._groups[name])

    def to_mapping(self) -> Dict[str, Any]:
        """转换回嵌套字典形式（默认分组的键放在顶层）"""
        data: Dict[str, Any] = {}
        for name in self.groups():
            values = self._groups[name]
            if name == DEFAULT_GROUP:
                data.update(values)
                continue
            table = data
            for part in name.split("."):
                table = table.setdefault(part, {})
            table.update(values)
        return data

    def save(self, path: str | Path) -> Path:
        """
        保存为 TOML 文件

        Args:
            path: 目标文件路径，父目录不存在时自动创建

        Returns:
            Path: 写入的文件路径

        Raises:
            ConfigError: 写入失败时
        """
        target = Path(path)
        try:
            PathHelper.ensure_dir_exists(target.parent)
            with open(target, "wb") as f:
                f.write(tomli_w.dumps(self.to_mapping()).encode("utf-8"))
        except OSError as e:
            logger.error(f"保存配置文件失败: {str(e)}")
            raise ConfigError(
                f"配置文件保存失败: {str(e)}",
                error_code="CONFIG_WRITE_ERROR",
                config_file=str(target),
            ) from e
        logger.info(f"配置文件已保存: {target}")
        return target

    def __repr__(self) -> str:
        return f"GroupedConfig(groups={self.groups()!r}, source={self.source!r})"


class PoolConfigLoader:
    """
    连接池配置加载器

    将分组配置解析为 PoolDescriptor：

    1. 分组不存在时抛出 UnknownConfigGroup
    2. 移除 showSql / formatSql / showParams / sqlLevel，生成 SqlLogConfig
    3. 读取 url（别名 jdbcUrl），为空时抛出 MissingUrl
    4. 读取 user / password / driver，driver 为空时根据 URL 识别
    5. 读取连接池数值配置（initialSize、minIdle、maxActive、maxWait）
    6. 剩余的键作为驱动连接参数

    Example:
        >>> loader = PoolConfigLoader(GroupedConfig.from_file("config/db.toml"))
        >>> descriptor = loader.load("test")
        >>> descriptor.driver
        'pymysql'
    """

    def __init__(self, config: GroupedConfig) -> None:
        self.config = config

    def load(self, group: Optional[str] = None) -> PoolDescriptor:
        """
        加载分组的连接池配置

        Args:
            group: 分组名，None 或空字符串表示默认分组

        Returns:
            PoolDescriptor: 校验后的连接池描述

        Raises:
            UnknownConfigGroup: 分组不存在
            MissingUrl: 缺少URL
            UnknownDriver: 无法识别驱动
            InvalidPoolSetting: 连接池数值配置无效
            ConfigError: SQL显示配置无效
        """
        name = group or DEFAULT_GROUP
        settings = self.config.get_group(name)

        sql_log = self._pop_sql_log(settings, name)

        url = _pop_first(settings, URL_KEYS)
        if url is None or not str(url).strip():
            raise MissingUrl(name)
        url = str(url).strip()

        user = _pop_first(settings, USER_KEYS)
        password = _pop_first(settings, PASSWORD_KEYS)
        driver = _pop_first(settings, DRIVER_KEYS)
        if driver is None or not str(driver).strip():
            driver = identify_driver(url, name)
        else:
            driver = str(driver).strip()

        pool_values = {}
        for key, (field_name, default) in POOL_SETTINGS.items():
            pool_values[field_name] = _parse_pool_int(
                key, settings.pop(key, default), name
            )

        descriptor = PoolDescriptor(
            url=url,
            user=None if user is None else str(user),
            password=None if password is None else str(password),
            driver=driver,
            sql_log=sql_log,
            properties=settings,
            **pool_values,
        )
        logger.debug(f"已加载连接池配置: [{name}] {descriptor!r}")
        return descriptor

    @staticmethod
    def _pop_sql_log(settings: Dict[str, Any], group: str) -> SqlLogConfig:
        show_sql = _parse_bool(SHOW_SQL_KEY, settings.pop(SHOW_SQL_KEY, False), group)
        format_sql = _parse_bool(FORMAT_SQL_KEY, settings.pop(FORMAT_SQL_KEY, False), group)
        show_params = _parse_bool(SHOW_PARAMS_KEY, settings.pop(SHOW_PARAMS_KEY, False), group)
        level = settings.pop(SQL_LEVEL_KEY, "DEBUG")
        try:
            return SqlLogConfig(
                show_sql=show_sql,
                format_sql=format_sql,
                show_params=show_params,
                level=str(level).upper(),
            )
        except ValueError as e:
            raise ConfigError(
                str(e), error_code="INVALID_SQL_LEVEL", config_section=group, config_key=SQL_LEVEL_KEY
            ) from e


def _pop_first(settings: Dict[str, Any], keys: Tuple[str, ...]) -> Any:
    """按别名顺序取出第一个非空值，所有别名键都会从字典中移除"""
    result = None
    for key in keys:
        value = settings.pop(key, None)
        if result is None and value is not None:
            result = value
    return result


def _parse_pool_int(key: str, value: Any, group: str) -> int:
    if isinstance(value, bool):
        raise InvalidPoolSetting(key, value, group)
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = int(value.strip())
        except ValueError:
            raise InvalidPoolSetting(key, value, group) from None
    else:
        raise InvalidPoolSetting(key, value, group)

    if parsed < 0:
        raise InvalidPoolSetting(key, value, group)
    return parsed


def _parse_bool(key: str, value: Any, group: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in TRUE_VALUES | FALSE_VALUES:
        return value.strip().lower() in TRUE_VALUES
    raise ConfigError(
        f"配置项 {key} 的值无效: {value!r}，必须为布尔值",
        error_code="INVALID_BOOLEAN",
        config_section=group,
        config_key=key,
    )
