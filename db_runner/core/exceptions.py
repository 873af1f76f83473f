"""
SQL执行层自定义异常模块

提供项目专用的异常类层次结构，用于精确区分配置、模板解析、参数绑定、
语句执行和事务管理各环节的错误。每个异常类都带有 error_code，
作为可供程序判断的错误类别。

驱动层（DB-API）抛出的异常原样向上传播，只有以下场景会被本模块的异常包装：
事务回调失败（TransactionFailed）、批量执行部分失败（BatchExecutionError）
以及连接获取失败（ConnectionError）。
"""

from typing import Any, Dict, List, Optional


class DBRunnerError(Exception):
    """
    SQL执行层基础异常类

    所有自定义异常的基类，提供统一的异常处理接口。

    Attributes:
        message (str): 异常描述信息
        error_code (Optional[str]): 错误代码，用于错误分类
        details (Dict[str, Any]): 详细的错误信息
    """

    default_error_code: Optional[str] = None

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        初始化基础异常

        Args:
            message: 异常描述信息
            error_code: 错误代码，缺省时使用类上定义的默认错误代码
            details: 详细的错误信息字典
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}

    def __str__(self) -> str:
        """返回异常的字符串表示"""
        base_str = f"{self.__class__.__name__}: {self.message}"
        if self.error_code:
            base_str += f" (错误代码: {self.error_code})"
        return base_str

    def to_dict(self) -> Dict[str, Any]:
        """
        将异常信息转换为字典格式

        Returns:
            包含异常信息的字典
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


# ==================== 配置相关异常 ====================


class ConfigError(DBRunnerError):
    """
    配置相关异常

    处理配置文件读取、解析、验证等过程中出现的错误。
    """

    default_error_code = "CONFIG_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        config_file: Optional[str] = None,
        config_section: Optional[str] = None,
        config_key: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        初始化配置异常

        Args:
            message: 异常描述信息
            error_code: 错误代码
            config_file: 相关的配置文件路径
            config_section: 相关的配置分组
            config_key: 相关的配置键
            details: 详细的错误信息
        """
        super().__init__(message, error_code, details)
        self.config_file = config_file
        self.config_section = config_section
        self.config_key = config_key

        # 自动填充详细信息
        if config_file:
            self.details["config_file"] = config_file
        if config_section is not None:
            self.details["config_section"] = config_section
        if config_key:
            self.details["config_key"] = config_key


class UnknownConfigGroup(ConfigError):
    """配置源中不存在指定的分组"""

    default_error_code = "UNKNOWN_CONFIG_GROUP"

    def __init__(self, group: str, config_file: Optional[str] = None) -> None:
        super().__init__(
            f"配置分组不存在: [{group}]",
            config_file=config_file,
            config_section=group,
        )
        self.group = group


class MissingUrl(ConfigError):
    """分组中缺少数据库URL或URL为空"""

    default_error_code = "MISSING_URL"

    def __init__(self, group: Optional[str] = None) -> None:
        super().__init__(
            f"配置分组缺少数据库URL: [{group or ''}]",
            config_section=group,
            config_key="url",
        )
        self.group = group


class UnknownDriver(ConfigError):
    """无法根据URL识别数据库驱动"""

    default_error_code = "UNKNOWN_DRIVER"

    def __init__(self, url: str, group: Optional[str] = None) -> None:
        super().__init__(
            f"无法识别URL对应的数据库驱动: {url}",
            config_section=group,
            config_key="driver",
        )
        self.url = url


class InvalidPoolSetting(ConfigError):
    """连接池数值配置无效（非整数或为负数）"""

    default_error_code = "INVALID_POOL_SETTING"

    def __init__(self, key: str, value: Any, group: Optional[str] = None) -> None:
        super().__init__(
            f"连接池配置项 {key} 的值无效: {value!r}，必须为非负整数",
            config_section=group,
            config_key=key,
        )
        self.key = key
        self.value = value


# ==================== SQL模板与参数绑定异常 ====================


class SqlTemplateError(DBRunnerError):
    """SQL模板相关异常的基类"""

    default_error_code = "SQL_TEMPLATE_ERROR"


class MalformedTemplate(SqlTemplateError):
    """
    SQL模板格式错误

    扫描到文本末尾时仍处于单引号字符串字面量内部（引号未闭合）。

    Attributes:
        template (str): 出错的SQL模板
        position (int): 未闭合引号在模板中的位置
    """

    default_error_code = "MALFORMED_TEMPLATE"

    def __init__(self, template: str, position: int) -> None:
        super().__init__(
            f"SQL模板中位置 {position} 处的引号未闭合",
            details={"template_preview": _preview(template), "position": position},
        )
        self.template = template
        self.position = position


class BindingError(DBRunnerError):
    """参数绑定异常的基类"""

    default_error_code = "BINDING_ERROR"


class ParameterCountMismatch(BindingError):
    """位置参数个数与占位符个数不一致"""

    default_error_code = "PARAMETER_COUNT_MISMATCH"

    def __init__(self, expected: int, actual: int, message: Optional[str] = None) -> None:
        super().__init__(
            message or f"参数个数不匹配: 需要 {expected} 个，实际提供 {actual} 个",
            details={"expected": expected, "actual": actual},
        )
        self.expected = expected
        self.actual = actual


class UnresolvedParameter(BindingError):
    """命名参数在参数字典中不存在"""

    default_error_code = "UNRESOLVED_PARAMETER"

    def __init__(self, name: str) -> None:
        super().__init__(f"未提供命名参数: {name}", details={"name": name})
        self.name = name


# ==================== 数据库操作异常 ====================


class DatabaseError(DBRunnerError):
    """
    数据库操作基础异常

    处理所有数据库相关操作的通用错误。
    """

    default_error_code = "DATABASE_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        database_type: Optional[str] = None,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        初始化数据库异常

        Args:
            message: 异常描述信息
            error_code: 错误代码
            database_type: 数据库类型（如：mysql, postgresql, sqlite等）
            operation: 数据库操作类型（如：connect, query, execute等）
            details: 详细的错误信息
        """
        super().__init__(message, error_code, details)
        self.database_type = database_type
        self.operation = operation

        # 自动填充详细信息
        if database_type:
            self.details["database_type"] = database_type
        if operation:
            self.details["operation"] = operation


class UnrecoverableError(DatabaseError):
    """
    不可恢复的数据库错误

    连接丢失、无法探测连接能力等底层故障，调用方不应在本地重试。
    """

    default_error_code = "UNRECOVERABLE"


class ConnectionError(UnrecoverableError):
    """
    数据库连接异常

    处理从连接池获取连接、建立连接等过程中出现的错误。
    """

    default_error_code = "CONNECTION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        url: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, error_code, operation="connect", details=details)
        self.url = url
        if url:
            self.details["url"] = url


class CursorClosedError(DatabaseError):
    """结果游标在查询结束后仍被使用"""

    default_error_code = "CURSOR_CLOSED"


class SessionClosedError(DatabaseError):
    """会话关闭后仍被使用"""

    default_error_code = "SESSION_CLOSED"


class BatchExecutionError(DatabaseError):
    """
    批量执行部分失败

    Attributes:
        counts (List[int]): 失败前已执行成功的各组参数的影响行数
        index (int): 失败的参数组下标
    """

    default_error_code = "BATCH_EXECUTION_ERROR"

    def __init__(self, message: str, counts: List[int], index: int) -> None:
        super().__init__(
            message,
            operation="batch",
            details={"counts": list(counts), "index": index},
        )
        self.counts = list(counts)
        self.index = index


class TransactionError(DatabaseError):
    """事务状态相关异常"""

    default_error_code = "TRANSACTION_ERROR"

    def __init__(self, message: str, error_code: Optional[str] = None) -> None:
        super().__init__(message, error_code, operation="transaction")


class TransactionsUnsupported(TransactionError):
    """当前连接不支持事务"""

    default_error_code = "TRANSACTIONS_UNSUPPORTED"

    def __init__(self) -> None:
        super().__init__("当前数据库连接不支持事务")


class TransactionFailed(TransactionError):
    """
    事务回调执行失败

    原始异常保存在 cause 属性中，同时通过异常链（__cause__）保留。
    """

    default_error_code = "TRANSACTION_FAILED"

    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"事务执行失败，已回滚: {cause.__class__.__name__}: {cause}")
        self.cause = cause
        self.details["cause_type"] = cause.__class__.__name__


def _preview(text: str, max_length: int = 100) -> str:
    """获取文本预览（避免在错误信息中输出完整SQL）"""
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."
