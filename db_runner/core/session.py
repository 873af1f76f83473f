"""
事务会话模块

TransactionalSession 独占一个数据库连接，提供事务边界控制（开始、提交、回滚、保存点）
以及在连接上执行语句的便捷方法。

状态转换::

    AUTOCOMMIT --begin_transaction--> MANUAL_PENDING --执行语句--> MANUAL_IN_PROGRESS
        ^                                   |                              |
        +-------- commit / rollback --------+------------------------------+

commit 和 rollback 结束后总会尝试恢复自动提交模式，恢复失败只记录日志，
会话状态无论如何都回到 AUTOCOMMIT。

会话不是线程安全的，每个工作单元使用各自的会话。
"""

import re
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Iterator, List, Optional, TypeVar

from ..drivers import dbapi
from ..drivers.sqlalchemy_driver import PooledDataSource, get_data_source
from ..utils.logging_utils import SqlLog, get_logger
from .binder import ParameterSet
from .config import GroupedConfig
from .exceptions import (
    SessionClosedError,
    TransactionError,
    TransactionFailed,
    TransactionsUnsupported,
    UnrecoverableError,
)
from .executor import ResultCursor, SqlExecutor, SqlLike

logger = get_logger(__name__)

T = TypeVar("T")

SAVEPOINT_PREFIX = "SP_"
_SAVEPOINT_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class TransactionState(Enum):
    """会话的事务状态"""

    AUTOCOMMIT = "autocommit"
    MANUAL_PENDING = "manual_pending"
    MANUAL_IN_PROGRESS = "manual_in_progress"


@dataclass(frozen=True)
class Savepoint:
    """
    保存点句柄

    Attributes:
        name (str): 保存点名称
        connection_id (int): 创建保存点的连接标识
    """

    name: str
    connection_id: int


class TransactionalSession:
    """
    事务会话

    Attributes:
        connection: 会话独占的 DB-API 连接
        executor (SqlExecutor): 语句执行器
        close_connection (bool): 关闭会话时是否同时关闭（归还）连接

    Example:
        >>> with TransactionalSession.create("test") as session:
        ...     session.run_in_transaction(
        ...         lambda s: s.execute("UPDATE account SET balance = balance - :n WHERE id = :id", {"n": 10, "id": 1})
        ...     )
    """

    def __init__(
        self,
        connection: Any,
        *,
        executor: Optional[SqlExecutor] = None,
        sql_log: Optional[SqlLog] = None,
        close_connection: bool = True,
    ) -> None:
        """
        打开会话，连接会被设置为自动提交模式

        Args:
            connection: 已打开的 DB-API 连接
            executor: 语句执行器，默认新建
            sql_log: SQL日志输出器，仅在未指定 executor 时使用
            close_connection: 关闭会话时是否关闭连接
        """
        self.connection = connection
        self.executor = executor or SqlExecutor(sql_log)
        self.close_connection = close_connection
        self._state = TransactionState.AUTOCOMMIT
        self._supports_transactions: Optional[bool] = None
        self._savepoint_seq = 0
        self._closed = False

        dbapi.set_autocommit(connection, True)

    @classmethod
    def from_data_source(cls, data_source: PooledDataSource, **kwargs: Any) -> "TransactionalSession":
        """
        从数据源获取连接并打开会话

        Args:
            data_source: 连接池数据源
            **kwargs: 传递给构造函数的其它参数

        Returns:
            TransactionalSession: 会话，关闭时连接归还连接池
        """
        kwargs.setdefault("sql_log", data_source.sql_log)
        return cls(data_source.get_connection(), **kwargs)

    @classmethod
    def create(
        cls, group: Optional[str] = None, config: Optional[GroupedConfig] = None, **kwargs: Any
    ) -> "TransactionalSession":
        """
        按配置分组打开会话

        Args:
            group: 配置分组名，None 表示默认分组
            config: 分组配置，为 None 时从默认位置加载
        """
        return cls.from_data_source(get_data_source(group, config), **kwargs)

    # ------------------------------------------------------------------ 状态

    @property
    def state(self) -> TransactionState:
        return self._state

    @property
    def in_transaction(self) -> bool:
        return self._state is not TransactionState.AUTOCOMMIT

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise SessionClosedError("会话已关闭")

    def supports_transactions(self) -> bool:
        """
        连接是否支持事务，只探测一次

        Raises:
            UnrecoverableError: 探测失败时
        """
        self._check_open()
        if self._supports_transactions is None:
            try:
                self._supports_transactions = dbapi.supports_transactions(self.connection)
            except Exception as e:
                raise UnrecoverableError(
                    f"无法探测连接的事务支持: {e.__class__.__name__}: {str(e)}",
                    operation="supports_transactions",
                ) from e
        return self._supports_transactions

    # ------------------------------------------------------------------ 事务控制

    def begin_transaction(self) -> None:
        """
        开始事务（关闭自动提交）

        Raises:
            TransactionsUnsupported: 连接不支持事务时，会话状态不变
            TransactionError: 已经处于事务中时
        """
        self._check_open()
        if not self.supports_transactions():
            raise TransactionsUnsupported()
        if self.in_transaction:
            raise TransactionError("事务已经开始，不支持嵌套事务，请使用保存点")

        dbapi.set_autocommit(self.connection, False)
        self._state = TransactionState.MANUAL_PENDING
        logger.debug("事务已开始")

    def commit(self) -> None:
        """
        提交事务，之后恢复自动提交模式

        Raises:
            Exception: 提交失败时驱动异常原样传播（自动提交模式仍会恢复）
        """
        self._check_open()
        try:
            self.connection.commit()
            logger.debug("事务已提交")
        finally:
            self._restore_autocommit()

    def rollback(self, savepoint: Optional[Savepoint] = None) -> None:
        """
        回滚事务，之后恢复自动提交模式

        Args:
            savepoint: 保存点，指定时只回滚到该保存点，保存点之前的操作会被提交

        Raises:
            TransactionError: 保存点不属于当前连接时
        """
        self._check_open()
        if savepoint is not None:
            self._check_savepoint(savepoint)

        try:
            if savepoint is None:
                self.connection.rollback()
                logger.debug("事务已回滚")
            else:
                self.executor.execute(self.connection, f"ROLLBACK TO SAVEPOINT {savepoint.name}")
                # 恢复自动提交会结束事务，保留保存点之前的操作
                self.connection.commit()
                logger.debug(f"事务已回滚到保存点 {savepoint.name}")
        finally:
            self._restore_autocommit()

    def quiet_rollback(self, savepoint: Optional[Savepoint] = None) -> None:
        """回滚事务，回滚失败只记录日志"""
        try:
            self.rollback(savepoint)
        except Exception as e:
            logger.error(f"事务回滚失败: {e.__class__.__name__}: {str(e)}", exc_info=True)

    def _restore_autocommit(self) -> None:
        try:
            dbapi.set_autocommit(self.connection, True)
        except Exception as e:
            logger.error(f"恢复自动提交模式失败: {e.__class__.__name__}: {str(e)}", exc_info=True)
        finally:
            self._state = TransactionState.AUTOCOMMIT

    # ------------------------------------------------------------------ 保存点

    def set_savepoint(self, name: Optional[str] = None) -> Savepoint:
        """
        在当前事务中设置保存点

        Args:
            name: 保存点名称，默认自动生成（SP_1、SP_2 ...）

        Returns:
            Savepoint: 保存点句柄

        Raises:
            TransactionError: 不在事务中，或名称不是合法标识符时
        """
        self._check_open()
        if not self.in_transaction:
            raise TransactionError("保存点只能在事务中设置")

        if name is None:
            self._savepoint_seq += 1
            name = f"{SAVEPOINT_PREFIX}{self._savepoint_seq}"
        elif not _SAVEPOINT_NAME.match(name):
            raise TransactionError(f"无效的保存点名称: {name!r}")

        self._touch()
        self.executor.execute(self.connection, f"SAVEPOINT {name}")
        logger.debug(f"已设置保存点 {name}")
        return Savepoint(name, id(self.connection))

    def release_savepoint(self, savepoint: Savepoint) -> None:
        """释放保存点"""
        self._check_open()
        self._check_savepoint(savepoint)
        self.executor.execute(self.connection, f"RELEASE SAVEPOINT {savepoint.name}")

    def _check_savepoint(self, savepoint: Savepoint) -> None:
        if savepoint.connection_id != id(self.connection):
            raise TransactionError(f"保存点 {savepoint.name} 不属于当前会话的连接")

    # ------------------------------------------------------------------ 事务模板

    def run_in_transaction(self, unit_of_work: Callable[["TransactionalSession"], T]) -> T:
        """
        在事务中执行工作单元

        开始事务，执行 unit_of_work(session)，成功则提交并返回其结果；
        工作单元或提交失败时回滚一次（回滚失败只记录日志），再抛出 TransactionFailed。

        Args:
            unit_of_work: 接收会话的回调

        Returns:
            T: 回调的返回值

        Raises:
            TransactionsUnsupported: 连接不支持事务时
            TransactionFailed: 工作单元或提交失败时，原始异常保存在 cause 中
        """
        self.begin_transaction()
        try:
            result = unit_of_work(self)
            self.commit()
        except Exception as e:
            self.quiet_rollback()
            raise TransactionFailed(e) from e
        except BaseException:
            self.quiet_rollback()
            raise
        return result

    @contextmanager
    def transaction(self) -> Iterator["TransactionalSession"]:
        """
        事务上下文管理器，与 run_in_transaction 约定相同

        Example:
            >>> with session.transaction():
            ...     session.execute("INSERT INTO t (id) VALUES (:id)", {"id": 1})
        """
        self.begin_transaction()
        try:
            yield self
            self.commit()
        except Exception as e:
            self.quiet_rollback()
            raise TransactionFailed(e) from e
        except BaseException:
            self.quiet_rollback()
            raise

    # ------------------------------------------------------------------ 语句执行

    def _touch(self) -> None:
        self._check_open()
        if self._state is TransactionState.MANUAL_PENDING:
            self._state = TransactionState.MANUAL_IN_PROGRESS

    def execute(self, sql: SqlLike, params: ParameterSet = None) -> int:
        """执行更新语句，返回影响行数"""
        self._touch()
        return self.executor.execute(self.connection, sql, params)

    def query(self, sql: SqlLike, handler: Callable[[ResultCursor], T], params: ParameterSet = None) -> T:
        """执行查询，返回结果处理回调的结果"""
        self._touch()
        return self.executor.query(self.connection, sql, handler, params)

    def execute_for_generated_key(self, sql: SqlLike, params: ParameterSet = None) -> Optional[int]:
        """执行插入语句，返回自增主键或 None"""
        self._touch()
        return self.executor.execute_for_generated_key(self.connection, sql, params)

    def execute_batch(self, sql: SqlLike, param_sets: Iterable[ParameterSet]) -> List[int]:
        """批量执行同一条语句"""
        self._touch()
        return self.executor.execute_batch(self.connection, sql, param_sets)

    def execute_batch_sql(self, statements: Iterable[str]) -> List[int]:
        """批量执行多条不带参数的语句"""
        self._touch()
        return self.executor.execute_batch_sql(self.connection, statements)

    def call(self, sql: SqlLike, params: ParameterSet = None) -> bool:
        """执行存储过程调用"""
        self._touch()
        return self.executor.call(self.connection, sql, params)

    # ------------------------------------------------------------------ 生命周期

    def close(self) -> None:
        """关闭会话，不提交也不回滚，可重复调用"""
        if self._closed:
            return
        self._closed = True
        if self.close_connection:
            self.connection.close()
            logger.debug("会话连接已关闭")

    def __enter__(self) -> "TransactionalSession":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"TransactionalSession(state={self._state.value!r}, closed={self._closed!r})"
