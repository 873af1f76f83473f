"""
SQL执行器模块

提供无状态的参数化语句执行操作，所有操作都接收一个已打开的 DB-API 连接
（或调用方持有的游标），执行结束后释放本操作获取的全部资源：

- execute: 执行更新语句，返回影响行数
- query: 执行查询，将结果游标交给回调处理，返回回调的结果
- execute_for_generated_key: 执行插入语句，返回自增主键（没有主键时返回 None）
- execute_batch / execute_batch_sql: 批量执行，返回每组参数的影响行数
- call: 执行存储过程调用

执行器不会关闭调用方传入的连接，也不会提交或回滚事务；
事务边界由 TransactionalSession 负责。

线程安全：执行器除注入的 SqlLog 外没有可变状态，只要每次调用使用各自的连接，
即可在多线程中并发使用。
"""

from typing import Any, Callable, Iterable, Iterator, List, Optional, Sequence, Tuple, TypeVar, Union

from ..drivers.dbapi import get_paramstyle
from ..utils.logging_utils import SqlLog, get_logger
from .binder import ParameterBinder, ParameterSet
from .exceptions import BatchExecutionError, CursorClosedError
from .named_sql import CompiledSql, compile_sql

logger = get_logger(__name__)

T = TypeVar("T")

SqlLike = Union[str, CompiledSql]

# 驱动无法给出影响行数时的批量结果（与 JDBC 的 Statement.SUCCESS_NO_INFO 一致）
SUCCESS_NO_INFO = -2

CALL_ESCAPE_PREFIX = "{call"


class ResultCursor:
    """
    查询结果游标

    对 DB-API 游标的只进只读封装，只在 query 回调执行期间有效，
    查询结束后再访问会抛出 CursorClosedError。

    Attributes:
        columns (Tuple[str, ...]): 结果列名
    """

    def __init__(self, cursor: Any) -> None:
        self._cursor = cursor
        self._closed = False
        description = cursor.description or ()
        self.columns: Tuple[str, ...] = tuple(column[0] for column in description)

    def _check_open(self) -> None:
        if self._closed:
            raise CursorClosedError("结果游标已关闭，不能在查询结束后继续使用")

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def rowcount(self) -> int:
        self._check_open()
        return self._cursor.rowcount

    def fetchone(self) -> Optional[Sequence[Any]]:
        """读取下一行，没有更多数据时返回 None"""
        self._check_open()
        return self._cursor.fetchone()

    def fetchmany(self, size: int) -> List[Sequence[Any]]:
        """读取最多 size 行"""
        self._check_open()
        return list(self._cursor.fetchmany(size))

    def fetchall(self) -> List[Sequence[Any]]:
        """读取剩余的全部行"""
        self._check_open()
        return list(self._cursor.fetchall())

    def column_index(self, name: str) -> int:
        """
        获取列名对应的下标（不区分大小写）

        Raises:
            KeyError: 当列不存在时
        """
        for index, column in enumerate(self.columns):
            if column == name or column.lower() == name.lower():
                return index
        raise KeyError(name)

    def __iter__(self) -> Iterator[Sequence[Any]]:
        while True:
            row = self.fetchone()
            if row is None:
                return
            yield row

    def close(self) -> None:
        self._closed = True

    def __repr__(self) -> str:
        return f"ResultCursor(columns={self.columns!r}, closed={self._closed!r})"


def close_quietly(resource: Any) -> None:
    """
    关闭资源，关闭失败只记录日志

    用于清理路径，避免清理异常覆盖正在传播的原始异常。
    """
    if resource is None:
        return
    try:
        resource.close()
    except Exception as e:
        logger.warning(f"关闭资源失败 {resource!r}: {e.__class__.__name__}: {str(e)}")


class SqlExecutor:
    """
    SQL执行器

    Attributes:
        sql_log (SqlLog): SQL日志输出器，默认不输出

    Example:
        >>> executor = SqlExecutor()
        >>> executor.execute(conn, "UPDATE users SET status = :s WHERE id = :id", {"s": 1, "id": 7})
        1
        >>> executor.query(conn, "SELECT * FROM users", dict_rows)
        [{'id': 7, 'status': 1}]
    """

    def __init__(self, sql_log: Optional[SqlLog] = None) -> None:
        self.sql_log = sql_log or SqlLog()

    # ------------------------------------------------------------------ 基础方法

    @staticmethod
    def _compile(sql: SqlLike) -> CompiledSql:
        if isinstance(sql, CompiledSql):
            return sql
        if not sql or not sql.strip():
            raise ValueError("SQL语句不能为空")
        return compile_sql(sql)

    def _prepare(
        self, connection_or_cursor: Any, sql: SqlLike, params: ParameterSet
    ) -> Tuple[str, Tuple[Any, ...]]:
        compiled = self._compile(sql)
        statement, values = ParameterBinder.bind(
            compiled, params, get_paramstyle(connection_or_cursor)
        )
        self.sql_log.log(compiled.sql, values)
        return statement, values

    @staticmethod
    def _run(cursor: Any, statement: str, values: Tuple[Any, ...]) -> None:
        cursor.execute(statement, values)

    # ------------------------------------------------------------------ 连接级操作

    def execute(self, conn: Any, sql: SqlLike, params: ParameterSet = None) -> int:
        """
        执行更新语句（INSERT/UPDATE/DELETE/DDL）

        Args:
            conn: 已打开的 DB-API 连接，不会被关闭
            sql: SQL模板或解析后的SQL
            params: 位置参数序列或命名参数字典

        Returns:
            int: 影响的行数，驱动无法给出时为 -1
        """
        statement, values = self._prepare(conn, sql, params)
        cursor = conn.cursor()
        try:
            self._run(cursor, statement, values)
            return cursor.rowcount
        finally:
            close_quietly(cursor)

    def query(
        self,
        conn: Any,
        sql: SqlLike,
        handler: Callable[[ResultCursor], T],
        params: ParameterSet = None,
    ) -> T:
        """
        执行查询，并由回调处理结果游标

        Args:
            conn: 已打开的 DB-API 连接，不会被关闭
            sql: SQL模板或解析后的SQL
            handler: 结果处理回调，接收 ResultCursor，返回值即为本方法的返回值
            params: 位置参数序列或命名参数字典

        Returns:
            T: 回调的返回值

        Notes:
            - 无论回调是否抛出异常，结果游标和底层游标都会在返回前释放
        """
        statement, values = self._prepare(conn, sql, params)
        cursor = conn.cursor()
        try:
            self._run(cursor, statement, values)
            return self._handle(cursor, handler)
        finally:
            close_quietly(cursor)

    def execute_for_generated_key(
        self, conn: Any, sql: SqlLike, params: ParameterSet = None
    ) -> Optional[int]:
        """
        执行插入语句并返回自动生成的主键

        Args:
            conn: 已打开的 DB-API 连接
            sql: INSERT语句模板
            params: 位置参数序列或命名参数字典

        Returns:
            Optional[int]: 生成的主键；表没有自增主键或驱动不提供时返回 None，
            这属于正常结果而非错误
        """
        statement, values = self._prepare(conn, sql, params)
        cursor = conn.cursor()
        try:
            self._run(cursor, statement, values)
            return self._generated_key(cursor)
        finally:
            close_quietly(cursor)

    @staticmethod
    def _generated_key(cursor: Any) -> Optional[int]:
        key = getattr(cursor, "lastrowid", None)
        if key is None:
            return None
        try:
            key = int(key)
        except (TypeError, ValueError):
            # 驱动返回了非整数的行标识
            logger.debug(f"驱动返回的行标识不是整数: {key!r}")
            return None
        return key or None

    def execute_batch(
        self, conn: Any, sql: SqlLike, param_sets: Iterable[ParameterSet]
    ) -> List[int]:
        """
        批量执行同一条语句

        Args:
            conn: 已打开的 DB-API 连接
            sql: SQL模板或解析后的SQL
            param_sets: 参数集序列，每个元素是位置参数序列或命名参数字典

        Returns:
            List[int]: 每组参数的影响行数，顺序与输入一致；
            驱动无法给出时为 SUCCESS_NO_INFO

        Raises:
            BindingError: 任一参数集绑定失败（此时不会执行任何语句）
            BatchExecutionError: 执行到某组参数时失败，counts 中为之前各组的影响行数

        Notes:
            - 批量执行不会提交事务，在事务中失败时由会话负责回滚
        """
        compiled = self._compile(sql)
        paramstyle = get_paramstyle(conn)
        statement = compiled.render(paramstyle)
        # 先绑定全部参数，绑定错误在执行任何语句之前暴露
        batch = [ParameterBinder.resolve(compiled, params) for params in param_sets]
        if not batch:
            return []

        self.sql_log.log(compiled.sql, batch[0])
        return self._run_batch(conn, [(statement, values) for values in batch])

    def execute_batch_sql(self, conn: Any, statements: Iterable[str]) -> List[int]:
        """
        批量执行多条不带参数的语句

        Args:
            conn: 已打开的 DB-API 连接
            statements: SQL语句序列

        Returns:
            List[int]: 每条语句的影响行数，顺序与输入一致
        """
        compiled_list = [self._compile(sql) for sql in statements]
        if not compiled_list:
            return []

        paramstyle = get_paramstyle(conn)
        batch = []
        for compiled in compiled_list:
            batch.append(ParameterBinder.bind(compiled, None, paramstyle))
            self.sql_log.log(compiled.sql)
        return self._run_batch(conn, batch)

    def _run_batch(
        self, conn: Any, batch: List[Tuple[str, Tuple[Any, ...]]]
    ) -> List[int]:
        """
        在同一个游标上逐组执行批量语句

        DB-API 的 executemany 只给出总影响行数，无法得到每组的结果，
        也无法定位失败的是哪一组，因此这里每组参数各执行一次：
        以每组一次往返的代价换取逐组的影响行数和部分失败时的 counts/index。
        """
        counts: List[int] = []
        cursor = conn.cursor()
        try:
            for index, (statement, values) in enumerate(batch):
                try:
                    self._run(cursor, statement, values)
                except Exception as e:
                    logger.error(
                        f"批量执行在第 {index + 1}/{len(batch)} 组失败: "
                        f"{e.__class__.__name__}: {str(e)}"
                    )
                    raise BatchExecutionError(
                        f"批量执行失败（第 {index + 1} 组）: {e.__class__.__name__}: {str(e)}",
                        counts=counts,
                        index=index,
                    ) from e
                rowcount = cursor.rowcount
                counts.append(SUCCESS_NO_INFO if rowcount is None or rowcount < 0 else rowcount)
        finally:
            close_quietly(cursor)
        return counts

    def call(self, conn: Any, sql: SqlLike, params: ParameterSet = None) -> bool:
        """
        执行存储过程调用

        Args:
            conn: 已打开的 DB-API 连接
            sql: 调用语句，如 ``CALL proc(:a, :b)`` 或 JDBC 转义形式 ``{call proc(?, ?)}``
            params: 位置参数序列或命名参数字典

        Returns:
            bool: 调用是否返回了结果集
        """
        if isinstance(sql, str):
            sql = unescape_call(sql)
        statement, values = self._prepare(conn, sql, params)
        cursor = conn.cursor()
        try:
            self._run(cursor, statement, values)
            return cursor.description is not None
        finally:
            close_quietly(cursor)

    # ------------------------------------------------------------------ 游标级操作

    def update_with_cursor(self, cursor: Any, sql: SqlLike, params: ParameterSet = None) -> int:
        """
        使用调用方持有的游标执行更新语句，游标不会被关闭

        Returns:
            int: 影响的行数
        """
        statement, values = self._prepare(cursor, sql, params)
        self._run(cursor, statement, values)
        return cursor.rowcount

    def query_with_cursor(
        self,
        cursor: Any,
        sql: SqlLike,
        handler: Callable[[ResultCursor], T],
        params: ParameterSet = None,
    ) -> T:
        """
        使用调用方持有的游标执行查询，游标不会被关闭，结果游标视图在返回前失效

        Returns:
            T: 回调的返回值
        """
        statement, values = self._prepare(cursor, sql, params)
        self._run(cursor, statement, values)
        return self._handle(cursor, handler)

    @staticmethod
    def _handle(cursor: Any, handler: Callable[[ResultCursor], T]) -> T:
        result = ResultCursor(cursor)
        try:
            return handler(result)
        finally:
            result.close()

    def __repr__(self) -> str:
        return f"SqlExecutor(sql_log={self.sql_log!r})"


def unescape_call(sql: str) -> str:
    """
    将 JDBC 转义形式的存储过程调用 ``{call proc(...)}`` 转换为 ``CALL proc(...)``

    其它语句原样返回。
    """
    stripped = sql.strip()
    if stripped.lower().startswith(CALL_ESCAPE_PREFIX) and stripped.endswith("}"):
        return "CALL" + stripped[len(CALL_ESCAPE_PREFIX) : -1]
    return sql
