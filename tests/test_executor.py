"""
SQL执行器测试
"""

import logging
import sqlite3

import pytest

from conftest import FakeConnection, FakeResult
from db_runner.core.exceptions import (
    BatchExecutionError,
    CursorClosedError,
    ParameterCountMismatch,
    UnresolvedParameter,
)
from db_runner.core.executor import SUCCESS_NO_INFO, SqlExecutor, unescape_call
from db_runner.core.handlers import dict_rows, scalar
from db_runner.core.named_sql import compile_sql
from db_runner.utils.logging_utils import SqlLog, SqlLogConfig


class TestSqlExecutor:
    """SqlExecutor 测试类（模拟连接）"""

    def setup_method(self):
        """测试方法 setup"""
        self.conn = FakeConnection()
        self.executor = SqlExecutor()

    def test_execute_returns_rowcount(self):
        """测试执行更新语句返回影响行数"""
        self.conn.results.append(FakeResult(rowcount=3))

        count = self.executor.execute(self.conn, "UPDATE t SET a = :a WHERE b = :b", {"a": 1, "b": 2})

        assert count == 3
        assert self.conn.executed == [("UPDATE t SET a = ? WHERE b = ?", (1, 2))]
        assert all(cursor.closed for cursor in self.conn.cursors)
        assert not self.conn.closed

    def test_execute_accepts_compiled_sql(self):
        """测试可以直接传入解析后的SQL"""
        self.executor.execute(self.conn, compile_sql("DELETE FROM t WHERE id = :id"), {"id": 1})

        assert self.conn.executed == [("DELETE FROM t WHERE id = ?", (1,))]

    def test_execute_uses_connection_paramstyle(self):
        """测试按连接的参数风格生成SQL"""
        conn = FakeConnection(paramstyle="pyformat")

        self.executor.execute(conn, "SELECT * FROM t WHERE a LIKE '1%' AND b = :b", {"b": 1})

        assert conn.executed == [("SELECT * FROM t WHERE a LIKE '1%%' AND b = %s", (1,))]

    def test_execute_binding_error_runs_nothing(self):
        """测试参数绑定失败时不执行语句"""
        with pytest.raises(UnresolvedParameter):
            self.executor.execute(self.conn, "SELECT * FROM t WHERE a = :a", {})

        assert self.conn.executed == []

    def test_execute_empty_sql(self):
        """测试空SQL"""
        with pytest.raises(ValueError):
            self.executor.execute(self.conn, "   ")

    def test_execute_driver_error_propagates(self):
        """测试驱动异常原样传播且游标被关闭"""
        self.conn.results.append(RuntimeError("boom"))

        with pytest.raises(RuntimeError, match="boom"):
            self.executor.execute(self.conn, "DELETE FROM t")

        assert self.conn.cursors[0].closed

    @pytest.mark.parametrize(
        "operation",
        [
            lambda executor, conn: executor.execute(conn, "DELETE FROM t"),
            lambda executor, conn: executor.execute_for_generated_key(conn, "INSERT INTO t VALUES (1)"),
            lambda executor, conn: executor.call(conn, "CALL p()"),
            lambda executor, conn: executor.execute_batch(conn, "INSERT INTO t VALUES (?)", [(1,)]),
        ],
        ids=["execute", "generated_key", "call", "batch"],
    )
    def test_cursor_close_failure_keeps_driver_error(self, operation, caplog):
        """测试关闭游标失败不会覆盖驱动异常"""
        driver_error = RuntimeError("boom")
        self.conn.results.append(driver_error)
        self.conn.fail_cursor_close = True

        with caplog.at_level(logging.WARNING):
            with pytest.raises((RuntimeError, BatchExecutionError)) as exc_info:
                operation(self.executor, self.conn)

        error = exc_info.value
        assert error is driver_error or error.__cause__ is driver_error
        assert self.conn.cursors[0].closed
        assert "关闭资源失败" in caplog.text

    def test_query_with_handler(self):
        """测试查询结果交给回调处理"""
        self.conn.results.append(FakeResult(rows=[(1, "a"), (2, "b")], columns=["id", "name"]))

        rows = self.executor.query(self.conn, "SELECT id, name FROM t WHERE id > :id", dict_rows, {"id": 0})

        assert rows == [{"id": 1, "name": "a"}, {"id": 2, "name": "b"}]
        assert self.conn.cursors[0].closed

    def test_result_cursor_closed_after_query(self):
        """测试查询结束后结果游标不可再用"""
        self.conn.results.append(FakeResult(rows=[(1,)], columns=["id"]))

        escaped = self.executor.query(self.conn, "SELECT id FROM t", lambda cursor: cursor)

        assert escaped.closed
        with pytest.raises(CursorClosedError):
            escaped.fetchone()

    def test_query_closes_cursor_when_handler_fails(self):
        """测试回调抛出异常时仍然释放游标"""
        self.conn.results.append(FakeResult(rows=[(1,)], columns=["id"]))

        def handler(cursor):
            raise KeyError("bad")

        with pytest.raises(KeyError):
            self.executor.query(self.conn, "SELECT id FROM t", handler)

        assert self.conn.cursors[0].closed

    def test_generated_key(self):
        """测试返回自增主键"""
        self.conn.results.append(FakeResult(lastrowid=42))

        key = self.executor.execute_for_generated_key(self.conn, "INSERT INTO t (a) VALUES (:a)", {"a": 1})

        assert key == 42

    @pytest.mark.parametrize("lastrowid", [None, 0, "not-a-number"])
    def test_no_generated_key(self, lastrowid):
        """测试没有自增主键时返回 None"""
        self.conn.results.append(FakeResult(lastrowid=lastrowid))

        assert self.executor.execute_for_generated_key(self.conn, "INSERT INTO t (a) VALUES (1)") is None

    def test_batch_counts_in_order(self):
        """测试批量执行按输入顺序返回影响行数"""
        self.conn.results.extend([FakeResult(rowcount=1), FakeResult(rowcount=-1), FakeResult(rowcount=2)])

        counts = self.executor.execute_batch(
            self.conn, "UPDATE t SET a = :a WHERE id = :id", [{"a": 1, "id": 1}, {"a": 2, "id": 2}, (3, 3)]
        )

        assert counts == [1, SUCCESS_NO_INFO, 2]
        assert [params for _, params in self.conn.executed] == [(1, 1), (2, 2), (3, 3)]
        assert len(self.conn.cursors) == 1

    def test_batch_binding_error_before_execution(self):
        """测试批量绑定失败时不执行任何语句"""
        with pytest.raises(ParameterCountMismatch):
            self.executor.execute_batch(self.conn, "INSERT INTO t VALUES (?, ?)", [(1, 2), (3,)])

        assert self.conn.executed == []

    def test_batch_partial_failure(self):
        """测试批量执行中途失败时携带已执行部分的结果"""
        driver_error = RuntimeError("constraint violated")
        self.conn.results.extend([FakeResult(rowcount=1), FakeResult(rowcount=1), driver_error])

        with pytest.raises(BatchExecutionError) as exc_info:
            self.executor.execute_batch(self.conn, "INSERT INTO t VALUES (?)", [(1,), (2,), (3,), (4,)])

        assert exc_info.value.counts == [1, 1]
        assert exc_info.value.index == 2
        assert exc_info.value.__cause__ is driver_error
        assert len(self.conn.executed) == 3

    def test_empty_batch(self):
        """测试空批量不访问连接"""
        assert self.executor.execute_batch(self.conn, "INSERT INTO t VALUES (?)", []) == []
        assert self.executor.execute_batch_sql(self.conn, []) == []
        assert self.conn.cursors == []

    def test_batch_sql(self):
        """测试批量执行多条语句"""
        self.conn.results.extend([FakeResult(rowcount=0), FakeResult(rowcount=5)])

        counts = self.executor.execute_batch_sql(self.conn, ["CREATE TABLE x (a INT)", "DELETE FROM y"])

        assert counts == [0, 5]
        assert self.conn.statements == ["CREATE TABLE x (a INT)", "DELETE FROM y"]

    def test_call_reports_result_set(self):
        """测试存储过程调用是否返回结果集"""
        self.conn.results.extend([FakeResult(rows=[(1,)], columns=["x"]), FakeResult()])

        assert self.executor.call(self.conn, "{call proc(:a)}", {"a": 1}) is True
        assert self.executor.call(self.conn, "CALL proc2()") is False
        assert self.conn.statements == ["CALL proc(?)", "CALL proc2()"]

    def test_cursor_level_operations_keep_cursor_open(self):
        """测试使用调用方游标执行时不关闭游标"""
        cursor = self.conn.cursor()
        self.conn.results.extend([FakeResult(rowcount=2), FakeResult(rows=[(7,)], columns=["n"])])

        assert self.executor.update_with_cursor(cursor, "DELETE FROM t WHERE a = :a", {"a": 1}) == 2
        assert self.executor.query_with_cursor(cursor, "SELECT COUNT(*) AS n FROM t", scalar) == 7
        assert not cursor.closed

    def test_sql_log(self, caplog):
        """测试执行前输出SQL日志"""
        executor = SqlExecutor(SqlLog(SqlLogConfig(show_sql=True, show_params=True, level="INFO")))

        with caplog.at_level(logging.INFO, logger="db_runner.sql"):
            executor.execute(self.conn, "DELETE FROM t WHERE id = :id", {"id": 9})

        assert "[SQL] : DELETE FROM t WHERE id = ?" in caplog.text
        assert "[Params] : [9]" in caplog.text


class TestUnescapeCall:
    """unescape_call 测试类"""

    def test_escape_form(self):
        """测试 JDBC 转义形式"""
        assert unescape_call("{call p(?, ?)}") == "CALL p(?, ?)"
        assert unescape_call("  {CALL p()}  ") == "CALL p()"

    def test_plain_statement(self):
        """测试普通语句原样返回"""
        assert unescape_call("CALL p()") == "CALL p()"


class TestSqlExecutorSqlite:
    """SqlExecutor 测试类（SQLite）"""

    def setup_method(self):
        """测试方法 setup"""
        self.conn = sqlite3.connect(":memory:")
        self.conn.isolation_level = None
        self.executor = SqlExecutor()
        self.executor.execute(self.conn, "CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT, note TEXT)")

    def teardown_method(self):
        """测试方法 teardown"""
        self.conn.close()

    def test_insert_and_query(self):
        """测试插入与命名参数查询"""
        key = self.executor.execute_for_generated_key(
            self.conn, "INSERT INTO users (name, note) VALUES (:name, 'a:b')", {"name": "alice"}
        )
        rows = self.executor.query(self.conn, "SELECT * FROM users WHERE name = :name", dict_rows, {"name": "alice"})

        assert key == 1
        assert rows == [{"id": 1, "name": "alice", "note": "a:b"}]

    def test_batch(self):
        """测试批量插入"""
        counts = self.executor.execute_batch(
            self.conn, "INSERT INTO users (name) VALUES (:name)", [{"name": "a"}, {"name": "b"}]
        )
        total = self.executor.query(self.conn, "SELECT COUNT(*) FROM users", scalar)

        assert counts == [1, 1]
        assert total == 2

    def test_without_rowid_table_has_no_key(self):
        """测试没有自增主键的表返回 None"""
        conn = sqlite3.connect(":memory:")
        try:
            self.executor.execute(conn, "CREATE TABLE kv (k TEXT PRIMARY KEY, v TEXT) WITHOUT ROWID")
            key = self.executor.execute_for_generated_key(conn, "INSERT INTO kv VALUES (:k, :v)", {"k": "a", "v": "b"})
        finally:
            conn.close()

        assert key is None
