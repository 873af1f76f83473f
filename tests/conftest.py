"""
测试公共夹具

FakeConnection / FakeCursor 模拟 DB-API 2.0 连接，记录执行过的语句、
提交/回滚次数和自动提交模式的变化。
"""

import sqlite3

import pytest


class FakeResult:
    """一次 execute 的预设结果"""

    def __init__(self, rows=None, columns=None, rowcount=1, lastrowid=None):
        self.rows = list(rows or [])
        self.description = [(name, None, None, None, None, None, None) for name in columns] if columns else None
        self.rowcount = rowcount
        self.lastrowid = lastrowid


class FakeCursor:
    def __init__(self, connection):
        self.connection = connection
        self.description = None
        self.rowcount = -1
        self.lastrowid = None
        self.closed = False
        self._rows = []

    def execute(self, sql, params=()):
        assert not self.closed, "cursor already closed"
        self.connection.executed.append((sql, tuple(params)))
        result = self.connection.results.pop(0) if self.connection.results else FakeResult()
        if isinstance(result, Exception):
            raise result
        self.description = result.description
        self.rowcount = result.rowcount
        self.lastrowid = result.lastrowid
        self._rows = list(result.rows)

    def fetchone(self):
        return self._rows.pop(0) if self._rows else None

    def fetchmany(self, size):
        rows, self._rows = self._rows[:size], self._rows[size:]
        return rows

    def fetchall(self):
        rows, self._rows = self._rows, []
        return rows

    def close(self):
        self.closed = True
        if self.connection.fail_cursor_close:
            raise RuntimeError("cursor close failed")


class FakeConnection:
    def __init__(self, paramstyle="qmark", supports_transactions=True):
        self.paramstyle = paramstyle
        self.supports_transactions = supports_transactions
        self.executed = []
        self.results = []
        self.cursors = []
        self.commits = 0
        self.rollbacks = 0
        self.closed = False
        self.autocommit_history = []
        self.fail_cursor_close = False
        self.fail_autocommit = None
        self.fail_commit = None
        self.fail_rollback = None
        self._autocommit = False

    @property
    def autocommit(self):
        return self._autocommit

    @autocommit.setter
    def autocommit(self, flag):
        if self.fail_autocommit is not None:
            raise self.fail_autocommit
        self.autocommit_history.append(flag)
        self._autocommit = flag

    def cursor(self):
        cursor = FakeCursor(self)
        self.cursors.append(cursor)
        return cursor

    def commit(self):
        if self.fail_commit is not None:
            raise self.fail_commit
        self.commits += 1

    def rollback(self):
        if self.fail_rollback is not None:
            raise self.fail_rollback
        self.rollbacks += 1

    def close(self):
        self.closed = True

    @property
    def statements(self):
        return [sql for sql, _ in self.executed]


@pytest.fixture
def fake_conn():
    return FakeConnection()


@pytest.fixture
def sqlite_conn(tmp_path):
    conn = sqlite3.connect(str(tmp_path / "test.db"))
    yield conn
    conn.close()
