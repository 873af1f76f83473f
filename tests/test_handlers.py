"""
结果处理回调测试
"""

import pytest

from conftest import FakeConnection, FakeResult
from db_runner.core.executor import SqlExecutor
from db_runner.core.handlers import column_values, dict_rows, first_row, scalar, tuple_rows


class TestHandlers:
    """结果处理回调测试类"""

    def setup_method(self):
        """测试方法 setup"""
        self.conn = FakeConnection()
        self.executor = SqlExecutor()

    def _query(self, handler, rows):
        self.conn.results.append(FakeResult(rows=rows, columns=["ID", "name"]))
        return self.executor.query(self.conn, "SELECT ID, name FROM t", handler)

    def test_dict_rows(self):
        """测试字典行"""
        assert self._query(dict_rows, [(1, "a")]) == [{"ID": 1, "name": "a"}]

    def test_tuple_rows(self):
        """测试元组行"""
        assert self._query(tuple_rows, [[1, "a"], [2, "b"]]) == [(1, "a"), (2, "b")]

    def test_first_row(self):
        """测试第一行"""
        assert self._query(first_row, [(1, "a"), (2, "b")]) == {"ID": 1, "name": "a"}
        assert self._query(first_row, []) is None

    def test_scalar(self):
        """测试单值"""
        assert self._query(scalar, [(5, "x")]) == 5
        assert self._query(scalar, []) is None

    def test_column_values_case_insensitive(self):
        """测试按列名读取（不区分大小写）"""
        assert self._query(column_values("id"), [(1, "a"), (2, "b")]) == [1, 2]

    def test_column_values_unknown_column(self):
        """测试列不存在"""
        with pytest.raises(KeyError):
            self._query(column_values("missing"), [(1, "a")])
