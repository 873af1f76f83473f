"""
参数绑定测试
"""

import pytest

from db_runner.core.binder import ParameterBinder
from db_runner.core.exceptions import BindingError, ParameterCountMismatch, UnresolvedParameter
from db_runner.core.named_sql import compile_sql


class TestParameterBinder:
    """ParameterBinder 测试类"""

    def test_named_binding(self):
        """测试命名参数按占位符顺序绑定"""
        compiled = compile_sql("UPDATE t SET a = :a WHERE b = :b AND c = :a")

        values = ParameterBinder.resolve(compiled, {"b": 2, "a": 1})

        assert values == (1, 2, 1)

    def test_named_none_binds_null(self):
        """测试值为 None 的命名参数绑定为 NULL"""
        compiled = compile_sql("INSERT INTO t (a) VALUES (:a)")

        assert ParameterBinder.resolve(compiled, {"a": None}) == (None,)

    def test_missing_name(self):
        """测试缺少命名参数"""
        compiled = compile_sql("SELECT * FROM t WHERE a = :a AND b = :b")

        with pytest.raises(UnresolvedParameter) as exc_info:
            ParameterBinder.resolve(compiled, {"a": 1})

        assert exc_info.value.name == "b"

    def test_extra_names_ignored(self):
        """测试多余的命名参数被忽略"""
        compiled = compile_sql("SELECT * FROM t WHERE a = :a")

        assert ParameterBinder.resolve(compiled, {"a": 1, "z": 9}) == (1,)

    def test_positional_binding(self):
        """测试位置参数"""
        compiled = compile_sql("SELECT * FROM t WHERE a = ? AND b = ?")

        assert ParameterBinder.resolve(compiled, [1, "x"]) == (1, "x")

    def test_positional_for_named_template(self):
        """测试命名模板也可以按位置绑定"""
        compiled = compile_sql("SELECT * FROM t WHERE a = :a AND b = :b")

        assert ParameterBinder.resolve(compiled, (1, 2)) == (1, 2)

    def test_positional_count_mismatch(self):
        """测试位置参数个数不匹配"""
        compiled = compile_sql("SELECT * FROM t WHERE a = ? AND b = ?")

        with pytest.raises(ParameterCountMismatch) as exc_info:
            ParameterBinder.resolve(compiled, [1])

        assert exc_info.value.expected == 2
        assert exc_info.value.actual == 1

    def test_none_means_no_parameters(self):
        """测试 None 表示没有参数"""
        assert ParameterBinder.resolve(compile_sql("SELECT 1"), None) == ()

        with pytest.raises(ParameterCountMismatch):
            ParameterBinder.resolve(compile_sql("SELECT * FROM t WHERE a = :a"), None)

    def test_anonymous_marker_in_named_mode(self):
        """测试命名模式下模板包含匿名占位符"""
        compiled = compile_sql("SELECT * FROM t WHERE a = ? AND b = :b")

        with pytest.raises(ParameterCountMismatch):
            ParameterBinder.resolve(compiled, {"b": 1})

    def test_string_is_not_a_sequence(self):
        """测试字符串不能作为位置参数序列"""
        compiled = compile_sql("SELECT * FROM t WHERE a = ?")

        with pytest.raises(BindingError):
            ParameterBinder.resolve(compiled, "a")

    def test_bind_renders_paramstyle(self):
        """测试 bind 按参数风格生成SQL"""
        compiled = compile_sql("SELECT * FROM t WHERE a = :a")

        sql, values = ParameterBinder.bind(compiled, {"a": 5}, "format")

        assert sql == "SELECT * FROM t WHERE a = %s"
        assert values == (5,)
        assert ParameterBinder.is_named({"a": 5})
        assert not ParameterBinder.is_named([5])
