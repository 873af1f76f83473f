"""
参数绑定模块

将参数集（位置参数序列或命名参数字典）解析为与占位符一一对应的绑定值序列。
第 i 个占位符总是绑定第 i 个解析出的值，即使参数名重复出现。
"""

from collections.abc import Mapping, Sequence
from typing import Any, Optional, Tuple, Union

from .exceptions import BindingError, ParameterCountMismatch, UnresolvedParameter
from .named_sql import CompiledSql

ParameterSet = Union[None, Sequence, Mapping]


class ParameterBinder:
    """
    参数绑定器

    所有方法均为静态方法，无实例状态。

    Example:
        >>> compiled = compile_sql("SELECT * FROM t WHERE id = :id AND name = :name")
        >>> ParameterBinder.resolve(compiled, {"id": 5, "name": "a"})
        (5, 'a')
    """

    @staticmethod
    def is_named(params: ParameterSet) -> bool:
        """参数集是否为命名模式"""
        return isinstance(params, Mapping)

    @staticmethod
    def resolve(compiled: CompiledSql, params: ParameterSet = None) -> Tuple[Any, ...]:
        """
        解析绑定值

        Args:
            compiled: 解析后的SQL
            params: None、位置参数序列或命名参数字典

        Returns:
            Tuple[Any, ...]: 按占位符顺序排列的绑定值

        Raises:
            ParameterCountMismatch: 位置参数个数与占位符个数不一致，
                或命名模式下模板包含匿名占位符
            UnresolvedParameter: 命名模式下参数字典缺少某个参数名
            BindingError: 参数集类型不受支持
        """
        if params is None:
            params = ()

        if isinstance(params, Mapping):
            if not compiled.is_named:
                named_count = len([name for name in compiled.names if name is not None])
                raise ParameterCountMismatch(
                    compiled.parameter_count,
                    named_count,
                    message="模板包含匿名占位符 '?'，无法按名称绑定参数",
                )
            values = []
            for name in compiled.names:
                if name not in params:
                    raise UnresolvedParameter(name)
                # 值为 None 时绑定 SQL NULL
                values.append(params[name])
            return tuple(values)

        if isinstance(params, (str, bytes, bytearray)) or not isinstance(params, Sequence):
            raise BindingError(
                f"不支持的参数类型: {type(params).__name__}，请使用序列或字典"
            )

        if len(params) != compiled.parameter_count:
            raise ParameterCountMismatch(compiled.parameter_count, len(params))
        return tuple(params)

    @staticmethod
    def bind(
        compiled: CompiledSql,
        params: ParameterSet = None,
        paramstyle: Optional[str] = "qmark",
    ) -> Tuple[str, Tuple[Any, ...]]:
        """
        解析绑定值并生成驱动可执行的SQL

        Args:
            compiled: 解析后的SQL
            params: 参数集
            paramstyle: 驱动的参数风格

        Returns:
            Tuple[str, Tuple[Any, ...]]: (驱动SQL, 绑定值)
        """
        values = ParameterBinder.resolve(compiled, params)
        return compiled.render(paramstyle or "qmark"), values
