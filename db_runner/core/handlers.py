"""
常用结果处理回调

这些函数都可以直接作为 SqlExecutor.query 的 handler 参数使用，
只做简单的行/列访问，不做对象映射。
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

from .executor import ResultCursor


def dict_rows(cursor: ResultCursor) -> List[Dict[str, Any]]:
    """将全部结果行转换为 {列名: 值} 字典列表"""
    columns = cursor.columns
    return [dict(zip(columns, row)) for row in cursor.fetchall()]


def tuple_rows(cursor: ResultCursor) -> List[Tuple[Any, ...]]:
    """将全部结果行转换为元组列表"""
    return [tuple(row) for row in cursor.fetchall()]


def first_row(cursor: ResultCursor) -> Optional[Dict[str, Any]]:
    """获取第一行（字典形式），没有结果时返回 None"""
    row = cursor.fetchone()
    if row is None:
        return None
    return dict(zip(cursor.columns, row))


def scalar(cursor: ResultCursor) -> Any:
    """获取第一行第一列的值，没有结果时返回 None"""
    row = cursor.fetchone()
    if row is None or len(row) == 0:
        return None
    return row[0]


def column_values(column: str):
    """
    生成读取指定列全部值的处理回调

    Args:
        column: 列名（不区分大小写）

    Returns:
        Callable[[ResultCursor], List[Any]]: 处理回调

    Example:
        >>> executor.query(conn, "SELECT id, name FROM users", column_values("name"))
        ['alice', 'bob']
    """

    def handler(cursor: ResultCursor) -> List[Any]:
        index = cursor.column_index(column)
        rows: Sequence[Sequence[Any]] = cursor.fetchall()
        return [row[index] for row in rows]

    return handler
