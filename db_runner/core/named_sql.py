"""
命名参数SQL模板解析模块

将包含 ``:name`` 形式命名占位符的SQL模板改写为位置参数形式（``?``），
同时按出现顺序记录参数名称。解析过程是一个显式的状态机，逐字符扫描，
保证线性时间复杂度：

- 单引号字符串字面量内部的冒号与问号原样保留，不会被识别为占位符
- ``::`` 作为整体原样保留（兼容 PostgreSQL 的 ``value::int`` 类型转换语法）
- 冒号后不是标识符字符（字母、数字、下划线）时原样保留
- 模板中已有的 ``?`` 视为匿名位置占位符，名称记为 None
- 扫描到结尾时引号仍未闭合则抛出 MalformedTemplate

示例：
    >>> compiled = compile_sql("SELECT * FROM t WHERE id = :id AND name = :name")
    >>> compiled.sql
    'SELECT * FROM t WHERE id = ? AND name = ?'
    >>> compiled.names
    ('id', 'name')
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple

from .exceptions import MalformedTemplate

# 位置占位符
MARKER = "?"

QUOTE = "'"
COLON = ":"

# 解析结果缓存的最大条目数
TEMPLATE_CACHE_SIZE = 512

SUPPORTED_PARAMSTYLES = ("qmark", "numeric", "named", "format", "pyformat", "numeric_dollar")


def _is_identifier_char(char: str) -> bool:
    """判断字符是否可以构成占位符名称（ASCII字母、数字、下划线）"""
    return char == "_" or ("a" <= char <= "z") or ("A" <= char <= "Z") or ("0" <= char <= "9")


@dataclass(frozen=True)
class CompiledSql:
    """
    解析后的SQL

    Attributes:
        template (str): 原始SQL模板
        sql (str): 位置参数形式的SQL，占位符统一为 ``?``
        names (Tuple[Optional[str], ...]): 每个占位符对应的参数名，按出现顺序排列，
            重复使用的参数名会重复出现；匿名占位符记为 None
        fragments (Tuple[str, ...]): 占位符之间的文本片段，长度比 names 多 1
    """

    template: str
    sql: str
    names: Tuple[Optional[str], ...]
    fragments: Tuple[str, ...]

    @property
    def parameter_count(self) -> int:
        """占位符个数"""
        return len(self.names)

    @property
    def is_named(self) -> bool:
        """模板中的占位符是否全部为命名占位符"""
        return all(name is not None for name in self.names)

    @property
    def parameter_names(self) -> Tuple[str, ...]:
        """去重后的命名参数列表，保持首次出现的顺序"""
        seen = []
        for name in self.names:
            if name is not None and name not in seen:
                seen.append(name)
        return tuple(seen)

    def render(self, paramstyle: str = "qmark") -> str:
        """
        按驱动的参数风格（DB-API paramstyle）生成最终执行的SQL

        Args:
            paramstyle: DB-API 模块的 paramstyle

        Returns:
            str: 使用对应占位符的SQL语句

        Raises:
            ValueError: 当参数风格不受支持时

        Notes:
            - named 风格使用 ``:1``、``:2`` 形式，按位置绑定（oracledb 支持）
            - format/pyformat 风格会将文本中的 ``%`` 转义为 ``%%``
        """
        if paramstyle == "qmark":
            return self.sql
        if paramstyle not in SUPPORTED_PARAMSTYLES:
            raise ValueError(f"不支持的参数风格: {paramstyle}")

        fragments = self.fragments
        if paramstyle in ("format", "pyformat"):
            fragments = tuple(fragment.replace("%", "%%") for fragment in fragments)

        parts = [fragments[0]]
        for index, fragment in enumerate(fragments[1:], start=1):
            if paramstyle in ("numeric", "named"):
                parts.append(f":{index}")
            elif paramstyle == "numeric_dollar":
                parts.append(f"${index}")
            else:
                parts.append("%s")
            parts.append(fragment)
        return "".join(parts)


class NamedSqlParser:
    """
    命名参数SQL解析器

    无状态的解析器，compile 方法是纯函数，结果按模板文本缓存。

    Example:
        >>> parser = NamedSqlParser()
        >>> parser.compile("UPDATE t SET a = :v WHERE b = :v").names
        ('v', 'v')
    """

    def compile(self, template: str) -> CompiledSql:
        """
        解析SQL模板

        Args:
            template: 包含命名占位符的SQL模板

        Returns:
            CompiledSql: 解析结果

        Raises:
            MalformedTemplate: 当单引号字面量未闭合时
        """
        return compile_sql(template)


@lru_cache(maxsize=TEMPLATE_CACHE_SIZE)
def compile_sql(template: str) -> CompiledSql:
    """
    解析SQL模板（带缓存）

    Args:
        template: 包含命名占位符的SQL模板

    Returns:
        CompiledSql: 解析结果

    Raises:
        MalformedTemplate: 当单引号字面量未闭合时
        TypeError: 当模板不是字符串时
    """
    if not isinstance(template, str):
        raise TypeError(f"SQL模板必须是字符串，实际类型: {type(template).__name__}")

    fragments = []
    names = []
    current = []
    in_literal = False
    literal_start = -1
    length = len(template)
    i = 0

    while i < length:
        char = template[i]

        if in_literal:
            current.append(char)
            if char == QUOTE:
                in_literal = False
            i += 1
            continue

        if char == QUOTE:
            in_literal = True
            literal_start = i
            current.append(char)
            i += 1
            continue

        if char == COLON:
            next_char = template[i + 1] if i + 1 < length else ""
            if next_char == COLON:
                # 类型转换语法，两个冒号一起保留
                current.append("::")
                i += 2
                continue
            if next_char and _is_identifier_char(next_char):
                end = i + 1
                while end < length and _is_identifier_char(template[end]):
                    end += 1
                fragments.append("".join(current))
                current = []
                names.append(template[i + 1 : end])
                i = end
                continue
            current.append(char)
            i += 1
            continue

        if char == MARKER:
            fragments.append("".join(current))
            current = []
            names.append(None)
            i += 1
            continue

        current.append(char)
        i += 1

    if in_literal:
        raise MalformedTemplate(template, literal_start)

    fragments.append("".join(current))
    return CompiledSql(
        template=template,
        sql=MARKER.join(fragments),
        names=tuple(names),
        fragments=tuple(fragments),
    )
