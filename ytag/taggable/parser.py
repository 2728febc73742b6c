"""标签字符串解析

将 "red, blue, \"a,b\"" 形式的分隔字符串解析为标签名列表。
"""

import csv
import io
import re
from typing import Any, Iterable, List

from ytag.exceptions import TagParseException


def _delimiter(delimiter: str = None) -> str:
    if delimiter is None:
        from ytag.config import get_tagging_settings
        return get_tagging_settings().delimiter
    return delimiter


def parse_tags(value: Any, delimiter: str = None) -> Any:
    """解析标签值

    - 字符串按 CSV 规则切分，每个标签去除首尾空白，空标签被丢弃
    - 引号包裹的片段可以包含分隔符，分隔符与左引号之间的空白会被忽略
    - 非字符串值原样返回（是否为列表由验证阶段检查）

    Args:
        value: 标签字符串或已结构化的列表
        delimiter: 分隔符，默认读取 TaggingSettings.delimiter

    Returns:
        标签名列表，或原样返回的非字符串值

    Raises:
        TagParseException: 引号不匹配等格式错误

    Examples:
        >>> parse_tags('red, blue')
        ['red', 'blue']
        >>> parse_tags('a, "b,c"')
        ['a', 'b,c']
        >>> parse_tags('')
        []
    """
    if not isinstance(value, str):
        return value

    if not value.strip():
        return []

    sep = _delimiter(delimiter)
    normalized = re.sub(re.escape(sep) + r'\s+"', lambda _: sep + '"', value.strip())

    try:
        rows = list(csv.reader([normalized], delimiter=sep, quotechar='"', strict=True))
    except csv.Error as e:
        raise TagParseException(value, str(e)) from e

    if len(rows) != 1:
        raise TagParseException(value, "换行符只能出现在引号内")

    return [token.strip() for token in rows[0] if token and token.strip()]


def format_tags(names: Iterable[str], delimiter: str = None) -> str:
    """将标签名列表格式化为分隔字符串（parse_tags 的逆操作）

    >>> format_tags(['a', 'b,c'])
    'a,"b,c"'
    """
    sep = _delimiter(delimiter)
    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=sep, quotechar='"', lineterminator="")
    writer.writerow(list(names))
    return buffer.getvalue()


__all__ = ["parse_tags", "format_tags"]
