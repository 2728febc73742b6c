"""标签字符串解析测试"""

import pytest

from ytag.config import configure_tagging
from ytag.exceptions import ErrorCode, TagParseException
from ytag.taggable import format_tags, parse_tags


class TestParseTags:
    """parse_tags 测试"""

    def test_simple_list(self):
        """测试逗号分隔并去除空白"""
        assert parse_tags("red, blue ,green") == ["red", "blue", "green"]

    def test_empty_string(self):
        """测试空字符串返回空列表"""
        assert parse_tags("") == []
        assert parse_tags("   ") == []

    def test_blank_tokens_dropped(self):
        assert parse_tags("a,,b, ,") == ["a", "b"]

    def test_quoted_value_contains_delimiter(self):
        """测试引号内可以包含分隔符"""
        assert parse_tags('a,"b,c"') == ["a", "b,c"]

    def test_space_before_quote_normalized(self):
        """测试分隔符与左引号之间的空白被忽略"""
        assert parse_tags('a, "b,c"') == ["a", "b,c"]
        assert parse_tags('a,   "b,c", d') == ["a", "b,c", "d"]

    def test_order_preserved(self):
        assert parse_tags("z, a, m") == ["z", "a", "m"]

    def test_duplicates_kept(self):
        """解析不去重，去重发生在同步阶段"""
        assert parse_tags("a, a, b") == ["a", "a", "b"]

    def test_unbalanced_quote_raises(self):
        """测试引号不匹配时抛出解析异常"""
        with pytest.raises(TagParseException) as exc_info:
            parse_tags('a,"b')

        assert exc_info.value.code == ErrorCode.INVALID_FORMAT
        assert exc_info.value.value == 'a,"b'

    def test_text_after_closing_quote_raises(self):
        with pytest.raises(TagParseException):
            parse_tags('"a"b, c')

    def test_parse_exception_is_value_error(self):
        with pytest.raises(ValueError):
            parse_tags('"oops')

    def test_list_passes_through(self):
        """测试非字符串原样返回"""
        value = ["a", "b"]
        assert parse_tags(value) is value

    def test_non_list_passes_through(self):
        assert parse_tags(42) == 42
        assert parse_tags(None) is None

    def test_custom_delimiter(self):
        assert parse_tags("a; b;c", delimiter=";") == ["a", "b", "c"]
        assert parse_tags('a; "b;c"', delimiter=";") == ["a", "b;c"]

    def test_configured_delimiter(self):
        """测试默认读取配置中的分隔符"""
        configure_tagging(delimiter="|")
        assert parse_tags("a | b,c") == ["a", "b,c"]


class TestFormatTags:
    """format_tags 测试"""

    def test_plain_names(self):
        assert format_tags(["red", "blue"]) == "red,blue"

    def test_quotes_names_with_delimiter(self):
        assert format_tags(["a", "b,c"]) == 'a,"b,c"'

    def test_inverse_of_parse(self):
        names = ["python", "web, api", 'say "hi"']
        assert parse_tags(format_tags(names)) == names

    def test_empty(self):
        assert format_tags([]) == ""
