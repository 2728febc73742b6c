"""标签缓存与脏标记测试"""

from ytag.taggable import TagCache


class TestTagCache:
    """TagCache 测试"""

    def test_read_unknown_context(self):
        assert TagCache().read("tag") == []

    def test_populate_groups_by_context(self):
        """测试一次填充所有上下文"""
        cache = TagCache()
        cache.populate([("tag", "red"), ("category", "fruit"), ("tag", "blue")])

        assert cache.populated
        assert cache.read("tag") == ["red", "blue"]
        assert cache.read("category") == ["fruit"]
        assert not cache.is_dirty()

    def test_read_returns_copy(self):
        cache = TagCache()
        cache.write("tag", ["a"])
        cache.read("tag").append("b")

        assert cache.read("tag") == ["a"]

    def test_write_marks_dirty_in_order(self):
        cache = TagCache()
        cache.write("category", ["x"])
        cache.write("tag", ["y"])

        assert cache.dirty_contexts() == ("category", "tag")

    def test_rewrite_keeps_dirty_position(self):
        """测试重复写入不改变脏集合顺序"""
        cache = TagCache()
        cache.write("category", ["x"])
        cache.write("tag", ["y"])
        cache.write("category", ["z"], tagger="bob")

        assert cache.dirty_contexts() == ("category", "tag")
        assert cache.read("category") == ["z"]
        assert cache.tagger_for("category") == "bob"

    def test_populate_keeps_dirty_contexts(self):
        cache = TagCache()
        cache.write("tag", ["mine"])
        cache.populate([("tag", "stored"), ("category", "fruit")])

        assert cache.read("tag") == ["mine"]
        assert cache.read("category") == ["fruit"]

    def test_mark_reconciled(self):
        cache = TagCache()
        cache.write("tag", ["a", "a", "b"])
        cache.mark_reconciled("tag", ["a", "b"])

        assert cache.read("tag") == ["a", "b"]
        assert not cache.is_dirty("tag")

    def test_clear_dirty(self):
        cache = TagCache()
        cache.write("tag", ["a"])
        cache.write("category", ["b"])

        cache.clear_dirty(["tag"])
        assert cache.dirty_contexts() == ("category",)

        cache.clear_dirty()
        assert cache.dirty_contexts() == ()
        # 值保留
        assert cache.read("tag") == ["a"]

    def test_reset(self):
        cache = TagCache()
        cache.populate([("tag", "a")])
        cache.write("category", ["b"])
        cache.reset()

        assert not cache.populated
        assert not cache.is_dirty()
        assert cache.read("tag") == []

    def test_raw_value_returned_unchanged(self):
        """非列表值原样保存，由验证阶段报错"""
        cache = TagCache()
        cache.write("tag", 42)
        assert cache.read("tag") == 42

    def test_as_dict(self):
        cache = TagCache()
        cache.populate([("tag", "a"), ("category", "b")])
        assert cache.as_dict() == {"tag": ["a"], "category": ["b"]}
