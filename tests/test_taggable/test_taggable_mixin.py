"""TaggableMixin 测试

测试上下文读写、缓存加载、flush 时的标签同步：
1. 读写与上下文隔离
2. 同步结果（去重、幂等、先删后建）
3. 验证失败阻止保存
4. 缓存重置
"""

import pytest
from sqlalchemy import event, func, select
from sqlalchemy.exc import IntegrityError

from ytag.exceptions import InvalidTagContextException, TagParseException, TagValidationException
from ytag.taggable import activate_tagging_hook, deactivate_tagging_hook

from tests.helpers import Article, Member, Photo, Tag, Tagging


def _stored(session, entity, context=None):
    """数据库中实体的 (context, name) 列表"""
    stmt = (
        select(Tagging.context, Tag.name)
        .join(Tag, Tag.id == Tagging.tag_id)
        .where(Tagging.taggable_type == type(entity).__name__, Tagging.taggable_id == entity.id)
        .order_by(Tagging.id)
    )
    if context is not None:
        stmt = stmt.where(Tagging.context == context)
    return [tuple(row) for row in session.execute(stmt)]


def _count(session, model):
    return session.scalar(select(func.count()).select_from(model))


class TestReadWrite:
    """上下文读写测试"""

    @pytest.fixture(autouse=True)
    def setup_db(self, db_session):
        self.session = db_session

    def test_new_instance_reads_empty(self):
        article = Article(title="new")
        assert article.read_context("tag") == []
        assert article.read_context("category") == []

    def test_write_list(self):
        article = Article(title="a")
        article.write_context("tag", ["red", "blue"])

        assert article.read_context("tag") == ["red", "blue"]
        assert article.is_tags_dirty("tag")
        assert not article.is_tags_dirty("category")

    def test_write_string_is_parsed(self):
        article = Article(title="a")
        article.write_context("tag", 'red, "blue, navy"')

        assert article.read_context("tag") == ["red", "blue, navy"]

    def test_write_tuple_and_generator(self):
        article = Article(title="a")
        article.write_context("tag", ("a", "b"))
        article.write_context("category", (name for name in ["c"]))

        assert article.read_context("tag") == ["a", "b"]
        assert article.read_context("category") == ["c"]

    def test_write_malformed_string(self):
        article = Article(title="a")
        with pytest.raises(TagParseException):
            article.write_context("tag", 'a,"b')
        assert not article.is_tags_dirty()

    def test_invalid_context(self):
        """测试读写未声明的上下文"""
        article = Article(title="a")

        with pytest.raises(InvalidTagContextException):
            article.write_context("colour", ["red"])
        with pytest.raises(InvalidTagContextException):
            article.read_context("colour")

    def test_context_isolation(self):
        """测试不同上下文互不影响"""
        article = Article(title="a")
        article.write_context("tag", ["x"])
        article.write_context("category", ["y"])
        article.save(commit=True)

        article.reload_tags()
        assert article.read_context("tag") == ["x"]
        assert article.read_context("category") == ["y"]

    def test_default_context_helpers(self):
        photo = Photo(caption="p")
        photo.set_tags("sun, sea")
        photo.save(commit=True)

        photo.add_tags(["sea", "sand"])
        photo.remove_tags("sun")
        photo.save(commit=True)

        assert photo.get_tags() == ["sea", "sand"]
        assert photo.has_tag("sand")
        assert not photo.has_tag("sun")

    def test_has_tag_any_context(self):
        article = Article(title="a")
        article.write_context("category", ["fruit"])

        assert article.has_tag("fruit")
        assert article.has_tag("fruit", context="category")
        assert not article.has_tag("fruit", context="tag")


class TestReconciliation:
    """flush 时的标签同步测试"""

    @pytest.fixture(autouse=True)
    def setup_db(self, db_session):
        self.session = db_session

    def test_new_instance_saved(self):
        article = Article(title="a")
        article.write_context("tag", "red, blue")
        article.write_context("category", "fruit")
        article.save(commit=True)

        assert _stored(self.session, article) == [
            ("tag", "red"),
            ("tag", "blue"),
            ("category", "fruit"),
        ]
        assert not article.is_tags_dirty()

    def test_dedup_on_write(self):
        """测试重复的标签名只生成一条 Tagging"""
        article = Article(title="a")
        article.write_context("tag", ["a", "a", "b"])
        article.save(commit=True)

        assert _stored(self.session, article, "tag") == [("tag", "a"), ("tag", "b")]
        assert article.read_context("tag") == ["a", "b"]
        assert _count(self.session, Tag) == 2

    def test_idempotent(self):
        """测试同样的列表保存两次与保存一次结果相同"""
        article = Article(title="a")
        article.write_context("tag", ["a", "b"])
        article.save(commit=True)
        first = _stored(self.session, article)

        article.write_context("tag", ["a", "b"])
        article.save(commit=True)

        assert _stored(self.session, article) == first
        assert _count(self.session, Tagging) == 2
        assert _count(self.session, Tag) == 2

    def test_replace_context(self):
        """测试写入会整体替换该上下文"""
        article = Article(title="a")
        article.write_context("tag", ["a", "b"])
        article.write_context("category", ["c"])
        article.save(commit=True)

        article.write_context("tag", ["b", "d"])
        article.save(commit=True)

        assert _stored(self.session, article, "tag") == [("tag", "b"), ("tag", "d")]
        assert _stored(self.session, article, "category") == [("category", "c")]

    def test_clear_context(self):
        article = Article(title="a")
        article.write_context("tag", ["a"])
        article.save(commit=True)

        article.write_context("tag", "")
        article.save(commit=True)

        assert _stored(self.session, article, "tag") == []
        # 孤儿标签保留
        assert _count(self.session, Tag) == 1

    def test_tags_shared_across_entities(self):
        """测试同名标签在实体、上下文之间共享"""
        article = Article(title="a")
        article.write_context("tag", ["red"])
        article.write_context("category", ["red"])
        photo = Photo(caption="p")
        photo.write_context("tag", ["red"])
        self.session.add_all([article, photo])
        self.session.commit()

        assert _count(self.session, Tag) == 1
        assert _count(self.session, Tagging) == 3

    def test_existing_tag_reused(self):
        self.session.add(Tag(name="python"))
        self.session.commit()

        article = Article(title="a")
        article.write_context("tag", ["python"])
        article.save(commit=True)

        assert _count(self.session, Tag) == 1

    def test_persistent_instance_only_tags_changed(self):
        """测试只修改标签的已保存实例也会同步"""
        article = Article(title="a")
        article.save(commit=True)

        article.write_context("tag", ["late"])
        self.session.commit()

        assert _stored(self.session, article) == [("tag", "late")]

    def test_loaded_instance_update(self):
        article = Article(title="a")
        article.write_context("tag", ["a", "b"])
        article.save(commit=True)
        article_id = article.id
        self.session.expunge_all()

        loaded = self.session.get(Article, article_id)
        assert loaded.read_context("tag") == ["a", "b"]
        # 先加载 taggings 集合，确认同步后集合被刷新
        assert len(loaded.taggings) == 2

        loaded.write_context("tag", ["c"])
        self.session.commit()

        assert [t.tag.name for t in loaded.taggings] == ["c"]

    def test_tagger_recorded(self):
        member = Member(name="bob")
        member.save(commit=True)

        article = Article(title="a")
        article.write_context("tag", ["a"], tagger=member)
        article.write_context("category", ["b"], tagger=7)
        article.save(commit=True)

        tag_row = article.taggings_for_context("tag")[0]
        category_row = article.taggings_for_context("category")[0]
        assert (tag_row.tagger_type, tag_row.tagger_id) == ("Member", member.id)
        assert (category_row.tagger_type, category_row.tagger_id) == (None, 7)

    def test_derived_views(self):
        article = Article(title="a")
        article.write_context("tag", ["x", "y"])
        article.write_context("category", ["z"])
        article.save(commit=True)

        assert [t.context for t in article.taggings_for_context("tag")] == ["tag", "tag"]
        assert [t.name for t in article.tags_for_context("category")] == ["z"]
        assert Article(title="new").taggings_for_context("tag") == []

    def test_delete_owner_cascades_taggings(self):
        """测试删除实体时级联删除 Tagging，Tag 保留"""
        article = Article(title="a")
        article.write_context("tag", ["a", "b"])
        article.save(commit=True)

        article.delete(commit=True)

        assert _count(self.session, Tagging) == 0
        assert _count(self.session, Tag) == 2

    def test_hook_deactivated(self):
        article = Article(title="a")
        article.write_context("tag", ["a"])
        deactivate_tagging_hook()
        try:
            article.save(commit=True)
        finally:
            activate_tagging_hook()

        assert _count(self.session, Tagging) == 0
        assert article.is_tags_dirty("tag")

        # 重新激活后再次写入即可同步
        article.write_context("tag", article.read_context("tag"))
        self.session.commit()
        assert _stored(self.session, article) == [("tag", "a")]


class TestValidationFailure:
    """验证失败测试"""

    @pytest.fixture(autouse=True)
    def setup_db(self, db_session):
        self.session = db_session

    def test_tag_errors(self):
        article = Article(title="a")
        article.write_context("tag", 42)
        article.write_context("category", ["ok", 1])

        assert article.tag_errors() == {
            "tag": ["必须是列表"],
            "category": ["标签名必须是字符串"],
        }

    def test_mapping_is_not_list_like(self):
        article = Article(title="a")
        article.write_context("tag", {"a": 1})
        assert "tag" in article.tag_errors()

    def test_invalid_value_blocks_save(self):
        """测试验证失败时不写入任何标签"""
        good = Article(title="good")
        good.write_context("tag", ["fine"])
        bad = Article(title="bad")
        bad.write_context("tag", 42)
        self.session.add_all([good, bad])

        with pytest.raises(TagValidationException) as exc_info:
            self.session.commit()
        self.session.rollback()

        assert exc_info.value.errors == {"tag": ["必须是列表"]}
        assert exc_info.value.details == ["tag: 必须是列表"]
        assert _count(self.session, Tag) == 0
        assert _count(self.session, Tagging) == 0

    def test_retry_after_failure(self):
        """测试失败后修正值可以重试"""
        article = Article(title="a")
        article.save(commit=True)
        article.write_context("tag", 42)

        with pytest.raises(TagValidationException):
            self.session.commit()
        self.session.rollback()

        assert article.is_tags_dirty("tag")
        article.write_context("tag", ["fixed"])
        self.session.commit()

        assert _stored(self.session, article) == [("tag", "fixed")]

    def test_retry_new_instance_after_insert_failure(self):
        """测试新实例插入失败回滚后重试，每个标签名只有一条 Tagging"""
        article = Article(title=None)
        article.write_context("tag", ["red", "blue"])
        self.session.add(article)

        with pytest.raises(IntegrityError):
            self.session.commit()
        self.session.rollback()

        assert article.is_tags_dirty("tag")
        article.title = "fixed"
        self.session.add(article)
        self.session.commit()

        assert _stored(self.session, article) == [("tag", "red"), ("tag", "blue")]
        assert _count(self.session, Tagging) == 2
        assert _count(self.session, Tag) == 2
        assert [t.tag.name for t in article.taggings] == ["red", "blue"]
        assert not article.is_tags_dirty()


class TestCacheLifecycle:
    """缓存加载与重置测试"""

    @pytest.fixture(autouse=True)
    def setup_db(self, db_session, memory_engine):
        self.session = db_session
        self.engine = memory_engine

    def _saved_article(self):
        article = Article(title="a")
        article.write_context("tag", ["red", "blue"])
        article.write_context("category", ["fruit"])
        article.save(commit=True)
        return article

    def test_round_trip_after_reload(self):
        """测试重新加载后读取与写入一致"""
        article_id = self._saved_article().id
        self.session.expunge_all()

        loaded = self.session.get(Article, article_id)
        assert loaded.read_context("tag") == ["red", "blue"]
        assert loaded.read_context("category") == ["fruit"]

    def test_single_query_populates_all_contexts(self):
        """测试一次查询加载所有上下文"""
        article_id = self._saved_article().id
        self.session.expunge_all()
        loaded = self.session.get(Article, article_id)

        statements = []

        def _record(conn, cursor, statement, parameters, context, executemany):
            statements.append(statement)

        event.listen(self.engine, "before_cursor_execute", _record)
        try:
            loaded.read_context("tag")
            loaded.read_context("category")
            loaded.read_context("tag")
        finally:
            event.remove(self.engine, "before_cursor_execute", _record)

        assert len(statements) == 1

    def test_unsaved_instance_no_query(self):
        article = Article(title="a")
        statements = []

        def _record(conn, cursor, statement, parameters, context, executemany):
            statements.append(statement)

        event.listen(self.engine, "before_cursor_execute", _record)
        try:
            article.read_context("tag")
        finally:
            event.remove(self.engine, "before_cursor_execute", _record)

        assert statements == []

    def test_write_keeps_other_contexts(self):
        """测试写入前先加载，未写入的上下文不丢失"""
        article_id = self._saved_article().id
        self.session.expunge_all()

        loaded = self.session.get(Article, article_id)
        loaded.write_context("tag", ["green"])

        assert loaded.read_context("category") == ["fruit"]

    def test_reload_tags_discards_unsaved(self):
        article = self._saved_article()
        article.write_context("tag", ["unsaved"])
        article.reload_tags()

        assert article.read_context("tag") == ["red", "blue"]
        assert not article.is_tags_dirty()

    def test_session_refresh_resets_cache(self):
        article = self._saved_article()
        article.write_context("tag", ["unsaved"])
        self.session.refresh(article)

        assert article.read_context("tag") == ["red", "blue"]

    def test_cache_survives_commit_expiry(self):
        """测试提交后的属性过期不会丢弃缓存"""
        article = self._saved_article()
        statements = []

        def _record(conn, cursor, statement, parameters, context, executemany):
            statements.append(statement)

        event.listen(self.engine, "before_cursor_execute", _record)
        try:
            assert article.title == "a"
            assert article.read_context("tag") == ["red", "blue"]
        finally:
            event.remove(self.engine, "before_cursor_execute", _record)

        # 只有 title 的刷新查询
        assert len(statements) == 1
