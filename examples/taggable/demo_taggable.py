#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
多上下文标签示例

本脚本演示 ytag.taggable 的常用流程：
- 定义带 tag / category 两个上下文的 Article
- 按上下文读写标签，保存时自动同步 Tagging
- tagged_with / popular_tags / tagged_similar 聚合查询

运行方式:
    python examples/taggable/demo_taggable.py
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from ytag.log import setup_root_logger
from ytag.orm import Base, CoreModel, db_session_scope, init_database
from ytag.taggable import TaggableMixin, create_tag_models, tag_registry


tags = create_tag_models(table_prefix="demo_")


class DemoArticle(CoreModel, TaggableMixin):
    __tag_model__ = tags.Tag
    __tagging_model__ = tags.Tagging
    __tag_contexts__ = ("tag", "category")

    title: Mapped[str] = mapped_column(String(200))


def print_section(title: str):
    print()
    print("=" * 60)
    print(title)
    print("=" * 60)


def main():
    setup_root_logger(level="INFO")
    engine, _ = init_database("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    # 模型定义完成，注册表不再接受新上下文
    tag_registry.freeze()

    print_section("1. 写入标签")
    with db_session_scope() as session:
        apple = DemoArticle(title="苹果")
        apple.write_context("tag", "red, sweet")
        apple.write_context("category", "fruit")

        cherry = DemoArticle(title="樱桃")
        cherry.write_context("tag", ["red", "small"])
        cherry.write_context("category", ["fruit"])

        sky = DemoArticle(title="天空")
        sky.set_tags("blue")

        session.add_all([apple, cherry, sky])

    with db_session_scope() as session:
        for article in session.query(DemoArticle).order_by(DemoArticle.id):
            print(f"{article.title}: tag={article.read_context('tag')} category={article.read_context('category')}")

    print_section("2. tagged_with")
    with db_session_scope():
        for article in DemoArticle.tagged_with("red, sweet").all():
            print(f"{article.title}: 匹配 {article.tags_count} 个")
        print("同时包含 red 和 sweet:", [a.title for a in DemoArticle.tagged_with("red, sweet", all=True).all()])

    print_section("3. popular_tags")
    with db_session_scope():
        for tag in DemoArticle.popular_tags().all():
            print(f"{tag.name}: {tag.tags_count}")

    print_section("4. tagged_similar")
    with db_session_scope() as session:
        apple = session.query(DemoArticle).filter_by(title="苹果").one()
        print("tag 上下文:", [a.title for a in apple.tagged_similar(on="tag").all()])
        print("默认（排除 tag 上下文）:", [a.title for a in apple.tagged_similar().all()])


if __name__ == "__main__":
    main()
