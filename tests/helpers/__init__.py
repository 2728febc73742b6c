"""测试辅助工具"""

from .taggable_models import Tag, Tagging, Article, Photo, Member, tag_models

__all__ = [
    "Tag",
    "Tagging",
    "Article",
    "Photo",
    "Member",
    "tag_models",
]
