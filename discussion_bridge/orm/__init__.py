"""ORM models for database persistence."""

from .base import Base, SqlalchemyBase
from .forum_archive import ForumComment, ForumPost
from .thread_mapping import ThreadMapping

__all__ = [
    "Base",
    "SqlalchemyBase",
    "ForumComment",
    "ForumPost",
    "ThreadMapping",
]
