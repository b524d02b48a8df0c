"""Archive of forum posts and comments that went through the bridge."""

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import SqlalchemyBase


class ForumPost(SqlalchemyBase):
    """Starter post of a forum thread turned into a discussion."""

    __tablename__ = "forum_posts"
    __table_args__ = (
        Index("idx_forum_posts_created_at", "created_at"),
    )

    thread_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    author_id: Mapped[str] = mapped_column(String, nullable=False)
    author_name: Mapped[str] = mapped_column(String, nullable=False)

    def to_dict(self) -> dict[str, str | None]:
        return {
            "thread_id": self.thread_id,
            "title": self.title,
            "content": self.content,
            "author_id": self.author_id,
            "author_name": self.author_name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class ForumComment(SqlalchemyBase):
    """A thread message relayed to a discussion as a comment."""

    __tablename__ = "forum_comments"
    __table_args__ = (
        Index("idx_forum_comments_thread_id", "thread_id"),
        Index("idx_forum_comments_created_at", "created_at"),
    )

    message_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    thread_id: Mapped[str] = mapped_column(String, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    author_id: Mapped[str] = mapped_column(String, nullable=False)
    author_name: Mapped[str] = mapped_column(String, nullable=False)

    def to_dict(self) -> dict[str, str | None]:
        return {
            "message_id": self.message_id,
            "thread_id": self.thread_id,
            "content": self.content,
            "author_id": self.author_id,
            "author_name": self.author_name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
