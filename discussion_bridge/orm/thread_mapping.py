"""ThreadMapping model linking a Discord thread to a GitHub discussion."""

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import SqlalchemyBase


class ThreadMapping(SqlalchemyBase):
    """One Discord thread <-> one GitHub discussion."""

    __tablename__ = "thread_mappings"
    __table_args__ = (
        Index("idx_thread_mappings_created_at", "created_at"),
    )

    thread_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    discussion_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)  # GraphQL node id
    discussion_url: Mapped[str] = mapped_column(String, nullable=False)

    def to_dict(self) -> dict[str, str | None]:
        return {
            "thread_id": self.thread_id,
            "discussion_id": self.discussion_id,
            "discussion_url": self.discussion_url,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<ThreadMapping(thread_id={self.thread_id}, "
            f"discussion_id={self.discussion_id})>"
        )
