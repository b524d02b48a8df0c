"""Service for archiving forum posts and relayed comments."""

import logging

from sqlalchemy import select

from ..orm.forum_archive import ForumComment, ForumPost
from .database import DatabaseService

logger = logging.getLogger(__name__)


class ArchiveService:
    """Keep a copy of what the bridge sent from Discord to GitHub."""

    def __init__(self, db_service: DatabaseService):
        self.db = db_service

    async def store_post(
        self,
        thread_id: str,
        title: str,
        content: str,
        author_id: str,
        author_name: str,
    ) -> bool:
        """Archive a thread's starter post. Existing rows are left untouched."""
        async with self.db.session() as session:
            result = await session.execute(
                select(ForumPost).where(ForumPost.thread_id == thread_id)
            )
            if result.scalar_one_or_none() is not None:
                logger.debug("Post already archived for thread %s", thread_id)
                return False

            session.add(
                ForumPost(
                    thread_id=thread_id,
                    title=title,
                    content=content,
                    author_id=author_id,
                    author_name=author_name,
                )
            )
        logger.debug("Archived post for thread %s", thread_id)
        return True

    async def store_comment(
        self,
        message_id: str,
        thread_id: str,
        content: str,
        author_id: str,
        author_name: str,
    ) -> bool:
        """Archive a relayed thread message. Existing rows are left untouched."""
        async with self.db.session() as session:
            result = await session.execute(
                select(ForumComment).where(ForumComment.message_id == message_id)
            )
            if result.scalar_one_or_none() is not None:
                logger.debug("Comment %s already archived", message_id)
                return False

            session.add(
                ForumComment(
                    message_id=message_id,
                    thread_id=thread_id,
                    content=content,
                    author_id=author_id,
                    author_name=author_name,
                )
            )
        logger.debug("Archived comment %s in thread %s", message_id, thread_id)
        return True

    async def post_exists(self, thread_id: str) -> bool:
        async with self.db.session() as session:
            result = await session.execute(
                select(ForumPost.id).where(ForumPost.thread_id == thread_id)
            )
            return result.scalar_one_or_none() is not None

    async def list_posts(self) -> list[ForumPost]:
        async with self.db.session() as session:
            result = await session.execute(
                select(ForumPost).order_by(ForumPost.created_at.desc())
            )
            return list(result.scalars().all())

    async def list_comments(self) -> list[ForumComment]:
        async with self.db.session() as session:
            result = await session.execute(
                select(ForumComment).order_by(ForumComment.created_at.desc())
            )
            return list(result.scalars().all())
