"""Persistent thread <-> discussion mapping store."""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..orm.thread_mapping import ThreadMapping
from .database import DatabaseService

logger = logging.getLogger(__name__)


class MappingService:
    """Read-check-then-write access to the thread_mappings table.

    The table is the single source of truth for which thread belongs to which
    discussion; both sync directions go through this service.
    """

    def __init__(self, db_service: DatabaseService):
        self.db = db_service

    async def insert_if_absent(
        self, thread_id: str, discussion_id: str, discussion_url: str
    ) -> bool:
        """Store a mapping unless either side is already mapped.

        Args:
            thread_id: Discord thread ID
            discussion_id: GitHub discussion node ID
            discussion_url: Public URL of the discussion

        Returns:
            True if a new row was written, False if a mapping already existed.
        """
        logger.debug(
            "Attempting to store mapping: thread %s -> discussion %s",
            thread_id,
            discussion_id,
        )

        try:
            async with self.db.session() as session:
                existing = await session.execute(
                    select(ThreadMapping).where(ThreadMapping.thread_id == thread_id)
                )
                by_thread = existing.scalar_one_or_none()
                if by_thread is not None:
                    if by_thread.discussion_id != discussion_id:
                        logger.warning(
                            "Thread %s is already mapped to discussion %s, not remapping to %s",
                            thread_id,
                            by_thread.discussion_id,
                            discussion_id,
                        )
                    return False

                existing = await session.execute(
                    select(ThreadMapping).where(ThreadMapping.discussion_id == discussion_id)
                )
                by_discussion = existing.scalar_one_or_none()
                if by_discussion is not None:
                    if by_discussion.thread_id != thread_id:
                        logger.warning(
                            "Discussion %s is already mapped to thread %s, not remapping to %s",
                            discussion_id,
                            by_discussion.thread_id,
                            thread_id,
                        )
                    return False

                session.add(
                    ThreadMapping(
                        thread_id=thread_id,
                        discussion_id=discussion_id,
                        discussion_url=discussion_url,
                    )
                )
        except IntegrityError:
            # Another writer inserted one of the keys between our check and commit.
            logger.warning(
                "Mapping insert for thread %s / discussion %s lost a race", thread_id, discussion_id
            )
            return False

        logger.info("Stored mapping: thread %s -> discussion %s", thread_id, discussion_id)
        return True

    async def find_by_thread_id(self, thread_id: str) -> Optional[ThreadMapping]:
        """Get the mapping for a Discord thread, if any."""
        async with self.db.session() as session:
            result = await session.execute(
                select(ThreadMapping).where(ThreadMapping.thread_id == thread_id)
            )
            return result.scalar_one_or_none()

    async def find_by_discussion_id(self, discussion_id: str) -> Optional[ThreadMapping]:
        """Get the mapping for a GitHub discussion, if any."""
        async with self.db.session() as session:
            result = await session.execute(
                select(ThreadMapping).where(ThreadMapping.discussion_id == discussion_id)
            )
            return result.scalar_one_or_none()

    async def list_all(self) -> list[ThreadMapping]:
        """List all mappings, newest first."""
        async with self.db.session() as session:
            result = await session.execute(
                select(ThreadMapping).order_by(ThreadMapping.created_at.desc())
            )
            return list(result.scalars().all())
