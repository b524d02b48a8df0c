"""GitHub -> Discord sync driven by discussion webhooks."""

import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

from . import markers
from .events import (
    DiscussionCommentCreated,
    DiscussionCreated,
    DiscussionEdited,
    GitHubComment,
    GitHubDiscussion,
    Ping,
    ThreadInfo,
    WebhookEvent,
)
from .ports import ChatGateway, MappingStore
from .registry import SyncRegistry, normalize_title

logger = logging.getLogger(__name__)


class ReverseSyncResult(Enum):
    """How a webhook event was resolved."""

    IGNORED = "ignored"
    ALREADY_MAPPED = "already_mapped"
    IN_PROGRESS = "in_progress"
    OWN_DISCUSSION = "own_discussion"
    LINKED_EXISTING = "linked_existing"
    CREATED_THREAD = "created_thread"
    LOOP = "loop"
    DUPLICATE = "duplicate"
    NO_MAPPING = "no_mapping"
    NOT_SENDABLE = "not_sendable"
    RELAYED = "relayed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReverseSyncHandler:
    """Mirror new discussions and discussion comments into the forum channel."""

    def __init__(
        self,
        chat: ChatGateway,
        mappings: MappingStore,
        registry: SyncRegistry,
        forum_channel_id: str,
        similar_thread_window: float = 5 * 60,
        now: Callable[[], datetime] = _utcnow,
    ):
        """Initialize reverse sync handler.

        Args:
            chat: Discord capability
            mappings: Thread <-> discussion store
            registry: Shared dedup/lock registry
            forum_channel_id: Forum channel that receives mirrored discussions
            similar_thread_window: Seconds within which a same-titled thread is
                taken to be the counterpart of a new discussion
            now: Wall clock, compared against thread creation times
        """
        self.chat = chat
        self.mappings = mappings
        self.registry = registry
        self.forum_channel_id = str(forum_channel_id)
        self.similar_thread_window = similar_thread_window
        self._now = now

    async def handle_event(self, event: WebhookEvent) -> ReverseSyncResult:
        """Dispatch a typed webhook event."""
        if isinstance(event, DiscussionCreated):
            return await self.handle_discussion_created(event.discussion)
        if isinstance(event, DiscussionCommentCreated):
            return await self.handle_comment_created(event.discussion, event.comment)
        if isinstance(event, DiscussionEdited):
            logger.info("GitHub discussion edited: %s (not mirrored)", event.discussion.title)
        elif isinstance(event, Ping):
            logger.info("Received ping event (webhook configured successfully)")
        return ReverseSyncResult.IGNORED

    async def handle_discussion_created(self, discussion: GitHubDiscussion) -> ReverseSyncResult:
        """Find or create the forum thread for a new discussion and map it."""
        logger.info("New GitHub discussion: %s (%s)", discussion.title, discussion.node_id)

        existing = await self.mappings.find_by_discussion_id(discussion.node_id)
        if existing is not None:
            logger.info(
                "Skipping discussion %s, already mapped to thread %s",
                discussion.node_id,
                existing.thread_id,
            )
            return ReverseSyncResult.ALREADY_MAPPED

        if self.registry.was_discussion_created_here(discussion.node_id):
            logger.info(
                "Skipping discussion %s, created by the bridge for a forum thread", discussion.node_id
            )
            return ReverseSyncResult.OWN_DISCUSSION

        if not self.registry.begin_discussion_processing(discussion.node_id):
            logger.info("Skipping discussion %s, already being processed", discussion.node_id)
            return ReverseSyncResult.IN_PROGRESS

        similar = await self._find_similar_thread(discussion.title)
        if similar is not None:
            logger.info(
                "Found recent thread %s titled %r; linking it instead of creating a new one",
                similar.id,
                discussion.title,
            )
            if await self.mappings.insert_if_absent(
                similar.id, discussion.node_id, discussion.html_url
            ):
                self.registry.mark_thread_processed(similar.id)
                await self.chat.send_message(
                    similar.id, f"✅ GitHub Discussion link: {discussion.html_url}"
                )
                return ReverseSyncResult.LINKED_EXISTING
            logger.info("Thread %s is already mapped elsewhere, creating a new thread", similar.id)

        thread_id = await self.chat.create_thread(
            self.forum_channel_id,
            discussion.title,
            markers.tag_for_discord(f"<{discussion.html_url}>"),
        )
        # The thread-created event for this thread must not produce a second discussion.
        self.registry.mark_thread_processed(thread_id)
        logger.info("Created thread %s for discussion %s", thread_id, discussion.node_id)

        await self.mappings.insert_if_absent(thread_id, discussion.node_id, discussion.html_url)
        return ReverseSyncResult.CREATED_THREAD

    async def handle_comment_created(
        self, discussion: GitHubDiscussion, comment: GitHubComment
    ) -> ReverseSyncResult:
        """Relay a discussion comment into the mapped thread."""
        if markers.is_from_discord(comment.body):
            logger.info("Skipping comment %s that originated from Discord", comment.id)
            return ReverseSyncResult.LOOP

        comment_id = str(comment.id)
        if self.registry.was_comment_relayed(comment_id):
            logger.info("Comment %s was already relayed recently, skipping", comment_id)
            return ReverseSyncResult.DUPLICATE

        if not self.registry.acquire_comment_lock(comment_id):
            return ReverseSyncResult.DUPLICATE

        try:
            mapping = await self.mappings.find_by_discussion_id(discussion.node_id)
            if mapping is None:
                logger.info("No thread mapping found for discussion %s", discussion.node_id)
                return ReverseSyncResult.NO_MAPPING

            sent = await self.chat.send_message(
                mapping.thread_id,
                markers.format_comment_for_discord(comment.user.login, comment.body, comment.html_url),
            )
            if not sent:
                logger.error("Thread %s cannot receive messages", mapping.thread_id)
                return ReverseSyncResult.NOT_SENDABLE

            self.registry.mark_comment_relayed(comment_id)
            logger.info("Comment %s synced to thread %s", comment_id, mapping.thread_id)
            return ReverseSyncResult.RELAYED
        finally:
            self.registry.release_comment_lock(comment_id)

    async def _find_similar_thread(self, title: str) -> Optional[ThreadInfo]:
        cutoff = self._now() - timedelta(seconds=self.similar_thread_window)
        wanted = normalize_title(title)
        for thread in await self.chat.list_active_threads(self.forum_channel_id):
            if normalize_title(thread.name) != wanted or thread.created_at is None:
                continue
            if thread.created_at > cutoff:
                return thread
        return None
