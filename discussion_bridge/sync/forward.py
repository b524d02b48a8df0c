"""Discord -> GitHub sync: forum threads become discussions, replies become comments."""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

from ..orm.thread_mapping import ThreadMapping
from ..services.github_service import DiscussionRef, GitHubAPIError
from . import markers
from .events import MessageCreated, ThreadCreated
from .ports import ChatGateway, DiscussionApi, MappingStore, PostArchive
from .registry import SyncRegistry

logger = logging.getLogger(__name__)

SUCCESS_REACTION = "✅"
FAILURE_REACTION = "❌"


class ThreadSyncResult(Enum):
    """How a thread-created event was resolved."""

    IGNORED = "ignored"
    SKIPPED = "skipped"
    ALREADY_MAPPED = "already_mapped"
    CREATED = "created"
    SUPERSEDED = "superseded"
    FAILED = "failed"


class MessageSyncResult(Enum):
    """How a message-created event was resolved."""

    IGNORED = "ignored"
    DUPLICATE = "duplicate"
    NO_MAPPING = "no_mapping"
    RELAYED = "relayed"
    FAILED = "failed"


def _describe_error(error: Exception) -> str:
    if isinstance(error, GitHubAPIError):
        return (
            f"{error} (status={error.status_code}, errors={error.errors}, "
            f"body={(error.response_body or '')[:500]})"
        )
    return f"{type(error).__name__}: {error}"


class ForwardSyncHandler:
    """Mirror new forum threads and thread replies to GitHub Discussions."""

    def __init__(
        self,
        chat: ChatGateway,
        github: DiscussionApi,
        mappings: MappingStore,
        registry: SyncRegistry,
        forum_channel_id: str,
        grace_period: float = 5.0,
        archive: Optional[PostArchive] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize forward sync handler.

        Args:
            chat: Discord capability
            github: Discussion creation/commenting capability
            mappings: Thread <-> discussion store
            registry: Shared dedup/lock registry
            forum_channel_id: Only threads under this channel are mirrored
            grace_period: Seconds to wait before creating a discussion, letting
                a webhook-originated mapping for the same thread land first
            archive: Optional archive of what was sent
            sleep: Delay function
        """
        self.chat = chat
        self.github = github
        self.mappings = mappings
        self.registry = registry
        self.forum_channel_id = str(forum_channel_id)
        self.grace_period = grace_period
        self.archive = archive
        self._sleep = sleep

    async def warm_up(self) -> int:
        """Mark every already-mapped thread as processed.

        Returns:
            Number of mappings loaded.
        """
        mappings = await self.mappings.list_all()
        for mapping in mappings:
            self.registry.mark_thread_processed(mapping.thread_id)
        logger.info("Loaded %d existing thread mappings into the processed set", len(mappings))
        return len(mappings)

    async def handle_thread_created(self, event: ThreadCreated) -> ThreadSyncResult:
        """Create a GitHub discussion for a new forum thread.

        Remote failures are reported in the thread and not retried; the thread
        stays marked as processed so a redelivery cannot create a duplicate.
        """
        if event.parent_id != self.forum_channel_id:
            logger.debug("Ignoring thread %s outside the forum channel", event.thread_id)
            return ThreadSyncResult.IGNORED

        if self.registry.is_thread_processed(event.thread_id):
            logger.info("Skipping already processed thread: %s", event.thread_id)
            return ThreadSyncResult.SKIPPED

        if not self.registry.acquire_thread_lock(event.title, event.thread_id):
            self.registry.mark_thread_processed(event.thread_id)
            return ThreadSyncResult.SKIPPED

        try:
            logger.info(
                "New forum thread %s (%r); waiting %.1fs for a webhook-created mapping",
                event.thread_id,
                event.title,
                self.grace_period,
            )
            await self._sleep(self.grace_period)

            existing = await self.mappings.find_by_thread_id(event.thread_id)
            self.registry.mark_thread_processed(event.thread_id)
            if existing is not None:
                logger.info(
                    "Skipping thread %s, already mapped to discussion %s",
                    event.thread_id,
                    existing.discussion_id,
                )
                return ThreadSyncResult.ALREADY_MAPPED

            try:
                starter = await self.chat.fetch_starter_message(event.thread_id)
                if starter is None:
                    raise LookupError(f"Starter message for thread {event.thread_id} not found")

                body = starter.content if starter.content.strip() else event.title
                discussion = await self.github.create_discussion(event.title, body)
            except Exception as e:
                logger.error(
                    "Failed to create discussion for thread %s: %s",
                    event.thread_id,
                    _describe_error(e),
                    exc_info=True,
                )
                await self._notify(
                    event.thread_id,
                    f"{FAILURE_REACTION} Failed to create the GitHub Discussion. "
                    "Please contact an administrator.",
                )
                return ThreadSyncResult.FAILED

            # Its own discussion.created webhook must not come back as a new thread.
            self.registry.mark_discussion_created_here(discussion.id)

            stored = await self.mappings.insert_if_absent(
                event.thread_id, discussion.id, discussion.url
            )
            await self._archive_post(event, starter)

            if not stored:
                current = await self.mappings.find_by_thread_id(event.thread_id)
                if current is None or current.discussion_id != discussion.id:
                    return await self._announce_superseded(event, discussion, current)

            await self.chat.send_message(
                event.thread_id,
                f"{SUCCESS_REACTION} GitHub Discussion created: {discussion.url}",
            )
            return ThreadSyncResult.CREATED
        finally:
            self.registry.release_thread_lock(event.title, event.thread_id)

    async def _announce_superseded(
        self, event: ThreadCreated, discussion: DiscussionRef, current: Optional[ThreadMapping]
    ) -> ThreadSyncResult:
        """The thread got mapped by another path while our discussion was being created."""
        logger.warning(
            "Thread %s was mapped to discussion %s while discussion %s was being created; "
            "%s is left unmapped",
            event.thread_id,
            current.discussion_id if current else None,
            discussion.id,
            discussion.url,
        )
        if current is not None:
            await self._notify(
                event.thread_id,
                f"{SUCCESS_REACTION} GitHub Discussion link: {current.discussion_url}",
            )
        return ThreadSyncResult.SUPERSEDED

    async def handle_message_created(self, event: MessageCreated) -> MessageSyncResult:
        """Relay a thread reply to the mapped discussion as a comment."""
        if event.is_bot:
            return MessageSyncResult.IGNORED

        if event.parent_id != self.forum_channel_id:
            return MessageSyncResult.IGNORED

        # Forum starter messages share the thread's ID; they are handled on thread creation.
        if event.message_id == event.channel_id:
            return MessageSyncResult.IGNORED

        if markers.is_from_github(event.content):
            logger.debug("Skipping message %s relayed from GitHub", event.message_id)
            return MessageSyncResult.IGNORED

        if self.registry.is_seen(event.channel_id, event.message_id) or self.registry.was_sent_downstream(
            event.message_id
        ):
            logger.info("Skipping already processed message: %s", event.message_id)
            return MessageSyncResult.DUPLICATE

        if not self.registry.acquire_message_lock(event.message_id):
            return MessageSyncResult.DUPLICATE

        try:
            # Marked before the remote call so a concurrent redelivery cannot double-send.
            self.registry.mark_seen(event.channel_id, event.message_id)
            self.registry.mark_sent_downstream(event.message_id)

            mapping = await self.mappings.find_by_thread_id(event.channel_id)
            if mapping is None:
                logger.info(
                    "No discussion mapping for thread %s; message %s will not be synced",
                    event.channel_id,
                    event.message_id,
                )
                return MessageSyncResult.NO_MAPPING

            logger.info(
                "Syncing message %s in thread %s to discussion %s",
                event.message_id,
                event.channel_id,
                mapping.discussion_id,
            )
            try:
                comment = await self.github.add_comment(
                    mapping.discussion_id,
                    markers.format_comment_for_github(event.author_name, event.content),
                )
            except Exception as e:
                logger.error(
                    "Failed to sync message %s to discussion %s: %s",
                    event.message_id,
                    mapping.discussion_id,
                    _describe_error(e),
                    exc_info=True,
                )
                await self._react(event, FAILURE_REACTION)
                return MessageSyncResult.FAILED

            logger.info("Comment synced to GitHub: %s", comment.url)
            await self._react(event, SUCCESS_REACTION)
            await self._archive_comment(event)
            return MessageSyncResult.RELAYED
        finally:
            self.registry.release_message_lock(event.message_id)

    async def _notify(self, thread_id: str, content: str) -> None:
        try:
            await self.chat.send_message(thread_id, content)
        except Exception as e:
            logger.error("Failed to send notice to thread %s: %s", thread_id, e)

    async def _react(self, event: MessageCreated, emoji: str) -> None:
        try:
            await self.chat.add_reaction(event.channel_id, event.message_id, emoji)
        except Exception as e:
            logger.error("Failed to add %s reaction to message %s: %s", emoji, event.message_id, e)

    async def _archive_post(self, event: ThreadCreated, starter) -> None:
        if self.archive is None:
            return
        try:
            await self.archive.store_post(
                event.thread_id, event.title, starter.content, starter.author_id, starter.author_name
            )
        except Exception:
            logger.error("Failed to archive post for thread %s", event.thread_id, exc_info=True)

    async def _archive_comment(self, event: MessageCreated) -> None:
        if self.archive is None:
            return
        try:
            await self.archive.store_comment(
                event.message_id, event.channel_id, event.content, event.author_id, event.author_name
            )
        except Exception:
            logger.error("Failed to archive message %s", event.message_id, exc_info=True)
