"""In-process dedup and lock registry for the sync handlers.

All records are keyed by Discord or GitHub identifiers and expire lazily:
a record older than its window is treated as absent when it is next looked
at. Nothing here is shared between processes; the mapping store stays the
authority for any decision with lasting consequences.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from ..config import SyncConfig

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class ExpiringSet:
    """Set of keys that each expire ``window`` seconds after being added.

    Keys are kept in insertion-time order so expired ones can be dropped from
    the front. With ``max_entries`` set, exceeding it evicts the
    ``prune_count`` oldest keys.
    """

    def __init__(
        self,
        window: Optional[float],
        clock: Clock = time.monotonic,
        max_entries: Optional[int] = None,
        prune_count: int = 1,
    ):
        self.window = window
        self.max_entries = max_entries
        self.prune_count = max(1, prune_count)
        self._clock = clock
        self._items: dict[str, float] = {}

    def _expired(self, recorded_at: float, now: float) -> bool:
        return self.window is not None and now - recorded_at > self.window

    def _sweep(self, now: float) -> None:
        while self._items:
            key, recorded_at = next(iter(self._items.items()))
            if not self._expired(recorded_at, now):
                break
            del self._items[key]

    def add(self, key: str) -> None:
        now = self._clock()
        self._sweep(now)
        self._items.pop(key, None)
        self._items[key] = now

        if self.max_entries is not None and len(self._items) > self.max_entries:
            for old_key in list(self._items)[: self.prune_count]:
                del self._items[old_key]
            logger.debug("Pruned %d oldest entries (size now %d)", self.prune_count, len(self._items))

    def discard(self, key: str) -> None:
        self._items.pop(key, None)

    def __contains__(self, key: str) -> bool:
        recorded_at = self._items.get(key)
        if recorded_at is None:
            return False
        if self._expired(recorded_at, self._clock()):
            del self._items[key]
            return False
        return True

    def __len__(self) -> int:
        self._sweep(self._clock())
        return len(self._items)


@dataclass
class PendingOperation:
    """A sync attempt in flight."""

    key: str
    created_at: float
    owner_id: str


def normalize_title(title: str) -> str:
    return title.strip().lower()


class SyncRegistry:
    """Locks and seen-records guarding both sync directions."""

    def __init__(
        self,
        clock: Clock = time.monotonic,
        thread_lock_staleness: float = 60.0,
        message_seen_window: float = 30 * 60,
        sent_downstream_window: float = 6 * 60 * 60,
        discussion_processing_window: float = 10.0,
        comment_seen_window: float = 60 * 60,
        comment_seen_max_entries: int = 1000,
        comment_seen_prune_count: int = 100,
        processed_threads_max_entries: int = 10000,
    ):
        self._clock = clock
        self.thread_lock_staleness = thread_lock_staleness

        self._thread_locks: dict[str, PendingOperation] = {}
        self._message_locks: dict[str, PendingOperation] = {}
        self._comment_locks: dict[str, PendingOperation] = {}

        self._processed_threads = ExpiringSet(
            None, clock, max_entries=processed_threads_max_entries, prune_count=100
        )
        self._seen = ExpiringSet(message_seen_window, clock)
        self._sent_downstream = ExpiringSet(sent_downstream_window, clock)
        self._discussions_processing = ExpiringSet(discussion_processing_window, clock)
        self._discussions_created_here = ExpiringSet(sent_downstream_window, clock)
        self._relayed_comments = ExpiringSet(
            comment_seen_window,
            clock,
            max_entries=comment_seen_max_entries,
            prune_count=comment_seen_prune_count,
        )

    @classmethod
    def from_config(cls, config: SyncConfig, clock: Clock = time.monotonic) -> "SyncRegistry":
        return cls(
            clock=clock,
            thread_lock_staleness=config.thread_lock_staleness_seconds,
            message_seen_window=config.message_seen_window_seconds,
            sent_downstream_window=config.sent_downstream_window_seconds,
            discussion_processing_window=config.discussion_processing_seconds,
            comment_seen_window=config.comment_seen_window_seconds,
            comment_seen_max_entries=config.comment_seen_max_entries,
            comment_seen_prune_count=config.comment_seen_prune_count,
        )

    # ----------------------
    # Thread creation locks (keyed by normalized title)
    # ----------------------
    def acquire_thread_lock(self, title: str, thread_id: str) -> bool:
        """Claim the right to create a discussion for a thread title.

        A live lock blocks every caller, including a repeat delivery for the
        same thread; only a lock older than the staleness window is replaced.
        """
        key = normalize_title(title)
        now = self._clock()
        existing = self._thread_locks.get(key)

        if existing is not None:
            if now - existing.created_at > self.thread_lock_staleness:
                logger.info("Lock for thread title %r has expired, replacing it", key)
            elif existing.owner_id != thread_id:
                logger.info(
                    "Thread title %r is already being processed by thread %s, skipping %s",
                    key,
                    existing.owner_id,
                    thread_id,
                )
                return False
            else:
                logger.info("Thread %s is already being processed, skipping duplicate", thread_id)
                return False

        self._thread_locks[key] = PendingOperation(key=key, created_at=now, owner_id=thread_id)
        logger.debug("Acquired lock for thread %s (title %r)", thread_id, key)
        return True

    def release_thread_lock(self, title: str, thread_id: str) -> None:
        """Drop the title lock if ``thread_id`` still owns it.

        A lock that went stale and was taken over by another thread is left alone.
        """
        key = normalize_title(title)
        existing = self._thread_locks.get(key)
        if existing is None:
            return
        if existing.owner_id != thread_id:
            logger.warning(
                "Not releasing lock for thread title %r: owned by thread %s, not %s",
                key,
                existing.owner_id,
                thread_id,
            )
            return
        del self._thread_locks[key]
        logger.debug("Released lock for thread %s (title %r)", thread_id, key)

    def mark_thread_processed(self, thread_id: str) -> None:
        self._processed_threads.add(thread_id)

    def is_thread_processed(self, thread_id: str) -> bool:
        return thread_id in self._processed_threads

    # ----------------------
    # Message / comment locks (one-shot, non-reentrant)
    # ----------------------
    def _acquire(self, locks: dict[str, PendingOperation], key: str, owner: str) -> bool:
        if key in locks:
            logger.debug("%s %s is already being processed", owner.capitalize(), key)
            return False
        locks[key] = PendingOperation(key=key, created_at=self._clock(), owner_id=owner)
        return True

    def acquire_message_lock(self, message_id: str) -> bool:
        return self._acquire(self._message_locks, message_id, "message")

    def release_message_lock(self, message_id: str) -> None:
        self._message_locks.pop(message_id, None)

    def acquire_comment_lock(self, comment_id: str) -> bool:
        return self._acquire(self._comment_locks, comment_id, "comment")

    def release_comment_lock(self, comment_id: str) -> None:
        self._comment_locks.pop(comment_id, None)

    # ----------------------
    # Seen records
    # ----------------------
    def mark_seen(self, scope_id: str, item_id: str) -> None:
        self._seen.add(f"{scope_id}:{item_id}")

    def is_seen(self, scope_id: str, item_id: str) -> bool:
        return f"{scope_id}:{item_id}" in self._seen

    def mark_sent_downstream(self, item_id: str) -> None:
        """Record that a Discord message has produced a GitHub comment."""
        self._sent_downstream.add(item_id)

    def was_sent_downstream(self, item_id: str) -> bool:
        return item_id in self._sent_downstream

    def begin_discussion_processing(self, discussion_id: str) -> bool:
        """Set the short-lived processing flag for a discussion.

        Returns False if the flag is already set, i.e. a redelivered webhook.
        """
        if discussion_id in self._discussions_processing:
            return False
        self._discussions_processing.add(discussion_id)
        return True

    def mark_discussion_created_here(self, discussion_id: str) -> None:
        """Record a discussion the forward handler created, so its webhook is not mirrored back."""
        self._discussions_created_here.add(discussion_id)

    def was_discussion_created_here(self, discussion_id: str) -> bool:
        return discussion_id in self._discussions_created_here

    def mark_comment_relayed(self, comment_id: str) -> None:
        self._relayed_comments.add(comment_id)

    def was_comment_relayed(self, comment_id: str) -> bool:
        return comment_id in self._relayed_comments

    @property
    def relayed_comment_count(self) -> int:
        return len(self._relayed_comments)
