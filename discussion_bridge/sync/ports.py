"""Capabilities the sync handlers depend on.

Each handler receives these through its constructor; production code wires
in the Discord adapter and the GitHub/database services, tests wire in fakes.
"""

from typing import Optional, Protocol

from ..orm.thread_mapping import ThreadMapping
from ..services.github_service import CommentRef, DiscussionRef
from .events import ChatMessage, ThreadInfo


class ChatGateway(Protocol):
    """What the handlers need from Discord."""

    async def fetch_starter_message(self, thread_id: str) -> Optional[ChatMessage]: ...

    async def send_message(self, channel_id: str, content: str) -> bool:
        """Post a message. Returns False if the channel is missing or cannot take messages."""
        ...

    async def add_reaction(self, channel_id: str, message_id: str, emoji: str) -> None: ...

    async def list_active_threads(self, forum_channel_id: str) -> list[ThreadInfo]: ...

    async def create_thread(self, forum_channel_id: str, name: str, content: str) -> str:
        """Create a forum thread and return its ID."""
        ...


class DiscussionApi(Protocol):
    """What the forward handler needs from GitHub."""

    async def create_discussion(self, title: str, body: str) -> DiscussionRef: ...

    async def add_comment(self, discussion_id: str, body: str) -> CommentRef: ...


class MappingStore(Protocol):
    """Durable thread <-> discussion map."""

    async def insert_if_absent(
        self, thread_id: str, discussion_id: str, discussion_url: str
    ) -> bool: ...

    async def find_by_thread_id(self, thread_id: str) -> Optional[ThreadMapping]: ...

    async def find_by_discussion_id(self, discussion_id: str) -> Optional[ThreadMapping]: ...

    async def list_all(self) -> list[ThreadMapping]: ...


class PostArchive(Protocol):
    """Record of content sent from Discord to GitHub."""

    async def store_post(
        self, thread_id: str, title: str, content: str, author_id: str, author_name: str
    ) -> bool: ...

    async def store_comment(
        self, message_id: str, thread_id: str, content: str, author_id: str, author_name: str
    ) -> bool: ...
