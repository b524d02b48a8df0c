"""Discord client: event subscription and the ChatGateway adapter."""

import logging
from typing import Optional

import discord

from .sync.events import ChatMessage, MessageCreated, ThreadCreated, ThreadInfo
from .sync.forward import ForwardSyncHandler

logger = logging.getLogger(__name__)

REQUIRED_PERMISSIONS = (
    "view_channel",
    "send_messages",
    "create_public_threads",
    "send_messages_in_threads",
    "read_message_history",
    "add_reactions",
)


class BridgeClient(discord.Client):
    """Discord client that feeds forum events into the forward sync handler."""

    def __init__(self, forum_channel_id: int, **kwargs):
        intents = discord.Intents.default()
        intents.guilds = True
        intents.guild_messages = True
        intents.message_content = True
        super().__init__(intents=intents, **kwargs)
        self.forum_channel_id = forum_channel_id
        self.forward_handler: Optional[ForwardSyncHandler] = None

    def attach(self, forward_handler: ForwardSyncHandler) -> None:
        self.forward_handler = forward_handler

    async def on_ready(self) -> None:
        logger.info("Discord bot logged in as %s", self.user)
        await self._check_forum_channel()

        if self.forward_handler is not None:
            try:
                await self.forward_handler.warm_up()
            except Exception:
                logger.exception("Failed to load existing mappings")

    async def _check_forum_channel(self) -> bool:
        try:
            channel = self.get_channel(self.forum_channel_id) or await self.fetch_channel(
                self.forum_channel_id
            )
        except discord.HTTPException as e:
            logger.error("Could not fetch forum channel %s: %s", self.forum_channel_id, e)
            return False

        if not isinstance(channel, discord.ForumChannel):
            logger.error(
                "Channel %s is not a forum channel. Check the channel ID.", self.forum_channel_id
            )
            return False

        permissions = channel.permissions_for(channel.guild.me)
        missing = [name for name in REQUIRED_PERMISSIONS if not getattr(permissions, name)]
        if missing:
            logger.error("Missing required permissions in forum channel: %s", ", ".join(missing))
            return False

        logger.info("Bot has all required permissions in forum channel %s", channel.name)
        return True

    async def on_thread_create(self, thread: discord.Thread) -> None:
        if self.forward_handler is None:
            return
        event = ThreadCreated(
            thread_id=str(thread.id),
            title=thread.name,
            parent_id=str(thread.parent_id) if thread.parent_id else None,
        )
        try:
            result = await self.forward_handler.handle_thread_created(event)
            logger.debug("Thread %s: %s", thread.id, result.value)
        except Exception:
            logger.exception("Error handling forum thread creation for %s", thread.id)

    async def on_message(self, message: discord.Message) -> None:
        if self.forward_handler is None:
            return
        if not isinstance(message.channel, discord.Thread):
            return

        thread = message.channel
        event = MessageCreated(
            message_id=str(message.id),
            channel_id=str(thread.id),
            parent_id=str(thread.parent_id) if thread.parent_id else None,
            author_id=str(message.author.id),
            author_name=message.author.name,
            is_bot=message.author.bot,
            content=message.content,
        )
        try:
            result = await self.forward_handler.handle_message_created(event)
            logger.debug("Message %s: %s", message.id, result.value)
        except Exception:
            logger.exception("Error handling message %s in thread %s", message.id, thread.id)


class DiscordGateway:
    """ChatGateway implementation backed by a connected discord.py client."""

    def __init__(self, client: discord.Client):
        self.client = client

    async def _channel(self, channel_id: str):
        channel = self.client.get_channel(int(channel_id))
        if channel is not None:
            return channel
        try:
            return await self.client.fetch_channel(int(channel_id))
        except discord.NotFound:
            logger.error("Channel %s not found", channel_id)
            return None

    async def _forum(self, forum_channel_id: str) -> discord.ForumChannel:
        channel = await self._channel(forum_channel_id)
        if not isinstance(channel, discord.ForumChannel):
            raise RuntimeError(f"Forum channel {forum_channel_id} not found or is not a forum channel")
        return channel

    async def fetch_starter_message(self, thread_id: str) -> Optional[ChatMessage]:
        thread = await self._channel(thread_id)
        if not isinstance(thread, discord.Thread):
            return None

        message = thread.starter_message
        if message is None:
            try:
                # A forum post's starter message has the thread's ID
                message = await thread.fetch_message(thread.id)
            except discord.NotFound:
                return None

        return ChatMessage(
            id=str(message.id),
            channel_id=str(thread.id),
            author_id=str(message.author.id),
            author_name=message.author.name,
            content=message.content,
        )

    async def send_message(self, channel_id: str, content: str) -> bool:
        channel = await self._channel(channel_id)
        if channel is None:
            return False
        if not isinstance(channel, discord.abc.Messageable):
            logger.error("Channel %s is not a sendable channel type", channel_id)
            return False
        await channel.send(content[:2000])
        return True

    async def add_reaction(self, channel_id: str, message_id: str, emoji: str) -> None:
        channel = await self._channel(channel_id)
        if channel is None or not hasattr(channel, "get_partial_message"):
            return
        await channel.get_partial_message(int(message_id)).add_reaction(emoji)

    async def list_active_threads(self, forum_channel_id: str) -> list[ThreadInfo]:
        forum = await self._forum(forum_channel_id)
        threads = await forum.guild.active_threads()
        return [
            ThreadInfo(id=str(thread.id), name=thread.name, created_at=thread.created_at)
            for thread in threads
            if thread.parent_id == forum.id
        ]

    async def create_thread(self, forum_channel_id: str, name: str, content: str) -> str:
        forum = await self._forum(forum_channel_id)
        created = await forum.create_thread(name=name[:100], content=content)
        return str(created.thread.id)
