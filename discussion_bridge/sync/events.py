"""Typed events flowing into the sync handlers.

Discord events are plain dataclasses built by the Discord adapter. GitHub
webhook payloads are validated with pydantic and resolved once, at the HTTP
boundary, into one of the ``WebhookEvent`` variants.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)


# ----------------------
# Discord side
# ----------------------
@dataclass
class ThreadCreated:
    """A thread was created in some channel."""

    thread_id: str
    title: str
    parent_id: Optional[str]


@dataclass
class MessageCreated:
    """A message was posted inside a thread."""

    message_id: str
    channel_id: str  # the thread the message lives in
    parent_id: Optional[str]  # the thread's parent channel
    author_id: str
    author_name: str
    is_bot: bool
    content: str


@dataclass
class ChatMessage:
    """A message fetched from Discord."""

    id: str
    channel_id: str
    author_id: str
    author_name: str
    content: str


@dataclass
class ThreadInfo:
    """Summary of an active forum thread."""

    id: str
    name: str
    created_at: Optional[datetime]


# ----------------------
# GitHub webhook side
# ----------------------
class GitHubUser(BaseModel):
    login: str


class GitHubDiscussion(BaseModel):
    id: int
    node_id: str
    title: str
    body: Optional[str] = None
    html_url: str
    user: GitHubUser


class GitHubComment(BaseModel):
    id: int
    node_id: str
    body: str = ""
    html_url: str
    user: GitHubUser


class DiscussionCreated(BaseModel):
    action: str
    discussion: GitHubDiscussion


class DiscussionEdited(BaseModel):
    action: str
    discussion: GitHubDiscussion


class DiscussionCommentCreated(BaseModel):
    action: str
    discussion: GitHubDiscussion
    comment: GitHubComment


class Ping(BaseModel):
    zen: str = ""
    hook_id: Optional[int] = None


WebhookEvent = Union[DiscussionCreated, DiscussionEdited, DiscussionCommentCreated, Ping]

# (X-GitHub-Event, action) -> payload model
_WEBHOOK_EVENT_TYPES: dict[tuple[str, Optional[str]], type[BaseModel]] = {
    ("discussion", "created"): DiscussionCreated,
    ("discussion", "edited"): DiscussionEdited,
    ("discussion_comment", "created"): DiscussionCommentCreated,
    ("ping", None): Ping,
}


class WebhookPayloadError(ValueError):
    """A known webhook event carried a payload of the wrong shape."""


def parse_webhook_event(event_type: str, payload: dict[str, Any]) -> Optional[WebhookEvent]:
    """Resolve a raw webhook delivery into a typed event.

    Args:
        event_type: Value of the X-GitHub-Event header.
        payload: Decoded JSON body.

    Returns:
        The typed event, or None for event/action combinations the bridge does not handle.

    Raises:
        WebhookPayloadError: If a handled combination fails validation.
    """
    if not isinstance(payload, dict):
        raise WebhookPayloadError(f"Expected a JSON object for {event_type}, got {type(payload).__name__}")

    action = payload.get("action") if event_type != "ping" else None
    model = _WEBHOOK_EVENT_TYPES.get((event_type, action))
    if model is None:
        logger.info("Ignoring unhandled webhook event: type=%s, action=%s", event_type, action)
        return None

    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise WebhookPayloadError(
            f"Invalid payload for {event_type}/{action}: {e.error_count()} error(s)"
        ) from e
