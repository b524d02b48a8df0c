"""Bidirectional sync core: dedup registry, loop markers and both handlers."""

from .forward import ForwardSyncHandler, MessageSyncResult, ThreadSyncResult
from .registry import SyncRegistry
from .reverse import ReverseSyncHandler, ReverseSyncResult

__all__ = [
    "ForwardSyncHandler",
    "MessageSyncResult",
    "ReverseSyncHandler",
    "ReverseSyncResult",
    "SyncRegistry",
    "ThreadSyncResult",
]
