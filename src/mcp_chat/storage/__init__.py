"""Chat session storage."""

from .chat_store import (
    ChatSession,
    ChatStore,
    FileChatStore,
    InMemoryChatStore,
    StoredMessage,
)

__all__ = [
    "ChatSession",
    "ChatStore",
    "FileChatStore",
    "InMemoryChatStore",
    "StoredMessage",
]
