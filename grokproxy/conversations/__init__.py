"""Conversation history storage."""

from .store import ConversationStore, InMemoryConversationStore

__all__ = [
    "ConversationStore",
    "InMemoryConversationStore",
]
