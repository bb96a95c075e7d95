"""Conversation history store.

Maps a conversation id to its ordered message history. Histories only grow
by appends; whole conversations leave the store through explicit eviction,
the LRU cap, or the optional idle TTL.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

from ..types.chat import Message

logger = logging.getLogger("grokproxy")

DEFAULT_MAX_CONVERSATIONS = 1000


class ConversationStore(ABC):
    """Keyed, ordered message history."""

    @abstractmethod
    async def get_or_create(self, conversation_id: str) -> list[Message]:
        """Return a copy of the history, creating an empty one if needed."""

    @abstractmethod
    async def append(self, conversation_id: str, *messages: Message) -> None:
        """Append messages in order, creating the conversation if needed."""

    @abstractmethod
    async def append_and_snapshot(
        self, conversation_id: str, messages: Iterable[Message]
    ) -> list[Message]:
        """Append messages and return the resulting history in one step."""

    @abstractmethod
    async def history(self, conversation_id: str) -> Optional[list[Message]]:
        """Return a copy of the history, or None for unknown ids."""

    @abstractmethod
    async def evict(self, conversation_id: str) -> bool:
        """Drop a conversation. Returns True if it existed."""

    def stats(self) -> dict[str, Any]:
        return {}


@dataclass
class _Conversation:
    messages: list[Message] = field(default_factory=list)
    touched_at: float = 0.0


class InMemoryConversationStore(ConversationStore):
    """Process-local store guarded by a single asyncio lock.

    Every operation runs under the lock, so appends from concurrent requests
    never interleave within one call. Two requests on the same conversation
    may still interleave their turns (user, user, assistant, assistant).

    Eviction:
    - LRU: beyond ``max_conversations`` the least recently used entry goes.
    - TTL: with ``ttl_seconds`` set, conversations idle for longer are purged
      on the next access.
    """

    def __init__(
        self,
        max_conversations: int = DEFAULT_MAX_CONVERSATIONS,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_conversations = max(1, int(max_conversations))
        self.ttl_seconds = ttl_seconds if ttl_seconds and ttl_seconds > 0 else None
        self._clock = clock
        self._conversations: OrderedDict[str, _Conversation] = OrderedDict()
        self._lock = asyncio.Lock()
        self._evicted = 0

    async def get_or_create(self, conversation_id: str) -> list[Message]:
        async with self._lock:
            return list(self._touch(conversation_id).messages)

    async def append(self, conversation_id: str, *messages: Message) -> None:
        async with self._lock:
            self._touch(conversation_id).messages.extend(messages)

    async def append_and_snapshot(
        self, conversation_id: str, messages: Iterable[Message]
    ) -> list[Message]:
        async with self._lock:
            conversation = self._touch(conversation_id)
            conversation.messages.extend(messages)
            return list(conversation.messages)

    async def history(self, conversation_id: str) -> Optional[list[Message]]:
        async with self._lock:
            self._purge_expired()
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                return None
            return list(conversation.messages)

    async def evict(self, conversation_id: str) -> bool:
        async with self._lock:
            removed = self._conversations.pop(conversation_id, None) is not None
            if removed:
                self._evicted += 1
                logger.debug(f"ConversationStore: Evicted {conversation_id}")
            return removed

    def stats(self) -> dict[str, Any]:
        return {
            "conversations": len(self._conversations),
            "max_conversations": self.max_conversations,
            "ttl_seconds": self.ttl_seconds,
            "evicted": self._evicted,
        }

    def _touch(self, conversation_id: str) -> _Conversation:
        self._purge_expired()
        now = self._clock()
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            conversation = _Conversation(touched_at=now)
            self._conversations[conversation_id] = conversation
            logger.info(f"New conversation started: {conversation_id}")
            self._enforce_capacity()
        else:
            logger.info(f"Continuing conversation: {conversation_id}")
            conversation.touched_at = now
            self._conversations.move_to_end(conversation_id)
        return conversation

    def _enforce_capacity(self) -> None:
        while len(self._conversations) > self.max_conversations:
            evicted_id, _ = self._conversations.popitem(last=False)
            self._evicted += 1
            logger.debug(f"ConversationStore: Evicted {evicted_id} (capacity)")

    def _purge_expired(self) -> None:
        if self.ttl_seconds is None:
            return
        cutoff = self._clock() - self.ttl_seconds
        # Entries are kept in access order, so expired ones sit at the front.
        while self._conversations:
            oldest_id, oldest = next(iter(self._conversations.items()))
            if oldest.touched_at >= cutoff:
                break
            del self._conversations[oldest_id]
            self._evicted += 1
            logger.debug(f"ConversationStore: Evicted {oldest_id} (idle)")
