"""Tests for the in-memory conversation store."""

import asyncio

import pytest

from grokproxy.conversations import InMemoryConversationStore
from grokproxy.types.chat import Message


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestHistory:
    """Tests for appending and reading histories."""

    @pytest.mark.asyncio
    async def test_get_or_create_starts_empty(self):
        """A new id yields an empty history and registers the conversation."""
        store = InMemoryConversationStore()
        assert await store.get_or_create("c1") == []
        assert await store.history("c1") == []

    @pytest.mark.asyncio
    async def test_unknown_history_is_none(self):
        store = InMemoryConversationStore()
        assert await store.history("missing") is None

    @pytest.mark.asyncio
    async def test_appends_preserve_order(self):
        """Messages accumulate in call order across appends."""
        store = InMemoryConversationStore()
        await store.append("c1", Message("user", "a"))
        snapshot = await store.append_and_snapshot(
            "c1", [Message("assistant", "b"), Message("user", "c")]
        )
        assert [m.content for m in snapshot] == ["a", "b", "c"]
        assert await store.history("c1") == snapshot

    @pytest.mark.asyncio
    async def test_returned_lists_are_copies(self):
        store = InMemoryConversationStore()
        snapshot = await store.append_and_snapshot("c1", [Message("user", "a")])
        snapshot.append(Message("user", "tampered"))
        assert await store.history("c1") == [Message("user", "a")]

    @pytest.mark.asyncio
    async def test_conversations_are_isolated(self):
        store = InMemoryConversationStore()
        await store.append("a", Message("user", "for a"))
        await store.append("b", Message("user", "for b"))
        assert await store.history("a") == [Message("user", "for a")]
        assert await store.history("b") == [Message("user", "for b")]

    @pytest.mark.asyncio
    async def test_evict(self):
        store = InMemoryConversationStore()
        await store.append("c1", Message("user", "a"))
        assert await store.evict("c1") is True
        assert await store.evict("c1") is False
        assert await store.history("c1") is None
        assert store.stats()["evicted"] == 1


class TestEviction:
    """Tests for the capacity and idle limits."""

    @pytest.mark.asyncio
    async def test_lru_capacity(self):
        """The least recently used conversation is dropped beyond capacity."""
        store = InMemoryConversationStore(max_conversations=2)
        await store.append("a", Message("user", "1"))
        await store.append("b", Message("user", "2"))
        await store.get_or_create("a")
        await store.append("c", Message("user", "3"))

        assert await store.history("b") is None
        assert await store.history("a") is not None
        assert await store.history("c") is not None
        assert store.stats()["conversations"] == 2

    @pytest.mark.asyncio
    async def test_idle_ttl(self):
        """Conversations idle longer than the TTL are purged on next access."""
        clock = FakeClock()
        store = InMemoryConversationStore(ttl_seconds=60, clock=clock)
        await store.append("old", Message("user", "1"))
        clock.advance(30)
        await store.append("fresh", Message("user", "2"))
        clock.advance(45)

        assert await store.history("old") is None
        assert await store.history("fresh") == [Message("user", "2")]

    @pytest.mark.asyncio
    async def test_access_refreshes_ttl(self):
        clock = FakeClock()
        store = InMemoryConversationStore(ttl_seconds=60, clock=clock)
        await store.append("c", Message("user", "1"))
        clock.advance(50)
        await store.append("c", Message("assistant", "2"))
        clock.advance(50)
        assert len(await store.history("c")) == 2

    def test_non_positive_ttl_disables_expiry(self):
        assert InMemoryConversationStore(ttl_seconds=0).ttl_seconds is None

    def test_stats(self):
        store = InMemoryConversationStore(max_conversations=5, ttl_seconds=10)
        assert store.stats() == {
            "conversations": 0,
            "max_conversations": 5,
            "ttl_seconds": 10,
            "evicted": 0,
        }


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_appends_are_not_lost(self):
        """Each append lands exactly once under concurrent access."""
        store = InMemoryConversationStore()

        async def writer(n: int) -> None:
            await store.append_and_snapshot("shared", [Message("user", str(n))])

        await asyncio.gather(*(writer(n) for n in range(50)))
        history = await store.history("shared")
        assert sorted(int(m.content) for m in history) == list(range(50))

