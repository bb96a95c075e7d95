"""Gateway harness for in-process simulation tests."""

from __future__ import annotations

import copy
from typing import Any, Mapping, Optional

import httpx

from ..api.app import create_app
from ..conversations import ConversationStore
from ..core import registry
from ..core.gateway import GrokGateway
from ..core.registry import set_gateway
from .fake_upstream import FAKE_UPSTREAM_URL, FakeGrokUpstream

BASE_TEST_CONFIG: dict[str, Any] = {
    "upstream": {
        "url": FAKE_UPSTREAM_URL,
        "timeout": 5,
        "retry": {"max_attempts": 3, "backoff_factor": 2},
    },
    "conversations": {"max_conversations": 100},
    "rate_limit": {"enabled": False},
    "proxy_settings": {"logging": {"log_to_disk": False}},
}


def build_test_config(overrides: Optional[Mapping[str, Any]] = None) -> dict[str, Any]:
    """Base test config with ``overrides`` merged one section deep."""
    config = copy.deepcopy(BASE_TEST_CONFIG)
    for key, value in (overrides or {}).items():
        if isinstance(value, Mapping) and isinstance(config.get(key), dict):
            config[key].update(value)
        else:
            config[key] = value
    return config


class GatewayHarness:
    """Build the gateway app wired to a fake Grok upstream.

    Features:
    - Creates an in-process gateway app with the real routes
    - Routes upstream traffic to a FakeGrokUpstream through httpx.ASGITransport
    - Records retry backoff sleeps instead of waiting
    - Manages global gateway state

    Usage:
        async with GatewayHarness() as harness:
            harness.upstream.enqueue_reply("Hello")
            async with harness.make_async_client() as client:
                response = await client.post("/v1/chat/completions", json={...})
    """

    def __init__(
        self,
        config: Optional[Mapping[str, Any]] = None,
        *,
        upstream: Optional[FakeGrokUpstream] = None,
        store: Optional[ConversationStore] = None,
    ) -> None:
        self.upstream = upstream or FakeGrokUpstream()
        self.config = build_test_config(config)
        self.sleeps: list[float] = []
        self._previous_gateway = registry.gateway

        self.gateway = GrokGateway(
            self.config,
            store=store,
            transport=httpx.ASGITransport(app=self.upstream.app),
            sleep=self._record_sleep,
        )
        self.app = create_app(self.config, self.gateway, title="GatewayHarness")

    async def _record_sleep(self, delay: float) -> None:
        self.sleeps.append(delay)

    @property
    def store(self) -> ConversationStore:
        return self.gateway.store

    def close(self) -> None:
        """Restore the previously registered gateway."""
        set_gateway(self._previous_gateway)

    def __enter__(self) -> "GatewayHarness":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    async def __aenter__(self) -> "GatewayHarness":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    def make_async_client(self, base_url: str = "http://gateway.local") -> httpx.AsyncClient:
        """Create an async HTTP client for the gateway app."""
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=self.app),
            base_url=base_url,
        )
