"""Testing utilities for in-process gateway simulations."""

from .fake_upstream import (
    FAKE_UPSTREAM_URL,
    FakeGrokUpstream,
    GrokUpstreamResponse,
    StreamError,
    encode_ndjson,
    grok_event,
    soft_stop_event,
)
from .proxy_harness import GatewayHarness, build_test_config

__all__ = [
    "FAKE_UPSTREAM_URL",
    "FakeGrokUpstream",
    "GatewayHarness",
    "GrokUpstreamResponse",
    "StreamError",
    "build_test_config",
    "encode_ndjson",
    "grok_event",
    "soft_stop_event",
]
