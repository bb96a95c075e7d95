"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Generator

import pytest

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from grokproxy.core.registry import set_gateway
from grokproxy.testing import GatewayHarness


@pytest.fixture(autouse=True)
def reset_global_state() -> Generator[None, None, None]:
    """Drop the process-wide gateway after every test."""
    yield
    set_gateway(None)


@pytest.fixture
def harness() -> Generator[GatewayHarness, None, None]:
    """Gateway app wired to a fresh fake Grok upstream."""
    with GatewayHarness() as gateway_harness:
        yield gateway_harness


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": "Bearer bearer-abc,token-xyz"}

