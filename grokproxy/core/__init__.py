"""Core module initialization.

Import the gateway from ``grokproxy.core.gateway``.
"""

from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    InvalidRequestError,
    ProxyError,
    RateLimitExceededError,
    UpstreamError,
    UpstreamRetryExhaustedError,
)
from .registry import get_gateway, set_gateway
from .retry import RETRYABLE_STATUSES, fetch_with_retry

__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "InvalidRequestError",
    "ProxyError",
    "RETRYABLE_STATUSES",
    "RateLimitExceededError",
    "UpstreamError",
    "UpstreamRetryExhaustedError",
    "fetch_with_retry",
    "get_gateway",
    "set_gateway",
]
