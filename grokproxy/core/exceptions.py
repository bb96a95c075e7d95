"""Core exceptions for the gateway."""

from typing import Any, Optional


class ProxyError(Exception):
    """Base exception for gateway errors."""

    status_code = 500
    error_type = "server_error"

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code

    def to_payload(self) -> dict[str, Any]:
        """Render the client-facing error body."""
        return {
            "error": {
                "message": self.message,
                "type": self.error_type,
                "param": None,
                "code": self.code,
            }
        }


class InvalidRequestError(ProxyError):
    """Raised when an incoming request is invalid."""

    status_code = 400
    error_type = "invalid_request_error"

    def __init__(self, message: str, code: str = "invalid_request") -> None:
        super().__init__(message, code=code)


class AuthenticationError(ProxyError):
    """Raised when upstream credentials are missing from the request."""

    status_code = 401
    error_type = "authentication_error"

    def __init__(self, message: str, code: str = "missing_authorization") -> None:
        super().__init__(message, code=code)


class RateLimitExceededError(ProxyError):
    """Raised when a client exceeds its request budget."""

    status_code = 429
    error_type = "rate_limit_error"

    def __init__(self, message: str, headers: Optional[dict[str, str]] = None) -> None:
        super().__init__(message, code="rate_limit_exceeded")
        self.headers = headers or {}


class UpstreamError(ProxyError):
    """Raised when the Grok API fails or returns an error status."""

    error_type = "api_error"

    def __init__(self, message: str, upstream_status: Optional[int] = None) -> None:
        super().__init__(message, code="upstream_error")
        self.upstream_status = upstream_status


class UpstreamRetryExhaustedError(UpstreamError):
    """Signals that every upstream attempt failed with a retryable outcome."""

    def __init__(
        self,
        message: str,
        upstream_status: Optional[int] = None,
        attempts: int = 0,
    ) -> None:
        super().__init__(message, upstream_status=upstream_status)
        self.attempts = attempts


class ConfigurationError(ProxyError):
    """Raised when there's an issue with the configuration."""
    pass
