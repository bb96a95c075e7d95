"""API module for the gateway."""

from .cors import CorsSettings, AllowOriginMiddleware, build_preflight_handler
from .errors import error_response, proxy_error_handler
from .routes import chat_completions, list_models

__all__ = [
    "CorsSettings",
    "AllowOriginMiddleware",
    "build_preflight_handler",
    "chat_completions",
    "error_response",
    "list_models",
    "proxy_error_handler",
]
