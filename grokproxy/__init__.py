"""grokproxy - OpenAI-compatible gateway for the Grok web chat API.

Accepts OpenAI Chat Completions requests, replays the conversation against
Grok, and translates Grok's NDJSON event stream back into chat completion
SSE chunks (or one aggregated completion).

This package provides:
- GrokGateway: request preparation, upstream calls, history bookkeeping
- Stream translation with a thinking-span state machine
- In-memory conversation store with LRU and idle eviction
- Per-request logging to disk

Example:
    >>> from grokproxy.main import app
    >>> import uvicorn
    >>> uvicorn.run(app, host="127.0.0.1", port=8000)
"""

from .config_loader import load_config
from .core.exceptions import ProxyError
from .logging import RequestLogRecorder, logger, setup_logging

__version__ = "0.1.0"

__all__ = [
    "ProxyError",
    "RequestLogRecorder",
    "__version__",
    "load_config",
    "logger",
    "setup_logging",
]
