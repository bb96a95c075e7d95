"""Type definitions for the gateway."""

from .chat import (
    KNOWN_ROLES,
    ROLE_ASSISTANT,
    ROLE_SYSTEM,
    ROLE_USER,
    ChatCompletionChunk,
    ChatCompletionResponse,
    Choice,
    ChunkChoice,
    Delta,
    ErrorBody,
    Message,
    Usage,
)
from .grok import (
    SENDER_ASSISTANT,
    SENDER_USER,
    GrokEvent,
    GrokRequest,
    GrokResponseItem,
    GrokResult,
)

__all__ = [
    "ChatCompletionChunk",
    "ChatCompletionResponse",
    "Choice",
    "ChunkChoice",
    "Delta",
    "ErrorBody",
    "GrokEvent",
    "GrokRequest",
    "GrokResponseItem",
    "GrokResult",
    "KNOWN_ROLES",
    "Message",
    "ROLE_ASSISTANT",
    "ROLE_SYSTEM",
    "ROLE_USER",
    "SENDER_ASSISTANT",
    "SENDER_USER",
    "Usage",
]
