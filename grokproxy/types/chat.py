"""Types for the client-facing (OpenAI-compatible) chat format.

This module defines the message model kept in conversation history and the
type schemas of the chat completion objects the gateway emits:
- Message: the immutable unit of conversation history
- ChatCompletionChunk: one SSE frame of a streamed completion
- ChatCompletionResponse: the single object of a non-streamed completion
"""

from dataclasses import dataclass
from typing import Any, Optional

from typing_extensions import TypedDict


ROLE_SYSTEM = "system"
ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"

KNOWN_ROLES = frozenset({ROLE_SYSTEM, ROLE_USER, ROLE_ASSISTANT})


@dataclass(frozen=True)
class Message:
    """A single conversation message.

    Attributes:
        role: "system", "user" or "assistant". Other roles submitted by a
            client are kept verbatim and replayed upstream as user turns.
        content: Plain text content.
    """

    role: str
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


class Delta(TypedDict, total=False):
    """A streamed delta of a choice (OpenAI format).

    Attributes:
        role: Present only on frames that announce a new sender role.
        content: Incremental text content.
    """
    role: str
    content: str


class ChunkChoice(TypedDict):
    """A choice inside a streamed chunk."""
    index: int
    delta: Delta
    logprobs: Optional[Any]
    finish_reason: Optional[str]


class ChatCompletionChunk(TypedDict):
    """A chat completion chunk (OpenAI streaming format)."""
    id: str
    object: str
    created: int
    model: str
    choices: list[ChunkChoice]


class Usage(TypedDict):
    """Approximate token usage reported on non-streamed completions."""
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class ResponseMessage(TypedDict):
    role: str
    content: str


class Choice(TypedDict):
    """A choice in a non-streamed completion."""
    index: int
    message: ResponseMessage
    logprobs: Optional[Any]
    finish_reason: str


class ChatCompletionResponse(TypedDict):
    """A complete chat completion response (OpenAI format)."""
    id: str
    object: str
    created: int
    model: str
    choices: list[Choice]
    usage: Usage


class ErrorDetail(TypedDict):
    message: str
    type: str
    param: Optional[str]
    code: Optional[str]


class ErrorBody(TypedDict):
    """Error body returned to clients, inline or as an SSE frame."""
    error: ErrorDetail
