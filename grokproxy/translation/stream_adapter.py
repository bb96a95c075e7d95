"""Stream adapter converting the Grok NDJSON event stream to OpenAI chat SSE.

Grok events (one JSON object per line, split across arbitrary byte chunks):
    {"result":{"sender":"ASSISTANT","message":"Let me","isThinking":true}}
    {"result":{"sender":"ASSISTANT","message":"Hello","isThinking":false}}
    {"result":{"isSoftStop":true}}

OpenAI Chat Completion Events:
    data: {"id":"chatcmpl-...","choices":[{"delta":{"content":"<think>\\n"},...}],...}
    data: {"id":"chatcmpl-...","choices":[{"delta":{"content":"Let me"},...}],...}
    data: {"id":"chatcmpl-...","choices":[{"delta":{"content":"\\n</think>\\n\\n"},...}],...}
    data: {"id":"chatcmpl-...","choices":[{"delta":{"role":"assistant","content":"Hello"},...}],...}
    data: {"id":"chatcmpl-...","choices":[{"delta":{},"finish_reason":"stop",...}],...}
    data: [DONE]
"""

import json
import logging
import time
from email.utils import parsedate_to_datetime
from typing import Any, AsyncIterator, Mapping, Optional

from ..types.chat import ROLE_ASSISTANT, ChatCompletionChunk, Delta, ErrorBody
from .chat_id import encode_chat_id
from .events import (
    DEFAULT_TWEET_LINK_BASE,
    NDJSONLineBuffer,
    UpstreamEvent,
    convert_tweet_links,
    parse_event_line,
)
from .thinking import EmissionKind, MachineState, close_span, transition

logger = logging.getLogger("grokproxy")

DONE_FRAME = b"data: [DONE]\n\n"


def resolve_created(date_header: Optional[str]) -> int:
    """Epoch seconds from an HTTP ``date`` header, falling back to now."""
    if date_header:
        try:
            return int(parsedate_to_datetime(date_header).timestamp())
        except (TypeError, ValueError, IndexError, OverflowError):
            logger.debug(f"Unparseable upstream date header: {date_header!r}")
    return int(time.time())


def resolve_upstream_id(headers: Mapping[str, str]) -> str:
    """Upstream turn identifier, falling back to a local epoch-ms value."""
    upstream_id = headers.get("userChatItemId")
    if upstream_id:
        return str(upstream_id)
    return str(int(time.time() * 1000))


def format_sse_data(data: Mapping[str, Any]) -> bytes:
    return f"data: {json.dumps(data, ensure_ascii=False)}\n\n".encode("utf-8")


def build_error_body(message: str) -> ErrorBody:
    return {
        "error": {
            "message": f"Grok API request failed: {message}",
            "type": "api_error",
            "param": None,
            "code": None,
        }
    }


class GrokToChatStreamAdapter:
    """Converts a Grok NDJSON response stream into OpenAI chat SSE frames.

    One adapter serves exactly one upstream response. It maintains:
    - the line reassembly buffer
    - the thinking state machine
    - the accumulated normal assistant content (for history)
    - whether the terminal stop frame has been emitted
    """

    def __init__(
        self,
        completion_id: str,
        model: str,
        created: int,
        tweet_link_base: str = DEFAULT_TWEET_LINK_BASE,
    ) -> None:
        self.completion_id = completion_id
        self.model = model
        self.created = created
        self.tweet_link_base = tweet_link_base

        self._lines = NDJSONLineBuffer()
        self._state = MachineState()
        self._content_parts: list[str] = []
        self._finished = False

        self.completed = False
        self.events_seen = 0

    @classmethod
    def from_upstream_headers(
        cls,
        headers: Mapping[str, str],
        model: str,
        tweet_link_base: str = DEFAULT_TWEET_LINK_BASE,
    ) -> "GrokToChatStreamAdapter":
        """Build an adapter whose chunk identity derives from upstream headers."""
        return cls(
            completion_id=encode_chat_id(resolve_upstream_id(headers)),
            model=model,
            created=resolve_created(headers.get("date")),
            tweet_link_base=tweet_link_base,
        )

    @property
    def content(self) -> str:
        """Normal (non-thinking) assistant content accumulated so far."""
        return "".join(self._content_parts)

    @property
    def thinking(self) -> bool:
        return self._state.thinking

    async def adapt_stream(self, grok_stream: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        """Transform a Grok byte stream into a complete SSE stream.

        Args:
            grok_stream: Raw upstream body chunks

        Yields:
            SSE frames, always ending with the ``[DONE]`` sentinel
        """
        async for chunk in grok_stream:
            for frame in self.feed(chunk):
                yield frame
            if self.completed:
                break
        for frame in self.finish():
            yield frame

    def feed(self, chunk: bytes) -> list[bytes]:
        """Consume one upstream chunk and return the frames it produced."""
        if self.completed:
            return []
        frames: list[bytes] = []
        for line in self._lines.feed(chunk):
            frames.extend(self._process_line(line))
            if self.completed:
                break
        return frames

    def finish(self) -> list[bytes]:
        """Terminate the stream after upstream closes (or after soft-stop).

        Idempotent: a second call returns no frames.
        """
        if self._finished:
            return []
        self._finished = True
        frames: list[bytes] = []
        if not self.completed:
            for line in self._lines.flush():
                frames.extend(self._process_line(line))
        if not self.completed:
            frames.extend(self._emit_stop())
        frames.append(DONE_FRAME)
        return frames

    def error_frames(self, message: str) -> list[bytes]:
        """Frames terminating the stream after a failure."""
        if self._finished:
            return []
        self._finished = True
        return [format_sse_data(build_error_body(message)), DONE_FRAME]

    def _process_line(self, line: str) -> list[bytes]:
        event = parse_event_line(line)
        if event is None:
            return []
        self.events_seen += 1
        frames: list[bytes] = []
        if event.has_sender:
            frames.extend(self._process_content_event(event))
        if event.is_soft_stop:
            frames.extend(self._emit_stop())
        return frames

    def _process_content_event(self, event: UpstreamEvent) -> list[bytes]:
        text = convert_tweet_links(event.message, self.tweet_link_base)
        self._state, emissions = transition(self._state, event, text)
        from_assistant = event.effective_role == ROLE_ASSISTANT
        frames: list[bytes] = []
        for emission in emissions:
            delta: Delta = {"content": emission.text}
            if emission.kind is EmissionKind.CONTENT:
                if from_assistant:
                    self._content_parts.append(emission.text)
                if emission.role is not None:
                    delta = {"role": emission.role, "content": emission.text}
            frames.append(self._emit_chunk(delta))
        return frames

    def _emit_stop(self) -> list[bytes]:
        if self.completed:
            return []
        self._state, emissions = close_span(self._state)
        frames = [self._emit_chunk({"content": e.text}) for e in emissions]
        frames.append(self._emit_chunk({}, finish_reason="stop"))
        self.completed = True
        return frames

    def _emit_chunk(self, delta: Delta, finish_reason: Optional[str] = None) -> bytes:
        chunk: ChatCompletionChunk = {
            "id": self.completion_id,
            "object": "chat.completion.chunk",
            "created": self.created,
            "model": self.model,
            "choices": [
                {
                    "index": 0,
                    "delta": delta,
                    "logprobs": None,
                    "finish_reason": finish_reason,
                }
            ],
        }
        return format_sse_data(chunk)


async def adapt_grok_stream_to_chat(
    completion_id: str,
    model: str,
    created: int,
    grok_stream: AsyncIterator[bytes],
    tweet_link_base: str = DEFAULT_TWEET_LINK_BASE,
) -> AsyncIterator[bytes]:
    """Convenience function to adapt a Grok byte stream to OpenAI chat SSE.

    Args:
        completion_id: Client-facing chunk id
        model: Model name repeated on every chunk
        created: Creation timestamp repeated on every chunk
        grok_stream: Upstream body chunks
        tweet_link_base: Prefix for rewritten tweet links

    Yields:
        OpenAI chat completion SSE frames
    """
    adapter = GrokToChatStreamAdapter(completion_id, model, created, tweet_link_base)
    async for frame in adapter.adapt_stream(grok_stream):
        yield frame
