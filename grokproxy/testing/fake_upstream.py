"""Fake Grok upstream ASGI app for simulating deterministic responses."""

from __future__ import annotations

import asyncio
import json
from collections import deque
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Deque, Iterable, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse

GROK_PATH = "/2/grok/add_response.json"
FAKE_UPSTREAM_URL = f"http://grok.test{GROK_PATH}"
DEFAULT_DATE = "Tue, 01 Apr 2025 12:00:00 GMT"


class StreamError(Exception):
    """Raised to simulate mid-stream errors."""

    pass


def grok_event(
    message: str,
    *,
    sender: Any = "ASSISTANT",
    thinking: bool = False,
    **extra: Any,
) -> dict[str, Any]:
    """One Grok content event."""
    result: dict[str, Any] = {"sender": sender, "message": message, "isThinking": thinking}
    result.update(extra)
    return {"result": result}


def soft_stop_event() -> dict[str, Any]:
    return {"result": {"isSoftStop": True}}


def encode_ndjson(events: Iterable[Any]) -> bytes:
    """Encode events as newline-delimited JSON; bytes/str pass through verbatim."""
    lines = []
    for event in events:
        if isinstance(event, bytes):
            lines.append(event)
        elif isinstance(event, str):
            lines.append(event.encode("utf-8"))
        else:
            lines.append(json.dumps(event, ensure_ascii=False).encode("utf-8") + b"\n")
    return b"".join(lines)


@dataclass
class GrokUpstreamResponse:
    """A queued response to return from the fake upstream.

    Standard fields:
        status_code: HTTP status code (default 200)
        headers: Response headers (``date`` and ``userChatItemId`` included by default)
        events: Grok events; dicts become JSON lines, bytes/str are sent verbatim
        body: Raw body for error responses (overrides ``events``)
        chunk_delay_s: Delay between body chunks

    Chunk fragmentation fields:
        fragment_events: Split every line in half across two chunks
        chunk_sizes: Re-chunk the whole body at these byte sizes

    Error simulation fields:
        error_after_events: Raise StreamError after N lines have been sent
        omit_final_newline: Drop the newline after the last event

    Dynamic response:
        response_fn: Callable that receives the request JSON and returns a response
    """

    status_code: int = 200
    headers: dict[str, str] = field(default_factory=dict)
    events: list[Any] = field(default_factory=list)
    body: bytes | str | None = None
    chunk_delay_s: float | None = None

    fragment_events: bool = False
    chunk_sizes: list[int] | None = None

    error_after_events: int | None = None
    omit_final_newline: bool = False

    response_fn: Callable[[Any], "GrokUpstreamResponse"] | None = None


class FakeGrokUpstream:
    """ASGI app that replies to Grok ``add_response`` calls with queued responses.

    Supports:
    - Deterministic response queueing
    - Request tracking/inspection
    - NDJSON streaming with arbitrary chunk boundaries
    - Mid-stream errors and unterminated final lines
    - Error statuses with custom bodies
    """

    def __init__(
        self,
        responses: Optional[Iterable[GrokUpstreamResponse]] = None,
        *,
        route: str = GROK_PATH,
        default_chat_item_id: str = "1898312345678901234",
    ) -> None:
        self.app = FastAPI(title="FakeGrokUpstream")
        self._queue: Deque[GrokUpstreamResponse] = deque(responses or [])
        self.received: list[dict[str, Any]] = []
        self.route = route
        self.default_chat_item_id = default_chat_item_id
        self.app.post(route)(self._handle_add_response)

    @property
    def url(self) -> str:
        return f"http://grok.test{self.route}"

    @property
    def call_count(self) -> int:
        return len(self.received)

    def enqueue(self, response: GrokUpstreamResponse) -> None:
        """Add a response to the queue."""
        self._queue.append(response)

    def clear(self) -> None:
        """Clear all queued responses and received requests."""
        self._queue.clear()
        self.received.clear()

    # -------------------------------------------------------------------------
    # Convenience methods for common response types
    # -------------------------------------------------------------------------

    def enqueue_reply(
        self,
        *fragments: str,
        thinking: Iterable[str] = (),
        soft_stop: bool = True,
        headers: dict[str, str] | None = None,
        **options: Any,
    ) -> None:
        """Enqueue thinking fragments, then answer fragments, then a soft-stop."""
        events: list[Any] = [grok_event(text, thinking=True) for text in thinking]
        events.extend(grok_event(text) for text in fragments)
        if soft_stop:
            events.append(soft_stop_event())
        self.enqueue(GrokUpstreamResponse(events=events, headers=dict(headers or {}), **options))

    def enqueue_error(self, status_code: int, body: str = "upstream failure") -> None:
        self.enqueue(GrokUpstreamResponse(status_code=status_code, body=body))

    # -------------------------------------------------------------------------
    # Request handling
    # -------------------------------------------------------------------------

    async def _handle_add_response(self, request: Request) -> Response:
        payload: Any = None
        try:
            payload = await request.json()
        except json.JSONDecodeError:
            payload = None

        self.received.append(
            {
                "path": request.url.path,
                "headers": dict(request.headers),
                "json": payload,
            }
        )

        if not self._queue:
            return JSONResponse(
                {"error": {"message": "No upstream responses queued"}},
                status_code=500,
            )

        response = self._queue.popleft()
        if response.response_fn is not None:
            response = response.response_fn(payload)

        headers = {
            "date": DEFAULT_DATE,
            "userChatItemId": self.default_chat_item_id,
        }
        headers.update(response.headers)

        if response.body is not None:
            return Response(
                content=response.body,
                status_code=response.status_code,
                headers=headers,
                media_type="text/plain",
            )

        return StreamingResponse(
            self._stream_body(response),
            status_code=response.status_code,
            headers=headers,
            media_type="application/x-ndjson",
        )

    async def _stream_body(self, response: GrokUpstreamResponse) -> AsyncIterator[bytes]:
        """Generate body chunks with fragmentation and error support."""
        for chunk in self._chunks(response):
            if response.chunk_delay_s:
                await asyncio.sleep(response.chunk_delay_s)
            yield chunk

    def _chunks(self, response: GrokUpstreamResponse) -> Iterable[bytes]:
        lines = [encode_ndjson([event]) for event in response.events]
        if response.omit_final_newline and lines and lines[-1].endswith(b"\n"):
            lines[-1] = lines[-1][:-1]

        if response.chunk_sizes:
            body = b"".join(lines)
            offset = 0
            for size in response.chunk_sizes:
                piece = body[offset : offset + size]
                if piece:
                    yield piece
                offset += size
            if offset < len(body):
                yield body[offset:]
            return

        for index, line in enumerate(lines):
            if response.error_after_events is not None and index >= response.error_after_events:
                raise StreamError("Simulated connection reset")
            if response.fragment_events and len(line) > 1:
                mid = len(line) // 2
                yield line[:mid]
                yield line[mid:]
            else:
                yield line
        if response.error_after_events is not None and response.error_after_events >= len(lines):
            raise StreamError("Simulated connection reset")
