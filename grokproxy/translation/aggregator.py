"""Aggregation of a Grok NDJSON response into one chat completion."""

import json
import logging
import math
from typing import Any, Mapping

from ..types.chat import ROLE_ASSISTANT, ChatCompletionResponse, Usage
from .events import (
    DEFAULT_TWEET_LINK_BASE,
    NDJSONLineBuffer,
    UpstreamEvent,
    convert_tweet_links,
    parse_event_line,
)

logger = logging.getLogger("grokproxy")

FALLBACK_CONTENT = "Sorry, I could not generate a response. Please try again."
CHARS_PER_TOKEN = 4


class GrokResponseAggregator:
    """Collects assistant, non-thinking fragments from an upstream body."""

    def __init__(self, tweet_link_base: str = DEFAULT_TWEET_LINK_BASE) -> None:
        self.tweet_link_base = tweet_link_base
        self._lines = NDJSONLineBuffer()
        self._parts: list[str] = []
        self.completed = False

    def feed(self, chunk: bytes) -> None:
        if self.completed:
            return
        for line in self._lines.feed(chunk):
            self._process_line(line)
            if self.completed:
                return

    def finish(self) -> str:
        """Process any trailing line and return the final content."""
        if not self.completed:
            for line in self._lines.flush():
                self._process_line(line)
        return self.result()

    def result(self) -> str:
        content = "".join(self._parts)
        return content if content else FALLBACK_CONTENT

    @property
    def produced_content(self) -> bool:
        return bool(self._parts)

    def _process_line(self, line: str) -> None:
        event = parse_event_line(line)
        if event is None:
            return
        if self._accepts(event):
            self._parts.append(convert_tweet_links(event.message, self.tweet_link_base))
        if event.is_soft_stop:
            self.completed = True

    @staticmethod
    def _accepts(event: UpstreamEvent) -> bool:
        return (
            event.has_sender
            and event.effective_role == ROLE_ASSISTANT
            and not event.is_thinking
            and bool(event.message)
        )


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def estimate_usage(upstream_payload: Mapping[str, Any], content: str) -> Usage:
    """Rough usage estimate: serialized characters divided by four."""
    prompt_tokens = estimate_tokens(json.dumps(upstream_payload, ensure_ascii=False))
    completion_tokens = estimate_tokens(content)
    return {
        "prompt_tokens": prompt_tokens,
        "completion_tokens": completion_tokens,
        "total_tokens": prompt_tokens + completion_tokens,
    }


def build_chat_completion(
    completion_id: str,
    model: str,
    created: int,
    content: str,
    usage: Usage,
) -> ChatCompletionResponse:
    return {
        "id": completion_id,
        "object": "chat.completion",
        "created": created,
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": ROLE_ASSISTANT, "content": content},
                "logprobs": None,
                "finish_reason": "stop",
            }
        ],
        "usage": usage,
    }
