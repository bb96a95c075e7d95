"""Parsing of the upstream newline-delimited JSON event stream."""

import codecs
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

from ..types.chat import ROLE_ASSISTANT, ROLE_USER

logger = logging.getLogger("grokproxy")

DEFAULT_TWEET_LINK_BASE = "https://x.com/elonmusk/status/"

TWEET_LINK_RE = re.compile(r"\[link\]\(#tweet=(\d+)\)")

_SENDER_ROLES = {
    "1": ROLE_USER,
    "user": ROLE_USER,
    "2": ROLE_ASSISTANT,
    "assistant": ROLE_ASSISTANT,
}


def normalize_sender(sender: Any) -> Optional[str]:
    """Map the upstream sender marker to a chat role.

    The upstream uses both numeric (1, 2) and string ("USER", "ASSISTANT")
    markers. Unknown markers map to None.
    """
    if sender is None or isinstance(sender, bool):
        return None
    return _SENDER_ROLES.get(str(sender).strip().lower())


def convert_tweet_links(text: str, link_base: str = DEFAULT_TWEET_LINK_BASE) -> str:
    """Rewrite ``[link](#tweet=<id>)`` anchors into absolute post URLs."""
    if not text or "#tweet=" not in text:
        return text
    return TWEET_LINK_RE.sub(lambda m: f"[link]({link_base}{m.group(1)})", text)


@dataclass(frozen=True)
class UpstreamEvent:
    """One parsed upstream event line.

    Attributes:
        has_sender: True when ``result`` carried a ``sender`` key; only such
            events contribute content.
        role: Normalized sender role, or None for unknown senders.
        message: Text fragment (empty when absent).
        is_thinking: Fragment belongs to a thinking span.
        is_soft_stop: End-of-turn marker.
    """

    has_sender: bool = False
    role: Optional[str] = None
    message: str = ""
    is_thinking: bool = False
    is_soft_stop: bool = False

    @property
    def effective_role(self) -> str:
        """Sender role, with unknown senders treated as the assistant."""
        return self.role or ROLE_ASSISTANT


def parse_event_line(line: str) -> Optional[UpstreamEvent]:
    """Parse one upstream line, returning None for unusable input."""
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        logger.warning(f"Could not parse JSON: {line[:200]}")
        return None
    if not isinstance(data, dict):
        logger.debug(f"Ignoring non-object upstream line: {line[:200]}")
        return None

    result = data.get("result")
    if not isinstance(result, dict):
        return UpstreamEvent()

    has_sender = "sender" in result
    message = result.get("message")
    return UpstreamEvent(
        has_sender=has_sender,
        role=normalize_sender(result.get("sender")) if has_sender else None,
        message=message if isinstance(message, str) else "",
        is_thinking=result.get("isThinking") is True,
        is_soft_stop=result.get("isSoftStop") is True,
    )


class NDJSONLineBuffer:
    """Reassembles complete lines from arbitrarily split byte chunks."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[str]:
        """Append a chunk and return every complete, non-blank line."""
        if not chunk:
            return []
        self._buffer += self._decoder.decode(chunk)
        lines: list[str] = []
        while True:
            line_end = self._buffer.find("\n")
            if line_end < 0:
                break
            line = self._buffer[:line_end].strip()
            self._buffer = self._buffer[line_end + 1:]
            if line:
                lines.append(line)
        return lines

    def flush(self) -> list[str]:
        """Return the unterminated trailing line left at end of stream."""
        self._buffer += self._decoder.decode(b"", final=True)
        leftover = self._buffer.strip()
        self._buffer = ""
        return [leftover] if leftover else []

    @property
    def pending(self) -> str:
        return self._buffer
