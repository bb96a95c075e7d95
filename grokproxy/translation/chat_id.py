"""Mapping between upstream message identifiers and client-facing chat ids.

Encoding hashes the upstream id, so the client id never leaks it. Decoding
only recovers the leading 64-bit word of that hash and is best-effort: the
symbol substitution is not injective, so decoding an id whose base64 body
already contained ``x`` or ``y`` yields a different value. ``z`` is only read
back as padding at the end of the body, where the encoder could have put one.
"""

import base64
import binascii
import hashlib
from dataclasses import dataclass
from typing import Optional, Union

CHAT_ID_PREFIX = "chatcmpl-"
DIGEST_PREFIX_BYTES = 24
ENCODED_LENGTH = 32

_ENCODE_TABLE = str.maketrans({"+": "x", "/": "y", "=": "z"})
_DECODE_TABLE = str.maketrans({"x": "+", "y": "/"})


@dataclass(frozen=True)
class ChatIdDecodeResult:
    """Outcome of decoding a client-facing chat id.

    ``value`` is only meaningful when ``ok`` is true, so a failed decode can
    never be mistaken for a decode to zero.
    """

    value: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.value is not None


def _digest(upstream_id: Union[str, int]) -> bytes:
    return hashlib.sha256(str(upstream_id).encode("utf-8")).digest()


def encode_chat_id(upstream_id: Union[str, int]) -> str:
    """Derive the client-facing chat id for an upstream message id."""
    b64 = base64.b64encode(_digest(upstream_id)[:DIGEST_PREFIX_BYTES]).decode("ascii")
    return CHAT_ID_PREFIX + b64.translate(_ENCODE_TABLE)[:ENCODED_LENGTH]


def chat_id_fingerprint(upstream_id: Union[str, int]) -> int:
    """Return the 64-bit value a lossless decode of the encoded id yields."""
    return int.from_bytes(_digest(upstream_id)[:8], "big", signed=False)


def decode_chat_id(client_id: str) -> ChatIdDecodeResult:
    """Recover the leading 64-bit digest word from a client-facing chat id.

    Never raises; malformed input produces a result with ``ok == False``.
    """
    if not isinstance(client_id, str) or not client_id.startswith(CHAT_ID_PREFIX):
        return ChatIdDecodeResult(error="missing chat id prefix")

    body = client_id[len(CHAT_ID_PREFIX):].translate(_DECODE_TABLE)
    if not body:
        return ChatIdDecodeResult(error="empty chat id body")
    unpadded = body.rstrip("z")
    body = unpadded + "=" * (len(body) - len(unpadded))
    padded = body + "=" * (-len(body) % 4)
    try:
        raw = base64.b64decode(padded, validate=True)
    except (binascii.Error, ValueError) as exc:
        return ChatIdDecodeResult(error=f"invalid base64: {exc}")
    if len(raw) < 8:
        return ChatIdDecodeResult(error="chat id too short")
    return ChatIdDecodeResult(value=int.from_bytes(raw[:8], "big", signed=False))
