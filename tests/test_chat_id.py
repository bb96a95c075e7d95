"""Tests for the chat id codec."""

import base64
import hashlib

import pytest

from grokproxy.translation.chat_id import (
    CHAT_ID_PREFIX,
    ChatIdDecodeResult,
    chat_id_fingerprint,
    decode_chat_id,
    encode_chat_id,
)


def _body_without_substitutions(upstream_id: str) -> bool:
    digest = hashlib.sha256(upstream_id.encode("utf-8")).digest()[:24]
    body = base64.b64encode(digest).decode("ascii")[:32]
    return not any(ch in body for ch in "xyz+/=")


class TestEncodeChatId:
    def test_format(self):
        chat_id = encode_chat_id("1898312345678901234")
        assert chat_id.startswith(CHAT_ID_PREFIX)
        assert len(chat_id) == len(CHAT_ID_PREFIX) + 32
        body = chat_id[len(CHAT_ID_PREFIX):]
        assert not any(ch in body for ch in "+/=")

    def test_deterministic(self):
        assert encode_chat_id("abc") == encode_chat_id("abc")
        assert encode_chat_id(12345) == encode_chat_id("12345")

    def test_distinct_ids_differ(self):
        assert encode_chat_id("1") != encode_chat_id("2")

    def test_matches_hash_prefix(self):
        digest = hashlib.sha256(b"42").digest()[:24]
        expected = base64.b64encode(digest).decode("ascii")
        expected = expected.replace("+", "x").replace("/", "y").replace("=", "z")[:32]
        assert encode_chat_id("42") == CHAT_ID_PREFIX + expected


class TestDecodeChatId:
    def test_round_trip_recovers_fingerprint(self):
        candidates = [str(n) for n in range(200) if _body_without_substitutions(str(n))]
        assert candidates, "expected at least one id without x/y/z in its encoding"
        for upstream_id in candidates:
            result = decode_chat_id(encode_chat_id(upstream_id))
            assert result.ok
            assert result.value == chat_id_fingerprint(upstream_id)

    def test_decode_succeeds_for_encoded_ids(self):
        for n in range(50):
            chat_id = encode_chat_id(n)
            if chat_id.endswith("zzz"):
                continue
            assert decode_chat_id(chat_id).ok

    def test_literal_z_inside_body_is_data(self):
        result = decode_chat_id(CHAT_ID_PREFIX + "AAAAzAAAAAAA")
        assert result.ok
        assert result.value == int.from_bytes(base64.b64decode("AAAAzAAAAAAA")[:8], "big")

    @pytest.mark.parametrize(
        "client_id",
        [
            "",
            "not-a-chat-id",
            "chatcmpl-",
            "chatcmpl-!!!!",
            "chatcmpl-AB",
        ],
    )
    def test_malformed_ids_fail_without_raising(self, client_id):
        result = decode_chat_id(client_id)
        assert isinstance(result, ChatIdDecodeResult)
        assert not result.ok
        assert result.value is None
        assert result.error

    def test_non_string_input(self):
        assert not decode_chat_id(None).ok  # type: ignore[arg-type]

    def test_zero_is_distinguishable_from_failure(self):
        zero = ChatIdDecodeResult(value=0)
        failed = ChatIdDecodeResult(error="bad")
        assert zero.ok
        assert not failed.ok
