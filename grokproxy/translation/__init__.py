"""Grok web chat API translation helpers.

Provides translation between the OpenAI Chat Completions format and the Grok
web chat API, enabling OpenAI clients to talk to Grok through the gateway.
"""

from .aggregator import GrokResponseAggregator, build_chat_completion, estimate_usage
from .chat_id import (
    ChatIdDecodeResult,
    chat_id_fingerprint,
    decode_chat_id,
    encode_chat_id,
)
from .events import NDJSONLineBuffer, UpstreamEvent, convert_tweet_links, parse_event_line
from .request_translator import (
    ChatRequest,
    ModelOptions,
    ModelSpec,
    UpstreamCredentials,
    build_chat_request,
    build_upstream_headers,
    build_upstream_payload,
    load_request_json,
    parse_authorization,
    parse_chat_request,
    resolve_model_options,
)
from .stream_adapter import (
    DONE_FRAME,
    GrokToChatStreamAdapter,
    adapt_grok_stream_to_chat,
)
from .thinking import MachineState, ThinkingPhase, close_span, transition

__all__ = [
    "ChatIdDecodeResult",
    "ChatRequest",
    "DONE_FRAME",
    "GrokResponseAggregator",
    "GrokToChatStreamAdapter",
    "MachineState",
    "ModelOptions",
    "ModelSpec",
    "NDJSONLineBuffer",
    "ThinkingPhase",
    "UpstreamCredentials",
    "UpstreamEvent",
    "adapt_grok_stream_to_chat",
    "build_chat_completion",
    "build_chat_request",
    "build_upstream_headers",
    "build_upstream_payload",
    "chat_id_fingerprint",
    "close_span",
    "convert_tweet_links",
    "decode_chat_id",
    "encode_chat_id",
    "estimate_usage",
    "load_request_json",
    "parse_authorization",
    "parse_chat_request",
    "parse_event_line",
    "resolve_model_options",
    "transition",
]
