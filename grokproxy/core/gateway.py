"""Gateway between OpenAI-style chat clients and the Grok web chat API."""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping, Optional

import httpx

from ..config_loader import config_section
from ..conversations import ConversationStore, InMemoryConversationStore
from ..logging.recorder import RequestLogRecorder
from ..rate_limit import RateLimiter, RateLimitResult
from ..translation.aggregator import (
    GrokResponseAggregator,
    build_chat_completion,
    estimate_usage,
)
from ..translation.chat_id import encode_chat_id
from ..translation.events import DEFAULT_TWEET_LINK_BASE
from ..translation.request_translator import (
    DEFAULT_MODEL_OPTION,
    ChatRequest,
    ModelOptions,
    ModelSpec,
    UpstreamCredentials,
    build_upstream_headers,
    build_upstream_payload,
    resolve_model_options,
)
from ..translation.stream_adapter import (
    DONE_FRAME,
    GrokToChatStreamAdapter,
    build_error_body,
    format_sse_data,
    resolve_created,
    resolve_upstream_id,
)
from ..types.chat import ROLE_ASSISTANT, ChatCompletionResponse, Message
from ..types.grok import GrokRequest
from .exceptions import ConfigurationError, RateLimitExceededError, UpstreamError
from .retry import (
    DEFAULT_ATTEMPT_TIMEOUT,
    DEFAULT_BACKOFF_FACTOR,
    DEFAULT_MAX_ATTEMPTS,
    RETRYABLE_STATUSES,
    fetch_with_retry,
)

logger = logging.getLogger("grokproxy")

DEFAULT_UPSTREAM_URL = "https://grok.x.com/2/grok/add_response.json"
DEFAULT_MODEL_CREATED = 1145141919
DEFAULT_MODEL_OWNER = "yilongma"

DEFAULT_MODELS = (
    {"id": "grok-3"},
    {"id": "grok-3t", "reasoning": True},
    {"id": "grok-3ds", "deepsearch": True},
)


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


@dataclass
class UpstreamSettings:
    """The ``upstream`` config section."""

    url: str = DEFAULT_UPSTREAM_URL
    default_model: str = DEFAULT_MODEL_OPTION
    timeout: float = DEFAULT_ATTEMPT_TIMEOUT
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR
    retryable_statuses: frozenset = RETRYABLE_STATUSES
    tweet_link_base: str = DEFAULT_TWEET_LINK_BASE

    @classmethod
    def from_config(cls, raw: Optional[Mapping[str, Any]]) -> "UpstreamSettings":
        cfg = raw or {}
        retry_cfg = cfg.get("retry") or {}
        try:
            return cls(
                url=str(cfg.get("url") or DEFAULT_UPSTREAM_URL),
                default_model=str(cfg.get("default_model") or DEFAULT_MODEL_OPTION),
                timeout=float(cfg.get("timeout", DEFAULT_ATTEMPT_TIMEOUT)),
                max_attempts=max(1, int(retry_cfg.get("max_attempts", DEFAULT_MAX_ATTEMPTS))),
                backoff_factor=float(retry_cfg.get("backoff_factor", DEFAULT_BACKOFF_FACTOR)),
                retryable_statuses=frozenset(
                    int(s) for s in retry_cfg.get("retryable_statuses", RETRYABLE_STATUSES)
                ),
                tweet_link_base=str(cfg.get("tweet_link_base") or DEFAULT_TWEET_LINK_BASE),
            )
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid upstream settings: {exc}") from exc


def parse_model_table(raw: Any) -> dict[str, ModelSpec]:
    """Build the model table from the ``models`` config section.

    Accepts either a list of ``{id, ...}`` entries or a mapping of id to
    options. An empty or missing section yields the three default models.
    """
    if not raw:
        raw = list(DEFAULT_MODELS)
    if isinstance(raw, Mapping):
        raw = [{"id": key, **(value or {})} for key, value in raw.items()]
    if not isinstance(raw, list):
        raise ConfigurationError("'models' must be a list or a mapping")

    models: dict[str, ModelSpec] = {}
    for entry in raw:
        if not isinstance(entry, Mapping) or not entry.get("id"):
            logger.warning(f"Skipping model entry without id: {entry!r}")
            continue
        model_id = str(entry["id"])
        reasoning = _parse_bool(entry.get("reasoning", False))
        deepsearch = _parse_bool(entry.get("deepsearch", False))
        if reasoning and deepsearch:
            logger.warning(f"Model {model_id} sets both reasoning and deepsearch; using reasoning")
            deepsearch = False
        models[model_id] = ModelSpec(
            id=model_id,
            model_option_id=str(entry.get("model_option_id") or DEFAULT_MODEL_OPTION),
            reasoning=reasoning,
            deepsearch=deepsearch,
            owned_by=str(entry.get("owned_by") or DEFAULT_MODEL_OWNER),
            created=int(entry.get("created", DEFAULT_MODEL_CREATED)),
        )
    if not models:
        raise ConfigurationError("No models found in config")
    return models


def build_conversation_store(raw: Optional[Mapping[str, Any]]) -> ConversationStore:
    cfg = raw or {}
    ttl = cfg.get("ttl_seconds")
    return InMemoryConversationStore(
        max_conversations=int(cfg.get("max_conversations", 1000)),
        ttl_seconds=float(ttl) if ttl is not None else None,
    )


@dataclass
class UpstreamCall:
    """Everything needed to issue one upstream request for a client turn."""

    conversation_id: str
    model: str
    options: ModelOptions
    payload: GrokRequest
    headers: dict[str, str]
    history_length: int = 0
    body: bytes = field(init=False)

    def __post_init__(self) -> None:
        self.body = json.dumps(self.payload, ensure_ascii=False).encode("utf-8")

    @property
    def upstream_model(self) -> str:
        return self.options.model_option_id


def stream_error_frames(message: str) -> list[bytes]:
    """Error frame plus sentinel for failures before any adapter exists."""
    return [format_sse_data(build_error_body(message)), DONE_FRAME]


def _describe_error(exc: Exception) -> str:
    if isinstance(exc, UpstreamError):
        return exc.message
    return str(exc) or exc.__class__.__name__


class GrokGateway:
    """Translates client chat turns into Grok calls and back.

    The gateway owns the conversation store, the model table and the rate
    limiter. Each upstream call gets its own ``httpx.AsyncClient`` which lives
    exactly as long as the call (or the stream generator) does.
    """

    def __init__(
        self,
        config: Mapping[str, Any],
        store: Optional[ConversationStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        rate_limiter: Optional[RateLimiter] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.settings = UpstreamSettings.from_config(config.get("upstream"))
        self.models = parse_model_table(config.get("models"))
        self.store = store if store is not None else build_conversation_store(
            config.get("conversations")
        )
        self.rate_limiter = rate_limiter or RateLimiter.from_config(config.get("rate_limit"))

        logging_cfg = config_section(config, "proxy_settings", "logging")
        self.log_to_disk = _parse_bool(logging_cfg.get("log_to_disk", False))

        self._transport = transport
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Request preparation
    # ------------------------------------------------------------------

    def check_rate_limit(self, identifier: str) -> RateLimitResult:
        """Count one request against ``identifier``.

        Raises:
            RateLimitExceededError: the client's window is exhausted.
        """
        result = self.rate_limiter.check(identifier)
        if not result.success:
            logger.warning(f"Rate limit exceeded for {identifier}")
            raise RateLimitExceededError(
                "Too many requests. Please try again later.", headers=result.headers()
            )
        return result

    async def prepare_call(
        self, chat_request: ChatRequest, credentials: UpstreamCredentials
    ) -> UpstreamCall:
        """Record the client's messages and build the upstream request."""
        conversation_id = chat_request.resolve_conversation_id()
        history = await self.store.append_and_snapshot(conversation_id, chat_request.messages)
        options = resolve_model_options(chat_request.model, self.models)
        logger.debug(
            f"Conversation {conversation_id}: {len(history)} messages, "
            f"model={chat_request.model} -> {options}"
        )
        return UpstreamCall(
            conversation_id=conversation_id,
            model=chat_request.model,
            options=options,
            payload=build_upstream_payload(history, options),
            headers=build_upstream_headers(credentials),
            history_length=len(history),
        )

    def list_models(self) -> dict[str, Any]:
        return {
            "object": "list",
            "data": [
                {
                    "id": spec.id,
                    "object": "model",
                    "created": spec.created,
                    "owned_by": spec.owned_by,
                }
                for spec in self.models.values()
            ],
        }

    # ------------------------------------------------------------------
    # Upstream calls
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        timeout = self.settings.timeout
        return httpx.AsyncClient(
            transport=self._transport,
            timeout=httpx.Timeout(connect=timeout, read=None, write=timeout, pool=timeout),
        )

    async def _open_upstream(
        self,
        client: httpx.AsyncClient,
        call: UpstreamCall,
        request_log: Optional[RequestLogRecorder] = None,
    ) -> httpx.Response:
        """Send the upstream request and return the open, successful response.

        Raises:
            UpstreamRetryExhaustedError: retryable failures on every attempt.
            UpstreamError: a non-retryable error status.
        """
        def on_attempt(attempt: int) -> None:
            if request_log is not None:
                request_log.record_upstream_attempt(attempt, self.settings.url)

        response = await fetch_with_retry(
            client,
            "POST",
            self.settings.url,
            headers=call.headers,
            content=call.body,
            max_attempts=self.settings.max_attempts,
            backoff_factor=self.settings.backoff_factor,
            retryable_statuses=self.settings.retryable_statuses,
            timeout=self.settings.timeout,
            sleep=self._sleep,
            on_attempt=on_attempt,
        )
        if response.is_success:
            if request_log is not None:
                request_log.record_stream_headers(response.status_code, response.headers)
            return response

        try:
            body = await response.aread()
        finally:
            await response.aclose()
        if request_log is not None:
            request_log.record_upstream_response(response.status_code, response.headers, body)
        text = body.decode("utf-8", errors="replace")
        logger.error(f"Grok API returned {response.status_code}")
        raise UpstreamError(
            f"Grok API returned {response.status_code}: {text}",
            upstream_status=response.status_code,
        )

    async def _commit_reply(self, call: UpstreamCall, content: str) -> None:
        await self.store.append(
            call.conversation_id, Message(role=ROLE_ASSISTANT, content=content)
        )
        logger.info(
            f"Conversation {call.conversation_id}: stored assistant reply "
            f"({len(content)} chars)"
        )

    async def stream_chat_completion(
        self,
        call: UpstreamCall,
        disconnect_checker: Optional[Callable[[], Awaitable[bool]]] = None,
        request_log: Optional[RequestLogRecorder] = None,
    ) -> AsyncIterator[bytes]:
        """Stream one client turn as OpenAI chat SSE frames.

        The generator owns the HTTP client and the upstream response for the
        whole session and releases both when it ends, fails, is closed early
        or notices the client has gone. The output always ends with exactly
        one ``[DONE]`` frame unless the client disconnected.
        """
        adapter: Optional[GrokToChatStreamAdapter] = None
        response: Optional[httpx.Response] = None
        disconnected = False

        async with self._client() as client:
            try:
                response = await self._open_upstream(client, call, request_log)
                adapter = GrokToChatStreamAdapter.from_upstream_headers(
                    response.headers,
                    model=call.upstream_model,
                    tweet_link_base=self.settings.tweet_link_base,
                )
                async for chunk in response.aiter_bytes():
                    if request_log is not None:
                        request_log.record_stream_chunk(chunk)
                    for frame in adapter.feed(chunk):
                        yield frame
                    if adapter.completed:
                        logger.debug("Upstream soft-stop received; closing upstream")
                        break
                    if disconnect_checker is not None and await disconnect_checker():
                        disconnected = True
                        break

                if disconnected:
                    logger.info(
                        f"Client disconnected from conversation {call.conversation_id}; "
                        f"upstream released"
                    )
                    if request_log is not None:
                        request_log.record_error("client disconnected", error_type="client_disconnect")
                        request_log.finalize("cancelled")
                    return

                # finish() may still flush a trailing line carrying content
                frames = adapter.finish()
                await self._commit_reply(call, adapter.content)
                for frame in frames:
                    yield frame
                if request_log is not None:
                    request_log.finalize("success")
            except asyncio.CancelledError:
                logger.info(f"Stream for conversation {call.conversation_id} cancelled by client")
                if request_log is not None:
                    request_log.record_error("stream cancelled by client", error_type="client_disconnect")
                    request_log.finalize("cancelled")
                raise
            except Exception as exc:
                message = _describe_error(exc)
                logger.error(f"Error during streaming from Grok: {message}")
                if request_log is not None:
                    request_log.record_error(f"streaming error: {message}")
                    request_log.finalize("error")
                frames = adapter.error_frames(message) if adapter else stream_error_frames(message)
                for frame in frames:
                    yield frame
            finally:
                if response is not None:
                    await response.aclose()

    async def complete(
        self,
        call: UpstreamCall,
        request_log: Optional[RequestLogRecorder] = None,
    ) -> ChatCompletionResponse:
        """Run one client turn to completion and return a chat.completion object.

        Raises:
            UpstreamError: the upstream could not be reached or refused the call.
        """
        aggregator = GrokResponseAggregator(tweet_link_base=self.settings.tweet_link_base)
        async with self._client() as client:
            response = await self._open_upstream(client, call, request_log)
            try:
                async for chunk in response.aiter_bytes():
                    if request_log is not None:
                        request_log.record_stream_chunk(chunk)
                    aggregator.feed(chunk)
                    if aggregator.completed:
                        break
            except httpx.HTTPError as exc:
                raise UpstreamError(
                    f"{exc.__class__.__name__}: {exc}", upstream_status=response.status_code
                ) from exc
            finally:
                await response.aclose()

        content = aggregator.finish()
        if not aggregator.produced_content:
            logger.warning(f"Grok produced no content for conversation {call.conversation_id}")
        await self._commit_reply(call, content)

        usage = estimate_usage(call.payload, content)
        if request_log is not None:
            request_log.record_usage_stats(usage)
        return build_chat_completion(
            completion_id=encode_chat_id(resolve_upstream_id(response.headers)),
            model=call.upstream_model,
            created=resolve_created(response.headers.get("date")),
            content=content,
            usage=usage,
        )
