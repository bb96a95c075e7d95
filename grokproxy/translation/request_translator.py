"""Translation of OpenAI-style chat requests into Grok upstream requests."""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from ..core.exceptions import AuthenticationError, InvalidRequestError
from ..types.chat import ROLE_ASSISTANT, ROLE_USER, Message
from ..types.grok import SENDER_ASSISTANT, SENDER_USER, GrokRequest

logger = logging.getLogger("grokproxy")

DEFAULT_MODEL_OPTION = "grok-3"

ROLE_TO_SENDER = {
    ROLE_USER: SENDER_USER,
    ROLE_ASSISTANT: SENDER_ASSISTANT,
}

AUTH_FORMAT_MESSAGE = (
    "Invalid Authorization header format. Expected 'Bearer $AUTH_BEARER,$AUTH_TOKEN'"
)


@dataclass(frozen=True)
class UpstreamCredentials:
    """Credential pair forwarded to the upstream."""

    bearer: str
    token: str


@dataclass(frozen=True)
class ModelOptions:
    """Upstream model selection derived from the client model name."""

    model_option_id: str = DEFAULT_MODEL_OPTION
    is_reasoning: bool = False
    is_deepsearch: bool = False


@dataclass(frozen=True)
class ModelSpec:
    """One entry of the configured model table."""

    id: str
    model_option_id: str = DEFAULT_MODEL_OPTION
    reasoning: bool = False
    deepsearch: bool = False
    owned_by: str = "grokproxy"
    created: int = 0

    def options(self) -> ModelOptions:
        return ModelOptions(
            model_option_id=self.model_option_id,
            is_reasoning=self.reasoning,
            is_deepsearch=self.deepsearch and not self.reasoning,
        )


@dataclass
class ChatRequest:
    """A validated client chat completion request."""

    model: str
    messages: list[Message]
    stream: bool = False
    conversation_id: Optional[str] = None

    def resolve_conversation_id(self) -> str:
        """Client-supplied id, or a fresh epoch-millisecond key."""
        if self.conversation_id:
            return self.conversation_id
        return str(int(time.time() * 1000))


def parse_authorization(header: Optional[str]) -> UpstreamCredentials:
    """Split ``Bearer <bearer>,<token>`` into the upstream credential pair.

    Raises:
        AuthenticationError: the header is missing.
        InvalidRequestError: the header is not a bearer pair.
    """
    if not header or not header.strip():
        raise AuthenticationError("Authorization header is missing")
    scheme, _, value = header.strip().partition(" ")
    if scheme.lower() != "bearer" or not value:
        raise InvalidRequestError(AUTH_FORMAT_MESSAGE, code="invalid_authorization")
    parts = [part.strip() for part in value.split(",")]
    if len(parts) != 2 or not all(parts):
        raise InvalidRequestError(AUTH_FORMAT_MESSAGE, code="invalid_authorization")
    return UpstreamCredentials(bearer=parts[0], token=parts[1])


def _flatten_content(content: Any) -> Optional[str]:
    if isinstance(content, str):
        return content
    if content is None:
        return ""
    if isinstance(content, list):
        texts: list[str] = []
        for part in content:
            if isinstance(part, str):
                texts.append(part)
            elif isinstance(part, Mapping) and part.get("type") == "text":
                text = part.get("text")
                if isinstance(text, str):
                    texts.append(text)
        return "".join(texts)
    return None


def parse_messages(raw_messages: Any) -> list[Message]:
    """Validate the client ``messages`` array."""
    if raw_messages is None:
        raise InvalidRequestError(
            "Invalid request body. Expected 'messages' in request body",
            code="missing_parameter",
        )
    if not isinstance(raw_messages, list):
        raise InvalidRequestError("'messages' must be an array", code="invalid_parameter")
    if not raw_messages:
        raise InvalidRequestError("'messages' cannot be empty", code="missing_parameter")

    messages: list[Message] = []
    for index, raw in enumerate(raw_messages):
        if not isinstance(raw, Mapping):
            raise InvalidRequestError(
                f"messages[{index}] must be an object", code="invalid_parameter"
            )
        role = raw.get("role")
        if not isinstance(role, str) or not role.strip():
            raise InvalidRequestError(
                f"messages[{index}].role must be a non-empty string",
                code="invalid_parameter",
            )
        content = _flatten_content(raw.get("content"))
        if content is None:
            raise InvalidRequestError(
                f"messages[{index}].content must be a string or an array of text parts",
                code="invalid_parameter",
            )
        messages.append(Message(role=role.strip().lower(), content=content))
    return messages


def load_request_json(body: bytes) -> Mapping[str, Any]:
    """Decode the raw request body into a JSON object."""
    try:
        payload = json.loads(body or b"")
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        logger.error(f"Failed to parse request body: {exc}")
        raise InvalidRequestError("Invalid request body", code="invalid_json") from exc
    if not isinstance(payload, Mapping):
        raise InvalidRequestError(
            "Request body must be a JSON object", code="invalid_json_shape"
        )
    return payload


def parse_chat_request(body: bytes, default_model: str = DEFAULT_MODEL_OPTION) -> ChatRequest:
    """Parse and validate a raw chat completion request body."""
    return build_chat_request(load_request_json(body), default_model)


def build_chat_request(
    payload: Mapping[str, Any], default_model: str = DEFAULT_MODEL_OPTION
) -> ChatRequest:
    """Validate a decoded request body."""
    messages = parse_messages(payload.get("messages"))

    model = payload.get("model")
    if not isinstance(model, str) or not model.strip():
        model = default_model

    conversation_id = payload.get("conversation_id")
    if conversation_id is not None and not isinstance(conversation_id, (str, int)):
        raise InvalidRequestError(
            "'conversation_id' must be a string", code="invalid_parameter"
        )

    return ChatRequest(
        model=model.strip(),
        messages=messages,
        stream=bool(payload.get("stream")),
        conversation_id=str(conversation_id) if conversation_id not in (None, "") else None,
    )


def resolve_model_options(model: str, models: Mapping[str, ModelSpec]) -> ModelOptions:
    """Map a client model name to upstream options; unknown names use the default."""
    spec = models.get(model)
    if spec is None:
        logger.info(f"Unknown model '{model}', using default model options")
        return ModelOptions()
    return spec.options()


def build_upstream_payload(history: Iterable[Message], options: ModelOptions) -> GrokRequest:
    """Replay the whole conversation into the upstream request body."""
    return {
        "responses": [
            {
                "message": message.content,
                "sender": ROLE_TO_SENDER.get(message.role, SENDER_USER),
                "fileAttachments": [],
            }
            for message in history
        ],
        "grokModelOptionId": options.model_option_id,
        "isDeepsearch": options.is_deepsearch,
        "isReasoning": options.is_reasoning,
    }


def build_upstream_headers(credentials: UpstreamCredentials) -> dict[str, str]:
    return {
        "authorization": f"Bearer {credentials.bearer}",
        "content-type": "application/json; charset=UTF-8",
        "accept-encoding": "identity",
        "cookie": f"auth_token={credentials.token}",
    }
