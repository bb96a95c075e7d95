"""OpenAI-compatible chat completions endpoint."""

import logging
from typing import Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse, StreamingResponse

from ...core.exceptions import ProxyError
from ...core.registry import get_gateway
from ...logging import RequestLogRecorder
from ...rate_limit import client_identifier
from ...translation.request_translator import (
    build_chat_request,
    load_request_json,
    parse_authorization,
)

logger = logging.getLogger("grokproxy")

CONVERSATION_HEADER = "X-Conversation-Id"

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _reject(
    request: Request, body: bytes, exc: ProxyError, log_to_disk: bool, model: str = "unknown"
) -> ProxyError:
    request_log = RequestLogRecorder(model, False, request.url.path, log_to_disk=log_to_disk)
    request_log.record_request(request.method, request.url.query, request.headers, body)
    request_log.record_error(exc.message, error_type=exc.error_type)
    request_log.finalize("rejected")
    return exc


async def chat_completions(request: Request) -> Response:
    """Chat completions endpoint - OpenAI compatible.

    POST /v1/chat/completions

    Checks run in this order, each failing before any upstream call:
    JSON body, Authorization header, messages, rate limit.
    """
    logger.info("Received chat completions request")
    gateway = get_gateway()
    body = await request.body()

    try:
        payload = load_request_json(body)
        credentials = parse_authorization(request.headers.get("authorization"))
        chat_request = build_chat_request(payload, gateway.settings.default_model)
        client_host: Optional[str] = request.client.host if request.client else None
        gateway.check_rate_limit(client_identifier(credentials.bearer, client_host))
    except ProxyError as exc:
        logger.error(f"Rejected chat completions request: {exc.message}")
        raise _reject(request, body, exc, gateway.log_to_disk)

    request_log = RequestLogRecorder(
        chat_request.model,
        chat_request.stream,
        request.url.path,
        log_to_disk=gateway.log_to_disk,
    )
    request_log.record_request(request.method, request.url.query, request.headers, body)

    call = await gateway.prepare_call(chat_request, credentials)
    request_log.record_conversation(call.conversation_id, call.history_length)
    logger.info(
        f"Processing request for model {chat_request.model}, "
        f"stream={chat_request.stream}, conversation={call.conversation_id}"
    )
    headers = {CONVERSATION_HEADER: call.conversation_id}

    if chat_request.stream:
        return StreamingResponse(
            gateway.stream_chat_completion(
                call,
                disconnect_checker=request.is_disconnected,
                request_log=request_log,
            ),
            media_type="text/event-stream",
            headers={**STREAM_HEADERS, **headers},
        )

    try:
        completion = await gateway.complete(call, request_log=request_log)
    except ProxyError as exc:
        logger.error(f"Error processing request for model {chat_request.model}: {exc.message}")
        request_log.record_error(exc.message)
        request_log.finalize("error")
        raise
    except Exception as exc:
        logger.exception(f"Unexpected error for model {chat_request.model}")
        request_log.record_error(str(exc))
        request_log.finalize("error")
        raise ProxyError(f"Unexpected error: {exc}") from exc

    request_log.finalize("success")
    logger.info(f"Request for model {chat_request.model} completed successfully")
    return JSONResponse(completion, headers=headers)

