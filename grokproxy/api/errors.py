"""Conversion of gateway errors into OpenAI-style error responses."""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from ..core.exceptions import ProxyError, RateLimitExceededError

logger = logging.getLogger("grokproxy")


def error_response(exc: ProxyError) -> JSONResponse:
    headers = exc.headers if isinstance(exc, RateLimitExceededError) else None
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_payload(),
        headers=headers,
    )


async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
    logger.warning(
        f"{request.method} {request.url.path} failed with {exc.status_code}: {exc.message}"
    )
    return error_response(exc)
