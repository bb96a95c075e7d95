"""Application assembly: routes, CORS and error handling around a gateway."""

import logging
import socket
from contextlib import asynccontextmanager
from typing import Any, Mapping, Optional

from fastapi import FastAPI

from ..config_loader import resolve_server_address
from ..core.exceptions import ProxyError
from ..core.gateway import GrokGateway
from ..core.registry import set_gateway
from ..logging import drain_pending_log_tasks
from .cors import AllowOriginMiddleware, CorsSettings, build_preflight_handler
from .errors import proxy_error_handler
from .routes import chat_completions, list_models

logger = logging.getLogger("grokproxy")

CHAT_COMPLETIONS_PATH = "/v1/chat/completions"
MODELS_PATH = "/v1/models"


def create_app(
    config: Mapping[str, Any],
    gateway: Optional[GrokGateway] = None,
    title: str = "Grok Gateway",
) -> FastAPI:
    """Build the application around a gateway.

    Args:
        config: Parsed configuration mapping.
        gateway: Pre-built gateway (tests inject one with a fake transport);
                 built from ``config`` when omitted.
        title: FastAPI application title.

    Returns:
        The configured FastAPI application instance.
    """
    gateway = gateway or GrokGateway(config)
    set_gateway(gateway)
    logger.info(f"Grok gateway initialized with models: {list(gateway.models)}")

    host, port = resolve_server_address(config)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        logger.info("Grok gateway starting up...")
        logger.info("Configured bind address %s:%s", host, port)
        if host == "0.0.0.0":
            logger.info("Reachable on local network at http://%s:%s", socket.gethostname(), port)
        logger.info(f"Upstream: {gateway.settings.url}")
        logger.info(f"Rate limiting: {gateway.rate_limiter.snapshot()}")
        yield
        pending = await drain_pending_log_tasks()
        if pending:
            logger.info("Flushed %d pending log tasks", pending)
        logger.info("Grok gateway stopped")

    app = FastAPI(title=title, lifespan=lifespan)
    app.state.gateway = gateway

    cors = CorsSettings.from_config(config)
    app.add_middleware(AllowOriginMiddleware, allow_origin=cors.allow_origin)
    app.add_exception_handler(ProxyError, proxy_error_handler)

    preflight = build_preflight_handler(cors)
    app.post(CHAT_COMPLETIONS_PATH)(chat_completions)
    app.options(CHAT_COMPLETIONS_PATH)(preflight)
    app.get(MODELS_PATH)(list_models)
    app.options(MODELS_PATH)(preflight)

    logger.info("FastAPI application created")
    return app
