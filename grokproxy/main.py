"""Main FastAPI application for the Grok gateway.

Run with ``uvicorn grokproxy.main:app`` or the ``grokproxy`` console script.
"""

from .api.app import create_app
from .config_loader import load_config, resolve_server_address
from .logging import configure_from_settings

# Load configuration
config = load_config()

# Initialize logging
logger = configure_from_settings(config)

app = create_app(config)

# GROKPROXY_HOST / GROKPROXY_PORT take priority over proxy_settings.server
SERVER_HOST, SERVER_PORT = resolve_server_address(config)


def run() -> None:
    """Console entry point: serve ``app`` with uvicorn."""
    import uvicorn

    logger.info(f"Starting uvicorn on {SERVER_HOST}:{SERVER_PORT}")
    uvicorn.run(app, host=SERVER_HOST, port=SERVER_PORT)


__all__ = ["app", "config", "create_app", "run", "SERVER_HOST", "SERVER_PORT"]
