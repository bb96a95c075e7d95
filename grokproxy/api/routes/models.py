"""Models listing endpoint - OpenAI compatible."""

import logging

from ...core.registry import get_gateway

logger = logging.getLogger("grokproxy")


async def list_models() -> dict:
    """List available models in OpenAI API format.

    GET /v1/models

    Returns:
        A dictionary containing the list of configured models.
    """
    logger.info("Received models list request")
    return get_gateway().list_models()
