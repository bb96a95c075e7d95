"""Logging configuration for the gateway."""

import logging
import sys
from typing import Any, Mapping, Optional

from ..config_loader import config_section

LOGGER_NAME = "grokproxy"


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """Set up logging with proper handlers and formatters."""
    logger = logging.getLogger(LOGGER_NAME)
    resolved = logging.getLevelName((level or "INFO").upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO
    logger.setLevel(resolved)

    # Clear any existing handlers
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(resolved)
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # Propagate to the root logger so test capture still sees records
    logger.propagate = True

    return logger


def configure_from_settings(config: Mapping[str, Any]) -> logging.Logger:
    """Apply ``proxy_settings.logging.level`` from a loaded config."""
    return setup_logging(config_section(config, "proxy_settings", "logging").get("level"))


# Global logger instance
logger = setup_logging()
