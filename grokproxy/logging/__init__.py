"""Logging module for the gateway."""

from .recorder import (
    RequestLogRecorder,
    drain_pending_log_tasks,
    log_error_event,
    mask_headers,
)
from .setup import configure_from_settings, logger, setup_logging

__all__ = [
    "RequestLogRecorder",
    "configure_from_settings",
    "drain_pending_log_tasks",
    "log_error_event",
    "logger",
    "mask_headers",
    "setup_logging",
]
