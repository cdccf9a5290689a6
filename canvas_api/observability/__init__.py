"""Observability infrastructure for the Canvas API client.

Provides structured logging and dispatcher metrics.
"""

from .logger import LogContext, enable_debug_logging, get_logger, log_context, setup_logging
from .metrics import DispatcherMetrics

__all__ = [
    "LogContext",
    "get_logger",
    "log_context",
    "setup_logging",
    "enable_debug_logging",
    "DispatcherMetrics",
]
