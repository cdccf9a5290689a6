"""Configuration module for the Canvas API client."""

from .constants import (
    # Rate limit
    DEFAULT_RATE_LIMIT_INTERVAL_MS,
    LOW_QUOTA_THRESHOLD,
    MAX_RATE_LIMIT_RETRIES,
    RATE_LIMIT_MARKER,
    RATE_LIMIT_REMAINING_HEADER,
    # Identity
    USER_AGENT,
)
from .settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
    "DEFAULT_RATE_LIMIT_INTERVAL_MS",
    "LOW_QUOTA_THRESHOLD",
    "MAX_RATE_LIMIT_RETRIES",
    "RATE_LIMIT_MARKER",
    "RATE_LIMIT_REMAINING_HEADER",
    "USER_AGENT",
]
