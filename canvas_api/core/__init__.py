"""Core infrastructure for the Canvas API client."""

from .errors import (
    CanvasApiError,
    CanvasApiPaginationError,
    CanvasApiRateLimitError,
    CanvasApiRequestError,
    CanvasApiResponseError,
    CanvasApiTimeoutError,
    capture_caller_stack,
    decorate_error,
)
from .response import CanvasApiResponse
from .types import (
    QueryParams,
    RawResponse,
    RequestDescriptor,
    RequestOptions,
)

__all__ = [
    # Errors
    "CanvasApiError",
    "CanvasApiResponseError",
    "CanvasApiRequestError",
    "CanvasApiTimeoutError",
    "CanvasApiPaginationError",
    "CanvasApiRateLimitError",
    "capture_caller_stack",
    "decorate_error",
    # Types
    "CanvasApiResponse",
    "QueryParams",
    "RawResponse",
    "RequestDescriptor",
    "RequestOptions",
]
