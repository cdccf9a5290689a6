"""Async client for the Canvas LMS REST API with a shared rate limiter."""

from .client import CanvasApi
from .core import (
    CanvasApiError,
    CanvasApiPaginationError,
    CanvasApiRateLimitError,
    CanvasApiRequestError,
    CanvasApiResponse,
    CanvasApiResponseError,
    CanvasApiTimeoutError,
    RequestOptions,
)
from .encoding import stringify_query_parameters
from .pagination import get_next_url
from .rate_limit import (
    DirectDispatcher,
    RateLimitedDispatcher,
    get_shared_dispatcher,
    reset_shared_dispatcher,
)
from .sequence import LazySequence
from .transport import HTTPTransport

__version__ = "0.1.0"

__all__ = [
    "CanvasApi",
    "RequestOptions",
    "CanvasApiResponse",
    "LazySequence",
    # Errors
    "CanvasApiError",
    "CanvasApiResponseError",
    "CanvasApiRequestError",
    "CanvasApiTimeoutError",
    "CanvasApiPaginationError",
    "CanvasApiRateLimitError",
    # Plumbing
    "HTTPTransport",
    "RateLimitedDispatcher",
    "DirectDispatcher",
    "get_shared_dispatcher",
    "reset_shared_dispatcher",
    "get_next_url",
    "stringify_query_parameters",
]
