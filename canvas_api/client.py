"""
Canvas LMS REST API client.

Usage:
    from canvas_api import CanvasApi

    async with CanvasApi("https://canvas.example.com/api/v1", token) as canvas:
        me = await canvas.get("users/self")
        print(me.json["name"])

        async for course in canvas.list_items("accounts/1/courses", {"per_page": 100}):
            print(course["name"])

        await canvas.request("courses/1/enrollments", "POST", {"enrollment": {...}})

Rate Limits:
    - Every client shares one dispatcher that sends one request at a time
    - Throttled calls (403 "Rate Limit Exceeded") are retried up to 5 times
    - Pass disable_throttling=True to send requests directly and in parallel
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator
from typing import Any

import aiohttp

from .config.constants import SIS_IMPORT_ENDPOINT
from .config.settings import Settings, get_settings
from .core.errors import (
    CanvasApiError,
    CanvasApiRequestError,
    CanvasApiResponseError,
    CanvasApiTimeoutError,
    capture_caller_stack,
    decorate_error,
)
from .core.response import CanvasApiResponse
from .core.types import QueryParams, RawResponse, RequestDescriptor, RequestOptions
from .encoding import build_headers, build_url, encode_body, normalize_base_url
from .observability.logger import enable_debug_logging, get_logger, log_context
from .pagination import iter_items, iter_pages
from .rate_limit.dispatcher import DirectDispatcher, Dispatcher, get_shared_dispatcher
from .sequence import LazySequence
from .transport import HTTPTransport

logger = get_logger(__name__)


class CanvasApi:
    """Client for one Canvas instance and one access token."""

    def __init__(
        self,
        api_url: str,
        token: str,
        *,
        timeout: int | None = None,
        rate_limit_interval_ms: int | None = None,
        disable_throttling: bool = False,
        dispatcher: Dispatcher | None = None,
        transport: HTTPTransport | None = None,
    ):
        """
        Initialize the Canvas API client.

        Args:
            api_url: Base URL of the API, e.g. "https://canvas.example.com/api/v1"
            token: Canvas access token
            timeout: Default timeout per request in milliseconds
            rate_limit_interval_ms: Rate-limit window, used if this client
                creates the shared dispatcher
            disable_throttling: Bypass the shared dispatcher entirely
            dispatcher: Explicit dispatcher (takes precedence over the above)
            transport: Explicit transport; closing it is left to the caller
        """
        self.api_url = normalize_base_url(api_url)
        self.token = token
        self.options = RequestOptions(timeout=timeout)

        if dispatcher is not None:
            self._dispatcher: Dispatcher = dispatcher
        elif disable_throttling:
            self._dispatcher = DirectDispatcher()
        else:
            self._dispatcher = get_shared_dispatcher(rate_limit_interval_ms)

        self._owns_transport = transport is None
        self._transport = transport if transport is not None else HTTPTransport()

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **overrides: Any) -> CanvasApi:
        """
        Build a client from CANVAS_API_* settings.

        Args:
            settings: Settings to use (defaults to get_settings())
            **overrides: Constructor arguments that win over the settings

        Raises:
            ValueError: If no API URL is configured
        """
        settings = settings or get_settings()
        if settings.canvas_api_debug:
            enable_debug_logging()

        kwargs: dict[str, Any] = {
            "api_url": settings.canvas_api_url,
            "token": settings.canvas_api_token,
            "timeout": settings.canvas_api_timeout_ms,
            "rate_limit_interval_ms": settings.canvas_api_rate_limit_interval_ms,
            "disable_throttling": settings.canvas_api_disable_throttling,
        }
        kwargs.update(overrides)

        if not kwargs["api_url"]:
            raise ValueError("Canvas API URL not configured. Set CANVAS_API_URL.")
        if not kwargs["token"]:
            logger.warning("Canvas API token not configured. Set CANVAS_API_TOKEN.")
            kwargs["token"] = ""

        return cls(kwargs.pop("api_url"), kwargs.pop("token"), **kwargs)

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    async def close(self) -> None:
        """Close the transport if this client created it."""
        if self._owns_transport:
            await self._transport.close()

    async def __aenter__(self) -> CanvasApi:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # ==================== Request pipeline ====================

    def _timeout_ms(self, options: RequestOptions | None) -> int | None:
        if options is not None and options.timeout is not None:
            return options.timeout
        return self.options.timeout

    async def _request(
        self,
        caller_stack: str | None,
        endpoint: str,
        method: str,
        query_params: QueryParams | None = None,
        body: Any = None,
        options: RequestOptions | None = None,
    ) -> CanvasApiResponse[Any]:
        """
        Build, dispatch and interpret one request.

        Raises:
            CanvasApiResponseError: Canvas answered with status >= 400
            CanvasApiTimeoutError: The deadline passed before an answer
            CanvasApiRequestError: Anything else before a status was obtained
        """
        timeout_ms = self._timeout_ms(options)
        deadline = time.monotonic() + timeout_ms / 1000 if timeout_ms is not None else None

        try:
            payload, content_type = encode_body(body)
        except CanvasApiRequestError as e:
            raise decorate_error(e, caller_stack)

        descriptor = RequestDescriptor(
            method=method,
            url=build_url(self.api_url, endpoint, query_params),
            headers=build_headers(self.token, content_type),
            body=payload,
            deadline=deadline,
            timeout_ms=timeout_ms,
        )

        with log_context(method=method, endpoint=endpoint):
            raw = await self._dispatch(descriptor, caller_stack)

            response = CanvasApiResponse.from_raw(raw)
            if response.status_code >= 400:
                logger.debug(f"Canvas answered {response.status_code}")
                raise decorate_error(CanvasApiResponseError(response), caller_stack)

        return response

    async def _dispatch(self, descriptor: RequestDescriptor, caller_stack: str | None) -> RawResponse:
        try:
            return await self._dispatcher.submit(lambda: self._transport.send(descriptor))
        except CanvasApiError as e:
            raise decorate_error(e, caller_stack)
        except asyncio.TimeoutError as e:
            logger.warning(f"Canvas API request timed out after {descriptor.timeout_ms}ms")
            raise decorate_error(
                CanvasApiTimeoutError(timeout_ms=descriptor.timeout_ms), caller_stack
            ) from e
        except Exception as e:
            logger.warning(f"Canvas API request failed: {e!r}")
            raise decorate_error(CanvasApiRequestError(str(e)), caller_stack) from e

    # ==================== Public API ====================

    async def get(
        self,
        endpoint: str,
        query_params: QueryParams | None = None,
        options: RequestOptions | None = None,
    ) -> CanvasApiResponse[Any]:
        """
        Perform a GET request.

        Args:
            endpoint: Path relative to the base URL, or an absolute URL
            query_params: Query parameters; sequences use the key[]= format
            options: Per-call options

        Returns:
            The parsed response (status < 400)
        """
        caller_stack = capture_caller_stack()
        return await self._request(caller_stack, endpoint, "GET", query_params, None, options)

    def list_pages(
        self,
        endpoint: str,
        query_params: QueryParams | None = None,
        options: RequestOptions | None = None,
    ) -> LazySequence[CanvasApiResponse[Any]]:
        """
        Lazily iterate over every page of a list endpoint.

        Nothing is requested until the first page is pulled. The query
        parameters are sent with the first request only.
        """
        caller_stack = capture_caller_stack()
        return LazySequence(self._pages(endpoint, query_params, options, caller_stack))

    def list_items(
        self,
        endpoint: str,
        query_params: QueryParams | None = None,
        options: RequestOptions | None = None,
    ) -> LazySequence[Any]:
        """
        Lazily iterate over the elements of every page of a list endpoint.

        Iteration fails with CanvasApiPaginationError on the first page
        whose body is not a JSON array.
        """
        caller_stack = capture_caller_stack()
        pages = self._pages(endpoint, query_params, options, caller_stack)
        return LazySequence(iter_items(pages, caller_stack))

    def _pages(
        self,
        endpoint: str,
        query_params: QueryParams | None,
        options: RequestOptions | None,
        caller_stack: str | None,
    ) -> AsyncIterator[CanvasApiResponse[Any]]:
        async def fetch_page(url: str, params: QueryParams | None) -> CanvasApiResponse[Any]:
            return await self._request(caller_stack, url, "GET", params, None, options)

        return iter_pages(fetch_page, endpoint, query_params)

    async def request(
        self,
        endpoint: str,
        method: str,
        body: Any = None,
        options: RequestOptions | None = None,
    ) -> CanvasApiResponse[Any]:
        """
        Perform a non-GET request (POST, PUT, PATCH, DELETE...).

        Args:
            endpoint: Path relative to the base URL
            method: HTTP method
            body: JSON-serializable value, str, bytes, aiohttp.FormData or None
            options: Per-call options

        Raises:
            TypeError: If method is GET
        """
        caller_stack = capture_caller_stack()
        method = method.upper()

        if method == "GET":
            raise decorate_error(
                TypeError(
                    "HTTP GET not allowed for this 'request' method. "
                    "Use the methods 'get', 'list_pages' or 'list_items' instead"
                ),
                caller_stack,
            )

        return await self._request(caller_stack, endpoint, method, None, body, options)

    async def sis_import(
        self,
        attachment: Any,
        filename: str = "sis_import.csv",
        content_type: str = "text/csv",
    ) -> CanvasApiResponse[Any]:
        """
        Start a SIS import in account 1.

        Args:
            attachment: File contents (bytes, str or an open binary file)
            filename: File name reported in the multipart form
            content_type: MIME type of the attachment
        """
        caller_stack = capture_caller_stack()

        form = aiohttp.FormData()
        form.add_field("attachment", attachment, filename=filename, content_type=content_type)

        return await self._request(caller_stack, SIS_IMPORT_ENDPOINT, "POST", None, form)
