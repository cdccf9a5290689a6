"""
HTTP transport for Canvas API requests.

Sends one fully built RequestDescriptor with aiohttp and buffers the whole
response, so the rate limiter can look at a 403 body and the caller still
gets it afterwards.

Usage:
    from canvas_api.transport import HTTPTransport

    async with HTTPTransport() as transport:
        raw = await transport.send(descriptor)
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

import aiohttp
from yarl import URL

from .core.types import HeaderValue, RawResponse, RequestDescriptor
from .observability.logger import get_logger

logger = get_logger(__name__)


def header_map(headers: Mapping[str, str]) -> dict[str, HeaderValue]:
    """
    Flatten response headers into a plain dict.

    Names are lower-cased; a header sent more than once becomes a list of
    its values in arrival order.
    """
    result: dict[str, HeaderValue] = {}
    getall = getattr(headers, "getall", None)

    for name in headers.keys():
        key = name.lower()
        if key in result:
            continue
        values = list(getall(name)) if getall is not None else [headers[name]]
        result[key] = values[0] if len(values) == 1 else values

    return result


class HTTPTransport:
    """aiohttp-based transport performing exactly one attempt per `send`."""

    def __init__(self, session: aiohttp.ClientSession | None = None):
        """
        Initialize the transport.

        Args:
            session: Existing session to use; the transport then leaves
                closing it to the caller
        """
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the session if this transport created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> HTTPTransport:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def send(self, request: RequestDescriptor) -> RawResponse:
        """
        Perform one HTTP exchange.

        The deadline in the descriptor bounds the whole exchange, including
        reading the body. A deadline that passed while the request was
        queued fails without touching the network.

        Raises:
            asyncio.TimeoutError: If the deadline passes
            aiohttp.ClientError: On connection and protocol failures
        """
        kwargs: dict[str, Any] = {}
        remaining = request.remaining_seconds()
        if remaining is not None:
            if remaining <= 0:
                raise asyncio.TimeoutError(
                    f"Deadline of {request.timeout_ms}ms passed before the request was sent"
                )
            kwargs["timeout"] = aiohttp.ClientTimeout(total=remaining)

        session = await self._get_session()
        logger.debug(f"{request.method} {request.url}")

        # The URL is already percent-encoded; send it as it is
        async with session.request(
            request.method,
            URL(request.url, encoded=True),
            headers=dict(request.headers),
            data=request.body,
            **kwargs,
        ) as resp:
            body = await resp.read()
            return RawResponse(
                status_code=resp.status,
                headers=header_map(resp.headers),
                body=body,
                charset=resp.charset,
            )
