"""Tests for canvas_api/transport.py.

- header_map(): Direct testing
- HTTPTransport.send(): Mock aiohttp session and responses
"""

import asyncio
import time
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest
from multidict import CIMultiDict, CIMultiDictProxy
from yarl import URL

from canvas_api.core.types import RequestDescriptor
from canvas_api.transport import HTTPTransport, header_map


def mock_aiohttp_response(status: int = 200, body: bytes = b"", headers=None, charset="utf-8"):
    mock_response = AsyncMock()
    mock_response.status = status
    mock_response.charset = charset
    mock_response.headers = CIMultiDictProxy(CIMultiDict(headers or []))
    mock_response.read = AsyncMock(return_value=body)
    mock_response.__aenter__ = AsyncMock(return_value=mock_response)
    mock_response.__aexit__ = AsyncMock(return_value=None)
    return mock_response


def mock_session_returning(mock_response) -> MagicMock:
    mock_session = MagicMock()
    mock_session.request = MagicMock(return_value=mock_response)
    mock_session.closed = False
    return mock_session


class TestHeaderMap:
    """Tests for header_map()."""

    def test_lower_cases_names(self):
        """Header names are lower-cased."""
        headers = CIMultiDict([("Content-Type", "application/json"), ("X-Request-Cost", "0.5")])
        assert header_map(headers) == {
            "content-type": "application/json",
            "x-request-cost": "0.5",
        }

    def test_repeated_headers_become_lists(self):
        """Headers sent more than once keep every value in order."""
        headers = CIMultiDict(
            [
                ("Link", '<https://a/2>; rel="next"'),
                ("Link", '<https://a/1>; rel="prev"'),
                ("Status", "200 OK"),
            ]
        )

        assert header_map(headers) == {
            "link": ['<https://a/2>; rel="next"', '<https://a/1>; rel="prev"'],
            "status": "200 OK",
        }

    def test_plain_mapping(self):
        """Plain dicts work too."""
        assert header_map({"ETag": "abc"}) == {"etag": "abc"}


class TestSend:
    """Tests for HTTPTransport.send()."""

    @pytest.mark.asyncio
    async def test_successful_exchange(self):
        """Status, headers and body are buffered into a RawResponse."""
        transport = HTTPTransport()
        mock_response = mock_aiohttp_response(
            body=b'{"id": 1}',
            headers=[("X-Rate-Limit-Remaining", "700.0"), ("Link", '<https://a/2>; rel="next"')],
        )
        mock_session = mock_session_returning(mock_response)

        with patch.object(transport, "_get_session", return_value=mock_session):
            raw = await transport.send(
                RequestDescriptor(
                    method="GET",
                    url="https://canvas.local/api/v1/courses?include[]=term",
                    headers={"authorization": "Bearer t"},
                )
            )

        assert raw.status_code == 200
        assert raw.text() == '{"id": 1}'
        assert raw.header("x-rate-limit-remaining") == "700.0"
        assert raw.headers["link"] == '<https://a/2>; rel="next"'

    @pytest.mark.asyncio
    async def test_url_sent_verbatim(self):
        """The already encoded URL is not re-encoded."""
        transport = HTTPTransport()
        mock_session = mock_session_returning(mock_aiohttp_response())
        url = "https://canvas.local/api/v1/courses?search=a%20b&role[]=3"

        with patch.object(transport, "_get_session", return_value=mock_session):
            await transport.send(RequestDescriptor(method="GET", url=url))

        method, sent_url = mock_session.request.call_args.args
        assert method == "GET"
        assert isinstance(sent_url, URL)
        assert str(sent_url) == url

    @pytest.mark.asyncio
    async def test_body_and_headers_passed(self):
        """Body and headers go to aiohttp as they are."""
        transport = HTTPTransport()
        mock_session = mock_session_returning(mock_aiohttp_response(status=201))

        with patch.object(transport, "_get_session", return_value=mock_session):
            await transport.send(
                RequestDescriptor(
                    method="POST",
                    url="https://canvas.local/api/v1/courses",
                    headers={"content-type": "application/json"},
                    body=b"{}",
                )
            )

        kwargs = mock_session.request.call_args.kwargs
        assert kwargs["data"] == b"{}"
        assert kwargs["headers"] == {"content-type": "application/json"}
        assert "timeout" not in kwargs

    @pytest.mark.asyncio
    async def test_deadline_becomes_client_timeout(self):
        """The remaining time is the total aiohttp timeout."""
        transport = HTTPTransport()
        mock_session = mock_session_returning(mock_aiohttp_response())

        with patch.object(transport, "_get_session", return_value=mock_session):
            await transport.send(
                RequestDescriptor(
                    method="GET",
                    url="https://canvas.local/x",
                    deadline=time.monotonic() + 2.0,
                    timeout_ms=2000,
                )
            )

        timeout = mock_session.request.call_args.kwargs["timeout"]
        assert isinstance(timeout, aiohttp.ClientTimeout)
        assert 1.5 < timeout.total <= 2.0

    @pytest.mark.asyncio
    async def test_expired_deadline_skips_network(self):
        """A deadline that already passed fails without sending."""
        transport = HTTPTransport()
        mock_session = mock_session_returning(mock_aiohttp_response())

        with patch.object(transport, "_get_session", return_value=mock_session):
            with pytest.raises(asyncio.TimeoutError):
                await transport.send(
                    RequestDescriptor(
                        method="GET",
                        url="https://canvas.local/x",
                        deadline=time.monotonic() - 0.01,
                        timeout_ms=100,
                    )
                )

        mock_session.request.assert_not_called()

    @pytest.mark.asyncio
    async def test_client_error_propagates(self):
        """aiohttp errors reach the caller unchanged."""
        transport = HTTPTransport()
        mock_session = MagicMock()
        mock_session.request = MagicMock(side_effect=aiohttp.ClientConnectionError("refused"))

        with patch.object(transport, "_get_session", return_value=mock_session):
            with pytest.raises(aiohttp.ClientConnectionError):
                await transport.send(RequestDescriptor(method="GET", url="https://canvas.local/x"))


class TestSessionLifecycle:
    """Tests for session creation and closing."""

    @pytest.mark.asyncio
    async def test_creates_session_lazily(self):
        """A session is created on first use and reused."""
        transport = HTTPTransport()
        assert transport._session is None

        session = await transport._get_session()
        try:
            assert isinstance(session, aiohttp.ClientSession)
            assert await transport._get_session() is session
        finally:
            await transport.close()

        assert transport._session is None

    @pytest.mark.asyncio
    async def test_leaves_foreign_session_open(self):
        """A session passed in is not closed by the transport."""
        async with aiohttp.ClientSession() as session:
            async with HTTPTransport(session=session):
                pass
            assert not session.closed
