"""Link-header pagination over Canvas list endpoints.

Canvas splits lists into pages and points at the following page with a
`link` response header:

    link: <https://canvas.example.com/api/v1/courses?page=2>; rel="next",
          <https://canvas.example.com/api/v1/courses?page=9>; rel="last"

Pages are fetched one at a time, only when the consumer asks for the next
one.
"""

from __future__ import annotations

import re
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from .core.errors import CanvasApiPaginationError, decorate_error
from .core.response import CanvasApiResponse
from .core.types import HeaderValue, QueryParams

FetchPage = Callable[[str, QueryParams | None], Awaitable[CanvasApiResponse[Any]]]

_NEXT_REL = re.compile(r'rel="next"$')
_TARGET = re.compile(r"<(.*?)>")


def get_next_url(link_header: HeaderValue | None) -> str | None:
    """
    Extract the URL of the next page from a `link` header.

    Repeated link headers are treated as one comma-separated header.

    Returns:
        The next-page URL verbatim, or None if there is no next page
    """
    if not link_header:
        return None

    header = ", ".join(link_header) if isinstance(link_header, list) else link_header

    for entry in header.split(","):
        if _NEXT_REL.search(entry.strip()):
            match = _TARGET.search(entry)
            return match.group(1) if match else None

    return None


@dataclass
class PageCursor:
    """Where the next page comes from.

    The query parameters belong to the first request only; next links
    already carry every parameter Canvas needs.
    """

    url: str | None
    query_params: QueryParams | None = None

    @property
    def done(self) -> bool:
        return self.url is None

    def advance(self, response: CanvasApiResponse[Any]) -> None:
        self.url = get_next_url(response.headers.get("link"))
        self.query_params = None


async def iter_pages(
    fetch_page: FetchPage,
    endpoint: str,
    query_params: QueryParams | None = None,
) -> AsyncIterator[CanvasApiResponse[Any]]:
    """Yield every page of a list endpoint, following `rel="next"` links."""
    cursor = PageCursor(endpoint, query_params)
    while not cursor.done:
        assert cursor.url is not None
        response = await fetch_page(cursor.url, cursor.query_params)
        yield response
        cursor.advance(response)


async def iter_items(
    pages: AsyncIterator[CanvasApiResponse[Any]],
    caller_stack: str | None = None,
) -> AsyncIterator[Any]:
    """Yield the elements of every page in order.

    Raises:
        CanvasApiPaginationError: When a page body is not a JSON array
    """
    async for page in pages:
        if not isinstance(page.json, list):
            raise decorate_error(CanvasApiPaginationError(page), caller_stack)
        for element in page.json:
            yield element
