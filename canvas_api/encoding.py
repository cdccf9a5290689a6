"""URL, query string, header and body encoding for Canvas requests."""

from __future__ import annotations

import json
from typing import Any
from urllib.parse import quote, urljoin

import aiohttp

from .config.constants import (
    BINARY_CONTENT_TYPE,
    JSON_CONTENT_TYPE,
    TEXT_CONTENT_TYPE,
    USER_AGENT,
)
from .core.errors import CanvasApiRequestError
from .core.types import QueryParams, QueryValue

# Characters encodeURIComponent leaves alone on top of quote()'s defaults
_SAFE_CHARS = "!*'()"


def _encode(value: str) -> str:
    return quote(value, safe=_SAFE_CHARS)


def _format_value(value: QueryValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def stringify_query_parameters(parameters: QueryParams | None) -> str:
    """
    Return query parameters in the "bracket" format Canvas accepts.

    Keys and values are percent-encoded. Empty sequences contribute
    nothing, and no parameters at all give an empty string (no "?").

    Example:
        stringify_query_parameters({"role": [3, 10]})  # "?role[]=3&role[]=10"
    """
    key_values: list[str] = []

    for key, value in (parameters or {}).items():
        if isinstance(value, (list, tuple)):
            for v in value:
                key_values.append(f"{_encode(key)}[]={_encode(_format_value(v))}")
        else:
            key_values.append(f"{_encode(key)}={_encode(_format_value(value))}")

    return "?" + "&".join(key_values) if key_values else ""


def normalize_base_url(api_url: str) -> str:
    """Make sure the base URL ends with "/" so endpoints resolve under it."""
    return api_url if api_url.endswith("/") else api_url + "/"


def build_url(base_url: str, endpoint: str, parameters: QueryParams | None = None) -> str:
    """Resolve `endpoint` against the base URL and append the query string.

    Absolute endpoints (such as "next" links) are used as they are.
    """
    return urljoin(base_url, endpoint) + stringify_query_parameters(parameters)


def encode_body(body: Any) -> tuple[Any, str | None]:
    """
    Convert a request body into something the transport can send.

    Args:
        body: None, an aiohttp.FormData, str, bytes, or any JSON-serializable value

    Returns:
        (payload, content type); content type is None for multipart forms
        so aiohttp can set the boundary itself

    Raises:
        CanvasApiRequestError: If the body cannot be JSON encoded
    """
    if body is None:
        return None, JSON_CONTENT_TYPE

    if isinstance(body, aiohttp.FormData):
        return body, None

    if isinstance(body, str):
        return body.encode("utf-8"), TEXT_CONTENT_TYPE

    if isinstance(body, (bytes, bytearray)):
        return bytes(body), BINARY_CONTENT_TYPE

    try:
        return json.dumps(body).encode("utf-8"), JSON_CONTENT_TYPE
    except (TypeError, ValueError) as e:
        raise CanvasApiRequestError(str(e)) from e


def build_headers(token: str, content_type: str | None) -> dict[str, str]:
    """Build request headers with authentication."""
    headers = {
        "authorization": f"Bearer {token}",
        "user-agent": USER_AGENT,
    }
    if content_type is not None:
        headers["content-type"] = content_type
    return headers
