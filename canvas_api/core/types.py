"""Shared types for the Canvas API client.

These types travel between the client, the dispatcher and the transport.
"""

from __future__ import annotations

import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

QueryValue = str | int | float
QueryParams = Mapping[str, QueryValue | Sequence[QueryValue]]

HeaderValue = str | list[str]


@dataclass(frozen=True)
class RequestOptions:
    """Per-call options. `timeout` is in milliseconds."""

    timeout: int | None = None


@dataclass(frozen=True)
class RequestDescriptor:
    """One HTTP request, fully built and ready for the transport.

    The body is already encoded (bytes, text or a multipart form) and the
    deadline is an absolute `time.monotonic()` value fixed when the caller
    entered the client, so time spent queued counts against it.
    """

    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Any = None
    deadline: float | None = None
    timeout_ms: int | None = None

    def remaining_seconds(self) -> float | None:
        """Seconds left before the deadline, or None without a deadline."""
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()


@dataclass
class RawResponse:
    """Transport-level response: status, headers and the buffered body.

    The body is read once by the transport. `text()` decodes it on first
    use and replays the same string afterwards, so the dispatcher can
    inspect a 403 without taking the body away from the caller.
    """

    status_code: int
    headers: dict[str, HeaderValue] = field(default_factory=dict)
    body: bytes = b""
    charset: str | None = None
    _text: str | None = field(default=None, init=False, repr=False)

    def text(self) -> str:
        if self._text is None:
            try:
                self._text = self.body.decode(self.charset or "utf-8", errors="replace")
            except LookupError:
                # Unknown or non-text charset declared by the server
                self._text = self.body.decode("utf-8", errors="replace")
        return self._text

    def header(self, name: str) -> str | None:
        """Get a header as a single string, joining repeated values."""
        value = self.headers.get(name.lower())
        if value is None:
            return None
        if isinstance(value, list):
            return ", ".join(value)
        return value
