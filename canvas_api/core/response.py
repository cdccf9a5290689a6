"""Parsed representation of one Canvas API response."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from .types import HeaderValue, RawResponse

T = TypeVar("T")


@dataclass(frozen=True)
class CanvasApiResponse(Generic[T]):
    """Response from a Canvas API request.

    Attributes:
        status_code: HTTP status code of the response
        headers: Lower-cased header names; repeated headers become lists
        text: Raw text body of the response
        json: Parsed JSON body, None if the body was empty or not JSON
        parse_error: Error raised while parsing a non-empty body, if any
        has_json: True when the body parsed, including a JSON `null`
    """

    status_code: int = 0
    headers: Mapping[str, HeaderValue] = field(default_factory=dict)
    text: str = ""
    json: T | None = None
    parse_error: Exception | None = None
    has_json: bool = False

    @property
    def body(self) -> T | None:
        """Parsed JSON body of the response.

        Deprecated: use `json` instead.
        """
        return self.json

    @classmethod
    def from_raw(cls, raw: RawResponse) -> CanvasApiResponse[Any]:
        """Build a response from the buffered transport response."""
        text = raw.text()
        parsed: Any = None
        parse_error: Exception | None = None
        has_json = False

        if text:
            try:
                parsed = json.loads(text)
                has_json = True
            except ValueError as e:
                parse_error = e

        return cls(
            status_code=raw.status_code,
            headers=dict(raw.headers),
            text=text,
            json=parsed,
            parse_error=parse_error,
            has_json=has_json,
        )
