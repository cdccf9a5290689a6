"""Error hierarchy for the Canvas API client.

All client errors inherit from CanvasApiError.
Use `is_retryable` property to determine if an error can be retried.

Errors raised deep inside the dispatcher carry the stack of the public
method the caller used (see `capture_caller_stack`), attached as a note so
the printed traceback points at business code instead of library internals.
"""

from __future__ import annotations

import os
import traceback
from pathlib import Path
from typing import Any, TypeVar

from .response import CanvasApiResponse

E = TypeVar("E", bound=BaseException)

_PACKAGE_DIR = str(Path(__file__).resolve().parent.parent) + os.sep


class CanvasApiError(Exception):
    """Base error for all Canvas API client errors.

    Attributes:
        message: Error description
        caller_stack: Formatted stack of the caller's entry point (if captured)
    """

    def __init__(self, message: str) -> None:
        self.caller_stack: str | None = None
        super().__init__(message)

    @property
    def message(self) -> str:
        return str(self)

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @property
    def is_retryable(self) -> bool:
        """Whether this error can be retried."""
        return False

    def to_dict(self) -> dict[str, Any]:
        """Serialize for structured logging."""
        return {
            "error_type": self.name,
            "message": str(self),
            "is_retryable": self.is_retryable,
        }


class CanvasApiResponseError(CanvasApiError):
    """Canvas answered with a status code of 400 or above.

    The full response is kept for inspection. This is NOT retryable - the
    server has already given its answer.
    """

    def __init__(self, response: CanvasApiResponse[Any] | None = None) -> None:
        super().__init__("Canvas API response error")
        self.response = response if response is not None else CanvasApiResponse()

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d["status_code"] = self.response.status_code
        return d


class CanvasApiRequestError(CanvasApiError):
    """Something went wrong before any status code was obtained.

    Covers transport failures and bodies that cannot be encoded.
    """

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            f"Canvas API Request Error: {message or 'there is something wrong with your request'}"
        )


class CanvasApiTimeoutError(CanvasApiError):
    """Request timed out before getting any response.

    This is retryable - the server might be temporarily slow.
    """

    def __init__(
        self,
        message: str = "Canvas API timeout error",
        *,
        timeout_ms: int | None = None,
    ) -> None:
        super().__init__(message)
        self.timeout_ms = timeout_ms

    @property
    def is_retryable(self) -> bool:
        return True

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d["timeout_ms"] = self.timeout_ms
        return d


class CanvasApiPaginationError(CanvasApiError):
    """A page that should contain a list answered with something else."""

    def __init__(self, response: CanvasApiResponse[Any]) -> None:
        super().__init__(
            "This endpoint did not respond with a list. Use `list_pages` or `get` instead"
        )
        self.response = response

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d["status_code"] = self.response.status_code
        return d


class CanvasApiRateLimitError(CanvasApiRequestError):
    """Canvas kept throttling the same request until the retry ceiling.

    No status is handed to the caller, so this is a request error. It is
    retryable later, once the server-side quota has recovered.
    """

    def __init__(
        self,
        *,
        call_id: int | None = None,
        attempts: int | None = None,
    ) -> None:
        super().__init__("Canvas API rate limit: max retries exceeded")
        self.call_id = call_id
        self.attempts = attempts

    @property
    def is_retryable(self) -> bool:
        return True

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d["call_id"] = self.call_id
        d["attempts"] = self.attempts
        return d


def _is_internal(filename: str) -> bool:
    return filename.startswith(_PACKAGE_DIR)


def capture_caller_stack() -> str | None:
    """Capture the current stack without frames from this package.

    Call this at a public entry point; the result points at the code that
    called the client.

    Returns:
        Formatted stack, or None if every frame is internal
    """
    frames = [f for f in traceback.extract_stack() if not _is_internal(f.filename)]
    if not frames:
        return None
    return "".join(traceback.format_list(frames))


def decorate_error(error: E, caller_stack: str | None) -> E:
    """Attach the caller's stack to an error.

    An error that already carries a caller stack is left untouched, so
    nested entry points (list_items over list_pages) annotate only once.

    Args:
        error: Exception to annotate
        caller_stack: Result of `capture_caller_stack()`

    Returns:
        The same exception, for use in a raise statement
    """
    if caller_stack is None or getattr(error, "caller_stack", None) is not None:
        return error

    error.caller_stack = caller_stack  # type: ignore[attr-defined]
    error.add_note(f"Called from:\n{caller_stack.rstrip()}")
    return error
