"""Queue items and attempt outcomes for the rate-limited dispatcher."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from enum import Enum

from ..config.constants import RATE_LIMIT_MARKER, RATE_LIMIT_REMAINING_HEADER
from ..core.types import RawResponse

Execute = Callable[[], Awaitable[RawResponse]]


class OutcomeKind(Enum):
    """Classification of one dispatch attempt."""

    SUCCESS = "success"  # Any response that is not a throttled 403
    RATE_LIMITED = "rate_limited"  # 403 with the rate-limit marker - requeue
    FAILED = "failed"  # Transport raised - surface to the caller


@dataclass(frozen=True)
class DispatchOutcome:
    """Tagged result of one attempt.

    `response` is set for SUCCESS and RATE_LIMITED, `error` for FAILED.
    """

    kind: OutcomeKind
    response: RawResponse | None = None
    error: Exception | None = None

    @classmethod
    def success(cls, response: RawResponse) -> DispatchOutcome:
        return cls(OutcomeKind.SUCCESS, response=response)

    @classmethod
    def rate_limited(cls, response: RawResponse) -> DispatchOutcome:
        return cls(OutcomeKind.RATE_LIMITED, response=response)

    @classmethod
    def failed(cls, error: Exception) -> DispatchOutcome:
        return cls(OutcomeKind.FAILED, error=error)


@dataclass(frozen=True)
class QueueItem:
    """One submitted request waiting in the dispatcher queue.

    A retried request is a new item with the same execute thunk and future
    and `retry_count + 1`.
    """

    call_id: int
    execute: Execute
    future: asyncio.Future[RawResponse]
    retry_count: int = 0

    def retried(self) -> QueueItem:
        return replace(self, retry_count=self.retry_count + 1)


def is_rate_limited(response: RawResponse) -> bool:
    """Check if Canvas rejected the call because of its rate limit.

    Canvas answers 403 both for permission problems and for throttling;
    only the body text tells them apart. Reading it here leaves the
    buffered text in place for the caller.
    """
    return response.status_code == 403 and RATE_LIMIT_MARKER in response.text()


def classify_response(response: RawResponse) -> DispatchOutcome:
    """Classify a transport response into a dispatch outcome."""
    if is_rate_limited(response):
        return DispatchOutcome.rate_limited(response)
    return DispatchOutcome.success(response)


def remaining_quota(response: RawResponse) -> int | None:
    """Parse the remaining-quota header, None if missing or not a number."""
    value = response.header(RATE_LIMIT_REMAINING_HEADER)
    if value is None:
        return None
    try:
        return int(float(value.strip()))
    except (ValueError, OverflowError):
        return None
