"""Rate-limited request dispatcher.

Strategy:
1. Every submitted request is appended to one FIFO queue
2. A single worker task drains the queue, one attempt at a time
3. On 403 "Rate Limit Exceeded" the request goes back to the head of the
   queue and the worker waits until the current interval is over
4. A low remaining-quota header slows the worker down preemptively
5. A fixed retry ceiling prevents endless retries

The worker is started lazily by `submit` and stops when the queue is
empty, so there is never more than one drain loop per dispatcher.

Diagnostics are logged at DEBUG; see `enable_debug_logging()` and CANVAS_API_DEBUG.
"""

from __future__ import annotations

import asyncio
import contextvars
import math
import time
from collections import deque
from collections.abc import Awaitable
from typing import Protocol

from ..config.constants import (
    DEFAULT_RATE_LIMIT_INTERVAL_MS,
    LOW_QUOTA_THRESHOLD,
    MAX_CALL_ID,
    MAX_RATE_LIMIT_RETRIES,
)
from ..core.errors import CanvasApiRateLimitError
from ..core.types import RawResponse
from ..observability.logger import get_logger, log_context
from ..observability.metrics import DispatcherMetrics
from .outcomes import (
    DispatchOutcome,
    Execute,
    OutcomeKind,
    QueueItem,
    classify_response,
    remaining_quota,
)

logger = get_logger(__name__)


class Dispatcher(Protocol):
    """Anything that can send a request thunk and hand back its response."""

    def submit(self, execute: Execute) -> Awaitable[RawResponse]:
        ...


class RateLimitedDispatcher:
    """Serializing dispatcher that absorbs Canvas rate-limit rejections.

    Usage:
        dispatcher = RateLimitedDispatcher(rate_limit_interval_ms=1000)

        raw = await dispatcher.submit(lambda: transport.send(descriptor))
    """

    def __init__(
        self,
        rate_limit_interval_ms: int = DEFAULT_RATE_LIMIT_INTERVAL_MS,
        max_retries: int = MAX_RATE_LIMIT_RETRIES,
        low_quota_threshold: int = LOW_QUOTA_THRESHOLD,
    ) -> None:
        """
        Initialize the dispatcher.

        Args:
            rate_limit_interval_ms: Length of one rate-limit window
            max_retries: Retries of a throttled request before it fails
            low_quota_threshold: Remaining quota below which we slow down
        """
        if rate_limit_interval_ms <= 0:
            raise ValueError("rate_limit_interval_ms must be positive")

        self.rate_limit_interval_ms = rate_limit_interval_ms
        self.max_retries = max_retries
        self.low_quota_threshold = low_quota_threshold

        self._interval = rate_limit_interval_ms / 1000
        self._queue: deque[QueueItem] = deque()
        self._worker: asyncio.Task[None] | None = None
        self._call_counter = 0

        # Window state (seconds, time.monotonic() clock)
        self._next_delay = 0.0
        self._interval_start = -math.inf

        self.metrics = DispatcherMetrics()

    @property
    def is_idle(self) -> bool:
        """True when no drain loop is running."""
        return self._worker is None or self._worker.done()

    @property
    def pending(self) -> int:
        """Number of requests waiting in the queue."""
        return len(self._queue)

    @property
    def next_delay(self) -> float:
        """Seconds the worker will wait before its next dequeue."""
        return self._next_delay

    def submit(self, execute: Execute) -> asyncio.Future[RawResponse]:
        """Queue a request and return a future for its response.

        The drain loop starts on the next event loop iteration, so a burst
        of submits from the same synchronous block is queued before the
        first request goes out.

        Args:
            execute: Zero-argument coroutine function performing one attempt

        Returns:
            Future resolved with the raw response or failed with the error
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[RawResponse] = loop.create_future()
        self._queue.append(QueueItem(self._next_call_id(), execute, future))
        self._wake(loop)
        return future

    def _next_call_id(self) -> int:
        self._call_counter = 1 if self._call_counter >= MAX_CALL_ID else self._call_counter + 1
        return self._call_counter

    def _wake(self, loop: asyncio.AbstractEventLoop) -> None:
        """Start the worker unless one is already draining the queue."""
        if self._worker is not None and not self._worker.done():
            if not self._worker.get_loop().is_closed():
                return
            # The loop that ran the previous worker is gone; so are its callers
            logger.debug("Discarding worker bound to a closed event loop")
            self._queue = deque(
                item for item in self._queue if not item.future.get_loop().is_closed()
            )

        # Fresh context: the worker serves every caller, not just the first one
        self._worker = loop.create_task(self._drain(), context=contextvars.Context())

    async def _drain(self) -> None:
        logger.debug("Work loop started...")
        current: QueueItem | None = None
        try:
            self._check_and_reset_interval()
            while self._queue:
                if self._next_delay > 0:
                    delay = self._next_delay
                    await asyncio.sleep(delay)
                    self.metrics.record_backoff(delay)
                    # Served, even if the timer fired just short of the boundary
                    self._next_delay = 0.0
                self._check_and_reset_interval()

                current = self._queue.popleft()
                if current.future.done():
                    # The caller stopped waiting (cancelled)
                    continue

                outcome = await self._attempt(current)
                try:
                    self._settle(current, outcome)
                except Exception as e:
                    logger.exception(f"Settling call {current.call_id} failed")
                    _reject(current, e)
                current = None
        except asyncio.CancelledError:
            if current is not None and not current.future.done():
                current.future.cancel()
            raise
        finally:
            logger.debug("...work loop stopped")

    async def _attempt(self, item: QueueItem) -> DispatchOutcome:
        """Run one attempt and classify what came back."""
        self.metrics.record_dispatch()
        try:
            return classify_response(await item.execute())
        except Exception as e:
            # Handed to the caller through its future, never retried
            return DispatchOutcome.failed(e)

    def _settle(self, item: QueueItem, outcome: DispatchOutcome) -> None:
        with log_context(call_id=item.call_id, retry_count=item.retry_count):
            if outcome.kind is OutcomeKind.RATE_LIMITED:
                self._handle_rate_limited(item)
            elif outcome.kind is OutcomeKind.FAILED:
                assert outcome.error is not None
                self.metrics.record_failure(type(outcome.error).__name__)
                logger.debug(f"xxx call {item.call_id} failed: {outcome.error!r}")
                _reject(item, outcome.error)
            else:
                assert outcome.response is not None
                self._handle_success(item, outcome.response)

    def _handle_rate_limited(self, item: QueueItem) -> None:
        logger.debug(
            f"...403 call {item.call_id}, delay: {self._next_delay * 1000:.0f}ms, "
            f"elapsed: {self._elapsed_ms():.0f}ms"
        )

        if item.retry_count >= self.max_retries:
            self.metrics.record_rate_limit(retried=False)
            logger.warning(
                f"Rate limit retries exhausted for call {item.call_id} "
                f"after {item.retry_count + 1} attempts"
            )
            _reject(
                item,
                CanvasApiRateLimitError(call_id=item.call_id, attempts=item.retry_count + 1),
            )
            return

        # Retries jump ahead of requests that were never attempted
        self.metrics.record_rate_limit(retried=True)
        self._queue.appendleft(item.retried())
        self._set_delay_to_next_interval()

    def _handle_success(self, item: QueueItem, response: RawResponse) -> None:
        logger.debug(
            f"+++{response.status_code} call {item.call_id}, "
            f"delay: {self._next_delay * 1000:.0f}ms, elapsed: {self._elapsed_ms():.0f}ms"
        )
        self.metrics.record_success()
        _resolve(item, response)

        remaining = remaining_quota(response)
        if remaining is not None and remaining < self.low_quota_threshold:
            logger.debug(f"Rate limit remaining: {remaining}, preemptively slowing down")
            self.metrics.record_low_quota()
            self._set_delay_to_next_interval()

    def _elapsed_ms(self) -> float:
        return (time.monotonic() - self._interval_start) * 1000

    def _set_delay_to_next_interval(self) -> None:
        """Wait until the current interval is over before the next dequeue."""
        delta = time.monotonic() - self._interval_start
        delay = self._interval - delta
        if self._next_delay < delay:
            self._next_delay = delay
        logger.debug(f"Bouncing on rate limiter: {delta * 1000:.0f}ms into the interval")

    def _check_and_reset_interval(self) -> None:
        """Start a new interval once the current one has elapsed."""
        delta = time.monotonic() - self._interval_start
        if delta >= self._interval:
            self._interval_start = time.monotonic()
            self._next_delay = 0.0
            logger.debug(f"Reset limiter ({delta * 1000:.0f}ms since last reset)")


class DirectDispatcher:
    """Unthrottled pass-through: no queue, no retries, no shared state.

    Used by clients created with `disable_throttling=True` that want to run
    requests in parallel.
    """

    async def submit(self, execute: Execute) -> RawResponse:
        return await execute()


def _resolve(item: QueueItem, response: RawResponse) -> None:
    if not item.future.done():
        item.future.set_result(response)


def _reject(item: QueueItem, error: BaseException) -> None:
    if not item.future.done():
        item.future.set_exception(error)


# Process-wide dispatcher shared by every client that does not opt out
_shared_dispatcher: RateLimitedDispatcher | None = None


def get_shared_dispatcher(rate_limit_interval_ms: int | None = None) -> RateLimitedDispatcher:
    """Get the process-wide dispatcher, creating it on first use.

    The interval is fixed by the first caller; later values are ignored.

    Args:
        rate_limit_interval_ms: Window length used if the dispatcher is created now

    Returns:
        The shared RateLimitedDispatcher
    """
    global _shared_dispatcher

    if _shared_dispatcher is None:
        _shared_dispatcher = RateLimitedDispatcher(
            rate_limit_interval_ms or DEFAULT_RATE_LIMIT_INTERVAL_MS
        )
    elif (
        rate_limit_interval_ms is not None
        and rate_limit_interval_ms != _shared_dispatcher.rate_limit_interval_ms
    ):
        logger.debug(
            f"Shared dispatcher already uses {_shared_dispatcher.rate_limit_interval_ms}ms; "
            f"ignoring {rate_limit_interval_ms}ms"
        )
    return _shared_dispatcher


def reset_shared_dispatcher() -> None:
    """Drop the shared dispatcher so the next client creates a fresh one."""
    global _shared_dispatcher
    _shared_dispatcher = None
