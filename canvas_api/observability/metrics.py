"""Metrics collection for the rate-limited dispatcher.

Tracks how many attempts were dispatched, how often the server throttled
us, and how long the dispatcher spent backing off.

Usage:
    dispatcher = get_shared_dispatcher()
    ...
    print(dispatcher.metrics.rate_limit_hits)
    print(dispatcher.metrics.to_summary())
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class DispatcherMetrics:
    """Counters for a single dispatcher.

    Every attempt is counted, so a request that was retried twice adds
    three to `dispatched`.
    """

    started_at: datetime = field(default_factory=datetime.now)

    # Counts
    dispatched: int = 0
    succeeded: int = 0
    failed: int = 0

    # Rate limiting
    rate_limit_hits: int = 0
    retries: int = 0
    exhausted: int = 0
    low_quota_slowdowns: int = 0

    # Time spent sleeping before dequeues (seconds)
    backoff_seconds: float = 0.0

    # Failure breakdown by exception type
    errors_by_type: dict[str, int] = field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        """Share of settled requests that resolved, as percentage (0-100)."""
        settled = self.succeeded + self.failed + self.exhausted
        if settled == 0:
            return 0.0
        return self.succeeded / settled * 100

    def record_dispatch(self) -> None:
        """Record one attempt handed to the transport."""
        self.dispatched += 1

    def record_success(self) -> None:
        self.succeeded += 1

    def record_failure(self, error_type: str = "unknown") -> None:
        """Record a transport failure with its exception type."""
        self.failed += 1
        self.errors_by_type[error_type] = self.errors_by_type.get(error_type, 0) + 1

    def record_rate_limit(self, retried: bool) -> None:
        """Record a throttled attempt, either requeued or given up on."""
        self.rate_limit_hits += 1
        if retried:
            self.retries += 1
        else:
            self.exhausted += 1

    def record_low_quota(self) -> None:
        self.low_quota_slowdowns += 1

    def record_backoff(self, seconds: float) -> None:
        self.backoff_seconds += seconds

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "started_at": self.started_at.isoformat(),
            "dispatched": self.dispatched,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "rate_limit_hits": self.rate_limit_hits,
            "retries": self.retries,
            "exhausted": self.exhausted,
            "low_quota_slowdowns": self.low_quota_slowdowns,
            "backoff_seconds": round(self.backoff_seconds, 3),
            "success_rate": round(self.success_rate, 2),
            "errors_by_type": self.errors_by_type,
        }

    def to_summary(self) -> str:
        """Generate human-readable summary."""
        lines = [
            "Dispatcher Summary",
            "=" * 40,
            f"Dispatched: {self.dispatched} attempts",
            f"Succeeded: {self.succeeded} ({self.success_rate:.1f}%)",
            f"Failed: {self.failed}",
            f"Rate limited: {self.rate_limit_hits} "
            f"(retried {self.retries}, exhausted {self.exhausted})",
            f"Low-quota slowdowns: {self.low_quota_slowdowns}",
            f"Backoff: {self.backoff_seconds:.2f}s",
        ]

        if self.errors_by_type:
            lines.append("Errors:")
            for error_type, count in sorted(
                self.errors_by_type.items(), key=lambda x: -x[1]
            ):
                lines.append(f"  {error_type}: {count}")

        return "\n".join(lines)
