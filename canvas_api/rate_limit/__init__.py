"""Rate limiting infrastructure for Canvas API requests."""

from .dispatcher import (
    DirectDispatcher,
    Dispatcher,
    RateLimitedDispatcher,
    get_shared_dispatcher,
    reset_shared_dispatcher,
)
from .outcomes import (
    DispatchOutcome,
    OutcomeKind,
    QueueItem,
    classify_response,
    is_rate_limited,
    remaining_quota,
)

__all__ = [
    # Dispatchers
    "Dispatcher",
    "DirectDispatcher",
    "RateLimitedDispatcher",
    "get_shared_dispatcher",
    "reset_shared_dispatcher",
    # Outcomes
    "DispatchOutcome",
    "OutcomeKind",
    "QueueItem",
    # Utilities
    "classify_response",
    "is_rate_limited",
    "remaining_quota",
]
