"""Pytest fixtures for Canvas API client tests."""

import pytest

from canvas_api import CanvasApi
from canvas_api.rate_limit import RateLimitedDispatcher, reset_shared_dispatcher

from .fixtures.canvas_responses import BASE_URL
from .fixtures.fake_transport import FakeTransport


@pytest.fixture(autouse=True)
def fresh_shared_dispatcher():
    """Every test starts without a shared dispatcher."""
    reset_shared_dispatcher()
    yield
    reset_shared_dispatcher()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def dispatcher() -> RateLimitedDispatcher:
    """Dispatcher with a short window to keep tests fast."""
    return RateLimitedDispatcher(rate_limit_interval_ms=100)


@pytest.fixture
def canvas(transport, dispatcher) -> CanvasApi:
    return CanvasApi(BASE_URL, "secret-token", transport=transport, dispatcher=dispatcher)
