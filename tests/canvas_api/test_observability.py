"""Tests for canvas_api/observability and canvas_api/config."""

import json
import logging
import os
import subprocess
import sys
from pathlib import Path

import pytest
from pydantic import ValidationError

from canvas_api import CanvasApi
from canvas_api.config.settings import Settings, get_settings
from canvas_api.core.errors import CanvasApiTimeoutError
from canvas_api.observability import logger as logger_module
from canvas_api.observability.logger import (
    LogContext,
    PrettyFormatter,
    StructuredFormatter,
    enable_debug_logging,
    get_logger,
    log_context,
    setup_logging,
)
from canvas_api.observability.metrics import DispatcherMetrics

from .fixtures.fake_transport import FakeTransport

PROJECT_ROOT = Path(__file__).resolve().parents[2]


@pytest.fixture
def unconfigured_logging(monkeypatch):
    """Package logger as it was before any setup_logging() call."""
    package_logger = logging.getLogger("canvas_api")
    level, handlers = package_logger.level, list(package_logger.handlers)
    monkeypatch.setattr(logger_module, "_logging_configured", False)
    package_logger.handlers.clear()
    package_logger.setLevel(logging.NOTSET)

    yield package_logger

    package_logger.handlers[:] = handlers
    package_logger.setLevel(level)


def make_record(message: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="canvas_api.test",
        level=logging.DEBUG,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


# =============================================================================
# Settings Tests
# =============================================================================


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self, monkeypatch):
        """Defaults without environment."""
        for name in (
            "CANVAS_API_URL",
            "CANVAS_API_TOKEN",
            "CANVAS_API_TIMEOUT_MS",
            "CANVAS_API_RATE_LIMIT_INTERVAL_MS",
            "CANVAS_API_DISABLE_THROTTLING",
            "CANVAS_API_DEBUG",
        ):
            monkeypatch.delenv(name, raising=False)

        settings = Settings(_env_file=None)

        assert settings.canvas_api_url is None
        assert settings.canvas_api_timeout_ms is None
        assert settings.canvas_api_rate_limit_interval_ms == 1000
        assert settings.canvas_api_disable_throttling is False
        assert settings.canvas_api_debug is False

    def test_reads_environment(self, monkeypatch):
        """Environment variables are picked up."""
        monkeypatch.setenv("CANVAS_API_URL", "https://canvas.local/api/v1")
        monkeypatch.setenv("CANVAS_API_TOKEN", "secret")
        monkeypatch.setenv("CANVAS_API_DEBUG", "true")
        monkeypatch.setenv("CANVAS_API_RATE_LIMIT_INTERVAL_MS", "250")

        settings = Settings(_env_file=None)

        assert settings.canvas_api_token == "secret"
        assert settings.canvas_api_debug is True
        assert settings.canvas_api_rate_limit_interval_ms == 250

    def test_rejects_non_positive_interval(self):
        """The interval must be positive."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, canvas_api_rate_limit_interval_ms=0)

    def test_rejects_non_positive_timeout(self):
        """Timeouts must be positive when set."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, canvas_api_timeout_ms=-5)

    def test_blank_credentials_are_unset(self):
        """Whitespace-only URL or token counts as missing."""
        settings = Settings(_env_file=None, canvas_api_url="  ", canvas_api_token="")

        assert settings.canvas_api_url is None
        assert settings.canvas_api_token is None

    def test_get_settings_is_cached(self):
        """get_settings() returns one instance."""
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()


# =============================================================================
# Logging Tests
# =============================================================================


class TestLogContext:
    """Tests for log_context()."""

    def test_to_dict_skips_none(self):
        """Unset fields are left out."""
        assert LogContext(method="GET", call_id=3).to_dict() == {"method": "GET", "call_id": 3}

    def test_nested_contexts_merge(self):
        """Inner contexts keep outer fields they do not set."""
        with log_context(method="GET", endpoint="courses"):
            with log_context(call_id=9) as ctx:
                assert ctx.method == "GET"
                assert ctx.endpoint == "courses"
                assert ctx.call_id == 9

    def test_context_restored(self):
        """Leaving a context restores the previous one."""
        formatter = StructuredFormatter()
        with log_context(method="POST"):
            pass

        entry = json.loads(formatter.format(make_record()))
        assert "method" not in entry


class TestFormatters:
    """Tests for StructuredFormatter and PrettyFormatter."""

    def test_structured_includes_context_and_extras(self):
        """JSON lines carry context fields and extras."""
        formatter = StructuredFormatter()

        with log_context(method="GET", endpoint="users/self", call_id=4):
            entry = json.loads(formatter.format(make_record("Dispatching", retry=1)))

        assert entry["message"] == "Dispatching"
        assert entry["level"] == "debug"
        assert entry["method"] == "GET"
        assert entry["endpoint"] == "users/self"
        assert entry["call_id"] == 4
        assert entry["retry"] == 1

    def test_pretty_prefix(self):
        """Human format shows method, endpoint and call id."""
        formatter = PrettyFormatter()

        with log_context(method="GET", endpoint="users/self", call_id=4):
            line = formatter.format(make_record("Dispatching"))

        assert "[GET] [users/self] [#4] Dispatching" in line

    def test_pretty_shows_retry(self):
        """Retried attempts are tagged with the retry count."""
        formatter = PrettyFormatter(use_color=False)

        with log_context(call_id=4, retry_count=2):
            line = formatter.format(make_record("Dispatching"))

        assert "DEBU [#4 retry 2] Dispatching" in line

    def test_structured_serializes_library_errors(self):
        """Library errors in exc_info are added through to_dict()."""
        formatter = StructuredFormatter()
        try:
            raise CanvasApiTimeoutError(timeout_ms=50)
        except CanvasApiTimeoutError:
            record = make_record("Timed out")
            record.exc_info = sys.exc_info()

        entry = json.loads(formatter.format(record))

        assert entry["error"]["error_type"] == "CanvasApiTimeoutError"
        assert entry["error"]["timeout_ms"] == 50
        assert "Traceback" in entry["exception"]

    def test_unknown_context_field(self):
        """Only LogContext fields can be set."""
        with pytest.raises(TypeError):
            log_context(course_id=1)


class TestSetupLogging:
    """Tests for setup_logging() and get_logger()."""

    def test_namespaced_logger(self):
        """Loggers live under canvas_api."""
        assert get_logger("transport").name == "canvas_api.transport"
        assert get_logger("canvas_api.client").name == "canvas_api.client"

    def test_explicit_level(self, unconfigured_logging):
        """An explicit level is applied to the package logger."""
        setup_logging(level=logging.INFO)

        assert unconfigured_logging.level == logging.INFO
        assert len(unconfigured_logging.handlers) == 1

    def test_quiet_by_default(self, unconfigured_logging):
        """Without the toggle only warnings and above are emitted."""
        setup_logging()
        assert unconfigured_logging.level == logging.WARNING

    def test_setup_is_idempotent(self, unconfigured_logging):
        """A second call does not add handlers."""
        setup_logging(level=logging.INFO)
        setup_logging(level=logging.DEBUG)

        assert len(unconfigured_logging.handlers) == 1
        assert unconfigured_logging.level == logging.INFO

    def test_enable_debug_logging(self, unconfigured_logging):
        """Debug logging raises the package logger to DEBUG."""
        setup_logging()
        enable_debug_logging()

        assert unconfigured_logging.level == logging.DEBUG
        assert len(unconfigured_logging.handlers) == 1

    def test_debug_toggle(self, unconfigured_logging):
        """CANVAS_API_DEBUG is applied when a client is built from settings."""
        settings = Settings(
            _env_file=None,
            canvas_api_url="https://canvas.local/api/v1",
            canvas_api_token="secret",
            canvas_api_debug=True,
        )

        CanvasApi.from_settings(settings, transport=FakeTransport())

        assert unconfigured_logging.level == logging.DEBUG

    def test_debug_toggle_off(self, unconfigured_logging):
        """Settings without the toggle leave the level alone."""
        setup_logging(level=logging.INFO)
        settings = Settings(
            _env_file=None,
            canvas_api_url="https://canvas.local/api/v1",
            canvas_api_token="secret",
        )

        CanvasApi.from_settings(settings, transport=FakeTransport())

        assert unconfigured_logging.level == logging.INFO

    def test_import_does_not_read_settings(self, tmp_path):
        """An invalid CANVAS_API_* variable does not break the import."""
        env = {
            **os.environ,
            "CANVAS_API_TIMEOUT_MS": "0",
            "CANVAS_API_RATE_LIMIT_INTERVAL_MS": "soon",
            "PYTHONPATH": str(PROJECT_ROOT),
        }

        result = subprocess.run(
            [sys.executable, "-c", "import canvas_api"],
            cwd=tmp_path,
            env=env,
            capture_output=True,
            text=True,
        )

        assert result.returncode == 0, result.stderr


# =============================================================================
# Metrics Tests
# =============================================================================


class TestDispatcherMetrics:
    """Tests for DispatcherMetrics."""

    def test_success_rate(self):
        """Share of settled requests that succeeded."""
        metrics = DispatcherMetrics()
        for _ in range(3):
            metrics.record_success()
        metrics.record_failure("ClientConnectionError")

        assert metrics.success_rate == 75.0

    def test_success_rate_empty(self):
        """No settled requests gives 0."""
        assert DispatcherMetrics().success_rate == 0.0

    def test_rate_limit_counts(self):
        """Retried and exhausted hits are counted apart."""
        metrics = DispatcherMetrics()
        metrics.record_rate_limit(retried=True)
        metrics.record_rate_limit(retried=True)
        metrics.record_rate_limit(retried=False)

        assert metrics.rate_limit_hits == 3
        assert metrics.retries == 2
        assert metrics.exhausted == 1

    def test_to_dict(self):
        """Serializes counters for logging."""
        metrics = DispatcherMetrics()
        metrics.record_dispatch()
        metrics.record_success()
        metrics.record_backoff(0.25)
        metrics.record_failure("TimeoutError")
        metrics.record_failure("TimeoutError")

        d = metrics.to_dict()

        assert d["dispatched"] == 1
        assert d["backoff_seconds"] == 0.25
        assert d["errors_by_type"] == {"TimeoutError": 2}

    def test_summary(self):
        """Human-readable summary lists errors by frequency."""
        metrics = DispatcherMetrics()
        metrics.record_failure("A")
        metrics.record_failure("B")
        metrics.record_failure("B")
        metrics.record_low_quota()

        summary = metrics.to_summary()

        assert "Low-quota slowdowns: 1" in summary
        assert summary.index("B: 2") < summary.index("A: 1")
