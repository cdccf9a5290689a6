"""Structured logger for the Canvas API client.

Everything goes to stderr, in a pretty or a JSON format. Dispatcher
diagnostics are emitted at DEBUG level and only show up when
CANVAS_API_DEBUG is enabled.

Usage:
    from canvas_api.observability import get_logger, log_context

    logger = get_logger(__name__)

    with log_context(method="GET", endpoint="accounts/1/courses"):
        logger.debug("Dispatching", extra={"queue_length": 3})
        # Output: {"timestamp": "...", "method": "GET", "endpoint": "...", "queue_length": 3, ...}
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from dataclasses import asdict, dataclass, fields, replace
from datetime import datetime, timezone
from typing import Any

ROOT_LOGGER_NAME = "canvas_api"


@dataclass(frozen=True)
class LogContext:
    """Request being worked on when a record is emitted.

    `method` and `endpoint` are set by the client, `call_id` and
    `retry_count` by the dispatcher while it settles an attempt.
    """

    method: str | None = None
    endpoint: str | None = None
    call_id: int | None = None
    retry_count: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict, excluding None values."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    def prefix(self) -> str:
        """Short "[GET] [users/self] [#7]" tag for human-readable lines."""
        parts = []
        if self.method:
            parts.append(f"[{self.method}]")
        if self.endpoint:
            parts.append(f"[{self.endpoint}]")
        if self.call_id is not None:
            parts.append(f"[#{self.call_id}]")
            if self.retry_count:
                parts[-1] = f"[#{self.call_id} retry {self.retry_count}]"
        return " ".join(parts)


_CONTEXT_FIELDS = frozenset(f.name for f in fields(LogContext))

_current: contextvars.ContextVar[LogContext] = contextvars.ContextVar(
    "canvas_api_log_context",
    default=LogContext(),
)

# Attributes every LogRecord has; anything else came in through `extra=`
_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", logging.NOTSET, "", 0, "", (), None).__dict__
) | {"message", "asctime", "taskName"}


class _ContextManager:
    """Context manager for setting log context."""

    def __init__(self, **kwargs: Any) -> None:
        unknown = set(kwargs) - _CONTEXT_FIELDS
        if unknown:
            raise TypeError(f"Unknown log context fields: {', '.join(sorted(unknown))}")
        self.kwargs = kwargs
        self.token: contextvars.Token[LogContext] | None = None

    def __enter__(self) -> LogContext:
        # Fields not given are inherited from the enclosing context
        ctx = replace(_current.get(), **self.kwargs)
        self.token = _current.set(ctx)
        return ctx

    def __exit__(self, *args: Any) -> None:
        if self.token is not None:
            _current.reset(self.token)
            self.token = None


def log_context(**kwargs: Any) -> _ContextManager:
    """Create a context manager for setting log context.

    Args:
        **kwargs: method, endpoint, call_id and/or retry_count

    Raises:
        TypeError: For any other field name

    Example:
        with log_context(method="POST", endpoint="courses/1/enrollments"):
            logger.debug("Sending request")
    """
    return _ContextManager(**kwargs)


def current_context() -> LogContext:
    return _current.get()


def _extras(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in vars(record).items() if k not in _STANDARD_ATTRS}


class StructuredFormatter(logging.Formatter):
    """One JSON object per line.

    Library errors attached with `exc_info` are serialized through their
    `to_dict()` so log processors get the error type and retryability as
    fields.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
            **current_context().to_dict(),
            **_extras(record),
        }

        if record.exc_info and record.exc_info[1] is not None:
            error = record.exc_info[1]
            to_dict = getattr(error, "to_dict", None)
            if callable(to_dict):
                entry["error"] = to_dict()
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str, ensure_ascii=False)


class PrettyFormatter(logging.Formatter):
    """Human-readable formatter for development.

    Levels are colored only when stderr is a terminal.
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_color: bool | None = None) -> None:
        super().__init__()
        self.use_color = sys.stderr.isatty() if use_color is None else use_color

    def _level(self, levelname: str) -> str:
        short = levelname[:4]
        if not self.use_color:
            return short
        return f"{self.COLORS.get(levelname, '')}{short}{self.RESET}"

    def format(self, record: logging.LogRecord) -> str:
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        head = " ".join(
            part
            for part in (clock, self._level(record.levelname), current_context().prefix())
            if part
        )

        line = f"{head} {record.getMessage()}"
        extras = _extras(record)
        if extras:
            line += " | " + ", ".join(f"{k}={v}" for k, v in extras.items())

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)

        return line


_logging_configured = False


def setup_logging(
    level: int = logging.WARNING,
    json_format: bool = False,
    quiet: bool = False,
) -> None:
    """Attach a stderr handler to the `canvas_api` logger.

    Only the first call has an effect. `get_logger()` makes that call at
    import time with the defaults, so nothing is read from the environment
    here; CANVAS_API_DEBUG is applied by `CanvasApi.from_settings()`.

    Args:
        level: Level of the package logger
        json_format: Emit JSON lines instead of the pretty format
        quiet: Only let errors through the handler
    """
    global _logging_configured

    if _logging_configured:
        return

    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    package_logger.setLevel(level)
    package_logger.handlers.clear()

    # Diagnostics never go to stdout
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(logging.ERROR if quiet else logging.NOTSET)
    handler.setFormatter(StructuredFormatter() if json_format else PrettyFormatter())
    package_logger.addHandler(handler)

    # aiohttp's own access and client loggers are noisy at DEBUG
    logging.getLogger("aiohttp").setLevel(logging.WARNING)

    _logging_configured = True


def enable_debug_logging() -> None:
    """Switch the package logger to DEBUG for dispatcher diagnostics."""
    setup_logging()
    logging.getLogger(ROOT_LOGGER_NAME).setLevel(logging.DEBUG)


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the `canvas_api` namespace.

    Args:
        name: Module name (usually __name__)
    """
    setup_logging()

    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"

    return logging.getLogger(name)
