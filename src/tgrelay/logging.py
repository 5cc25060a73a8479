"""Structured logging for tgrelay.

Logs go to stderr: when serving MCP over stdio, stdout belongs to the protocol.
Every value passes through a processor that strips Telegram bot tokens, which
otherwise leak through request URLs and httpx error messages.
"""

from __future__ import annotations

import logging
import os
import re
import sys
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from typing import Any

import structlog

LOG_LEVEL_ENV = "TGRELAY_LOG_LEVEL"
LOG_JSON_ENV = "TGRELAY_LOG_JSON"

# "bot<id>:<secret>" as it appears in Bot API URLs, then a bare "<id>:<secret>".
_URL_TOKEN_RE = re.compile(r"bot\d+:[A-Za-z0-9_-]+")
_BARE_TOKEN_RE = re.compile(r"\b\d{5,}:[A-Za-z0-9_-]{10,}\b")


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in {"1", "true", "yes", "on"}


def _resolve_level(name: str | None) -> int:
    level = logging.getLevelNamesMapping().get((name or "").strip().upper())
    return level if level is not None else logging.INFO


def _scrub(value: Any) -> Any:
    if isinstance(value, str):
        value = _URL_TOKEN_RE.sub("bot[REDACTED]", value)
        return _BARE_TOKEN_RE.sub("[REDACTED_TOKEN]", value)
    if isinstance(value, dict):
        return {k: _scrub(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(_scrub(v) for v in value)
    return value


def _scrub_tokens(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    for key, value in event_dict.items():
        event_dict[key] = _scrub(value)
    return event_dict


class _StderrSink:
    """Writes to whatever ``sys.stderr`` is, and goes quiet once it is gone.

    An MCP host that exits closes our stderr; logging must not raise then.
    """

    def write(self, data: str) -> int:
        try:
            return sys.stderr.write(data)
        except (ValueError, OSError):
            return 0

    def flush(self) -> None:
        try:
            sys.stderr.flush()
        except (ValueError, OSError):
            pass

    def isatty(self) -> bool:
        try:
            return sys.stderr.isatty()
        except (ValueError, OSError):
            return False


def setup_logging(*, debug: bool = False, level: str | None = None) -> None:
    """Configure structlog to render to stderr.

    Level resolution: ``debug`` flag, then ``level``, then
    ``TGRELAY_LOG_LEVEL``, then info. ``TGRELAY_LOG_JSON`` switches to JSON
    lines.
    """
    if debug:
        min_level = logging.DEBUG
    else:
        min_level = _resolve_level(level or os.environ.get(LOG_LEVEL_ENV))

    sink = _StderrSink()
    if _env_flag(LOG_JSON_ENV):
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sink.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            _scrub_tokens,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(min_level),
        logger_factory=structlog.PrintLoggerFactory(file=sink),  # type: ignore[arg-type]
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> Any:
    if name is None:
        return structlog.get_logger()
    return structlog.get_logger(name)


@contextmanager
def suppress_logs(level: str = "warning") -> Iterator[None]:
    """Raise the minimum log level for the duration of the block."""
    previous = structlog.get_config()
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(_resolve_level(level))
    )
    try:
        yield
    finally:
        structlog.configure(**previous)
