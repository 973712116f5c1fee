"""Centralized logging helpers.

Provides one place to configure the root logger and a handful of helpers
used by every component to emit structured, redacted DEBUG traces:

- ``configure_logging`` honors ``POMRESOLVER_LOG_LEVEL`` and
  ``POMRESOLVER_LOG_FORMAT`` (``text`` or ``json``).
- ``extra_context`` builds the ``extra=`` payload carried on log records.
- ``safe_url`` / ``redact`` strip credentials before anything reaches a log.
- ``Timer`` measures wall-clock duration for request traces.
"""
from __future__ import annotations

import json
import logging
import os
import re
import time
from typing import Any, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

from constants import Constants

# Keys attached through extra_context; the JSON formatter lifts them out of the record.
_CONTEXT_KEYS = (
    "event",
    "component",
    "action",
    "outcome",
    "status_code",
    "duration_ms",
    "target",
    "context",
    "attempt",
    "repository",
    "coordinate",
    "request",
    "kind",
    "node",
    "count",
    "reason",
)

_SECRET_PATTERN = re.compile(r"(?i)(password|token|secret|passwd)=([^&\s]+)")


class _JsonFormatter(logging.Formatter):
    """Render records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _CONTEXT_KEYS:
            if hasattr(record, key):
                payload[key] = getattr(record, key)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(force: bool = False) -> None:
    """Configure the root logger from environment settings.

    Safe to call more than once; handlers are only replaced when ``force`` is set
    or when the root logger has none yet.
    """
    root = logging.getLogger()
    level_name = os.environ.get(Constants.ENV_LOG_LEVEL, "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    if root.handlers and not force:
        root.setLevel(level)
        return

    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler()
    if os.environ.get(Constants.ENV_LOG_FORMAT, "text").lower() == "json":
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(Constants.LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(level)


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True when DEBUG records from ``logger`` would be emitted."""
    return logger.isEnabledFor(logging.DEBUG)


def extra_context(**fields: Any) -> Dict[str, Any]:
    """Build an ``extra=`` mapping, dropping unset fields."""
    return {key: value for key, value in fields.items() if value is not None}


def redact(text: Optional[str]) -> str:
    """Mask secret-looking ``key=value`` pairs in free text."""
    if not text:
        return ""
    return _SECRET_PATTERN.sub(lambda m: f"{m.group(1)}=***", text)


def safe_url(url: Optional[str]) -> str:
    """Return ``url`` without userinfo or query string."""
    if not url:
        return ""
    try:
        parts = urlsplit(url)
    except ValueError:
        return redact(url)
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return urlunsplit((parts.scheme, host, parts.path, "", ""))


class Timer:
    """Context manager measuring elapsed wall-clock time."""

    def __init__(self) -> None:
        self._start = 0.0
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        self._end = None
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._end = time.perf_counter()

    def duration_ms(self) -> int:
        """Elapsed milliseconds; measured up to now while still running."""
        end = self._end if self._end is not None else time.perf_counter()
        return int((end - self._start) * 1000)
