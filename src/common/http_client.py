"""Shared HTTP helpers used by the repository clients.

Encapsulates common request/timeout error handling so modules avoid
duplicating try/except blocks. This module is dependency-light and can be
safely imported by registry/* and resolution/* without cycles.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)

_DEFAULT_HEADERS = {"User-Agent": Constants.USER_AGENT}


def safe_get(
    url: str,
    *,
    context: str,
    timeout: Optional[float] = None,
    **kwargs: Any,
) -> requests.Response:
    """Perform a GET request with consistent timeouts, headers and DEBUG traces.

    Args:
        url: Target URL.
        context: Human-readable source tag for logs (e.g., a repository id).
        timeout: Per-request timeout in seconds; defaults to Constants.REQUEST_TIMEOUT.
        **kwargs: Passed through to requests.get.

    Returns:
        requests.Response: The HTTP response object.

    Raises:
        requests.RequestException: transport errors, including timeouts, are
            traced and re-raised for the caller to record.
    """
    safe_target = safe_url(url)
    effective_timeout = Constants.REQUEST_TIMEOUT if timeout is None else timeout
    headers = dict(_DEFAULT_HEADERS)
    headers.update(kwargs.pop("headers", None) or {})
    with Timer() as t:
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP request",
                extra=extra_context(
                    event="http_request",
                    component="http_client",
                    action="GET",
                    target=safe_target,
                    context=context
                )
            )
        try:
            res = requests.get(url, timeout=effective_timeout, headers=headers, **kwargs)
        except requests.Timeout:
            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP timeout",
                    extra=extra_context(
                        event="http_exception",
                        component="http_client",
                        action="GET",
                        outcome="timeout",
                        duration_ms=t.duration_ms(),
                        target=safe_target,
                        context=context
                    )
                )
            raise
        except requests.RequestException:  # includes ConnectionError
            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP request exception",
                    extra=extra_context(
                        event="http_exception",
                        component="http_client",
                        action="GET",
                        outcome="request_exception",
                        duration_ms=t.duration_ms(),
                        target=safe_target,
                        context=context
                    )
                )
            raise
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP response",
                extra=extra_context(
                    event="http_response",
                    component="http_client",
                    action="GET",
                    outcome="success" if res.status_code < 400 else "non_2xx",
                    status_code=res.status_code,
                    duration_ms=t.duration_ms(),
                    target=safe_target,
                    context=context
                )
            )
        return res
