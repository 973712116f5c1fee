"""Resolution cache: key -> outcome memoization with single-flight fetches."""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Optional

from common.logging_utils import extra_context, is_debug_enabled

logger = logging.getLogger(__name__)


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    joins: int = 0


class ResolutionCache:
    """Interface for outcome caches owned by a resolution context."""

    def resolve(self, key: Hashable, compute: Callable[[], Any]) -> Any:
        raise NotImplementedError

    def peek(self, key: Hashable) -> Optional[Any]:
        raise NotImplementedError

    def stats(self) -> Dict[str, int]:
        raise NotImplementedError


class InMemoryResolutionCache(ResolutionCache):
    """Thread-safe in-memory cache.

    Each key moves through three states: absent, in flight (a shared Future),
    and settled (the outcome). The first caller for an absent key runs
    ``compute`` outside the lock; callers arriving while it runs wait on the
    same Future and receive the identical outcome object. Settled outcomes,
    failed ones included, are kept for the life of the cache.

    If ``compute`` raises, the key returns to absent and every waiter sees the
    exception, so a later call may try again.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._settled: Dict[Hashable, Any] = {}
        self._in_flight: Dict[Hashable, Future] = {}
        self._stats = CacheStats()

    def resolve(self, key: Hashable, compute: Callable[[], Any]) -> Any:
        with self._lock:
            if key in self._settled:
                self._stats.hits += 1
                return self._settled[key]
            pending = self._in_flight.get(key)
            if pending is None:
                pending = Future()
                self._in_flight[key] = pending
                self._stats.misses += 1
                owner = True
            else:
                self._stats.joins += 1
                owner = False

        if not owner:
            if is_debug_enabled(logger):
                logger.debug("Joining in-flight resolution", extra=extra_context(
                    event="cache_join", component="cache", action="resolve", request=str(key)
                ))
            return pending.result()

        try:
            outcome = compute()
        except BaseException as exc:
            with self._lock:
                self._in_flight.pop(key, None)
            pending.set_exception(exc)
            raise

        with self._lock:
            self._settled[key] = outcome
            self._in_flight.pop(key, None)
        pending.set_result(outcome)
        return outcome

    def peek(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            return self._settled.get(key)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "entries": len(self._settled),
                "in_flight": len(self._in_flight),
                "hits": self._stats.hits,
                "misses": self._stats.misses,
                "joins": self._stats.joins,
            }
