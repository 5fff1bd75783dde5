"""Sliding-window rate limiting of source queries."""

from __future__ import annotations

import math
import threading
import time
from collections import deque
from collections.abc import Callable

from pydantic import BaseModel, ConfigDict

from waivern_dsar.config import RateLimitConfig

MIN_RETRY_AFTER_MS = 1000


class RateLimitDecision(BaseModel):
    """Outcome of a rate-limit check."""

    model_config = ConfigDict(frozen=True)

    allowed: bool
    remaining: int
    retry_after_ms: int | None = None


def case_rate_limit_key(case_id: str) -> str:
    """Rate-limit key shared by every run of a case."""
    return f"copilot_run:{case_id}"


class SlidingWindowRateLimiter:
    """In-process sliding-window rate limiter.

    Each allowed check consumes one slot for the key. Checks are atomic per
    limiter instance, so concurrent dispatchers never over-admit.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialise the limiter.

        Args:
            clock: Returns the current time in seconds

        """
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: dict[str, deque[float]] = {}

    def check_rate_limit(self, key: str, config: RateLimitConfig) -> RateLimitDecision:
        """Check and consume a slot for a key.

        Args:
            key: Rate-limit key, usually from `case_rate_limit_key`
            config: Maximum requests per window

        Returns:
            Whether the request is allowed, the slots left, and on denial how
            long to wait (never less than one second).

        """
        with self._lock:
            now = self._clock()
            cutoff = now - config.window_seconds
            window = self._windows.setdefault(key, deque())
            while window and window[0] <= cutoff:
                window.popleft()

            if len(window) >= config.max_requests:
                wait_ms = math.ceil((window[0] + config.window_seconds - now) * 1000)
                return RateLimitDecision(
                    allowed=False,
                    remaining=0,
                    retry_after_ms=max(wait_ms, MIN_RETRY_AFTER_MS),
                )

            window.append(now)
            return RateLimitDecision(
                allowed=True, remaining=config.max_requests - len(window)
            )

    def reset(self, key: str | None = None) -> None:
        """Forget recorded requests for one key, or for all keys."""
        with self._lock:
            if key is None:
                self._windows.clear()
            else:
                self._windows.pop(key, None)
