"""Per-key sliding-window + daily rate limiter for outbound API calls.

State lives on the limiter instance, which callers pass into each
``GHLApiClient``. It only reflects calls this process has made.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from ..config import settings
from ..errors import UpstreamTransientError

log = logging.getLogger(__name__)

DAY_SECONDS = 24 * 60 * 60


class RateLimitExceeded(UpstreamTransientError):
    """Daily ceiling reached; raised immediately instead of blocking."""


@dataclass
class RateLimitState:
    window: deque[float] = field(default_factory=deque)
    daily_count: int = 0
    daily_reset_at: float | None = None


class RateLimiter:
    """Sliding window (``burst`` calls per ``window_seconds``) plus a daily ceiling."""

    def __init__(
        self,
        burst: int | None = None,
        window_seconds: float | None = None,
        daily_limit: int | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.burst = burst or settings.rate_limit_burst
        self.window_seconds = window_seconds or settings.rate_limit_window_seconds
        self.daily_limit = daily_limit or settings.rate_limit_daily
        self._clock = clock
        self._sleep = sleep
        self._states: dict[str, RateLimitState] = {}
        self._lock = asyncio.Lock()

    def state(self, key: str) -> RateLimitState:
        return self._states.setdefault(key, RateLimitState())

    def _prune(self, state: RateLimitState, now: float) -> None:
        if state.daily_reset_at is None or now >= state.daily_reset_at:
            state.daily_count = 0
            state.daily_reset_at = now + DAY_SECONDS
        cutoff = now - self.window_seconds
        while state.window and state.window[0] <= cutoff:
            state.window.popleft()

    async def acquire(self, key: str) -> None:
        """Record one call for ``key``, blocking while the window is full."""
        while True:
            async with self._lock:
                now = self._clock()
                state = self.state(key)
                self._prune(state, now)

                if state.daily_count >= self.daily_limit:
                    raise RateLimitExceeded(
                        f"Daily API limit of {self.daily_limit} reached",
                        details={"rate_limit_key": key},
                    )

                if len(state.window) < self.burst:
                    state.window.append(now)
                    state.daily_count += 1
                    return

                wait = state.window[0] + self.window_seconds - now

            log.debug("Rate limit window full for %s, waiting %.2fs", key, wait)
            await self._sleep(max(wait, 0.0))

    def remaining(self, key: str) -> int:
        state = self.state(key)
        self._prune(state, self._clock())
        return max(self.burst - len(state.window), 0)


default_rate_limiter = RateLimiter()
