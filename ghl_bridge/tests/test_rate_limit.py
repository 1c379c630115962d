"""Tests for the outbound rate limiter."""

from __future__ import annotations

import pytest

from ghl_bridge.api.rate_limit import DAY_SECONDS, RateLimiter, RateLimitExceeded
from ghl_bridge.errors import ErrorKind


class FakeClock:
    def __init__(self):
        self.now = 1000.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _limiter(clock: FakeClock, burst=3, window=10.0, daily=100) -> RateLimiter:
    return RateLimiter(burst, window, daily, clock=clock, sleep=clock.sleep)


class TestSlidingWindow:
    @pytest.mark.asyncio
    async def test_burst_passes_without_waiting(self):
        clock = FakeClock()
        limiter = _limiter(clock)
        for _ in range(3):
            await limiter.acquire("loc_1")
        assert clock.sleeps == []
        assert limiter.remaining("loc_1") == 0

    @pytest.mark.asyncio
    async def test_call_over_burst_waits_for_window(self):
        clock = FakeClock()
        limiter = _limiter(clock)
        for _ in range(3):
            await limiter.acquire("loc_1")

        await limiter.acquire("loc_1")

        assert clock.sleeps == [pytest.approx(10.0)]
        assert clock.now == pytest.approx(1010.0)

    @pytest.mark.asyncio
    async def test_wait_is_relative_to_oldest_call(self):
        clock = FakeClock()
        limiter = _limiter(clock)
        await limiter.acquire("loc_1")
        clock.now += 4
        await limiter.acquire("loc_1")
        await limiter.acquire("loc_1")

        await limiter.acquire("loc_1")

        assert clock.sleeps == [pytest.approx(6.0)]

    @pytest.mark.asyncio
    async def test_keys_are_independent(self):
        clock = FakeClock()
        limiter = _limiter(clock, burst=1)
        await limiter.acquire("loc_1")
        await limiter.acquire("loc_2")
        assert clock.sleeps == []


class TestDailyCeiling:
    @pytest.mark.asyncio
    async def test_ceiling_raises_instead_of_blocking(self):
        clock = FakeClock()
        limiter = _limiter(clock, burst=10, daily=2)
        await limiter.acquire("loc_1")
        await limiter.acquire("loc_1")

        with pytest.raises(RateLimitExceeded) as exc_info:
            await limiter.acquire("loc_1")

        assert exc_info.value.kind is ErrorKind.UPSTREAM_TRANSIENT
        assert exc_info.value.retryable is True
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_ceiling_resets_after_a_day(self):
        clock = FakeClock()
        limiter = _limiter(clock, burst=10, daily=1)
        await limiter.acquire("loc_1")
        clock.now += DAY_SECONDS

        await limiter.acquire("loc_1")

        assert limiter.state("loc_1").daily_count == 1
