"""Tests for per-tenant admission control."""

import asyncio
import uuid
from datetime import timedelta

import pytest

from app.core.exceptions import RateLimitExceeded
from app.services.admission import InMemoryRateLimiter

from factories import NOW


class FakeClock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)


class TestInMemoryRateLimiter:
    """Tests for the fixed-window token bucket."""

    def test_capacity_must_be_positive(self):
        with pytest.raises(ValueError):
            InMemoryRateLimiter(capacity=0, window_seconds=60)

    async def test_tokens_count_down(self):
        limiter = InMemoryRateLimiter(capacity=3, window_seconds=60, clock=FakeClock())
        tenant = uuid.uuid4()
        assert [await limiter.acquire(tenant) for _ in range(3)] == [2, 1, 0]
        with pytest.raises(RateLimitExceeded) as exc_info:
            await limiter.acquire(tenant)
        assert exc_info.value.tenant_id == tenant

    async def test_concurrent_requests_admit_exactly_capacity(self):
        limiter = InMemoryRateLimiter(capacity=5, window_seconds=60, clock=FakeClock())
        tenant = uuid.uuid4()
        outcomes = await asyncio.gather(
            *(limiter.acquire(tenant) for _ in range(6)), return_exceptions=True
        )
        rejected = [o for o in outcomes if isinstance(o, RateLimitExceeded)]
        assert len(rejected) == 1
        assert sorted(o for o in outcomes if isinstance(o, int)) == [0, 1, 2, 3, 4]

    async def test_tenants_are_isolated(self):
        limiter = InMemoryRateLimiter(capacity=1, window_seconds=60, clock=FakeClock())
        first, second = uuid.uuid4(), uuid.uuid4()
        await limiter.acquire(first)
        assert await limiter.acquire(second) == 0
        with pytest.raises(RateLimitExceeded):
            await limiter.acquire(first)

    async def test_window_refills(self):
        clock = FakeClock()
        limiter = InMemoryRateLimiter(capacity=1, window_seconds=60, clock=clock)
        tenant = uuid.uuid4()
        await limiter.acquire(tenant)
        clock.advance(59)
        with pytest.raises(RateLimitExceeded):
            await limiter.acquire(tenant)
        clock.advance(1)
        assert await limiter.acquire(tenant) == 0
