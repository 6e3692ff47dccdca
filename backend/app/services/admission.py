"""Per-tenant admission control with a fixed-window token bucket."""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict
from uuid import UUID

from app.core.exceptions import RateLimitExceeded
from app.db.session import SessionFactory, isolated_transaction
from app.repositories.rate_limit_repository import RateLimitRepository

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RateLimiter(ABC):
    """
    Token bucket gate checked before any evaluation work.

    ``acquire`` either takes one token or raises; it never queues or retries.
    """

    def __init__(self, capacity: int, window_seconds: int, clock: Clock = utcnow):
        if capacity < 1:
            raise ValueError("Rate limit capacity must be at least 1")
        self.capacity = capacity
        self.window = timedelta(seconds=window_seconds)
        self.clock = clock

    @abstractmethod
    async def acquire(self, tenant_id: UUID) -> int:
        """
        Take one token for a tenant.

        Args:
            tenant_id: Tenant being admitted

        Returns:
            Tokens remaining in the current window

        Raises:
            RateLimitExceeded: If the bucket is empty
        """


@dataclass
class _Bucket:
    tokens: int
    window_resets_at: datetime


class InMemoryRateLimiter(RateLimiter):
    """Process-local token buckets guarded by an asyncio lock."""

    def __init__(self, capacity: int, window_seconds: int, clock: Clock = utcnow):
        super().__init__(capacity, window_seconds, clock)
        self._buckets: Dict[UUID, _Bucket] = {}
        self._lock = asyncio.Lock()

    async def acquire(self, tenant_id: UUID) -> int:
        async with self._lock:
            now = self.clock()
            bucket = self._buckets.get(tenant_id)
            if bucket is None or bucket.window_resets_at <= now:
                bucket = _Bucket(tokens=self.capacity, window_resets_at=now + self.window)
                self._buckets[tenant_id] = bucket
            if bucket.tokens <= 0:
                logger.warning(f"Rate limit exceeded for tenant {tenant_id}")
                raise RateLimitExceeded(tenant_id)
            bucket.tokens -= 1
            return bucket.tokens


class DatabaseRateLimiter(RateLimiter):
    """
    Token buckets stored in PostgreSQL.

    The decrement is a single conditional ``UPDATE ... RETURNING`` committed in
    its own transaction, so concurrent requests cannot over-admit and a failed
    evaluation does not refund its token.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        capacity: int,
        window_seconds: int,
        clock: Clock = utcnow,
    ):
        super().__init__(capacity, window_seconds, clock)
        self.session_factory = session_factory

    async def acquire(self, tenant_id: UUID) -> int:
        now = self.clock()
        next_reset = now + self.window
        async with isolated_transaction(self.session_factory) as session:
            repo = RateLimitRepository(session)
            await repo.ensure_bucket(tenant_id, self.capacity, next_reset)
            remaining = await repo.try_take_token(tenant_id, now, next_reset)
        if remaining is None:
            logger.warning(f"Rate limit exceeded for tenant {tenant_id}")
            raise RateLimitExceeded(tenant_id)
        return remaining
