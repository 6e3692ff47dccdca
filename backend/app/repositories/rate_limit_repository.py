"""Repository for per-tenant token bucket state."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import case, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.domain.evaluation import TenantRateLimit
from app.repositories.base import BaseRepository


class RateLimitRepository(BaseRepository[TenantRateLimit]):
    """Atomic token bucket operations."""

    def __init__(self, db: AsyncSession):
        super().__init__(TenantRateLimit, db)

    async def ensure_bucket(
        self,
        tenant_id: UUID,
        capacity: int,
        window_resets_at: datetime,
    ) -> None:
        """Create a full bucket for an unknown tenant; existing buckets are untouched."""
        stmt = (
            insert(TenantRateLimit)
            .values(
                tenant_id=tenant_id,
                tokens=capacity,
                capacity=capacity,
                window_resets_at=window_resets_at,
            )
            .on_conflict_do_nothing(index_elements=[TenantRateLimit.tenant_id])
        )
        await self.db.execute(stmt)

    async def try_take_token(
        self,
        tenant_id: UUID,
        now: datetime,
        next_reset: datetime,
    ) -> Optional[int]:
        """
        Decrement-if-positive in a single statement, refilling expired windows.

        Args:
            tenant_id: Tenant whose bucket is charged
            now: Current time
            next_reset: Reset time to store when the window rolls over

        Returns:
            Tokens left after the decrement, or None when the bucket is empty
        """
        expired = TenantRateLimit.window_resets_at <= now
        stmt = (
            update(TenantRateLimit)
            .where(
                TenantRateLimit.tenant_id == tenant_id,
                (TenantRateLimit.tokens > 0) | expired,
                # An expired window refills to capacity, which must be positive
                TenantRateLimit.capacity > 0,
            )
            .values(
                tokens=case(
                    (expired, TenantRateLimit.capacity - 1),
                    else_=TenantRateLimit.tokens - 1,
                ),
                window_resets_at=case(
                    (expired, next_reset),
                    else_=TenantRateLimit.window_resets_at,
                ),
            )
            .returning(TenantRateLimit.tokens)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()
