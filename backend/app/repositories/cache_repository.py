"""Repository for memoized evaluation results."""

from datetime import datetime
from typing import Optional

from sqlalchemy import delete, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.domain.evaluation import ResultCacheEntry
from app.repositories.base import BaseRepository


class ResultCacheRepository(BaseRepository[ResultCacheEntry]):
    """Keyed result cache stored in PostgreSQL."""

    def __init__(self, db: AsyncSession):
        super().__init__(ResultCacheEntry, db)

    async def get_fresh(self, cache_key: str, not_before: datetime) -> Optional[str]:
        """
        Return the stored result text if it was cached at or after ``not_before``.

        Args:
            cache_key: Cache key
            not_before: Oldest acceptable ``cached_at``

        Returns:
            The stored JSON text, or None on miss or expiry
        """
        stmt = (
            update(ResultCacheEntry)
            .where(
                ResultCacheEntry.cache_key == cache_key,
                ResultCacheEntry.cached_at >= not_before,
            )
            .values(hit_count=ResultCacheEntry.hit_count + 1)
            .returning(ResultCacheEntry.result)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert(self, cache_key: str, value: str, cached_at: datetime) -> None:
        """Insert or replace an entry; the last writer wins."""
        stmt = insert(ResultCacheEntry).values(
            cache_key=cache_key,
            result=value,
            cached_at=cached_at,
            hit_count=0,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[ResultCacheEntry.cache_key],
            set_={"result": stmt.excluded.result, "cached_at": stmt.excluded.cached_at, "hit_count": 0},
        )
        await self.db.execute(stmt)

    async def delete_key(self, cache_key: str) -> bool:
        stmt = delete(ResultCacheEntry).where(ResultCacheEntry.cache_key == cache_key)
        result = await self.db.execute(stmt)
        return result.rowcount > 0
