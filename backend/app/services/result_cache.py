"""Short-TTL memoization of ranked evaluation results."""

import hashlib
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Tuple
from uuid import UUID

from app.db.session import SessionFactory, isolated_transaction
from app.repositories.cache_repository import ResultCacheRepository

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def canonical_json(value: Any) -> str:
    """Deterministic JSON text: sorted keys, compact separators."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def cache_key(scenario_id: UUID, options: Dict[str, Any]) -> str:
    """
    Stable key for a (scenario, options) pair.

    Args:
        scenario_id: Scenario being evaluated
        options: Normalized request options

    Returns:
        Hex SHA-256 digest
    """
    material = f"{scenario_id}|{canonical_json(options)}"
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


class CacheStore(ABC):
    """Storage backend for cached result text."""

    @abstractmethod
    async def get(self, key: str, not_before: datetime) -> Optional[str]:
        """Return the text cached at or after ``not_before``, else None."""

    @abstractmethod
    async def set(self, key: str, value: str, cached_at: datetime, not_before: datetime) -> None:
        """Upsert an entry; last writer wins. Entries older than ``not_before`` may be dropped."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove an entry, returning whether it existed."""


class InMemoryCacheStore(CacheStore):
    """Process-local entries; stale ones are evicted on read and pruned on write."""

    def __init__(self):
        self._entries: Dict[str, Tuple[str, datetime]] = {}

    async def get(self, key, not_before):
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, cached_at = entry
        if cached_at < not_before:
            del self._entries[key]
            return None
        return value

    async def set(self, key, value, cached_at, not_before):
        stale = [k for k, (_, at) in self._entries.items() if at < not_before]
        for stale_key in stale:
            del self._entries[stale_key]
        self._entries[key] = (value, cached_at)

    async def delete(self, key):
        return self._entries.pop(key, None) is not None


class DatabaseCacheStore(CacheStore):
    """Cache entries in PostgreSQL, each operation in its own transaction."""

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    async def get(self, key, not_before):
        async with isolated_transaction(self.session_factory) as session:
            return await ResultCacheRepository(session).get_fresh(key, not_before)

    async def set(self, key, value, cached_at, not_before):
        # Stale rows are never returned by get_fresh
        async with isolated_transaction(self.session_factory) as session:
            await ResultCacheRepository(session).upsert(key, value, cached_at)

    async def delete(self, key):
        async with isolated_transaction(self.session_factory) as session:
            return await ResultCacheRepository(session).delete_key(key)


class ResultCache:
    """
    TTL-bounded result cache.

    Entries older than ``ttl_seconds`` are never returned. Values are stored
    and returned as the exact JSON text produced by the original computation.
    """

    def __init__(
        self,
        store: CacheStore,
        ttl_seconds: int,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.ttl = timedelta(seconds=ttl_seconds)
        self.clock = clock

    async def get(self, key: str) -> Optional[str]:
        value = await self.store.get(key, self.clock() - self.ttl)
        if value is not None:
            logger.debug(f"Result cache hit for {key[:12]}")
        return value

    async def set(self, key: str, value: str) -> None:
        now = self.clock()
        await self.store.set(key, value, now, now - self.ttl)

    async def invalidate(self, key: str) -> bool:
        removed = await self.store.delete(key)
        logger.info(f"Invalidated result cache key {key[:12]} (existed={removed})")
        return removed
