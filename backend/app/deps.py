"""Dependency injection for FastAPI endpoints."""

from dataclasses import dataclass
from functools import lru_cache
from typing import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.db.session import SessionLocal, get_db
from app.services.admission import DatabaseRateLimiter, InMemoryRateLimiter, RateLimiter
from app.services.audit_ledger import (
    AuditLedger,
    AuditStore,
    DatabaseAuditStore,
    InMemoryAuditStore,
    LedgerGuard,
)
from app.services.evaluation_service import EvaluationService
from app.services.metrics import (
    DatabaseMetricStore,
    InMemoryMetricStore,
    MetricsRecorder,
    MetricStore,
)
from app.services.remediation import (
    DatabaseErrorStore,
    ErrorHandler,
    ErrorStore,
    InMemoryErrorStore,
)
from app.services.result_cache import DatabaseCacheStore, InMemoryCacheStore, ResultCache

__all__ = ["get_db", "get_session", "get_evaluation_state", "get_evaluation_service"]


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Get database session dependency.

    This is an alias for get_db for clarity in endpoint signatures.
    """
    async for session in get_db():
        yield session


@dataclass
class EvaluationState:
    """Process-wide shared state: token buckets, cache, ledger, error and metric sinks."""

    rate_limiter: RateLimiter
    cache: ResultCache
    ledger: AuditLedger
    error_handler: ErrorHandler
    metrics: MetricsRecorder


@lru_cache(maxsize=1)
def get_evaluation_state() -> EvaluationState:
    """
    Build the shared evaluation state once per process.

    ``STATE_BACKEND=memory`` keeps everything in-process; otherwise state
    lives in PostgreSQL and is shared across workers.
    """
    if settings.uses_memory_state:
        rate_limiter: RateLimiter = InMemoryRateLimiter(
            settings.RATE_LIMIT_CAPACITY, settings.RATE_LIMIT_WINDOW_SECONDS
        )
        cache = ResultCache(InMemoryCacheStore(), settings.RESULT_CACHE_TTL_SECONDS)
        audit_store: AuditStore = InMemoryAuditStore()
        error_store: ErrorStore = InMemoryErrorStore()
        metric_store: MetricStore = InMemoryMetricStore()
    else:
        rate_limiter = DatabaseRateLimiter(
            SessionLocal, settings.RATE_LIMIT_CAPACITY, settings.RATE_LIMIT_WINDOW_SECONDS
        )
        cache = ResultCache(DatabaseCacheStore(SessionLocal), settings.RESULT_CACHE_TTL_SECONDS)
        audit_store = DatabaseAuditStore(SessionLocal)
        error_store = DatabaseErrorStore(SessionLocal)
        metric_store = DatabaseMetricStore(SessionLocal)

    # Halts are written through to the audit store and seen by every worker
    guard = LedgerGuard(audit_store)
    ledger = AuditLedger(audit_store, guard)
    error_handler = ErrorHandler(
        store=error_store,
        cache=cache,
        ledger_guard=guard,
        actions=settings.REMEDIATION_ACTIONS,
        backoff_seconds=settings.REMEDIATION_RETRY_BACKOFF_SECONDS,
    )
    return EvaluationState(
        rate_limiter=rate_limiter,
        cache=cache,
        ledger=ledger,
        error_handler=error_handler,
        metrics=MetricsRecorder(metric_store),
    )


async def get_evaluation_service(
    db: AsyncSession = Depends(get_session),
) -> EvaluationService:
    """Evaluation service bound to the request session and the shared state."""
    state = get_evaluation_state()
    return EvaluationService(
        db=db,
        rate_limiter=state.rate_limiter,
        cache=state.cache,
        ledger=state.ledger,
        error_handler=state.error_handler,
        metrics=state.metrics,
        house_rule_threshold=settings.HOUSE_RULE_CONFIDENCE_THRESHOLD,
    )
