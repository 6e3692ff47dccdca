"""Per-evaluation performance metrics."""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Dict, List
from uuid import UUID

from app.db.session import SessionFactory, isolated_transaction
from app.repositories.metric_repository import MetricRepository
from app.services.rule_engine.base import RequestContext

logger = logging.getLogger(__name__)

EVALUATION_TIME_METRIC = "scenario_evaluation_time"


@dataclass
class MetricRecord:
    """Timing and volume of one successful evaluation."""

    scenario_id: UUID
    tenant_id: UUID
    duration_ms: Decimal
    programs_evaluated: int
    cache_hit: bool
    test_mode: bool
    recorded_at: datetime
    metric_name: str = EVALUATION_TIME_METRIC

    def as_row(self) -> Dict[str, Any]:
        return {
            "metric_name": self.metric_name,
            "scenario_id": self.scenario_id,
            "tenant_id": self.tenant_id,
            "duration_ms": self.duration_ms,
            "programs_evaluated": self.programs_evaluated,
            "cache_hit": self.cache_hit,
            "test_mode": self.test_mode,
            "recorded_at": self.recorded_at,
        }


class MetricStore(ABC):
    """Sink for metric records."""

    @abstractmethod
    async def save(self, record: MetricRecord) -> None:
        """Persist one metric record."""


class InMemoryMetricStore(MetricStore):
    def __init__(self):
        self.records: List[MetricRecord] = []

    async def save(self, record):
        self.records.append(record)


class DatabaseMetricStore(MetricStore):
    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    async def save(self, record):
        async with isolated_transaction(self.session_factory) as session:
            await MetricRepository(session).create(**record.as_row())


class MetricsRecorder:
    """
    Times evaluations and records one metric per success.

    A failing store is logged and never fails the evaluation.
    """

    def __init__(
        self,
        store: MetricStore,
        timer: Callable[[], float] = time.perf_counter,
    ):
        self.store = store
        self.timer = timer

    def start(self) -> float:
        return self.timer()

    async def record(
        self,
        context: RequestContext,
        started: float,
        programs_evaluated: int,
        cache_hit: bool,
    ) -> MetricRecord:
        """
        Record an evaluation that began at ``started``.

        Args:
            context: Request context of the evaluation
            started: Value returned by ``start``
            programs_evaluated: Number of ranked results computed (0 on a cache hit)
            cache_hit: Whether the result came from the cache

        Returns:
            The metric record, whether or not it could be stored
        """
        elapsed = Decimal(str((self.timer() - started) * 1000))
        record = MetricRecord(
            scenario_id=context.scenario_id,
            tenant_id=context.tenant_id,
            duration_ms=elapsed.quantize(Decimal("0.001"), rounding=ROUND_HALF_UP),
            programs_evaluated=programs_evaluated,
            cache_hit=cache_hit,
            test_mode=context.test_mode,
            recorded_at=context.now,
        )
        logger.info(
            f"Evaluated scenario {record.scenario_id} in {record.duration_ms} ms "
            f"({record.programs_evaluated} programs, cache_hit={record.cache_hit})"
        )
        try:
            await self.store.save(record)
        except Exception:
            logger.exception(f"Could not store evaluation metric for scenario {record.scenario_id}")
        return record

