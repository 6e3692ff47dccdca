"""Evaluation service orchestrating admission, caching, matching and audit."""

import logging
from dataclasses import replace
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import Component
from app.core.exceptions import ScenarioNotFound
from app.models.schemas.evaluation import EvaluationRequest
from app.repositories.catalog_repository import CatalogRepository
from app.repositories.scenario_repository import ScenarioRepository
from app.services.admission import RateLimiter
from app.services.audit_ledger import AuditLedger, ChainVerification
from app.services.metrics import InMemoryMetricStore, MetricsRecorder
from app.services.remediation import ErrorHandler
from app.services.result_cache import ResultCache, cache_key, canonical_json
from app.services.rule_engine.base import (
    CatalogSnapshot,
    EvaluationInput,
    RequestContext,
    ScenarioAnswers,
)
from app.services.rule_engine.matcher import Matcher

logger = logging.getLogger(__name__)


def applied_patterns(results: list[dict]) -> set[UUID]:
    """Ids of the patterns that supplied the bonus of any ranked result."""
    return {
        UUID(result["pattern_detail"]["pattern_id"])
        for result in results
        if result.get("pattern_detail", {}).get("pattern_id")
    }


class EvaluationService:
    """
    Evaluation service running one scenario through the full pipeline.

    This service:
    - Admits the request against the tenant's token bucket (not for test runs)
    - Returns a fresh cached result verbatim when available (not for test runs)
    - Loads the scenario, its answers and a catalog snapshot
    - Runs the pure matching stages and counts usage of the applied patterns
    - Appends the outcome to the audit ledger
    - Stores the serialized result in the cache
    - Records a timing metric for every successful evaluation
    - Captures every failure through the error handler before re-raising
    """

    def __init__(
        self,
        db: AsyncSession,
        rate_limiter: RateLimiter,
        cache: ResultCache,
        ledger: AuditLedger,
        error_handler: ErrorHandler,
        metrics: Optional[MetricsRecorder] = None,
        house_rule_threshold: float = 0.8,
    ):
        """
        Initialize the evaluation service.

        Args:
            db: Async database session for catalog and scenario reads
            rate_limiter: Admission control backend
            cache: Result cache
            ledger: Audit ledger
            error_handler: Error capture and remediation wrapper
            metrics: Timing metric recorder; in-memory when omitted
            house_rule_threshold: Confidence above which EXCLUDE house rules apply
        """
        self.db = db
        self.scenario_repo = ScenarioRepository(db)
        self.catalog_repo = CatalogRepository(db)
        self.rate_limiter = rate_limiter
        self.cache = cache
        self.ledger = ledger
        self.error_handler = error_handler
        self.metrics = metrics or MetricsRecorder(InMemoryMetricStore())
        self.matcher = Matcher(Decimal(str(house_rule_threshold)))

    @staticmethod
    def build_context(request: EvaluationRequest) -> RequestContext:
        return RequestContext(
            scenario_id=request.scenario_id,
            tenant_id=request.tenant_id,
            test_mode=request.options.test_mode,
            scoring_strategy=request.options.scoring_strategy,
            ab_test_id=request.options.ab_test_id,
        )

    async def evaluate(self, request: EvaluationRequest) -> str:
        """
        Evaluate a scenario and return the ranked results as JSON text.

        Args:
            request: Scenario, tenant and options

        Returns:
            JSON array of ranked results; identical bytes on a cache hit

        Raises:
            RateLimitExceeded: If the tenant has no tokens left
            ScenarioNotFound: If the scenario is missing or has no answers
            InvalidScenarioAnswer: If an answer cannot be coerced
            AuditChainIntegrityError: If the ledger is halted or corrupt
            EvaluationFailed: For any other failure
        """
        context = self.build_context(request)
        key = cache_key(context.scenario_id, context.options())
        started = self.metrics.start()

        async def recompute() -> None:
            await self.compute(replace(context, component=None))

        async with self.error_handler.guard(context, retry=recompute, cache_key=key):
            if not context.test_mode:
                context.component = Component.ADMISSION
                await self.rate_limiter.acquire(context.tenant_id)

                context.component = Component.CACHE
                cached = await self.cache.get(key)
                if cached is not None:
                    logger.info(f"Serving cached result for scenario {context.scenario_id}")
                    await self.metrics.record(context, started, 0, cache_hit=True)
                    return cached

            results = await self.compute(context)
            body = canonical_json(results)

            if not context.test_mode:
                context.component = Component.SCORING
                await self.catalog_repo.record_pattern_usage(
                    applied_patterns(results), context.now
                )

            context.component = Component.AUDIT
            await self.ledger.append(
                scenario_id=context.scenario_id,
                tenant_id=context.tenant_id,
                options=context.options(),
                results=results,
                recorded_at=context.now,
            )

            if not context.test_mode:
                context.component = Component.CACHE
                await self.cache.set(key, body)

            await self.metrics.record(context, started, len(results), cache_hit=False)
            return body

    async def compute(self, context: RequestContext) -> list[dict]:
        """
        Load inputs and run the side-effect-free matching stages.

        Returns:
            Ranked results as plain dicts
        """
        data = await self.load_input(context)
        matches = self.matcher.evaluate(data, context)
        return [match.to_dict() for match in matches]

    async def load_input(self, context: RequestContext) -> EvaluationInput:
        """
        Load the scenario, its answers, grants and a catalog snapshot.

        Raises:
            ScenarioNotFound: If the scenario is missing or has no answers
        """
        context.component = Component.LOADER
        scenario = await self.scenario_repo.get_with_answers(context.scenario_id)
        if scenario is None:
            raise ScenarioNotFound(context.scenario_id)
        answers = ScenarioAnswers.from_records(scenario.answers)
        if not len(answers):
            raise ScenarioNotFound(context.scenario_id)

        grants = await self.scenario_repo.get_exception_grants(scenario.id)
        catalog = CatalogSnapshot(
            lenders=await self.catalog_repo.get_active_lenders_with_programs(),
            coverage_rules=await self.catalog_repo.get_coverage_rules(
                scenario.state_code, scenario.metro_id
            ),
            house_rules=await self.catalog_repo.get_house_rules(context.tenant_id),
            scoring_models=await self.catalog_repo.get_active_scoring_models(),
            patterns=await self.catalog_repo.get_active_patterns(),
        )
        return EvaluationInput(scenario=scenario, answers=answers, catalog=catalog, grants=grants)

    async def verify_audit_chain(self) -> ChainVerification:
        return await self.ledger.verify_chain()

    async def ledger_halted(self) -> bool:
        return await self.ledger.guard.refresh()

