"""Tests for the evaluation service orchestration."""

import json
import uuid
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from app.config import settings
from app.core.enums import ErrorCategory
from app.core.exceptions import (
    AuditChainIntegrityError,
    EvaluationFailed,
    RateLimitExceeded,
    ScenarioNotFound,
)
from app.models.schemas.evaluation import EvaluationOptions, EvaluationRequest
from app.services.admission import InMemoryRateLimiter
from app.services.audit_ledger import AuditLedger, InMemoryAuditStore, LedgerGuard
from app.services.evaluation_service import EvaluationService
from app.services.metrics import InMemoryMetricStore, MetricsRecorder, MetricStore
from app.services.remediation import ErrorHandler, InMemoryErrorStore
from app.services.result_cache import InMemoryCacheStore, ResultCache

from factories import TENANT_ID, make_grant, make_ltv_catalog, make_pattern, make_scenario


class FakeScenarioRepository:
    def __init__(self, scenario=None):
        self.scenario = scenario
        self.calls = 0

    async def get_with_answers(self, id):
        self.calls += 1
        if self.scenario is None or self.scenario.id != id:
            return None
        return self.scenario

    async def get_exception_grants(self, scenario_id):
        return list(self.scenario.exception_grants)


class FakeCatalogRepository:
    def __init__(self, lenders, coverage_rules, patterns=()):
        self.lenders = lenders
        self.coverage_rules = coverage_rules
        self.patterns = list(patterns)
        self.pattern_usage = []

    async def get_active_lenders_with_programs(self):
        return self.lenders

    async def get_coverage_rules(self, state_code, metro_id=None):
        return self.coverage_rules

    async def get_house_rules(self, tenant_id):
        return []

    async def get_active_scoring_models(self):
        return []

    async def get_active_patterns(self):
        return self.patterns

    async def record_pattern_usage(self, pattern_ids, used_at):
        ids = set(pattern_ids)
        self.pattern_usage.append((ids, used_at))
        return len(ids)


class StepTimer:
    """perf_counter stand-in advancing 12.5 ms per call."""

    def __init__(self):
        self.now = 100.0

    def __call__(self):
        self.now += 0.0125
        return self.now


class FailingCacheStore(InMemoryCacheStore):
    async def get(self, key, not_before):
        raise ConnectionError("cache backend unreachable")


def make_service(ltv=80, capacity=10, cache_store=None, grant=False, patterns=()):
    question, lender, _, criterion, rule = make_ltv_catalog()
    scenario = make_scenario({question: ltv})
    if grant:
        make_grant(scenario, criterion)

    guard = LedgerGuard()
    cache = ResultCache(cache_store or InMemoryCacheStore(), ttl_seconds=300)
    ledger_store = InMemoryAuditStore()
    error_store = InMemoryErrorStore()
    service = EvaluationService(
        db=None,
        rate_limiter=InMemoryRateLimiter(capacity, 60),
        cache=cache,
        ledger=AuditLedger(ledger_store, guard),
        error_handler=ErrorHandler(
            store=error_store,
            cache=cache,
            ledger_guard=guard,
            actions=settings.REMEDIATION_ACTIONS,
            sleep=AsyncMock(),
        ),
        metrics=MetricsRecorder(InMemoryMetricStore(), timer=StepTimer()),
    )
    service.scenario_repo = FakeScenarioRepository(scenario)
    service.catalog_repo = FakeCatalogRepository([lender], [rule], patterns)
    return service, scenario, ledger_store, error_store


def make_request(scenario, **options) -> EvaluationRequest:
    return EvaluationRequest(
        scenario_id=scenario.id,
        tenant_id=TENANT_ID,
        options=EvaluationOptions(**options),
    )


class TestEvaluationService:
    """Tests for admission, caching, audit and error flow."""

    async def test_returns_ranked_json(self):
        service, scenario, _, _ = make_service(ltv=80)
        body = await service.evaluate(make_request(scenario))
        results = json.loads(body)
        assert results[0]["tier"] == "Bronze"
        assert results[0]["confidence_score"] == 85.0
        assert results[0]["rationale"].startswith("Soft Boundary Breach: LTV")

    async def test_exception_grant_example(self):
        service, scenario, _, _ = make_service(ltv=85, grant=True)
        results = json.loads(await service.evaluate(make_request(scenario)))
        assert results[0]["tier"] == "Exception-Required"

    async def test_cache_hit_is_verbatim_and_not_audited(self):
        service, scenario, ledger_store, _ = make_service()
        first = await service.evaluate(make_request(scenario))
        second = await service.evaluate(make_request(scenario))
        assert first == second
        assert service.scenario_repo.calls == 1
        assert len(await ledger_store.records()) == 1

    async def test_different_options_miss_cache(self):
        service, scenario, ledger_store, _ = make_service()
        await service.evaluate(make_request(scenario))
        await service.evaluate(make_request(scenario, scoring_strategy="weighted"))
        assert service.scenario_repo.calls == 2
        assert len(await ledger_store.records()) == 2

    async def test_test_mode_bypasses_admission_and_cache(self):
        service, scenario, ledger_store, _ = make_service(capacity=1)
        for _ in range(3):
            await service.evaluate(make_request(scenario, test_mode=True))
        assert service.scenario_repo.calls == 3
        assert len(await ledger_store.records()) == 3
        # The single admission token is still available
        await service.evaluate(make_request(scenario))

    async def test_rate_limit_rejects_before_work(self):
        service, scenario, _, error_store = make_service(capacity=1)
        await service.evaluate(make_request(scenario, ab_test_id="a"))
        with pytest.raises(RateLimitExceeded) as exc_info:
            await service.evaluate(make_request(scenario, ab_test_id="b"))
        assert exc_info.value.correlation_id is not None
        assert service.scenario_repo.calls == 1
        assert error_store.records[0].error_category == ErrorCategory.ADMISSION

    async def test_audit_payload_matches_response(self):
        service, scenario, ledger_store, _ = make_service()
        body = await service.evaluate(make_request(scenario, ab_test_id="exp-9"))
        record = (await ledger_store.records())[0]
        payload = json.loads(record.payload)
        assert payload["results"] == json.loads(body)
        assert payload["options"]["ab_test_id"] == "exp-9"
        assert payload["scenario_id"] == str(scenario.id)

    async def test_missing_scenario(self):
        service, _, ledger_store, error_store = make_service()
        request = EvaluationRequest(scenario_id=uuid.uuid4(), tenant_id=TENANT_ID)
        with pytest.raises(ScenarioNotFound) as exc_info:
            await service.evaluate(request)
        assert exc_info.value.correlation_id == error_store.records[0].correlation_id
        assert await ledger_store.records() == []

    async def test_scenario_without_answers(self):
        service, scenario, _, _ = make_service()
        scenario.answers = []
        with pytest.raises(ScenarioNotFound):
            await service.evaluate(make_request(scenario))

    async def test_unexpected_cache_failure_is_cache_error(self):
        service, scenario, _, error_store = make_service(cache_store=FailingCacheStore())
        with pytest.raises(EvaluationFailed) as exc_info:
            await service.evaluate(make_request(scenario))
        record = error_store.records[0]
        assert record.error_category == ErrorCategory.CACHE
        assert record.component == "result_cache"
        assert isinstance(exc_info.value.__cause__, ConnectionError)
        assert error_store.remediations[record.correlation_id]["action"] == "flush_cache_key"

    async def test_halted_ledger_blocks_evaluations(self):
        service, scenario, ledger_store, _ = make_service()
        await service.ledger.guard.halt("tampered")
        with pytest.raises(AuditChainIntegrityError):
            await service.evaluate(make_request(scenario))
        assert await ledger_store.records() == []
        assert await service.ledger_halted()

    async def test_verify_audit_chain(self):
        service, scenario, _, _ = make_service()
        await service.evaluate(make_request(scenario))
        report = await service.verify_audit_chain()
        assert report.valid
        assert report.records_checked == 1


class TestEvaluationBookkeeping:
    """Tests for performance metrics and pattern usage."""

    async def test_computed_evaluation_records_metric(self):
        service, scenario, _, _ = make_service()
        await service.evaluate(make_request(scenario))
        metric = service.metrics.store.records[0]
        assert metric.metric_name == "scenario_evaluation_time"
        assert metric.scenario_id == scenario.id
        assert metric.tenant_id == TENANT_ID
        assert metric.duration_ms == Decimal("12.500")
        assert metric.programs_evaluated == 1
        assert not metric.cache_hit
        assert not metric.test_mode

    async def test_cache_hit_records_metric(self):
        service, scenario, _, _ = make_service()
        await service.evaluate(make_request(scenario))
        await service.evaluate(make_request(scenario))
        hit = service.metrics.store.records[1]
        assert hit.cache_hit
        assert hit.programs_evaluated == 0

    async def test_failed_evaluation_records_no_metric(self):
        service, _, _, _ = make_service()
        with pytest.raises(ScenarioNotFound):
            await service.evaluate(EvaluationRequest(scenario_id=uuid.uuid4(), tenant_id=TENANT_ID))
        assert service.metrics.store.records == []

    async def test_broken_metric_store_does_not_fail_evaluation(self):
        service, scenario, _, _ = make_service()
        store = AsyncMock(spec=MetricStore)
        store.save.side_effect = ConnectionError("metrics database unavailable")
        service.metrics = MetricsRecorder(store)
        body = await service.evaluate(make_request(scenario))
        assert json.loads(body)[0]["tier"] == "Bronze"
        store.save.assert_awaited_once()

    async def test_applied_pattern_usage_is_counted(self):
        pattern = make_pattern("0.85")
        service, scenario, _, _ = make_service(patterns=[pattern])
        body = await service.evaluate(make_request(scenario))
        assert json.loads(body)[0]["pattern_detail"]["pattern_id"] == str(pattern.id)

        assert [ids for ids, _ in service.catalog_repo.pattern_usage] == [{pattern.id}]

        # Cache hits are not usage
        await service.evaluate(make_request(scenario))
        assert len(service.catalog_repo.pattern_usage) == 1

    async def test_test_runs_do_not_count_pattern_usage(self):
        service, scenario, _, _ = make_service(patterns=[make_pattern("0.85")])
        await service.evaluate(make_request(scenario, test_mode=True))
        assert service.catalog_repo.pattern_usage == []
        assert service.metrics.store.records[0].test_mode
