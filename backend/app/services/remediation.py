"""Error capture, persistence and one-shot remediation around the pipeline."""

import asyncio
import logging
import traceback
import uuid
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from app.core.enums import Component, ErrorCategory, RemediationAction
from app.core.exceptions import EvaluationCoreError, EvaluationFailed
from app.db.session import SessionFactory, isolated_transaction
from app.repositories.error_log_repository import ErrorLogRepository
from app.services.audit_ledger import LedgerGuard
from app.services.result_cache import ResultCache
from app.services.rule_engine.base import RequestContext

logger = logging.getLogger(__name__)

RetryCallable = Callable[[], Awaitable[Any]]


@dataclass
class ErrorRecord:
    """Structured description of one captured failure."""

    correlation_id: uuid.UUID
    component: str
    error_code: str
    error_category: ErrorCategory
    error_message: str
    scenario_id: Optional[uuid.UUID]
    tenant_id: Optional[uuid.UUID]
    stack_trace: str
    context: Dict[str, Any]

    def as_row(self) -> Dict[str, Any]:
        return {
            "correlation_id": self.correlation_id,
            "component": self.component,
            "error_code": self.error_code,
            "error_category": self.error_category.value,
            "error_message": self.error_message,
            "scenario_id": self.scenario_id,
            "tenant_id": self.tenant_id,
            "stack_trace": self.stack_trace,
            "context": self.context,
        }


class ErrorStore(ABC):
    """Sink for error records."""

    @abstractmethod
    async def save(self, record: ErrorRecord) -> None:
        """Persist a captured failure."""

    @abstractmethod
    async def save_remediation(
        self,
        correlation_id: uuid.UUID,
        action: RemediationAction,
        result: Dict[str, Any],
    ) -> None:
        """Attach the remediation outcome to a stored failure."""


class InMemoryErrorStore(ErrorStore):
    def __init__(self):
        self.records: List[ErrorRecord] = []
        self.remediations: Dict[uuid.UUID, Dict[str, Any]] = {}

    async def save(self, record):
        self.records.append(record)

    async def save_remediation(self, correlation_id, action, result):
        self.remediations[correlation_id] = {"action": action.value, "result": result}


class DatabaseErrorStore(ErrorStore):
    """
    Error rows written through their own session.

    A rolled-back request transaction therefore never loses its error record.
    """

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    async def save(self, record):
        async with isolated_transaction(self.session_factory) as session:
            await ErrorLogRepository(session).create(**record.as_row())

    async def save_remediation(self, correlation_id, action, result):
        async with isolated_transaction(self.session_factory) as session:
            await ErrorLogRepository(session).record_remediation(
                correlation_id, action.value, result
            )


class ErrorHandler:
    """
    Wraps the evaluation pipeline.

    On failure: capture the component, code, message and request context;
    persist it under a fresh correlation id; run the remediation configured
    for the error category once; log the outcome; re-raise. Domain errors
    propagate as themselves, anything else as EvaluationFailed.
    """

    def __init__(
        self,
        store: ErrorStore,
        cache: Optional[ResultCache],
        ledger_guard: LedgerGuard,
        actions: Dict[str, str],
        backoff_seconds: float = 0.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.cache = cache
        self.ledger_guard = ledger_guard
        self.actions = actions
        self.backoff_seconds = backoff_seconds
        self.sleep = sleep

    def action_for(self, category: ErrorCategory) -> RemediationAction:
        configured = self.actions.get(category.value, RemediationAction.NO_OP.value)
        try:
            return RemediationAction(configured)
        except ValueError:
            logger.warning(f"Unknown remediation action {configured!r} for {category.value}")
            return RemediationAction.NO_OP

    @asynccontextmanager
    async def guard(
        self,
        context: RequestContext,
        retry: Optional[RetryCallable] = None,
        cache_key: Optional[str] = None,
    ) -> AsyncIterator[None]:
        """
        Run a block under error capture and remediation.

        Args:
            context: Request context; its component attributes the failure
            retry: Side-effect-free recomputation used by retry_with_backoff
            cache_key: Key flushed by flush_cache_key

        Raises:
            EvaluationCoreError: The original domain error, with correlation id set
            EvaluationFailed: Wrapping any other exception
        """
        try:
            yield
        except Exception as exc:
            record = self._capture(exc, context)
            logger.error(
                f"[{record.correlation_id}] {record.component} failed with "
                f"{record.error_code}: {record.error_message}",
                exc_info=True,
            )
            await self._persist(record)

            action = self.action_for(record.error_category)
            outcome = await self._remediate(action, record, retry, cache_key)
            logger.info(f"[{record.correlation_id}] remediation {action.value}: {outcome}")
            await self._persist_remediation(record, action, outcome)

            if isinstance(exc, EvaluationCoreError):
                exc.correlation_id = record.correlation_id
                raise
            raise EvaluationFailed(
                f"Evaluation failed in {record.component}: {record.error_message}",
                component=record.component,
                correlation_id=record.correlation_id,
            ) from exc

    def _capture(self, exc: Exception, context: RequestContext) -> ErrorRecord:
        component = context.component or Component.LOADER
        if isinstance(exc, EvaluationCoreError):
            category = exc.category
            code = exc.error_code
            message = exc.message
        else:
            # Unexpected failures are categorized by the stage they came from
            category = (
                ErrorCategory.CACHE if component == Component.CACHE else ErrorCategory.EVALUATION
            )
            code = type(exc).__name__
            message = str(exc) or type(exc).__name__
        return ErrorRecord(
            correlation_id=uuid.uuid4(),
            component=component.value,
            error_code=code,
            error_category=category,
            error_message=message,
            scenario_id=context.scenario_id,
            tenant_id=context.tenant_id,
            stack_trace="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
            context={"options": context.options(), "evaluated_at": context.now.isoformat()},
        )

    async def _persist(self, record: ErrorRecord) -> None:
        try:
            await self.store.save(record)
        except Exception:
            # The original failure is still raised; this only reports the sink
            logger.exception(f"[{record.correlation_id}] could not persist error record")

    async def _persist_remediation(
        self,
        record: ErrorRecord,
        action: RemediationAction,
        outcome: Dict[str, Any],
    ) -> None:
        try:
            await self.store.save_remediation(record.correlation_id, action, outcome)
        except Exception:
            logger.exception(f"[{record.correlation_id}] could not persist remediation outcome")

    async def _remediate(
        self,
        action: RemediationAction,
        record: ErrorRecord,
        retry: Optional[RetryCallable],
        cache_key: Optional[str],
    ) -> Dict[str, Any]:
        if action == RemediationAction.RETRY_WITH_BACKOFF:
            if retry is None:
                return {"status": "skipped", "detail": "no retry available"}
            await self.sleep(self.backoff_seconds)
            try:
                await retry()
            except Exception as retry_exc:
                return {"status": "failed", "detail": f"{type(retry_exc).__name__}: {retry_exc}"}
            return {"status": "succeeded"}

        if action == RemediationAction.FLUSH_CACHE_KEY:
            if self.cache is None or cache_key is None:
                return {"status": "skipped", "detail": "no cache key"}
            try:
                removed = await self.cache.invalidate(cache_key)
            except Exception as flush_exc:
                return {"status": "failed", "detail": f"{type(flush_exc).__name__}: {flush_exc}"}
            return {"status": "succeeded", "removed": removed}

        if action == RemediationAction.HALT_LEDGER:
            try:
                await self.ledger_guard.halt(f"{record.error_code} ({record.correlation_id})")
            except Exception as halt_exc:
                # The local switch is already set; only the shared marker failed
                return {"status": "failed", "detail": f"{type(halt_exc).__name__}: {halt_exc}"}
            return {"status": "succeeded", "halted": True}

        return {"status": "succeeded"}
