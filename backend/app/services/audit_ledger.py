"""Append-only, hash-chained audit ledger of evaluations."""

import asyncio
import hashlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID

from app.core.exceptions import AuditChainIntegrityError
from app.db.session import SessionFactory, isolated_transaction
from app.models.domain.evaluation import AuditRecord
from app.repositories.audit_repository import AuditRepository
from app.services.result_cache import canonical_json, utcnow

logger = logging.getLogger(__name__)

GENESIS = "GENESIS"


def compute_hash(payload: str, previous_hash: Optional[str]) -> str:
    """SHA-256 over the payload text concatenated with the previous hash (or GENESIS)."""
    material = payload + (previous_hash or GENESIS)
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


class LedgerGuard:
    """
    Halt switch shared by the ledger and the error handler.

    A halt is written through to the audit store, so every process sharing
    that store stops appending, not just the one that detected the problem.
    The halt is never lifted automatically.
    """

    def __init__(self, store: Optional["AuditStore"] = None):
        self.store = store
        self.halted = False
        self.reason: Optional[str] = None

    def _mark(self, reason: str) -> None:
        if not self.halted:
            logger.critical(f"Audit ledger halted: {reason}")
            self.reason = reason
        self.halted = True

    async def halt(self, reason: str) -> None:
        self._mark(reason)
        if self.store is not None:
            await self.store.halt(reason)

    async def refresh(self) -> bool:
        """Pick up a halt recorded by another process; returns whether halted."""
        if not self.halted and self.store is not None:
            reason = await self.store.halt_reason()
            if reason is not None:
                self._mark(reason)
        return self.halted

    def check(self) -> None:
        if self.halted:
            raise AuditChainIntegrityError(f"Audit ledger is halted: {self.reason}")


@dataclass
class ChainVerification:
    """
    Result of recomputing the whole chain.

    Attributes:
        valid: True when every stored hash matches its recomputed value
        records_checked: Number of records inspected
        invalid_sequences: Sequences whose stored hash does not match
    """

    valid: bool
    records_checked: int
    invalid_sequences: List[int] = field(default_factory=list)

    @property
    def first_invalid(self) -> Optional[int]:
        return self.invalid_sequences[0] if self.invalid_sequences else None


RecordBuilder = Callable[[Optional[AuditRecord]], AuditRecord]


class AuditStore(ABC):
    """Storage backend for audit records."""

    @abstractmethod
    async def append(self, build: RecordBuilder) -> AuditRecord:
        """
        Read the tip and insert the record built from it, atomically.

        Args:
            build: Called with the current tip; returns the record to insert
        """

    @abstractmethod
    async def records(self) -> List[AuditRecord]:
        """All records in sequence order."""

    @abstractmethod
    async def halt(self, reason: str) -> None:
        """Record a halt; the first recorded reason is kept."""

    @abstractmethod
    async def halt_reason(self) -> Optional[str]:
        """The recorded halt reason, or None while appends are allowed."""


class InMemoryAuditStore(AuditStore):
    def __init__(self):
        self._records: List[AuditRecord] = []
        self._halt_reason: Optional[str] = None

    async def append(self, build):
        if self._halt_reason is not None:
            raise AuditChainIntegrityError(f"Audit ledger is halted: {self._halt_reason}")
        tip = self._records[-1] if self._records else None
        record = build(tip)
        record.sequence = len(self._records) + 1
        self._records.append(record)
        return record

    async def records(self):
        return list(self._records)

    async def halt(self, reason):
        if self._halt_reason is None:
            self._halt_reason = reason

    async def halt_reason(self):
        return self._halt_reason


class DatabaseAuditStore(AuditStore):
    """
    Audit records in PostgreSQL.

    Each append runs in its own transaction holding a transaction-scoped
    advisory lock, so the halt check, the tip read and the insert are atomic
    across processes.
    """

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    async def append(self, build):
        async with isolated_transaction(self.session_factory) as session:
            repo = AuditRepository(session)
            await repo.lock_chain()
            reason = await repo.get_halt_reason()
            if reason is not None:
                raise AuditChainIntegrityError(f"Audit ledger is halted: {reason}")
            tip = await repo.get_tip()
            return await repo.append(build(tip))

    async def records(self):
        async with self.session_factory() as session:
            return await AuditRepository(session).get_all_ordered()

    async def halt(self, reason):
        async with isolated_transaction(self.session_factory) as session:
            await AuditRepository(session).record_halt(reason, utcnow())

    async def halt_reason(self):
        async with self.session_factory() as session:
            return await AuditRepository(session).get_halt_reason()


class AuditLedger:
    """
    Serialized writer for the audit chain.

    Appends take a process-wide lock before touching the store. The tip is
    re-hashed before every append; a mismatch halts the ledger. The guard is
    bound to the store so halts are visible to every process sharing it.
    """

    def __init__(self, store: AuditStore, guard: Optional[LedgerGuard] = None):
        self.store = store
        self.guard = guard or LedgerGuard()
        if self.guard.store is None:
            self.guard.store = store
        self._lock = asyncio.Lock()

    async def _halt(self, reason: str) -> None:
        try:
            await self.guard.halt(reason)
        except Exception:
            # The local switch is already set; the integrity failure still surfaces
            logger.exception("Could not record the audit ledger halt in the store")

    async def append(
        self,
        scenario_id: UUID,
        tenant_id: UUID,
        options: Dict[str, Any],
        results: List[Dict[str, Any]],
        recorded_at: datetime,
    ) -> AuditRecord:
        """
        Append one evaluation to the chain.

        Args:
            scenario_id: Evaluated scenario
            tenant_id: Requesting tenant
            options: Normalized request options
            results: Ranked results as returned to the caller
            recorded_at: Evaluation timestamp

        Returns:
            The stored record

        Raises:
            AuditChainIntegrityError: If the ledger is halted or the tip is corrupt
        """
        self.guard.check()
        payload = canonical_json(
            {
                "scenario_id": str(scenario_id),
                "tenant_id": str(tenant_id),
                "options": options,
                "results": results,
                "recorded_at": recorded_at.isoformat(),
            }
        )

        def build(tip: Optional[AuditRecord]) -> AuditRecord:
            previous_hash = None
            if tip is not None:
                if compute_hash(tip.payload, tip.previous_hash) != tip.current_hash:
                    raise AuditChainIntegrityError(f"Audit record {tip.sequence} hash mismatch")
                previous_hash = tip.current_hash
            return AuditRecord(
                scenario_id=scenario_id,
                tenant_id=tenant_id,
                payload=payload,
                previous_hash=previous_hash,
                current_hash=compute_hash(payload, previous_hash),
                recorded_at=recorded_at,
            )

        async with self._lock:
            self.guard.check()
            try:
                record = await self.store.append(build)
            except AuditChainIntegrityError as exc:
                await self._halt(exc.message)
                raise

        logger.info(f"Audit record {record.sequence} appended for scenario {scenario_id}")
        return record

    async def verify_chain(self) -> ChainVerification:
        """
        Recompute the running hash over every record in sequence.

        The running hash feeds each next step, so tampering with one record
        invalidates every record after it. Any mismatch halts the ledger.

        Returns:
            ChainVerification listing every invalid sequence
        """
        records = await self.store.records()
        running: Optional[str] = None
        broken = False
        invalid: List[int] = []
        for record in records:
            previous = running
            running = compute_hash(record.payload, previous)
            if broken or running != record.current_hash or record.previous_hash != previous:
                broken = True
                invalid.append(record.sequence)

        report = ChainVerification(
            valid=not invalid,
            records_checked=len(records),
            invalid_sequences=invalid,
        )
        if invalid:
            await self._halt(
                f"Chain verification failed at sequence {report.first_invalid} "
                f"({len(invalid)} invalid records)"
            )
        return report
