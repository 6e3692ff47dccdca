"""Repository for the hash-chained audit ledger."""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.domain.evaluation import AuditLedgerHalt, AuditRecord
from app.repositories.base import BaseRepository

# Advisory lock key serializing ledger appends across processes
AUDIT_LEDGER_LOCK_KEY = 7_340_021

HALT_ROW_ID = 1


class AuditRepository(BaseRepository[AuditRecord]):
    """Append-only access to audit records and the ledger halt marker."""

    def __init__(self, db: AsyncSession):
        super().__init__(AuditRecord, db)

    async def lock_chain(self) -> None:
        """Take the transaction-scoped advisory lock guarding the chain tip."""
        await self.db.execute(select(func.pg_advisory_xact_lock(AUDIT_LEDGER_LOCK_KEY)))

    async def get_tip(self) -> Optional[AuditRecord]:
        """The record with the highest sequence, or None for an empty ledger."""
        stmt = select(AuditRecord).order_by(AuditRecord.sequence.desc()).limit(1)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def append(self, record: AuditRecord) -> AuditRecord:
        self.db.add(record)
        await self.db.flush()
        return record

    async def get_all_ordered(self) -> List[AuditRecord]:
        stmt = select(AuditRecord).order_by(AuditRecord.sequence)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_halt_reason(self) -> Optional[str]:
        stmt = select(AuditLedgerHalt.reason).where(AuditLedgerHalt.id == HALT_ROW_ID)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def record_halt(self, reason: str, halted_at: datetime) -> None:
        """Write the halt marker; the first recorded reason is kept."""
        stmt = (
            insert(AuditLedgerHalt)
            .values(id=HALT_ROW_ID, reason=reason, halted_at=halted_at)
            .on_conflict_do_nothing(index_elements=[AuditLedgerHalt.id])
        )
        await self.db.execute(stmt)
