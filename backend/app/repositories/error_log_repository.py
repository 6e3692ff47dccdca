"""Repository for structured error records."""

from typing import Any, Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.domain.evaluation import ErrorLogEntry
from app.repositories.base import BaseRepository


class ErrorLogRepository(BaseRepository[ErrorLogEntry]):
    """Write access to the error log."""

    def __init__(self, db: AsyncSession):
        super().__init__(ErrorLogEntry, db)

    async def record_remediation(
        self,
        correlation_id: UUID,
        action: str,
        result: Optional[dict[str, Any]],
    ) -> None:
        stmt = (
            update(ErrorLogEntry)
            .where(ErrorLogEntry.correlation_id == correlation_id)
            .values(remediation_action=action, remediation_result=result)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(stmt)
