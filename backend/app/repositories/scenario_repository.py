"""Repository for scenarios, their answers and exception grants."""

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.domain.scenario import ExceptionGrant, Scenario, ScenarioAnswer
from app.repositories.base import BaseRepository


class ScenarioRepository(BaseRepository[Scenario]):
    """Scenario queries with answers eagerly loaded for evaluation."""

    def __init__(self, db: AsyncSession):
        super().__init__(Scenario, db)

    async def get_with_answers(self, id: UUID) -> Optional[Scenario]:
        """
        Retrieve a scenario with its answers and their questions loaded.

        Args:
            id: Scenario id

        Returns:
            The scenario, or None if not found
        """
        stmt = (
            select(Scenario)
            .where(Scenario.id == id)
            .options(selectinload(Scenario.answers).selectinload(ScenarioAnswer.question))
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_exception_grants(self, scenario_id: UUID) -> List[ExceptionGrant]:
        """All exception grants recorded for a scenario, regardless of status."""
        stmt = select(ExceptionGrant).where(ExceptionGrant.scenario_id == scenario_id)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
