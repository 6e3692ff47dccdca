"""Repository for the program catalog, coverage and scoring configuration."""

from datetime import datetime
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.enums import GeoLevel
from app.models.domain.evaluation import MatchPattern, ScoringModel
from app.models.domain.lender import (
    BrokerHouseRule,
    CoverageRule,
    Lender,
    Program,
    ProgramCriterion,
)
from app.repositories.base import BaseRepository


class CatalogRepository(BaseRepository[Lender]):
    """
    Read-only catalog queries used to build an evaluation snapshot.

    Uses deep eager loading so the pure engine never triggers lazy loads.
    """

    def __init__(self, db: AsyncSession):
        super().__init__(Lender, db)

    async def get_active_lenders_with_programs(self) -> List[Lender]:
        """
        Retrieve active lenders with program versions, criteria and questions loaded.

        Returns:
            Active lenders ordered by name
        """
        stmt = (
            select(Lender)
            .where(Lender.active == True)
            .options(
                selectinload(Lender.programs)
                .selectinload(Program.criteria)
                .selectinload(ProgramCriterion.question)
            )
            .order_by(Lender.name)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().unique().all())

    async def get_coverage_rules(
        self,
        state_code: str,
        metro_id: Optional[UUID] = None,
    ) -> List[CoverageRule]:
        """
        Retrieve coverage rules that could apply to a scenario location.

        Args:
            state_code: Scenario state
            metro_id: Scenario metro, if any

        Returns:
            State rules for the state plus metro rules for the metro
        """
        conditions = [
            (CoverageRule.level == GeoLevel.STATE) & (CoverageRule.state_code == state_code.upper())
        ]
        if metro_id is not None:
            conditions.append(
                (CoverageRule.level == GeoLevel.METRO) & (CoverageRule.metro_id == metro_id)
            )
        stmt = select(CoverageRule).where(or_(*conditions))
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_house_rules(self, tenant_id: UUID) -> List[BrokerHouseRule]:
        """Active broker house rules of one tenant."""
        stmt = select(BrokerHouseRule).where(
            BrokerHouseRule.tenant_id == tenant_id,
            BrokerHouseRule.is_active == True,
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_active_scoring_models(self) -> List[ScoringModel]:
        stmt = select(ScoringModel).where(ScoringModel.is_active == True)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_active_patterns(self) -> List[MatchPattern]:
        stmt = (
            select(MatchPattern)
            .where(MatchPattern.is_active == True)
            .order_by(MatchPattern.success_rate.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def record_pattern_usage(self, pattern_ids: Iterable[UUID], used_at: datetime) -> int:
        """
        Count one use of each pattern that supplied a bonus.

        Args:
            pattern_ids: Patterns applied by an evaluation
            used_at: Evaluation time

        Returns:
            Number of patterns updated
        """
        ids = sorted(set(pattern_ids), key=str)
        if not ids:
            return 0
        stmt = (
            update(MatchPattern)
            .where(MatchPattern.id.in_(ids))
            .values(usage_count=MatchPattern.usage_count + 1, last_used=used_at)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount
