"""Repository for per-evaluation performance metrics."""

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.domain.evaluation import EvaluationMetric
from app.repositories.base import BaseRepository


class MetricRepository(BaseRepository[EvaluationMetric]):
    """Write access to evaluation metrics; rows are created through ``create``."""

    def __init__(self, db: AsyncSession):
        super().__init__(EvaluationMetric, db)
