from .audit_repository import AuditRepository
from .base import BaseRepository
from .cache_repository import ResultCacheRepository
from .catalog_repository import CatalogRepository
from .error_log_repository import ErrorLogRepository
from .metric_repository import MetricRepository
from .rate_limit_repository import RateLimitRepository
from .scenario_repository import ScenarioRepository

__all__ = [
    "AuditRepository",
    "BaseRepository",
    "CatalogRepository",
    "ErrorLogRepository",
    "MetricRepository",
    "RateLimitRepository",
    "ResultCacheRepository",
    "ScenarioRepository",
]
