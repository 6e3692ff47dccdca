"""Domain models for the application."""

from app.models.domain.evaluation import (
    AuditLedgerHalt,
    AuditRecord,
    ErrorLogEntry,
    EvaluationMetric,
    MatchPattern,
    ResultCacheEntry,
    ScoringModel,
    TenantRateLimit,
)
from app.models.domain.lender import (
    BrokerHouseRule,
    CoverageRule,
    Lender,
    Metro,
    Program,
    ProgramCriterion,
    Question,
)
from app.models.domain.scenario import ExceptionGrant, Scenario, ScenarioAnswer

__all__ = [
    "Lender",
    "Program",
    "ProgramCriterion",
    "Question",
    "Metro",
    "CoverageRule",
    "BrokerHouseRule",
    "Scenario",
    "ScenarioAnswer",
    "ExceptionGrant",
    "ScoringModel",
    "MatchPattern",
    "ResultCacheEntry",
    "AuditRecord",
    "AuditLedgerHalt",
    "TenantRateLimit",
    "ErrorLogEntry",
    "EvaluationMetric",
]
