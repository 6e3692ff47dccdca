"""Core enums for type safety across the application."""

from enum import Enum


class CriterionDataType(str, Enum):
    """Numeric domain a program criterion is evaluated in."""

    DECIMAL = "decimal"
    INTEGER = "integer"
    PERCENTAGE = "percentage"
    MONEY = "money"
    BOOLEAN = "boolean"
    DATE = "date"


class CoverageScope(str, Enum):
    """Owner of a coverage rule."""

    PROGRAM = "program"
    LENDER = "lender"


class GeoLevel(str, Enum):
    """Geography granularity of a coverage rule."""

    STATE = "state"
    METRO = "metro"


class GrantStatus(str, Enum):
    """Exception grant approval states."""

    PENDING = "Pending"
    APPROVED = "Approved"
    DENIED = "Denied"
    REVOKED = "Revoked"


class HouseRuleAction(str, Enum):
    """Broker house rule directives."""

    EXCLUDE = "EXCLUDE"
    PREFER = "PREFER"


class ScoringStrategy(str, Enum):
    """Interchangeable confidence scoring strategies."""

    STATIC = "static"
    WEIGHTED = "weighted"


class Tier(str, Enum):
    """Discrete rating bucket assigned to an evaluated program."""

    PLATINUM = "Platinum"
    EXCEPTION_REQUIRED = "Exception-Required"
    GOLD = "Gold"
    SILVER = "Silver"
    BRONZE = "Bronze"
    DISQUALIFIED = "Disqualified"


# Fixed ordering table used when ranking results
TIER_RANK = {
    Tier.PLATINUM: 0,
    Tier.EXCEPTION_REQUIRED: 1,
    Tier.GOLD: 2,
    Tier.SILVER: 3,
    Tier.BRONZE: 4,
    Tier.DISQUALIFIED: 99,
}


class Component(str, Enum):
    """Pipeline components, used to tag where a failure originated."""

    ADMISSION = "admission_control"
    CACHE = "result_cache"
    LOADER = "catalog_loader"
    HOUSE_RULES = "house_rules"
    COVERAGE = "coverage_resolver"
    CRITERIA = "criteria_evaluator"
    EXCEPTIONS = "exception_resolver"
    SCORING = "scoring_engine"
    AUDIT = "audit_ledger"


class ErrorCategory(str, Enum):
    """Error taxonomy used to pick a remediation action."""

    ADMISSION = "ADMISSION_ERROR"
    INPUT = "INPUT_ERROR"
    EVALUATION = "EVALUATION_ERROR"
    CACHE = "CACHE_ERROR"
    INTEGRITY = "INTEGRITY_ERROR"


class RemediationAction(str, Enum):
    """Remediation actions the error handler can invoke once per failure."""

    RETRY_WITH_BACKOFF = "retry_with_backoff"
    FLUSH_CACHE_KEY = "flush_cache_key"
    HALT_LEDGER = "halt_ledger"
    NO_OP = "no_op"
