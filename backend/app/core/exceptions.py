"""Domain errors surfaced by the evaluation core."""

from typing import Optional
from uuid import UUID

from app.core.enums import ErrorCategory


class EvaluationCoreError(Exception):
    """
    Base class for all errors raised by the evaluation pipeline.

    Attributes:
        category: Error taxonomy bucket driving remediation
        error_code: Stable machine-readable code
        correlation_id: Set by the error handler once the failure is logged
    """

    category: ErrorCategory = ErrorCategory.EVALUATION
    error_code: str = "EVALUATION_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
        self.correlation_id: Optional[UUID] = None


class RateLimitExceeded(EvaluationCoreError):
    """Tenant has no admission tokens left in the current window."""

    category = ErrorCategory.ADMISSION
    error_code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, tenant_id: UUID):
        super().__init__(f"Rate limit exceeded for tenant {tenant_id}")
        self.tenant_id = tenant_id


class ScenarioNotFound(EvaluationCoreError):
    """Scenario does not exist or has no answers on file."""

    category = ErrorCategory.INPUT
    error_code = "SCENARIO_NOT_FOUND"

    def __init__(self, scenario_id: UUID):
        super().__init__(f"Scenario {scenario_id} not found or has no answers")
        self.scenario_id = scenario_id


class InvalidScenarioAnswer(EvaluationCoreError):
    """A scenario answer cannot be coerced into the criterion's domain."""

    category = ErrorCategory.INPUT
    error_code = "INVALID_SCENARIO_ANSWER"


class AuditChainIntegrityError(EvaluationCoreError):
    """Stored audit hashes no longer match their recomputed values."""

    category = ErrorCategory.INTEGRITY
    error_code = "AUDIT_CHAIN_BROKEN"


class ImmutableProgramVersionError(EvaluationCoreError):
    """Attempted to modify a program version that has been published."""

    category = ErrorCategory.INPUT
    error_code = "PROGRAM_VERSION_IMMUTABLE"


class EvaluationFailed(EvaluationCoreError):
    """Wraps an unexpected failure after remediation was attempted."""

    error_code = "EVALUATION_FAILED"

    def __init__(
        self,
        message: str,
        component: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ):
        super().__init__(message)
        self.component = component
        self.correlation_id = correlation_id
