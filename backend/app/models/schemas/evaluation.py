"""Pydantic schemas for evaluation requests, results and ledger verification."""

from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.core.enums import ScoringStrategy, Tier


# ==================== Request Schemas ====================


class EvaluationOptions(BaseModel):
    """Options controlling one evaluation run."""

    test_mode: bool = False
    scoring_strategy: ScoringStrategy = ScoringStrategy.STATIC
    ab_test_id: Optional[str] = Field(default=None, max_length=100)


class EvaluationRequest(BaseModel):
    """Schema for requesting an evaluation of a scenario."""

    scenario_id: UUID
    tenant_id: UUID
    options: EvaluationOptions = Field(default_factory=EvaluationOptions)


# ==================== Response Schemas ====================


class ImprovementStrengths(BaseModel):
    hard_criteria_met: str
    lender_rating: float


class ImprovementHints(BaseModel):
    improvement_areas: Optional[list[dict[str, Any]]] = None
    strengths: ImprovementStrengths


class MatchResultResponse(BaseModel):
    """One ranked program match."""

    lender_name: str
    program_name: str
    hard_pass_count: int
    confidence_score: float = Field(ge=0, le=100)
    tier: Tier
    lender_rating: float
    rationale: str
    scoring_detail: dict[str, Any] = Field(default_factory=dict)
    pattern_detail: dict[str, Any] = Field(default_factory=dict)
    improvement_hints: ImprovementHints


class ChainVerificationResponse(BaseModel):
    """Schema for audit chain verification results."""

    valid: bool
    records_checked: int
    invalid_sequences: list[int] = Field(default_factory=list)
    first_invalid: Optional[int] = None
    halted: bool = False


class ErrorResponse(BaseModel):
    """Error body returned for evaluation failures."""

    error_code: str
    message: str
    correlation_id: Optional[UUID] = None
