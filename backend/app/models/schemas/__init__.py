"""Pydantic schemas for API validation and serialization."""

from app.models.schemas.evaluation import (
    ChainVerificationResponse,
    ErrorResponse,
    EvaluationOptions,
    EvaluationRequest,
    MatchResultResponse,
)

__all__ = [
    "ChainVerificationResponse",
    "ErrorResponse",
    "EvaluationOptions",
    "EvaluationRequest",
    "MatchResultResponse",
]
