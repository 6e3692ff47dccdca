"""Rule engine for evaluating loan scenarios against lender programs."""

from .base import (
    Band,
    BandViolation,
    CatalogSnapshot,
    EvaluationInput,
    RequestContext,
    ScenarioAnswers,
)
from .coverage import CoverageDecision, CoverageResolver
from .engine import CriteriaEvaluator, ProgramEvaluationResult
from .exception_resolver import ExceptionResolver
from .matcher import Matcher
from .scoring import MatchResult, ScoringEngine, assign_tier, rank_results

__all__ = [
    "Band",
    "BandViolation",
    "CatalogSnapshot",
    "CoverageDecision",
    "CoverageResolver",
    "CriteriaEvaluator",
    "EvaluationInput",
    "ExceptionResolver",
    "MatchResult",
    "Matcher",
    "ProgramEvaluationResult",
    "RequestContext",
    "ScenarioAnswers",
    "ScoringEngine",
    "assign_tier",
    "rank_results",
]
