"""Confidence scoring, pattern bonus, tiering, rationale and ranking."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from app.core.enums import TIER_RANK, ScoringStrategy, Tier
from app.models.domain.evaluation import MatchPattern, ScoringModel
from app.models.domain.lender import Program
from app.models.domain.scenario import Scenario
from app.services.rule_engine.engine import ProgramEvaluationResult

SCORE_FLOOR = Decimal("0")
SCORE_CEILING = Decimal("100")
PATTERN_BONUS_SCALE = Decimal("10")
# Patterns reported in pattern_detail.patterns_matched
REPORTED_PATTERN_MIN_RATE = Decimal("0.7")


def clamp_score(value: Decimal) -> Decimal:
    """Clamp a score into [0, 100]."""
    return max(SCORE_FLOOR, min(SCORE_CEILING, value))


def round_score(value: Decimal) -> Decimal:
    """Round to one decimal place, half up."""
    return value.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)


def _decimal(value: Any) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


class ConfidenceStrategy(ABC):
    """
    Interchangeable confidence scoring formula.

    Coefficients default to ``default_weights`` and can be overridden by the
    ``weights`` of the active ScoringModel for the same strategy.
    """

    strategy: ScoringStrategy
    default_weights: Dict[str, Decimal] = {}

    def coefficients(self, model: Optional[ScoringModel] = None) -> Dict[str, Decimal]:
        weights = dict(self.default_weights)
        if model is not None and model.weights:
            for key in self.default_weights:
                if key in model.weights:
                    weights[key] = _decimal(model.weights[key])
        return weights

    @abstractmethod
    def base_score(
        self,
        result: ProgramEvaluationResult,
        lender_rating: Decimal,
        weights: Dict[str, Decimal],
    ) -> Decimal:
        """
        Compute the un-bonused confidence score.

        Args:
            result: Criteria evaluation result
            lender_rating: Lender reputation rating (0-100)
            weights: Resolved coefficients

        Returns:
            Score clamped to [0, 100]
        """


class StaticStrategy(ConfidenceStrategy):
    """``100 - 15 x softFailures``."""

    strategy = ScoringStrategy.STATIC
    default_weights = {"soft_penalty": Decimal("15")}

    def base_score(self, result, lender_rating, weights):
        penalty = weights["soft_penalty"] * len(result.soft_failures)
        return clamp_score(SCORE_CEILING - penalty)


class WeightedStrategy(ConfidenceStrategy):
    """``100 - 10 x softFailures + 0.1 x rating + 20 x hardPass/total``."""

    strategy = ScoringStrategy.WEIGHTED
    default_weights = {
        "soft_penalty": Decimal("10"),
        "rating_weight": Decimal("0.1"),
        "hard_ratio_weight": Decimal("20"),
    }

    def base_score(self, result, lender_rating, weights):
        hard_ratio = Decimal("0")
        if result.total_criteria:
            hard_ratio = Decimal(result.hard_pass_count) / Decimal(result.total_criteria)
        score = (
            SCORE_CEILING
            - weights["soft_penalty"] * len(result.soft_failures)
            + weights["rating_weight"] * lender_rating
            + weights["hard_ratio_weight"] * hard_ratio
        )
        return clamp_score(score)


SCORING_STRATEGIES: Dict[ScoringStrategy, ConfidenceStrategy] = {
    ScoringStrategy.STATIC: StaticStrategy(),
    ScoringStrategy.WEIGHTED: WeightedStrategy(),
}


def pattern_applies(pattern: MatchPattern, program: Program, scenario: Scenario) -> bool:
    """
    Check whether a pattern's config restricts it away from this program.

    Recognized ``pattern_config`` keys: ``program_ids``, ``program_keys``,
    ``lender_ids``, ``states``, ``min_loan_amount``, ``max_loan_amount``.
    An empty config matches every program.
    """
    config = pattern.pattern_config or {}

    def _listed(key: str, value: Any) -> bool:
        allowed = config.get(key)
        if not allowed:
            return True
        return str(value) in {str(item) for item in allowed}

    if not _listed("program_ids", program.id):
        return False
    if not _listed("program_keys", program.program_key):
        return False
    if not _listed("lender_ids", program.lender_id):
        return False

    states = config.get("states")
    if states and (scenario.state_code or "").upper() not in {s.upper() for s in states}:
        return False

    amount = _decimal(scenario.loan_amount) if scenario.loan_amount is not None else None
    minimum = config.get("min_loan_amount")
    if minimum is not None and (amount is None or amount < _decimal(minimum)):
        return False
    maximum = config.get("max_loan_amount")
    if maximum is not None and (amount is None or amount > _decimal(maximum)):
        return False

    return True


def best_pattern(
    patterns: List[MatchPattern],
    program: Program,
    scenario: Scenario,
) -> Tuple[Optional[MatchPattern], Decimal, List[MatchPattern]]:
    """
    Find the highest success-rate pattern applying to a program.

    Returns:
        (best pattern or None, bonus in [0, 10], all matching patterns)
    """
    matching = [
        pattern
        for pattern in patterns
        if pattern.is_active and pattern_applies(pattern, program, scenario)
    ]
    if not matching:
        return None, Decimal("0"), []
    best = max(matching, key=lambda pattern: (_decimal(pattern.success_rate), str(pattern.id)))
    rate = max(Decimal("0"), min(Decimal("1"), _decimal(best.success_rate)))
    return best, rate * PATTERN_BONUS_SCALE, matching


def assign_tier(
    has_hard_failures: bool,
    exception_covered: bool,
    confidence: Decimal,
    lender_rating: Decimal,
    soft_failure_count: int,
) -> Tier:
    """
    Derive the tier; the first matching rule wins.

    1. Disqualified: hard failures not fully covered
    2. Exception-Required: hard failures fully covered
    3. Platinum: confidence >= 95 and rating >= 95
    4. Gold: confidence >= 90 and rating >= 90
    5. Bronze: any soft failure
    6. Silver: otherwise
    """
    if has_hard_failures and not exception_covered:
        return Tier.DISQUALIFIED
    if has_hard_failures:
        return Tier.EXCEPTION_REQUIRED
    if confidence >= 95 and lender_rating >= 95:
        return Tier.PLATINUM
    if confidence >= 90 and lender_rating >= 90:
        return Tier.GOLD
    if soft_failure_count > 0:
        return Tier.BRONZE
    return Tier.SILVER


def build_rationale(result: ProgramEvaluationResult, pattern_bonus: Decimal) -> str:
    """Human-readable rationale from the dominant reason behind the tier."""
    if result.has_hard_failures and not result.exception_covered:
        return f"Disqualified: {result.uncovered_failures[0].criterion_name} violation."
    if result.has_hard_failures:
        return f"Exception-Approved: {result.covered_failures[0].criterion_name}"
    if result.soft_failures:
        breach = result.soft_failures[0]
        return f"Soft Boundary Breach: {breach.criterion_name} ({breach.describe()})"
    if pattern_bonus > 0:
        return "Pattern Match: Historical success pattern detected"
    return "Optimal Match: Meets all preferred criteria."


@dataclass
class MatchResult:
    """
    One ranked, explainable match of a scenario to a program.

    Attributes:
        lender_name: Lender display name
        program_name: Program display name
        program_id: Program version id, used as the final tie-break
        hard_pass_count: Hard checks passed
        confidence_score: Final score in [0, 100], one decimal
        tier: Assigned tier
        lender_rating: Lender reputation rating
        rationale: Deterministic explanation of the tier
        scoring_detail: Strategy, coefficients and failure breakdown
        pattern_detail: Pattern bonus breakdown
        improvement_hints: Soft failures to work on and strengths
    """

    lender_name: str
    program_name: str
    program_id: UUID
    hard_pass_count: int
    confidence_score: Decimal
    tier: Tier
    lender_rating: Decimal
    rationale: str
    scoring_detail: Dict[str, Any] = field(default_factory=dict)
    pattern_detail: Dict[str, Any] = field(default_factory=dict)
    improvement_hints: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lender_name": self.lender_name,
            "program_name": self.program_name,
            "hard_pass_count": self.hard_pass_count,
            "confidence_score": float(self.confidence_score),
            "tier": self.tier.value,
            "lender_rating": float(self.lender_rating),
            "rationale": self.rationale,
            "scoring_detail": self.scoring_detail,
            "pattern_detail": self.pattern_detail,
            "improvement_hints": self.improvement_hints,
        }


def rank_results(results: List[MatchResult]) -> List[MatchResult]:
    """
    Order by tier rank, then confidence descending, then names and id.

    Returns:
        A new, fully deterministic list
    """
    return sorted(
        results,
        key=lambda match: (
            TIER_RANK[match.tier],
            -match.confidence_score,
            match.lender_name,
            match.program_name,
            str(match.program_id),
        ),
    )


class ScoringEngine:
    """
    Turns criteria results into scored, tiered and explained matches.

    Args:
        strategy: Confidence strategy selected by the request
        model: Active ScoringModel for that strategy, if any
        patterns: Active match patterns
    """

    def __init__(
        self,
        strategy: ScoringStrategy,
        model: Optional[ScoringModel] = None,
        patterns: Optional[List[MatchPattern]] = None,
    ):
        self.strategy = SCORING_STRATEGIES[strategy]
        self.model = model
        self.weights = self.strategy.coefficients(model)
        self.patterns = patterns or []

    def score(
        self,
        result: ProgramEvaluationResult,
        scenario: Scenario,
        ab_test_id: Optional[str] = None,
    ) -> MatchResult:
        program = result.program
        lender = result.lender
        rating = _decimal(lender.profile_score if lender.profile_score is not None else 0)

        base = self.strategy.base_score(result, rating, self.weights)
        pattern, bonus, matching = best_pattern(self.patterns, program, scenario)
        confidence = round_score(clamp_score(base + bonus))

        tier = assign_tier(
            has_hard_failures=result.has_hard_failures,
            exception_covered=result.exception_covered,
            confidence=confidence,
            lender_rating=rating,
            soft_failure_count=len(result.soft_failures),
        )

        rule = result.coverage_rule
        scoring_detail = {
            "strategy": self.strategy.strategy.value,
            "model_version": self.model.model_version if self.model else None,
            "weights": {key: float(value) for key, value in self.weights.items()},
            "base_score": float(round_score(base)),
            "pattern_bonus": float(round_score(bonus)),
            "total_criteria": result.total_criteria,
            "soft_pass_count": result.soft_pass_count,
            "hard_failures": [violation.to_dict() for violation in result.hard_failures],
            "soft_failures": [violation.to_dict() for violation in result.soft_failures],
            "preferred_misses": [violation.to_dict() for violation in result.preferred_misses],
            "features_used": [feature.to_dict() for feature in result.features],
            "covered_exceptions": [
                violation.to_dict() for violation in result.covered_failures
            ],
            "coverage": {
                "rule_id": str(rule.id) if rule else None,
                "scope": rule.scope.value if rule else None,
                "level": rule.level.value if rule else None,
                "ltv_ceiling": (
                    float(rule.max_ltv_override)
                    if rule is not None and rule.max_ltv_override is not None
                    else None
                ),
            },
            "program_version": program.version,
            "ab_test_id": ab_test_id,
        }
        pattern_detail = {
            "pattern_bonus": float(round_score(bonus)),
            "pattern_id": str(pattern.id) if pattern else None,
            "pattern_type": pattern.pattern_type if pattern else None,
            "success_rate": float(pattern.success_rate) if pattern else None,
            "patterns_matched": sorted(
                {
                    match.pattern_type
                    for match in matching
                    if _decimal(match.success_rate) > REPORTED_PATTERN_MIN_RATE
                }
            ),
        }
        improvement_hints = {
            "improvement_areas": [violation.to_dict() for violation in result.soft_failures]
            or None,
            "strengths": {
                "hard_criteria_met": f"{result.hard_pass_count}/{result.total_criteria}",
                "lender_rating": float(rating),
            },
        }

        return MatchResult(
            lender_name=lender.name,
            program_name=program.name,
            program_id=program.id,
            hard_pass_count=result.hard_pass_count,
            confidence_score=confidence,
            tier=tier,
            lender_rating=rating,
            rationale=build_rationale(result, bonus),
            scoring_detail=scoring_detail,
            pattern_detail=pattern_detail,
            improvement_hints=improvement_hints,
        )
