"""Criteria evaluation of a program's threshold bands against scenario answers."""

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from app.models.domain.lender import CoverageRule, Lender, Program, ProgramCriterion
from app.services.rule_engine.base import (
    Band,
    BandViolation,
    ScenarioAnswers,
    coerce_answer,
    hard_band,
    preferred_band,
    soft_band,
)

LTV_CEILING_NAME = "LTV Ceiling (coverage)"

FEATURE_PRECISION = Decimal("0.0001")


@dataclass
class CriterionFeature:
    """Answer value of one criterion, normalized against its hard maximum."""

    name: str
    value: Optional[Decimal]
    hard_max: Optional[Decimal]

    @property
    def normalized(self) -> Optional[Decimal]:
        if self.value is None:
            return None
        if self.hard_max is None or self.hard_max <= 0:
            return Decimal("0")
        return (self.value / self.hard_max).quantize(FEATURE_PRECISION, rounding=ROUND_HALF_UP)

    def to_dict(self) -> dict[str, Any]:
        normalized = self.normalized
        return {
            "feature": self.name,
            "value": float(self.value) if self.value is not None else None,
            "normalized": float(normalized) if normalized is not None else None,
        }


@dataclass
class ProgramEvaluationResult:
    """
    Result of evaluating all active criteria of one program.

    Attributes:
        program: The program version evaluated
        total_criteria: Number of checks performed, including a coverage LTV ceiling
        hard_pass_count: Checks whose hard band passed
        soft_pass_count: Checks whose soft band passed
        hard_failures: Hard band violations, in criterion order
        soft_failures: Soft band violations, in criterion order
        preferred_misses: Preferred band misses (informational only)
        coverage_rule: Effective coverage rule the program was admitted under
        covered_failures: Hard failures covered by an exception grant
        exception_covered: True when every hard failure is covered
        features: Per-criterion answer values, normalized to the hard maximum
    """

    program: Program
    total_criteria: int = 0
    hard_pass_count: int = 0
    soft_pass_count: int = 0
    hard_failures: list[BandViolation] = field(default_factory=list)
    soft_failures: list[BandViolation] = field(default_factory=list)
    preferred_misses: list[BandViolation] = field(default_factory=list)
    coverage_rule: Optional[CoverageRule] = None
    covered_failures: list[BandViolation] = field(default_factory=list)
    exception_covered: bool = False
    features: list[CriterionFeature] = field(default_factory=list)

    @property
    def lender(self) -> Lender:
        return self.program.lender

    @property
    def has_hard_failures(self) -> bool:
        return bool(self.hard_failures)

    @property
    def uncovered_failures(self) -> list[BandViolation]:
        covered = {id(violation) for violation in self.covered_failures}
        return [violation for violation in self.hard_failures if id(violation) not in covered]


class CriteriaEvaluator:
    """
    Evaluates hard, soft and preferred bands for every active criterion.

    The hard and soft bands are tested independently. A missing answer is a
    hard failure and its soft band is not tested.
    """

    def __init__(self, as_of: date):
        """
        Args:
            as_of: Evaluation date used to turn date answers into elapsed days
        """
        self.as_of = as_of

    @staticmethod
    def active_criteria(program: Program) -> list[ProgramCriterion]:
        active = [criterion for criterion in program.criteria if criterion.active]
        # Stable order keeps "first failure" rationales deterministic
        return sorted(active, key=lambda criterion: (criterion.name, str(criterion.id)))

    def evaluate_criterion(
        self,
        criterion: ProgramCriterion,
        answers: ScenarioAnswers,
        result: ProgramEvaluationResult,
    ) -> None:
        """
        Evaluate one criterion and accumulate the outcome into ``result``.

        Raises:
            InvalidScenarioAnswer: If the answer cannot be coerced
        """
        result.total_criteria += 1
        raw = answers.get(criterion.question_id)
        hard = hard_band(criterion)

        if raw is None:
            result.features.append(CriterionFeature(criterion.name, None, hard.maximum))
            result.hard_failures.append(
                BandViolation(
                    criterion_name=criterion.name,
                    band_type="hard",
                    band=hard,
                    actual=None,
                    criterion_id=criterion.id,
                    is_deal_breaker=criterion.is_deal_breaker,
                )
            )
            return

        actual = coerce_answer(raw, criterion.data_type, self.as_of, label=criterion.name)
        result.features.append(CriterionFeature(criterion.name, actual, hard.maximum))

        if hard.contains(actual):
            result.hard_pass_count += 1
        else:
            result.hard_failures.append(
                BandViolation(
                    criterion_name=criterion.name,
                    band_type="hard",
                    band=hard,
                    actual=actual,
                    criterion_id=criterion.id,
                    is_deal_breaker=criterion.is_deal_breaker,
                )
            )

        soft = soft_band(criterion)
        if soft.contains(actual):
            result.soft_pass_count += 1
        else:
            result.soft_failures.append(
                BandViolation(
                    criterion_name=criterion.name,
                    band_type="soft",
                    band=soft,
                    actual=actual,
                    criterion_id=criterion.id,
                )
            )

        preferred = preferred_band(criterion)
        if not preferred.is_unbounded and not preferred.contains(actual):
            result.preferred_misses.append(
                BandViolation(
                    criterion_name=criterion.name,
                    band_type="preferred",
                    band=preferred,
                    actual=actual,
                    criterion_id=criterion.id,
                )
            )

    def apply_ltv_ceiling(
        self,
        ceiling: Decimal,
        scenario_ltv: Optional[Decimal],
        result: ProgramEvaluationResult,
    ) -> None:
        """
        Apply a coverage LTV ceiling as an extra hard check.

        An unknown LTV fails the ceiling. The resulting violation carries no
        criterion id, so no exception grant can cover it.
        """
        result.total_criteria += 1
        band = Band(None, ceiling)
        if scenario_ltv is not None and band.contains(scenario_ltv):
            result.hard_pass_count += 1
            result.soft_pass_count += 1
            return
        result.hard_failures.append(
            BandViolation(
                criterion_name=LTV_CEILING_NAME,
                band_type="hard",
                band=band,
                actual=scenario_ltv,
            )
        )

    def evaluate_program(
        self,
        program: Program,
        answers: ScenarioAnswers,
        coverage_rule: Optional[CoverageRule] = None,
        scenario_ltv: Optional[Decimal] = None,
    ) -> Optional[ProgramEvaluationResult]:
        """
        Evaluate all active criteria of a program.

        Args:
            program: Program version with criteria loaded
            answers: Typed answers of the scenario
            coverage_rule: Effective coverage rule, whose LTV ceiling is enforced
            scenario_ltv: Scenario LTV percentage used for the ceiling

        Returns:
            ProgramEvaluationResult, or None when the program has no active criteria

        Raises:
            InvalidScenarioAnswer: If any answer cannot be coerced
        """
        criteria = self.active_criteria(program)
        if not criteria:
            return None

        result = ProgramEvaluationResult(program=program, coverage_rule=coverage_rule)
        for criterion in criteria:
            self.evaluate_criterion(criterion, answers, result)

        if coverage_rule is not None and coverage_rule.max_ltv_override is not None:
            self.apply_ltv_ceiling(
                Decimal(coverage_rule.max_ltv_override), scenario_ltv, result
            )

        return result
