"""Rule engine foundation: bands, typed answers, violations and request context."""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional
from uuid import UUID

from app.core.enums import Component, CriterionDataType, ScoringStrategy
from app.core.exceptions import InvalidScenarioAnswer
from app.models.domain.evaluation import MatchPattern, ScoringModel
from app.models.domain.lender import (
    BrokerHouseRule,
    CoverageRule,
    Lender,
    Program,
    ProgramCriterion,
)
from app.models.domain.scenario import AnswerValue, ExceptionGrant, Scenario, ScenarioAnswer


def _to_float(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


@dataclass(frozen=True)
class Band:
    """
    Inclusive numeric range; a ``None`` bound is unbounded on that side.

    Attributes:
        minimum: Lower bound or None
        maximum: Upper bound or None
    """

    minimum: Optional[Decimal] = None
    maximum: Optional[Decimal] = None

    def contains(self, value: Decimal) -> bool:
        if self.minimum is not None and value < self.minimum:
            return False
        if self.maximum is not None and value > self.maximum:
            return False
        return True

    @property
    def is_unbounded(self) -> bool:
        return self.minimum is None and self.maximum is None

    def as_list(self) -> list[Optional[float]]:
        return [_to_float(self.minimum), _to_float(self.maximum)]

    def describe(self) -> str:
        low = "-inf" if self.minimum is None else f"{self.minimum.normalize():f}"
        high = "inf" if self.maximum is None else f"{self.maximum.normalize():f}"
        return f"[{low}, {high}]"


def hard_band(criterion: ProgramCriterion) -> Band:
    return Band(criterion.hard_min_value, criterion.hard_max_value)


def soft_band(criterion: ProgramCriterion) -> Band:
    return Band(criterion.soft_min_value, criterion.soft_max_value)


def preferred_band(criterion: ProgramCriterion) -> Band:
    return Band(criterion.preferred_min_value, criterion.preferred_max_value)


def coerce_answer(
    value: AnswerValue,
    data_type: CriterionDataType,
    as_of: date,
    label: str = "answer",
) -> Decimal:
    """
    Coerce a typed answer into the numeric domain of a criterion.

    Args:
        value: Raw answer from the value union
        data_type: Data type of the criterion reading the answer
        as_of: Evaluation date, used to turn dates into elapsed days
        label: Name used in the error message

    Returns:
        The answer as a Decimal

    Raises:
        InvalidScenarioAnswer: If the value cannot be expressed numerically
    """
    # bool must be checked before numbers; it is an int subclass
    if isinstance(value, bool):
        return Decimal(1) if value else Decimal(0)
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, date):
        if data_type != CriterionDataType.DATE:
            raise InvalidScenarioAnswer(
                f"{label}: date answer cannot be read as {data_type.value}"
            )
        return Decimal((as_of - value).days)
    if isinstance(value, str):
        text = value.strip().replace(",", "").rstrip("%")
        try:
            parsed = Decimal(text)
        except InvalidOperation:
            raise InvalidScenarioAnswer(f"{label}: {value!r} is not numeric") from None
        if not parsed.is_finite():
            raise InvalidScenarioAnswer(f"{label}: {value!r} is not a finite number")
        return parsed
    raise InvalidScenarioAnswer(f"{label}: unsupported answer type {type(value).__name__}")


class ScenarioAnswers:
    """
    Typed answer map of one scenario, keyed by question id.

    Built once at the pipeline boundary; the scoring stages only read from it.
    """

    def __init__(
        self,
        values: dict[UUID, AnswerValue],
        codes: Optional[dict[str, UUID]] = None,
    ):
        self._values = values
        self._codes = codes or {}

    @classmethod
    def from_records(cls, answers: Iterable[ScenarioAnswer]) -> "ScenarioAnswers":
        values: dict[UUID, AnswerValue] = {}
        codes: dict[str, UUID] = {}
        for answer in answers:
            value = answer.value
            if value is None:
                continue
            values[answer.question_id] = value
            question = answer.question
            if question is not None:
                codes[question.code.upper()] = answer.question_id
        return cls(values, codes)

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, question_id: UUID) -> bool:
        return question_id in self._values

    def get(self, question_id: UUID) -> Optional[AnswerValue]:
        return self._values.get(question_id)

    def by_code(self, code: str) -> Optional[AnswerValue]:
        question_id = self._codes.get(code.upper())
        if question_id is None:
            return None
        return self._values.get(question_id)


@dataclass
class BandViolation:
    """
    One failed band check.

    Attributes:
        criterion_name: Name of the criterion (or synthetic constraint)
        band_type: "hard", "soft" or "preferred"
        band: The band that was violated
        actual: Coerced answer, or None when the answer is missing
        criterion_id: Source criterion; None for synthetic constraints
        is_deal_breaker: Deal-breaker failures are never exception-coverable
    """

    criterion_name: str
    band_type: str
    band: Band
    actual: Optional[Decimal]
    criterion_id: Optional[UUID] = None
    is_deal_breaker: bool = False

    @property
    def is_missing(self) -> bool:
        return self.actual is None

    @property
    def is_coverable(self) -> bool:
        return self.criterion_id is not None and not self.is_deal_breaker

    def describe(self) -> str:
        if self.actual is None:
            return "no answer on file"
        return f"actual {self.actual.normalize():f}, {self.band_type} band {self.band.describe()}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "criterion": self.criterion_name,
            "criterion_id": str(self.criterion_id) if self.criterion_id else None,
            "value": _to_float(self.actual),
            "type": self.band_type,
            "limit": self.band.as_list(),
            "missing": self.is_missing,
        }


@dataclass
class CatalogSnapshot:
    """
    Already-materialized catalog data an evaluation runs against.

    Attributes:
        lenders: Active lenders with programs and criteria loaded
        coverage_rules: All coverage rules relevant to the catalog
        house_rules: Broker house rules of the requesting tenant
        scoring_models: Active scoring models (at most one per strategy)
        patterns: Active match patterns
    """

    lenders: list[Lender]
    coverage_rules: list[CoverageRule] = field(default_factory=list)
    house_rules: list[BrokerHouseRule] = field(default_factory=list)
    scoring_models: list[ScoringModel] = field(default_factory=list)
    patterns: list[MatchPattern] = field(default_factory=list)

    def programs(self) -> list[Program]:
        return [program for lender in self.lenders for program in lender.programs]

    def scoring_model_for(self, strategy: ScoringStrategy) -> Optional[ScoringModel]:
        candidates = [
            model
            for model in self.scoring_models
            if model.is_active and model.model_type == strategy
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda model: model.model_version)


@dataclass
class RequestContext:
    """
    Explicit per-request context threaded through every stage.

    ``component`` is updated as the pipeline advances so a failure can be
    attributed to the stage that raised it.
    """

    scenario_id: UUID
    tenant_id: UUID
    test_mode: bool = False
    scoring_strategy: ScoringStrategy = ScoringStrategy.STATIC
    ab_test_id: Optional[str] = None
    now: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    component: Optional[Component] = None

    @property
    def evaluation_date(self) -> date:
        return self.now.date()

    def options(self) -> dict[str, Any]:
        """Normalized options, used for cache keys and audit payloads."""
        return {
            "ab_test_id": self.ab_test_id,
            "scoring_strategy": self.scoring_strategy.value,
            "test_mode": self.test_mode,
        }


@dataclass
class EvaluationInput:
    """Everything the pure matching pipeline needs for one scenario."""

    scenario: Scenario
    answers: ScenarioAnswers
    catalog: CatalogSnapshot
    grants: list[ExceptionGrant] = field(default_factory=list)
