"""Matching pipeline: house rules, coverage, criteria, exceptions and scoring."""

import logging
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Set
from uuid import UUID

from app.core.enums import Component, CriterionDataType, HouseRuleAction
from app.models.domain.lender import BrokerHouseRule, Lender, Program
from app.models.domain.scenario import Scenario
from app.services.rule_engine.base import (
    EvaluationInput,
    RequestContext,
    ScenarioAnswers,
    coerce_answer,
)
from app.services.rule_engine.coverage import CoverageResolver
from app.services.rule_engine.engine import CriteriaEvaluator, ProgramEvaluationResult
from app.services.rule_engine.exception_resolver import ExceptionResolver
from app.services.rule_engine.scoring import MatchResult, ScoringEngine, rank_results

logger = logging.getLogger(__name__)

LTV_QUESTION_CODE = "LTV"


def excluded_lender_ids(
    house_rules: Iterable[BrokerHouseRule],
    threshold: Decimal,
) -> Set[UUID]:
    """Lenders hit by an active EXCLUDE house rule with confidence above the threshold."""
    return {
        rule.target_lender_id
        for rule in house_rules
        if rule.is_active
        and rule.rule_action == HouseRuleAction.EXCLUDE
        and Decimal(str(rule.rule_confidence)) > threshold
    }


def select_current_versions(programs: Iterable[Program], as_of: date) -> List[Program]:
    """
    Keep the highest published, active and valid version of each program key.

    Args:
        programs: Candidate program versions
        as_of: Evaluation date for the validity window

    Returns:
        One program version per ``program_key``
    """
    current: dict[UUID, Program] = {}
    for program in programs:
        if not (program.active and program.is_published and program.is_valid_on(as_of)):
            continue
        existing = current.get(program.program_key)
        if existing is None or program.version > existing.version:
            current[program.program_key] = program
    return list(current.values())


def scenario_ltv(scenario: Scenario, answers: ScenarioAnswers, as_of: date) -> Optional[Decimal]:
    """LTV from an explicit LTV answer when present, else computed from the scenario."""
    answered = answers.by_code(LTV_QUESTION_CODE)
    if answered is not None:
        return coerce_answer(answered, CriterionDataType.PERCENTAGE, as_of, label="LTV")
    return scenario.ltv


class Matcher:
    """
    Runs the pure evaluation stages over an already-materialized catalog.

    Stages, in order:
        1. House rules: drop lenders excluded by the tenant
        2. Version selection: one current version per program key
        3. Coverage: drop programs not covering the scenario's geography
        4. Criteria: evaluate hard, soft and preferred bands
        5. Exceptions: all-or-nothing grant coverage of hard failures
        6. Scoring: confidence, tier, rationale, then ranking

    ``context.component`` tracks the running stage so failures are attributed.
    """

    def __init__(self, house_rule_threshold: Decimal = Decimal("0.8")):
        self.house_rule_threshold = Decimal(str(house_rule_threshold))

    def candidate_lenders(
        self,
        lenders: Iterable[Lender],
        house_rules: Iterable[BrokerHouseRule],
    ) -> List[Lender]:
        excluded = excluded_lender_ids(house_rules, self.house_rule_threshold)
        return [lender for lender in lenders if lender.active and lender.id not in excluded]

    def evaluate(self, data: EvaluationInput, context: RequestContext) -> List[MatchResult]:
        """
        Evaluate a scenario against the catalog and return ranked matches.

        Args:
            data: Scenario, typed answers, catalog snapshot and grants
            context: Request context; its component is updated per stage

        Returns:
            Ranked list of match results

        Raises:
            InvalidScenarioAnswer: If an answer cannot be coerced
        """
        scenario = data.scenario
        as_of = context.evaluation_date

        context.component = Component.HOUSE_RULES
        lenders = self.candidate_lenders(data.catalog.lenders, data.catalog.house_rules)

        context.component = Component.LOADER
        programs = select_current_versions(
            (program for lender in lenders for program in lender.programs), as_of
        )

        context.component = Component.COVERAGE
        resolver = CoverageResolver(data.catalog.coverage_rules)
        covered = []
        for program in programs:
            decision = resolver.resolve(program, scenario.state_code, scenario.metro_id)
            if decision.eligible:
                covered.append(decision)
            else:
                logger.debug(f"Program {program.id} dropped: {decision.reason}")

        context.component = Component.CRITERIA
        evaluator = CriteriaEvaluator(as_of)
        ltv = scenario_ltv(scenario, data.answers, as_of)
        evaluated: List[ProgramEvaluationResult] = []
        for decision in covered:
            result = evaluator.evaluate_program(
                decision.program, data.answers, decision.rule, ltv
            )
            if result is None:
                logger.debug(f"Program {decision.program.id} skipped: no active criteria")
                continue
            evaluated.append(result)

        context.component = Component.EXCEPTIONS
        exceptions = ExceptionResolver(data.grants, context.now)
        for result in evaluated:
            exceptions.resolve(result)

        context.component = Component.SCORING
        engine = ScoringEngine(
            context.scoring_strategy,
            model=data.catalog.scoring_model_for(context.scoring_strategy),
            patterns=data.catalog.patterns,
        )
        matches = [engine.score(result, scenario, context.ab_test_id) for result in evaluated]
        ranked = rank_results(matches)

        logger.info(
            f"Scenario {scenario.id}: {len(programs)} current programs, "
            f"{len(covered)} covered, {len(ranked)} ranked"
        )
        return ranked
