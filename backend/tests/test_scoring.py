"""Tests for confidence scoring, tiers, rationale and ranking."""

import uuid
from decimal import Decimal

import pytest

from app.core.enums import ScoringStrategy, Tier
from app.services.rule_engine.base import ScenarioAnswers
from app.services.rule_engine.engine import CriteriaEvaluator
from app.services.rule_engine.scoring import (
    MatchResult,
    ScoringEngine,
    StaticStrategy,
    WeightedStrategy,
    assign_tier,
    best_pattern,
    clamp_score,
    pattern_applies,
    rank_results,
    round_score,
)

from factories import (
    NOW,
    make_criterion,
    make_lender,
    make_pattern,
    make_program,
    make_question,
    make_scenario,
    make_scoring_model,
)


def make_result(profile_score="80", soft_failures: int = 0):
    """Program with ``soft_failures`` soft breaches out of three criteria."""
    lender = make_lender(profile_score=profile_score)
    program = make_program(lender)
    answers = {}
    for index in range(3):
        question = make_question(f"Q{index}")
        make_criterion(program, question, hard=(0, 100), soft=(0, 50))
        answers[question] = 60 if index < soft_failures else 40
    scenario = make_scenario(answers)
    result = CriteriaEvaluator(NOW.date()).evaluate_program(
        program, ScenarioAnswers.from_records(scenario.answers)
    )
    return result, scenario


def make_match(tier=Tier.SILVER, confidence="90", lender_name="Acme", program_name="Core"):
    return MatchResult(
        lender_name=lender_name,
        program_name=program_name,
        program_id=uuid.uuid4(),
        hard_pass_count=1,
        confidence_score=Decimal(confidence),
        tier=tier,
        lender_rating=Decimal("80"),
        rationale="",
    )


class TestScoreArithmetic:
    """Tests for clamping and rounding."""

    def test_clamp(self):
        assert clamp_score(Decimal("-12")) == Decimal("0")
        assert clamp_score(Decimal("128")) == Decimal("100")
        assert clamp_score(Decimal("55.5")) == Decimal("55.5")

    def test_round_half_up(self):
        assert round_score(Decimal("84.95")) == Decimal("85.0")
        assert round_score(Decimal("84.94")) == Decimal("84.9")


class TestStrategies:
    """Tests for the interchangeable confidence formulas."""

    def test_static_penalizes_soft_failures(self):
        result, _ = make_result(soft_failures=2)
        strategy = StaticStrategy()
        assert strategy.base_score(result, Decimal("80"), strategy.coefficients()) == Decimal("70")

    def test_static_never_negative(self):
        result, _ = make_result(soft_failures=3)
        strategy = StaticStrategy()
        weights = strategy.coefficients(make_scoring_model(weights={"soft_penalty": 50}))
        assert strategy.base_score(result, Decimal("80"), weights) == Decimal("0")

    def test_weighted_formula(self):
        result, _ = make_result(soft_failures=3)
        strategy = WeightedStrategy()
        # 100 - 30 + 8 + 20
        assert strategy.base_score(result, Decimal("80"), strategy.coefficients()) == Decimal("98.0")

    def test_weighted_clamped_to_hundred(self):
        result, _ = make_result()
        strategy = WeightedStrategy()
        assert strategy.base_score(result, Decimal("80"), strategy.coefficients()) == Decimal("100")

    def test_model_weights_override_defaults(self):
        model = make_scoring_model(weights={"soft_penalty": 20, "unknown": 3})
        weights = StaticStrategy().coefficients(model)
        assert weights == {"soft_penalty": Decimal("20")}


class TestAssignTier:
    """Tests for the tier table; the first matching rule wins."""

    @pytest.mark.parametrize(
        "hard, covered, confidence, rating, soft, expected",
        [
            (True, False, 100, 100, 0, Tier.DISQUALIFIED),
            (True, True, 100, 100, 0, Tier.EXCEPTION_REQUIRED),
            (False, False, 95, 95, 0, Tier.PLATINUM),
            (False, False, 95, 94, 0, Tier.GOLD),
            (False, False, 90, 90, 1, Tier.GOLD),
            (False, False, 89.9, 99, 1, Tier.BRONZE),
            (False, False, 89.9, 99, 0, Tier.SILVER),
        ],
    )
    def test_tier_table(self, hard, covered, confidence, rating, soft, expected):
        tier = assign_tier(hard, covered, Decimal(str(confidence)), Decimal(str(rating)), soft)
        assert tier == expected

    def test_tier_is_pure(self):
        args = (False, False, Decimal("91"), Decimal("92"), 0)
        assert {assign_tier(*args) for _ in range(5)} == {Tier.GOLD}


class TestPatterns:
    """Tests for historical pattern bonuses."""

    def test_empty_config_matches_everything(self):
        program = make_program(make_lender())
        assert pattern_applies(make_pattern(), program, make_scenario())

    def test_config_restricts_states_and_amounts(self):
        program = make_program(make_lender())
        scenario = make_scenario(state_code="TX", loan_amount="400000")
        assert pattern_applies(make_pattern(pattern_config={"states": ["tx"]}), program, scenario)
        assert not pattern_applies(make_pattern(pattern_config={"states": ["CA"]}), program, scenario)
        assert not pattern_applies(
            make_pattern(pattern_config={"max_loan_amount": 300000}), program, scenario
        )
        assert not pattern_applies(
            make_pattern(pattern_config={"lender_ids": [str(uuid.uuid4())]}), program, scenario
        )

    def test_best_pattern_bonus(self):
        program = make_program(make_lender())
        low = make_pattern("0.40", pattern_type="low")
        high = make_pattern("0.85", pattern_type="high")
        inactive = make_pattern("0.99", is_active=False)
        pattern, bonus, matching = best_pattern([low, high, inactive], program, make_scenario())
        assert pattern is high
        assert bonus == Decimal("8.50")
        assert len(matching) == 2

    def test_success_rate_is_clamped(self):
        program = make_program(make_lender())
        _, bonus, _ = best_pattern([make_pattern("1.5")], program, make_scenario())
        assert bonus == Decimal("10")


class TestScoringEngine:
    """Tests for full match scoring."""

    def test_soft_breach_scores_and_explains(self):
        result, scenario = make_result(soft_failures=1)
        match = ScoringEngine(ScoringStrategy.STATIC).score(result, scenario)
        assert match.confidence_score == Decimal("85.0")
        assert match.tier == Tier.BRONZE
        assert match.rationale == "Soft Boundary Breach: Q0 (actual 60, soft band [0, 50])"
        assert match.improvement_hints["improvement_areas"][0]["criterion"] == "Q0"
        assert match.improvement_hints["strengths"]["hard_criteria_met"] == "3/3"

    def test_pattern_bonus_added_and_clamped(self):
        result, scenario = make_result(soft_failures=1)
        engine = ScoringEngine(ScoringStrategy.STATIC, patterns=[make_pattern("0.85")])
        match = engine.score(result, scenario)
        assert match.confidence_score == Decimal("93.5")
        assert match.pattern_detail["pattern_bonus"] == 8.5

        clean, scenario = make_result()
        assert engine.score(clean, scenario).confidence_score == Decimal("100.0")

    def test_pattern_rationale_without_soft_failures(self):
        result, scenario = make_result(profile_score="70")
        engine = ScoringEngine(ScoringStrategy.STATIC, patterns=[make_pattern("0.5")])
        match = engine.score(result, scenario)
        assert match.tier == Tier.SILVER
        assert match.rationale == "Pattern Match: Historical success pattern detected"

    def test_optimal_rationale(self):
        result, scenario = make_result(profile_score="96")
        match = ScoringEngine(ScoringStrategy.STATIC).score(result, scenario)
        assert match.tier == Tier.PLATINUM
        assert match.rationale == "Optimal Match: Meets all preferred criteria."
        assert match.improvement_hints["improvement_areas"] is None

    def test_scoring_detail_lists_features(self):
        result, scenario = make_result(soft_failures=1)
        detail = ScoringEngine(ScoringStrategy.STATIC).score(result, scenario).scoring_detail
        assert detail["features_used"] == [
            {"feature": "Q0", "value": 60.0, "normalized": 0.6},
            {"feature": "Q1", "value": 40.0, "normalized": 0.4},
            {"feature": "Q2", "value": 40.0, "normalized": 0.4},
        ]

    def test_only_high_success_patterns_are_reported(self):
        result, scenario = make_result()
        patterns = [
            make_pattern("0.85", pattern_type="high"),
            make_pattern("0.70", pattern_type="borderline"),
            make_pattern("0.40", pattern_type="low"),
        ]
        detail = ScoringEngine(ScoringStrategy.STATIC, patterns=patterns).score(
            result, scenario
        ).pattern_detail
        assert detail["patterns_matched"] == ["high"]
        assert detail["pattern_type"] == "high"

    def test_low_success_pattern_still_earns_bonus(self):
        result, scenario = make_result(soft_failures=1)
        engine = ScoringEngine(ScoringStrategy.STATIC, patterns=[make_pattern("0.40")])
        match = engine.score(result, scenario)
        assert match.confidence_score == Decimal("89.0")
        assert match.pattern_detail["pattern_bonus"] == 4.0
        assert match.pattern_detail["patterns_matched"] == []

    def test_scoring_detail_records_model_and_ab_test(self):
        result, scenario = make_result()
        model = make_scoring_model(ScoringStrategy.WEIGHTED, {"rating_weight": 0.2}, model_version=3)
        match = ScoringEngine(ScoringStrategy.WEIGHTED, model=model).score(
            result, scenario, ab_test_id="exp-7"
        )
        detail = match.scoring_detail
        assert detail["strategy"] == "weighted"
        assert detail["model_version"] == 3
        assert detail["weights"]["rating_weight"] == 0.2
        assert detail["ab_test_id"] == "exp-7"

    def test_to_dict_is_plain_json(self):
        result, scenario = make_result()
        payload = ScoringEngine(ScoringStrategy.STATIC).score(result, scenario).to_dict()
        assert isinstance(payload["confidence_score"], float)
        assert payload["tier"] == "Silver"
        assert "program_id" not in payload


class TestRankResults:
    """Tests for deterministic ranking."""

    def test_tier_then_confidence_then_names(self):
        bronze = make_match(Tier.BRONZE, "99")
        gold_low = make_match(Tier.GOLD, "91", lender_name="Zeta")
        gold_high = make_match(Tier.GOLD, "96")
        exception = make_match(Tier.EXCEPTION_REQUIRED, "50")
        disqualified = make_match(Tier.DISQUALIFIED, "100")
        platinum = make_match(Tier.PLATINUM, "97")
        ranked = rank_results([bronze, disqualified, gold_low, exception, platinum, gold_high])
        assert ranked == [platinum, exception, gold_high, gold_low, bronze, disqualified]

    def test_ties_broken_by_lender_then_program_name(self):
        b = make_match(lender_name="Beta", program_name="A")
        a2 = make_match(lender_name="Alpha", program_name="Z")
        a1 = make_match(lender_name="Alpha", program_name="B")
        assert rank_results([b, a2, a1]) == [a1, a2, b]
