"""Tests for answer coercion and criteria band evaluation."""

from datetime import date
from decimal import Decimal

import pytest

from app.core.enums import CriterionDataType
from app.core.exceptions import InvalidScenarioAnswer
from app.services.rule_engine.base import Band, ScenarioAnswers, coerce_answer
from app.services.rule_engine.engine import LTV_CEILING_NAME, CriteriaEvaluator

from factories import (
    NOW,
    make_coverage_rule,
    make_criterion,
    make_lender,
    make_program,
    make_question,
    make_scenario,
)

AS_OF = NOW.date()


def evaluate(program, scenario, **kwargs):
    answers = ScenarioAnswers.from_records(scenario.answers)
    return CriteriaEvaluator(AS_OF).evaluate_program(program, answers, **kwargs)


class TestCoerceAnswer:
    """Tests for typed answer coercion."""

    def test_booleans_become_one_and_zero(self):
        assert coerce_answer(True, CriterionDataType.BOOLEAN, AS_OF) == Decimal(1)
        assert coerce_answer(False, CriterionDataType.BOOLEAN, AS_OF) == Decimal(0)

    def test_numbers_pass_through(self):
        assert coerce_answer(Decimal("72.5"), CriterionDataType.PERCENTAGE, AS_OF) == Decimal("72.5")
        assert coerce_answer(680, CriterionDataType.INTEGER, AS_OF) == Decimal(680)
        assert coerce_answer(1.25, CriterionDataType.DECIMAL, AS_OF) == Decimal("1.25")

    def test_numeric_strings_are_parsed(self):
        assert coerce_answer("1,250,000", CriterionDataType.MONEY, AS_OF) == Decimal("1250000")
        assert coerce_answer(" 80% ", CriterionDataType.PERCENTAGE, AS_OF) == Decimal("80")

    def test_dates_become_elapsed_days(self):
        opened = date(2026, 2, 20)
        assert coerce_answer(opened, CriterionDataType.DATE, AS_OF) == Decimal(10)

    def test_date_for_numeric_criterion_is_rejected(self):
        with pytest.raises(InvalidScenarioAnswer):
            coerce_answer(date(2026, 1, 1), CriterionDataType.DECIMAL, AS_OF)

    @pytest.mark.parametrize("value", ["n/a", "", "NaN", "Infinity"])
    def test_non_numeric_strings_are_rejected(self, value):
        with pytest.raises(InvalidScenarioAnswer):
            coerce_answer(value, CriterionDataType.DECIMAL, AS_OF, label="DSCR")

    def test_unsupported_type_is_rejected(self):
        with pytest.raises(InvalidScenarioAnswer, match="unsupported answer type"):
            coerce_answer(["80"], CriterionDataType.DECIMAL, AS_OF)


class TestBand:
    """Tests for inclusive bands."""

    def test_bounds_are_inclusive(self):
        band = Band(Decimal("0"), Decimal("80"))
        assert band.contains(Decimal("0"))
        assert band.contains(Decimal("80"))
        assert not band.contains(Decimal("80.01"))

    def test_missing_bounds_are_unbounded(self):
        assert Band(None, Decimal("5")).contains(Decimal("-1000"))
        assert Band(Decimal("5"), None).contains(Decimal("1000000"))
        assert Band().is_unbounded

    def test_describe(self):
        assert Band(Decimal("0.0000"), Decimal("75.0000")).describe() == "[0, 75]"
        assert Band(None, Decimal("1.25")).describe() == "[-inf, 1.25]"


class TestCriteriaEvaluator:
    """Tests for hard, soft and preferred band evaluation."""

    def test_hard_and_soft_are_independent(self):
        question = make_question("LTV")
        program = make_program(make_lender())
        make_criterion(program, question, hard=(0, 80), soft=(0, 75))
        result = evaluate(program, make_scenario({question: Decimal("80")}))

        assert result.total_criteria == 1
        assert result.hard_pass_count == 1
        assert result.soft_pass_count == 0
        assert not result.hard_failures
        assert [v.criterion_name for v in result.soft_failures] == ["LTV"]

    def test_hard_failure_recorded_with_band(self):
        question = make_question("LTV")
        program = make_program(make_lender())
        make_criterion(program, question, hard=(0, 80), soft=(0, 75))
        result = evaluate(program, make_scenario({question: Decimal("85")}))

        assert result.hard_pass_count == 0
        failure = result.hard_failures[0].to_dict()
        assert failure["criterion"] == "LTV"
        assert failure["value"] == 85.0
        assert failure["limit"] == [0.0, 80.0]
        assert failure["type"] == "hard"
        assert failure["missing"] is False

    def test_missing_answer_is_hard_failure_only(self):
        ltv = make_question("LTV")
        fico = make_question("FICO", CriterionDataType.INTEGER)
        program = make_program(make_lender())
        make_criterion(program, fico, hard=(620, None), soft=(680, None))
        result = evaluate(program, make_scenario({ltv: Decimal("70")}))

        assert result.total_criteria == 1
        assert result.hard_failures[0].is_missing
        assert result.hard_failures[0].to_dict()["value"] is None
        assert result.soft_failures == []
        assert result.soft_pass_count == 0

    def test_preferred_miss_only_when_bounded(self):
        ltv = make_question("LTV")
        dscr = make_question("DSCR", CriterionDataType.DECIMAL)
        program = make_program(make_lender())
        make_criterion(program, ltv, hard=(0, 80), preferred=(0, 65))
        make_criterion(program, dscr, hard=(1, None))
        result = evaluate(program, make_scenario({ltv: 70, dscr: "1.4"}))

        assert [v.criterion_name for v in result.preferred_misses] == ["LTV"]
        assert result.soft_failures == []

    def test_inactive_criteria_are_ignored(self):
        question = make_question("LTV")
        program = make_program(make_lender())
        make_criterion(program, question, hard=(0, 50), active=False)
        make_criterion(program, question, name="LTV (active)", hard=(0, 80))
        result = evaluate(program, make_scenario({question: 70}))
        assert result.total_criteria == 1
        assert result.hard_pass_count == 1

    def test_program_without_active_criteria_is_skipped(self):
        question = make_question("LTV")
        program = make_program(make_lender())
        make_criterion(program, question, hard=(0, 80), active=False)
        assert evaluate(program, make_scenario({question: 70})) is None

    def test_failures_follow_criterion_name_order(self):
        ltv = make_question("LTV")
        dscr = make_question("DSCR", CriterionDataType.DECIMAL)
        program = make_program(make_lender())
        make_criterion(program, ltv, hard=(0, 60))
        make_criterion(program, dscr, hard=(2, None))
        result = evaluate(program, make_scenario({ltv: 70, dscr: 1.1}))
        assert [v.criterion_name for v in result.hard_failures] == ["DSCR", "LTV"]

    def test_boolean_answer_against_boolean_criterion(self):
        question = make_question("OWNER_OCCUPIED", CriterionDataType.BOOLEAN)
        program = make_program(make_lender())
        make_criterion(program, question, hard=(1, 1))
        assert evaluate(program, make_scenario({question: True})).hard_pass_count == 1
        assert evaluate(program, make_scenario({question: False})).has_hard_failures

    def test_invalid_answer_raises(self):
        question = make_question("LTV")
        program = make_program(make_lender())
        make_criterion(program, question, hard=(0, 80))
        with pytest.raises(InvalidScenarioAnswer):
            evaluate(program, make_scenario({question: "eighty"}))

    def test_features_are_normalized_to_hard_max(self):
        ltv = make_question("LTV")
        fico = make_question("FICO", CriterionDataType.INTEGER)
        reserves = make_question("RESERVES")
        program = make_program(make_lender())
        make_criterion(program, ltv, hard=(0, 80))
        make_criterion(program, fico, hard=(620, None))
        make_criterion(program, reserves, hard=(0, 12))
        result = evaluate(program, make_scenario({ltv: Decimal("70"), fico: 700}))

        features = {feature.name: feature.to_dict() for feature in result.features}
        assert features["LTV"] == {"feature": "LTV", "value": 70.0, "normalized": 0.875}
        assert features["FICO"]["normalized"] == 0.0
        assert features["RESERVES"] == {"feature": "RESERVES", "value": None, "normalized": None}
        assert [feature.name for feature in result.features] == ["FICO", "LTV", "RESERVES"]


class TestLtvCeiling:
    """Tests for the coverage LTV ceiling check."""

    def test_ceiling_breach_is_uncoverable_hard_failure(self):
        question = make_question("LTV")
        program = make_program(make_lender())
        make_criterion(program, question, hard=(0, 80))
        rule = make_coverage_rule(program=program, max_ltv_override="75")
        result = evaluate(
            program,
            make_scenario({question: 78}),
            coverage_rule=rule,
            scenario_ltv=Decimal("78"),
        )

        assert result.total_criteria == 2
        assert result.hard_pass_count == 1
        ceiling = result.hard_failures[0]
        assert ceiling.criterion_name == LTV_CEILING_NAME
        assert ceiling.criterion_id is None
        assert not ceiling.is_coverable

    def test_ceiling_pass_counts_as_check(self):
        question = make_question("LTV")
        program = make_program(make_lender())
        make_criterion(program, question, hard=(0, 80))
        rule = make_coverage_rule(program=program, max_ltv_override="75")
        result = evaluate(
            program,
            make_scenario({question: 70}),
            coverage_rule=rule,
            scenario_ltv=Decimal("70"),
        )
        assert result.total_criteria == 2
        assert result.hard_pass_count == 2
        assert result.soft_pass_count == 2

    def test_unknown_ltv_fails_ceiling(self):
        question = make_question("FICO", CriterionDataType.INTEGER)
        program = make_program(make_lender())
        make_criterion(program, question, hard=(620, None))
        rule = make_coverage_rule(program=program, max_ltv_override="75")
        result = evaluate(program, make_scenario({question: 700}), coverage_rule=rule)
        assert result.hard_failures[0].is_missing
