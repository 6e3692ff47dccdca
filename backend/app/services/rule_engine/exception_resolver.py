"""Exception grant resolution for programs with hard failures."""

from datetime import datetime
from typing import Iterable
from uuid import UUID

from app.models.domain.scenario import ExceptionGrant
from app.services.rule_engine.engine import ProgramEvaluationResult


class ExceptionResolver:
    """
    All-or-nothing exception coverage per program.

    A program becomes exception-required only when every hard failure has an
    approved, unexpired grant for its criterion. Deal-breakers and synthetic
    coverage constraints are never coverable.
    """

    def __init__(self, grants: Iterable[ExceptionGrant], now: datetime):
        self._granted: set[UUID] = {
            grant.criterion_id for grant in grants if grant.is_effective(now)
        }

    def resolve(self, result: ProgramEvaluationResult) -> ProgramEvaluationResult:
        """
        Mark which hard failures are covered and whether coverage is complete.

        Grants only take effect for criteria that are currently failing, so a
        grant for a passing criterion is ignored.

        Args:
            result: Criteria evaluation result, updated in place

        Returns:
            The same result
        """
        result.covered_failures = [
            violation
            for violation in result.hard_failures
            if violation.is_coverable and violation.criterion_id in self._granted
        ]
        result.exception_covered = bool(result.hard_failures) and len(
            result.covered_failures
        ) == len(result.hard_failures)
        return result
