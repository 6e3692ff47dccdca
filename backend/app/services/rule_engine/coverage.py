"""Coverage resolution: which programs may serve a scenario's geography."""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from app.core.enums import CoverageScope, GeoLevel
from app.models.domain.lender import CoverageRule, Program

logger = logging.getLogger(__name__)

# (scope, level, owner id, geography value)
RuleKey = tuple[CoverageScope, GeoLevel, UUID, str]


@dataclass
class CoverageDecision:
    """
    Outcome of resolving coverage for one program.

    Attributes:
        program: The program that was resolved
        rule: The effective rule, or None when no rule applies
        eligible: Whether the program may be evaluated for this scenario
        reason: Short explanation of the decision
    """

    program: Program
    rule: Optional[CoverageRule]
    eligible: bool
    reason: str

    @property
    def ltv_ceiling(self) -> Optional[Decimal]:
        if self.rule is None or self.rule.max_ltv_override is None:
            return None
        return Decimal(self.rule.max_ltv_override)


class CoverageResolver:
    """
    Priority-ordered coverage resolution over an in-memory rule set.

    Candidates for a program, highest priority first:
        1. program + state
        2. program + metro
        3. lender + state, only if no program + state rule exists for that state
        4. lender + metro, only if no program + metro rule exists for that metro

    The first non-excluded candidate is the effective rule. Excluded rules
    still suppress the lender fallback for their geography. If every
    candidate is excluded, or none exists, the program is not eligible.
    """

    def __init__(self, rules: Iterable[CoverageRule]):
        self._index: dict[RuleKey, CoverageRule] = {}
        # Exclusions sort first so a duplicate allow rule cannot mask one
        ordered = sorted(rules, key=lambda rule: (not rule.is_excluded, str(rule.id)))
        for rule in ordered:
            key = self._key_for(rule)
            if key is None:
                logger.warning(f"Ignoring malformed coverage rule {rule.id}")
                continue
            if key in self._index:
                logger.debug(f"Duplicate coverage rule {rule.id} shadowed by {self._index[key].id}")
                continue
            self._index[key] = rule

    @staticmethod
    def _key_for(rule: CoverageRule) -> Optional[RuleKey]:
        owner = rule.program_id if rule.scope == CoverageScope.PROGRAM else rule.lender_id
        if owner is None:
            return None
        if rule.level == GeoLevel.STATE:
            if not rule.state_code:
                return None
            return (rule.scope, rule.level, owner, rule.state_code.upper())
        if rule.metro_id is None:
            return None
        return (rule.scope, rule.level, owner, str(rule.metro_id))

    def _lookup(
        self,
        scope: CoverageScope,
        level: GeoLevel,
        owner: UUID,
        geography: Optional[str],
    ) -> Optional[CoverageRule]:
        if geography is None:
            return None
        return self._index.get((scope, level, owner, geography))

    def candidates(
        self,
        program: Program,
        state_code: str,
        metro_id: Optional[UUID] = None,
    ) -> list[CoverageRule]:
        """
        Build coverage candidates for a program in strict priority order.

        Args:
            program: Program being resolved
            state_code: Scenario state
            metro_id: Scenario metro, if known

        Returns:
            Applicable rules, highest priority first
        """
        state = state_code.upper() if state_code else None
        metro = str(metro_id) if metro_id is not None else None

        program_state = self._lookup(CoverageScope.PROGRAM, GeoLevel.STATE, program.id, state)
        program_metro = self._lookup(CoverageScope.PROGRAM, GeoLevel.METRO, program.id, metro)
        lender_state = None
        if program_state is None:
            lender_state = self._lookup(
                CoverageScope.LENDER, GeoLevel.STATE, program.lender_id, state
            )
        lender_metro = None
        if program_metro is None:
            lender_metro = self._lookup(
                CoverageScope.LENDER, GeoLevel.METRO, program.lender_id, metro
            )

        return [
            rule
            for rule in (program_state, program_metro, lender_state, lender_metro)
            if rule is not None
        ]

    def effective_rules(
        self,
        program: Program,
        state_code: str,
        metro_id: Optional[UUID] = None,
    ) -> dict[str, CoverageRule]:
        """
        Return exactly one effective rule per geography key.

        Program-scoped rules shadow lender-scoped rules for the same key.

        Returns:
            Mapping of geography key ("state:TX", "metro:<id>") to rule
        """
        effective: dict[str, CoverageRule] = {}
        for rule in self.candidates(program, state_code, metro_id):
            effective.setdefault(rule.geography_key, rule)
        return effective

    def resolve(
        self,
        program: Program,
        state_code: str,
        metro_id: Optional[UUID] = None,
    ) -> CoverageDecision:
        """
        Decide whether a program covers the scenario's geography.

        Args:
            program: Program being resolved
            state_code: Scenario state
            metro_id: Scenario metro, if known

        Returns:
            CoverageDecision carrying the effective rule and its LTV ceiling
        """
        candidates = self.candidates(program, state_code, metro_id)
        if not candidates:
            return CoverageDecision(
                program=program,
                rule=None,
                eligible=False,
                reason=f"No coverage rule for {state_code}",
            )

        rule = next((c for c in candidates if not c.is_excluded), None)
        if rule is None:
            excluded = candidates[0]
            return CoverageDecision(
                program=program,
                rule=excluded,
                eligible=False,
                reason=f"Excluded by {excluded.scope.value} {excluded.level.value} rule",
            )

        return CoverageDecision(
            program=program,
            rule=rule,
            eligible=True,
            reason=f"Covered by {rule.scope.value} {rule.level.value} rule",
        )
