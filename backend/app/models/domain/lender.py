"""Lender, program catalog and coverage domain models for the evaluation core."""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    event,
    inspect,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from app.core.enums import (
    CoverageScope,
    CriterionDataType,
    GeoLevel,
    HouseRuleAction,
)
from app.core.exceptions import ImmutableProgramVersionError
from app.db.base import BaseModel, pg_enum


class Lender(BaseModel):
    """Lender entity with a reputation rating used in scoring and tiering."""

    __tablename__ = "lenders"

    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    # Reputation rating, 0-100 scale
    profile_score: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("0.00")
    )

    # Relationships
    programs: Mapped[list["Program"]] = relationship(
        "Program",
        back_populates="lender",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Lender(id={self.id}, name={self.name!r}, active={self.active})>"


class Program(BaseModel):
    """
    A versioned lending product offered by a lender.

    Each row is one version of the program identified by ``program_key``.
    Once ``published_at`` is set the version is frozen; edits go through
    ``new_version()``.
    """

    __tablename__ = "programs"
    __table_args__ = (
        UniqueConstraint("program_key", "version", name="uq_programs_key_version"),
    )

    lender_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("lenders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Stable identity shared by every version of the same program
    program_key: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, index=True, default=uuid.uuid4
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    product_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    valid_from: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    valid_to: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    published_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Relationships
    lender: Mapped["Lender"] = relationship("Lender", back_populates="programs")
    criteria: Mapped[list["ProgramCriterion"]] = relationship(
        "ProgramCriterion",
        back_populates="program",
        cascade="all, delete-orphan",
    )

    @property
    def is_published(self) -> bool:
        return self.published_at is not None

    def is_valid_on(self, day: date) -> bool:
        """Check the validity window; open bounds are unbounded."""
        if self.valid_from is not None and day < self.valid_from:
            return False
        if self.valid_to is not None and day > self.valid_to:
            return False
        return True

    def new_version(self) -> "Program":
        """
        Clone this program and its criteria into an unpublished next version.

        Returns:
            A transient Program with ``version + 1`` and copied criteria
        """
        successor = Program(
            id=uuid.uuid4(),
            lender_id=self.lender_id,
            lender=self.lender,
            program_key=self.program_key,
            version=self.version + 1,
            name=self.name,
            product_type=self.product_type,
            description=self.description,
            active=self.active,
            valid_from=self.valid_from,
            valid_to=self.valid_to,
            published_at=None,
        )
        successor.criteria = [criterion.copy_for(successor) for criterion in self.criteria]
        return successor

    def __repr__(self) -> str:
        return (
            f"<Program(id={self.id}, name={self.name!r}, "
            f"version={self.version}, active={self.active})>"
        )


class Question(BaseModel):
    """Catalog question whose scenario answer a criterion reads."""

    __tablename__ = "questions"

    code: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    data_type: Mapped[CriterionDataType] = mapped_column(
        pg_enum(CriterionDataType, "criterion_data_type"),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Question(id={self.id}, code={self.code!r})>"


class ProgramCriterion(BaseModel):
    """
    Threshold criterion of one program version.

    Three nested bands: hard (must pass or the program is disqualified),
    soft (failing degrades score and tier) and preferred (informational).
    A ``None`` bound is unbounded on that side.
    """

    __tablename__ = "program_criteria"

    program_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("programs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("questions.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    data_type: Mapped[CriterionDataType] = mapped_column(
        pg_enum(CriterionDataType, "criterion_data_type"),
        nullable=False,
    )

    hard_min_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 4), nullable=True)
    hard_max_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 4), nullable=True)
    soft_min_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 4), nullable=True)
    soft_max_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 4), nullable=True)
    preferred_min_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 4), nullable=True)
    preferred_max_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 4), nullable=True)

    weight: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("1.00")
    )
    is_deal_breaker: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    program: Mapped["Program"] = relationship("Program", back_populates="criteria")
    question: Mapped["Question"] = relationship("Question")

    def copy_for(self, program: "Program") -> "ProgramCriterion":
        """Return a transient copy of this criterion attached to another version."""
        return ProgramCriterion(
            id=uuid.uuid4(),
            program_id=program.id,
            question_id=self.question_id,
            question=self.question,
            name=self.name,
            data_type=self.data_type,
            hard_min_value=self.hard_min_value,
            hard_max_value=self.hard_max_value,
            soft_min_value=self.soft_min_value,
            soft_max_value=self.soft_max_value,
            preferred_min_value=self.preferred_min_value,
            preferred_max_value=self.preferred_max_value,
            weight=self.weight,
            is_deal_breaker=self.is_deal_breaker,
            active=self.active,
        )

    def __repr__(self) -> str:
        return (
            f"<ProgramCriterion(id={self.id}, name={self.name!r}, "
            f"deal_breaker={self.is_deal_breaker})>"
        )


class Metro(BaseModel):
    """Metropolitan area used for metro-level coverage."""

    __tablename__ = "metros"

    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    state_code: Mapped[str] = mapped_column(String(2), nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<Metro(id={self.id}, code={self.code!r}, state={self.state_code!r})>"


class CoverageRule(BaseModel):
    """
    Geography-scoped eligibility or exclusion record.

    Scoped to a lender or a program, at state or metro level. Program rules
    take precedence over lender fallback rules for the same geography.
    """

    __tablename__ = "coverage_rules"
    __table_args__ = (
        CheckConstraint(
            "(scope = 'program' AND program_id IS NOT NULL) "
            "OR (scope = 'lender' AND lender_id IS NOT NULL)",
            name="ck_coverage_rules_scope_owner",
        ),
        CheckConstraint(
            "(level = 'state' AND state_code IS NOT NULL) "
            "OR (level = 'metro' AND metro_id IS NOT NULL)",
            name="ck_coverage_rules_level_geo",
        ),
    )

    scope: Mapped[CoverageScope] = mapped_column(
        pg_enum(CoverageScope, "coverage_scope"),
        nullable=False,
    )
    level: Mapped[GeoLevel] = mapped_column(
        pg_enum(GeoLevel, "geo_level"),
        nullable=False,
    )

    lender_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("lenders.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    program_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("programs.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    state_code: Mapped[Optional[str]] = mapped_column(String(2), nullable=True, index=True)
    metro_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("metros.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    is_excluded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    max_ltv_override: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @property
    def geography_key(self) -> str:
        """Key identifying the geography this rule applies to."""
        if self.level == GeoLevel.METRO:
            return f"metro:{self.metro_id}"
        return f"state:{self.state_code}"

    def __repr__(self) -> str:
        return (
            f"<CoverageRule(id={self.id}, scope={self.scope.value}, "
            f"level={self.level.value}, excluded={self.is_excluded})>"
        )


class BrokerHouseRule(BaseModel):
    """Tenant-level directive about a lender, e.g. never show this lender."""

    __tablename__ = "broker_house_rules"

    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    target_lender_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("lenders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    rule_action: Mapped[HouseRuleAction] = mapped_column(
        pg_enum(HouseRuleAction, "house_rule_action"),
        nullable=False,
    )
    rule_confidence: Mapped[Decimal] = mapped_column(
        Numeric(5, 4), nullable=False, default=Decimal("1.0000")
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<BrokerHouseRule(id={self.id}, action={self.rule_action.value}, "
            f"lender_id={self.target_lender_id})>"
        )


# Lifecycle columns that may still change on a published version
_LIFECYCLE_COLUMNS = {"active", "valid_to", "updated_at"}


def _was_published(program: Program) -> bool:
    """Whether the program was already published before the pending flush."""
    if program.published_at is None:
        return False
    state = inspect(program)
    if state.pending or state.transient:
        return False
    history = state.attrs.published_at.history
    if history.deleted:
        return history.deleted[0] is not None
    return True


def _changed_columns(instance) -> set[str]:
    state = inspect(instance)
    return {
        attr.key
        for attr in state.mapper.column_attrs
        if state.attrs[attr.key].history.has_changes()
    }


@event.listens_for(Session, "before_flush")
def _guard_published_programs(session: Session, flush_context, instances) -> None:
    """Reject in-place edits of published program versions and their criteria."""
    for instance in list(session.dirty) + list(session.new):
        if isinstance(instance, Program):
            if _was_published(instance) and _changed_columns(instance) - _LIFECYCLE_COLUMNS:
                raise ImmutableProgramVersionError(
                    f"Program {instance.program_key} v{instance.version} is published; "
                    f"create a new version instead"
                )
        elif isinstance(instance, ProgramCriterion):
            program = instance.program
            if program is not None and _was_published(program):
                raise ImmutableProgramVersionError(
                    f"Criterion {instance.name!r} belongs to published program "
                    f"{program.program_key} v{program.version}"
                )
