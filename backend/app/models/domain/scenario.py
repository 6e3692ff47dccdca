"""Scenario domain models: the loan request, its answers and exception grants."""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Union

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.enums import GrantStatus
from app.db.base import BaseModel, pg_enum

AnswerValue = Union[Decimal, bool, date, str]


class Scenario(BaseModel):
    """A borrower's loan request, characterized by location, amount and answers."""

    __tablename__ = "scenarios"

    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Location
    state_code: Mapped[str] = mapped_column(String(2), nullable=False)
    metro_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("metros.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Loan
    loan_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    property_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2), nullable=True)

    # Relationships
    answers: Mapped[list["ScenarioAnswer"]] = relationship(
        "ScenarioAnswer",
        back_populates="scenario",
        cascade="all, delete-orphan",
    )
    exception_grants: Mapped[list["ExceptionGrant"]] = relationship(
        "ExceptionGrant",
        back_populates="scenario",
        cascade="all, delete-orphan",
    )

    @property
    def ltv(self) -> Optional[Decimal]:
        """Loan-to-value percentage computed from source fields."""
        if not self.property_value or self.loan_amount is None:
            return None
        return (Decimal(self.loan_amount) / Decimal(self.property_value) * 100).quantize(
            Decimal("0.01")
        )

    def __repr__(self) -> str:
        return (
            f"<Scenario(id={self.id}, state={self.state_code!r}, "
            f"loan_amount={self.loan_amount})>"
        )


class ScenarioAnswer(BaseModel):
    """
    Answer to one catalog question for one scenario.

    Exactly one of the ``value_*`` columns is populated, forming a typed
    value union delivered by the upstream import pipeline.
    """

    __tablename__ = "scenario_answers"
    __table_args__ = (
        UniqueConstraint("scenario_id", "question_id", name="uq_scenario_answers_question"),
    )

    scenario_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("scenarios.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("questions.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    value_numeric: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 4), nullable=True)
    value_boolean: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    value_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    value_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Relationships
    scenario: Mapped["Scenario"] = relationship("Scenario", back_populates="answers")
    question: Mapped["Question"] = relationship("Question")

    @property
    def value(self) -> Optional[AnswerValue]:
        """The populated member of the value union, or None."""
        if self.value_numeric is not None:
            return Decimal(self.value_numeric)
        if self.value_boolean is not None:
            return self.value_boolean
        if self.value_date is not None:
            return self.value_date
        return self.value_text

    def __repr__(self) -> str:
        return f"<ScenarioAnswer(scenario_id={self.scenario_id}, question_id={self.question_id})>"


class ExceptionGrant(BaseModel):
    """Pre-approved override allowing one failing criterion not to disqualify."""

    __tablename__ = "exception_grants"

    scenario_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("scenarios.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    criterion_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("program_criteria.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status: Mapped[GrantStatus] = mapped_column(
        pg_enum(GrantStatus, "grant_status"),
        default=GrantStatus.PENDING,
        nullable=False,
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    approved_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Relationships
    scenario: Mapped["Scenario"] = relationship("Scenario", back_populates="exception_grants")

    def is_effective(self, now: datetime) -> bool:
        """Only approved, unexpired grants count."""
        if self.status != GrantStatus.APPROVED:
            return False
        return self.expires_at is None or self.expires_at > now

    def __repr__(self) -> str:
        return (
            f"<ExceptionGrant(id={self.id}, criterion_id={self.criterion_id}, "
            f"status={self.status.value})>"
        )
