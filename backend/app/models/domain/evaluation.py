"""Evaluation-state models: scoring, patterns, cache, ledger, limits, errors, metrics."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.core.enums import ScoringStrategy
from app.db.base import Base, BaseModel, pg_enum


class ScoringModel(BaseModel):
    """Versioned weight configuration for one scoring strategy."""

    __tablename__ = "scoring_models"
    __table_args__ = (
        # At most one active model per strategy
        Index(
            "uq_scoring_models_active_type",
            "model_type",
            unique=True,
            postgresql_where=text("is_active"),
        ),
    )

    model_type: Mapped[ScoringStrategy] = mapped_column(
        pg_enum(ScoringStrategy, "scoring_strategy"),
        nullable=False,
    )
    model_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # e.g. {"soft_penalty": 10, "rating_weight": 0.1, "hard_ratio_weight": 20}
    weights: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ScoringModel(id={self.id}, type={self.model_type.value}, "
            f"version={self.model_version}, active={self.is_active})>"
        )


class MatchPattern(BaseModel):
    """Historical success-rate record usable as a bonus signal."""

    __tablename__ = "match_patterns"

    pattern_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    # Restricts which programs the pattern applies to, e.g.
    # {"lender_ids": [...], "program_keys": [...], "states": ["TX"],
    #  "min_loan_amount": 100000, "max_loan_amount": 500000}
    pattern_config: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    success_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 4), nullable=False, default=Decimal("0.0000")
    )
    usage_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_used: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<MatchPattern(id={self.id}, type={self.pattern_type!r}, "
            f"success_rate={self.success_rate})>"
        )


class ResultCacheEntry(Base):
    """Memoized ranked result, stored as the exact JSON text that was returned."""

    __tablename__ = "result_cache"

    cache_key: Mapped[str] = mapped_column(String(64), primary_key=True)
    result: Mapped[str] = mapped_column(Text, nullable=False)
    cached_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    hit_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<ResultCacheEntry(cache_key={self.cache_key!r}, cached_at={self.cached_at})>"


class AuditRecord(Base):
    """Append-only, hash-chained record of one evaluation."""

    __tablename__ = "audit_records"

    sequence: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    scenario_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)

    # Canonical JSON text the hash was computed over
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    previous_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    current_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditRecord(sequence={self.sequence}, hash={self.current_hash[:12]})>"


class TenantRateLimit(Base):
    """Per-tenant token bucket state."""

    __tablename__ = "tenant_rate_limits"

    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    tokens: Mapped[int] = mapped_column(Integer, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    window_resets_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<TenantRateLimit(tenant_id={self.tenant_id}, tokens={self.tokens})>"


class ErrorLogEntry(BaseModel):
    """Structured error record written before a failure is re-raised."""

    __tablename__ = "error_log"

    correlation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, unique=True, index=True
    )
    component: Mapped[str] = mapped_column(String(100), nullable=False)
    error_code: Mapped[str] = mapped_column(String(100), nullable=False)
    error_category: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    error_message: Mapped[str] = mapped_column(Text, nullable=False)
    stack_trace: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    scenario_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    tenant_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    context: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True, default=dict)

    remediation_action: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    remediation_result: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ErrorLogEntry(correlation_id={self.correlation_id}, "
            f"code={self.error_code!r}, component={self.component!r})>"
        )


class AuditLedgerHalt(Base):
    """
    Single-row halt marker for the audit ledger.

    Shared by every worker using the same database; once present, appends fail.
    """

    __tablename__ = "audit_ledger_halt"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    halted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditLedgerHalt(halted_at={self.halted_at}, reason={self.reason!r})>"


class EvaluationMetric(Base):
    """Timing and volume of one successful evaluation."""

    __tablename__ = "evaluation_metrics"

    metric_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    metric_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    scenario_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    duration_ms: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    programs_evaluated: Mapped[int] = mapped_column(Integer, nullable=False)
    cache_hit: Mapped[bool] = mapped_column(Boolean, nullable=False)
    test_mode: Mapped[bool] = mapped_column(Boolean, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )

    def __repr__(self) -> str:
        return (
            f"<EvaluationMetric(scenario_id={self.scenario_id}, "
            f"duration_ms={self.duration_ms}, cache_hit={self.cache_hit})>"
        )
