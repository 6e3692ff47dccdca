"""Shared ledger halt marker and evaluation metrics

Revision ID: 002
Revises: 001
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create audit_ledger_halt table (at most one row)
    op.create_table(
        'audit_ledger_halt',
        sa.Column('id', sa.Integer(), primary_key=True, nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('halted_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('id = 1', name='ck_audit_ledger_halt_single_row'),
    )

    # Create evaluation_metrics table
    op.create_table(
        'evaluation_metrics',
        sa.Column('metric_id', sa.BigInteger(), sa.Identity(always=False), primary_key=True, nullable=False),
        sa.Column('metric_name', sa.String(length=100), nullable=False),
        sa.Column('scenario_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('duration_ms', sa.Numeric(precision=12, scale=3), nullable=False),
        sa.Column('programs_evaluated', sa.Integer(), nullable=False),
        sa.Column('cache_hit', sa.Boolean(), nullable=False),
        sa.Column('test_mode', sa.Boolean(), nullable=False),
        sa.Column('recorded_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('duration_ms >= 0', name='ck_evaluation_metrics_duration'),
        sa.CheckConstraint('programs_evaluated >= 0', name='ck_evaluation_metrics_programs'),
    )
    op.create_index('ix_evaluation_metrics_metric_name', 'evaluation_metrics', ['metric_name'])
    op.create_index('ix_evaluation_metrics_scenario_id', 'evaluation_metrics', ['scenario_id'])
    op.create_index('ix_evaluation_metrics_recorded_at', 'evaluation_metrics', ['recorded_at'])


def downgrade() -> None:
    op.drop_index('ix_evaluation_metrics_recorded_at', table_name='evaluation_metrics')
    op.drop_index('ix_evaluation_metrics_scenario_id', table_name='evaluation_metrics')
    op.drop_index('ix_evaluation_metrics_metric_name', table_name='evaluation_metrics')
    op.drop_table('evaluation_metrics')

    op.drop_table('audit_ledger_halt')
