"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _base_columns() -> list:
    return [
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(name=name, create_type=False)


def upgrade() -> None:
    # Create ENUM types
    op.execute("CREATE TYPE criterion_data_type AS ENUM ('decimal', 'integer', 'percentage', 'money', 'boolean', 'date')")
    op.execute("CREATE TYPE coverage_scope AS ENUM ('program', 'lender')")
    op.execute("CREATE TYPE geo_level AS ENUM ('state', 'metro')")
    op.execute("CREATE TYPE grant_status AS ENUM ('Pending', 'Approved', 'Denied', 'Revoked')")
    op.execute("CREATE TYPE house_rule_action AS ENUM ('EXCLUDE', 'PREFER')")
    op.execute("CREATE TYPE scoring_strategy AS ENUM ('static', 'weighted')")

    # Create lenders table
    op.create_table(
        'lenders',
        *_base_columns(),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('profile_score', sa.Numeric(precision=5, scale=2), nullable=False, server_default=sa.text('0')),
        sa.UniqueConstraint('name', name='uq_lenders_name'),
    )
    op.create_index('ix_lenders_name', 'lenders', ['name'])
    op.create_index('ix_lenders_active', 'lenders', ['active'])

    # Create programs table
    op.create_table(
        'programs',
        *_base_columns(),
        sa.Column('lender_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('lenders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('program_key', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default=sa.text('1')),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('product_type', sa.String(length=100), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('valid_from', sa.Date(), nullable=True),
        sa.Column('valid_to', sa.Date(), nullable=True),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('program_key', 'version', name='uq_programs_key_version'),
    )
    op.create_index('ix_programs_lender_id', 'programs', ['lender_id'])
    op.create_index('ix_programs_program_key', 'programs', ['program_key'])

    # Create questions table
    op.create_table(
        'questions',
        *_base_columns(),
        sa.Column('code', sa.String(length=100), nullable=False),
        sa.Column('prompt', sa.Text(), nullable=False),
        sa.Column('data_type', _enum('criterion_data_type'), nullable=False),
        sa.UniqueConstraint('code', name='uq_questions_code'),
    )
    op.create_index('ix_questions_code', 'questions', ['code'])

    # Create program_criteria table
    op.create_table(
        'program_criteria',
        *_base_columns(),
        sa.Column('program_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('programs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('question_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('questions.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('data_type', _enum('criterion_data_type'), nullable=False),
        sa.Column('hard_min_value', sa.Numeric(precision=18, scale=4), nullable=True),
        sa.Column('hard_max_value', sa.Numeric(precision=18, scale=4), nullable=True),
        sa.Column('soft_min_value', sa.Numeric(precision=18, scale=4), nullable=True),
        sa.Column('soft_max_value', sa.Numeric(precision=18, scale=4), nullable=True),
        sa.Column('preferred_min_value', sa.Numeric(precision=18, scale=4), nullable=True),
        sa.Column('preferred_max_value', sa.Numeric(precision=18, scale=4), nullable=True),
        sa.Column('weight', sa.Numeric(precision=5, scale=2), nullable=False, server_default=sa.text('1.00')),
        sa.Column('is_deal_breaker', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
    )
    op.create_index('ix_program_criteria_program_id', 'program_criteria', ['program_id'])
    op.create_index('ix_program_criteria_question_id', 'program_criteria', ['question_id'])

    # Create metros table
    op.create_table(
        'metros',
        *_base_columns(),
        sa.Column('code', sa.String(length=50), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('state_code', sa.String(length=2), nullable=False),
        sa.UniqueConstraint('code', name='uq_metros_code'),
    )
    op.create_index('ix_metros_state_code', 'metros', ['state_code'])

    # Create coverage_rules table
    op.create_table(
        'coverage_rules',
        *_base_columns(),
        sa.Column('scope', _enum('coverage_scope'), nullable=False),
        sa.Column('level', _enum('geo_level'), nullable=False),
        sa.Column('lender_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('lenders.id', ondelete='CASCADE'), nullable=True),
        sa.Column('program_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('programs.id', ondelete='CASCADE'), nullable=True),
        sa.Column('state_code', sa.String(length=2), nullable=True),
        sa.Column('metro_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('metros.id', ondelete='CASCADE'), nullable=True),
        sa.Column('is_excluded', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('max_ltv_override', sa.Numeric(precision=5, scale=2), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.CheckConstraint(
            "(scope = 'program' AND program_id IS NOT NULL) OR (scope = 'lender' AND lender_id IS NOT NULL)",
            name='ck_coverage_rules_scope_owner',
        ),
        sa.CheckConstraint(
            "(level = 'state' AND state_code IS NOT NULL) OR (level = 'metro' AND metro_id IS NOT NULL)",
            name='ck_coverage_rules_level_geo',
        ),
    )
    op.create_index('ix_coverage_rules_lender_id', 'coverage_rules', ['lender_id'])
    op.create_index('ix_coverage_rules_program_id', 'coverage_rules', ['program_id'])
    op.create_index('ix_coverage_rules_state_code', 'coverage_rules', ['state_code'])
    op.create_index('ix_coverage_rules_metro_id', 'coverage_rules', ['metro_id'])

    # Create broker_house_rules table
    op.create_table(
        'broker_house_rules',
        *_base_columns(),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('target_lender_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('lenders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('rule_action', _enum('house_rule_action'), nullable=False),
        sa.Column('rule_confidence', sa.Numeric(precision=5, scale=4), nullable=False, server_default=sa.text('1')),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('reason', sa.Text(), nullable=True),
    )
    op.create_index('ix_broker_house_rules_tenant_id', 'broker_house_rules', ['tenant_id'])
    op.create_index('ix_broker_house_rules_target_lender_id', 'broker_house_rules', ['target_lender_id'])

    # Create scenarios table
    op.create_table(
        'scenarios',
        *_base_columns(),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('state_code', sa.String(length=2), nullable=False),
        sa.Column('metro_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('metros.id', ondelete='SET NULL'), nullable=True),
        sa.Column('loan_amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('property_value', sa.Numeric(precision=15, scale=2), nullable=True),
    )
    op.create_index('ix_scenarios_tenant_id', 'scenarios', ['tenant_id'])

    # Create scenario_answers table
    op.create_table(
        'scenario_answers',
        *_base_columns(),
        sa.Column('scenario_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('scenarios.id', ondelete='CASCADE'), nullable=False),
        sa.Column('question_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('questions.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('value_numeric', sa.Numeric(precision=18, scale=4), nullable=True),
        sa.Column('value_boolean', sa.Boolean(), nullable=True),
        sa.Column('value_date', sa.Date(), nullable=True),
        sa.Column('value_text', sa.Text(), nullable=True),
        sa.UniqueConstraint('scenario_id', 'question_id', name='uq_scenario_answers_question'),
    )
    op.create_index('ix_scenario_answers_scenario_id', 'scenario_answers', ['scenario_id'])
    op.create_index('ix_scenario_answers_question_id', 'scenario_answers', ['question_id'])

    # Create exception_grants table
    op.create_table(
        'exception_grants',
        *_base_columns(),
        sa.Column('scenario_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('scenarios.id', ondelete='CASCADE'), nullable=False),
        sa.Column('criterion_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('program_criteria.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', _enum('grant_status'), nullable=False, server_default='Pending'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_by', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
    )
    op.create_index('ix_exception_grants_scenario_id', 'exception_grants', ['scenario_id'])
    op.create_index('ix_exception_grants_criterion_id', 'exception_grants', ['criterion_id'])

    # Create scoring_models table
    op.create_table(
        'scoring_models',
        *_base_columns(),
        sa.Column('model_type', _enum('scoring_strategy'), nullable=False),
        sa.Column('model_version', sa.Integer(), nullable=False, server_default=sa.text('1')),
        sa.Column('weights', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('false')),
    )
    op.create_index(
        'uq_scoring_models_active_type',
        'scoring_models',
        ['model_type'],
        unique=True,
        postgresql_where=sa.text('is_active'),
    )

    # Create match_patterns table
    op.create_table(
        'match_patterns',
        *_base_columns(),
        sa.Column('pattern_type', sa.String(length=100), nullable=False),
        sa.Column('pattern_config', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('success_rate', sa.Numeric(precision=5, scale=4), nullable=False, server_default=sa.text('0')),
        sa.Column('usage_count', sa.BigInteger(), nullable=False, server_default=sa.text('0')),
        sa.Column('last_used', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
    )
    op.create_index('ix_match_patterns_pattern_type', 'match_patterns', ['pattern_type'])

    # Create result_cache table
    op.create_table(
        'result_cache',
        sa.Column('cache_key', sa.String(length=64), primary_key=True, nullable=False),
        sa.Column('result', sa.Text(), nullable=False),
        sa.Column('cached_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('hit_count', sa.BigInteger(), nullable=False, server_default=sa.text('0')),
    )
    op.create_index('ix_result_cache_cached_at', 'result_cache', ['cached_at'])

    # Create audit_records table
    op.create_table(
        'audit_records',
        sa.Column('sequence', sa.BigInteger(), sa.Identity(always=False), primary_key=True, nullable=False),
        sa.Column('scenario_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('payload', sa.Text(), nullable=False),
        sa.Column('previous_hash', sa.String(length=64), nullable=True),
        sa.Column('current_hash', sa.String(length=64), nullable=False),
        sa.Column('recorded_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('current_hash', name='uq_audit_records_current_hash'),
    )
    op.create_index('ix_audit_records_scenario_id', 'audit_records', ['scenario_id'])
    op.create_index('ix_audit_records_tenant_id', 'audit_records', ['tenant_id'])

    # Create tenant_rate_limits table
    op.create_table(
        'tenant_rate_limits',
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column('tokens', sa.Integer(), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('window_resets_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('tokens >= 0', name='ck_tenant_rate_limits_tokens'),
    )

    # Create error_log table
    op.create_table(
        'error_log',
        *_base_columns(),
        sa.Column('correlation_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('component', sa.String(length=100), nullable=False),
        sa.Column('error_code', sa.String(length=100), nullable=False),
        sa.Column('error_category', sa.String(length=50), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=False),
        sa.Column('stack_trace', sa.Text(), nullable=True),
        sa.Column('scenario_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('context', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('remediation_action', sa.String(length=50), nullable=True),
        sa.Column('remediation_result', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    )
    op.create_index('ix_error_log_correlation_id', 'error_log', ['correlation_id'], unique=True)
    op.create_index('ix_error_log_error_category', 'error_log', ['error_category'])

    # Audit records are append-only
    op.execute("""
        CREATE FUNCTION audit_records_append_only() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'audit_records is append-only';
        END;
        $$ LANGUAGE plpgsql
    """)
    op.execute("""
        CREATE TRIGGER trg_audit_records_append_only
        BEFORE UPDATE OR DELETE ON audit_records
        FOR EACH ROW EXECUTE FUNCTION audit_records_append_only()
    """)


def downgrade() -> None:
    # Drop tables in reverse order (respecting foreign key constraints)
    op.execute("DROP TRIGGER IF EXISTS trg_audit_records_append_only ON audit_records")
    op.execute("DROP FUNCTION IF EXISTS audit_records_append_only()")

    op.drop_index('ix_error_log_error_category', table_name='error_log')
    op.drop_index('ix_error_log_correlation_id', table_name='error_log')
    op.drop_table('error_log')

    op.drop_table('tenant_rate_limits')

    op.drop_index('ix_audit_records_tenant_id', table_name='audit_records')
    op.drop_index('ix_audit_records_scenario_id', table_name='audit_records')
    op.drop_table('audit_records')

    op.drop_index('ix_result_cache_cached_at', table_name='result_cache')
    op.drop_table('result_cache')

    op.drop_index('ix_match_patterns_pattern_type', table_name='match_patterns')
    op.drop_table('match_patterns')

    op.drop_index('uq_scoring_models_active_type', table_name='scoring_models')
    op.drop_table('scoring_models')

    op.drop_index('ix_exception_grants_criterion_id', table_name='exception_grants')
    op.drop_index('ix_exception_grants_scenario_id', table_name='exception_grants')
    op.drop_table('exception_grants')

    op.drop_index('ix_scenario_answers_question_id', table_name='scenario_answers')
    op.drop_index('ix_scenario_answers_scenario_id', table_name='scenario_answers')
    op.drop_table('scenario_answers')

    op.drop_index('ix_scenarios_tenant_id', table_name='scenarios')
    op.drop_table('scenarios')

    op.drop_index('ix_broker_house_rules_target_lender_id', table_name='broker_house_rules')
    op.drop_index('ix_broker_house_rules_tenant_id', table_name='broker_house_rules')
    op.drop_table('broker_house_rules')

    op.drop_index('ix_coverage_rules_metro_id', table_name='coverage_rules')
    op.drop_index('ix_coverage_rules_state_code', table_name='coverage_rules')
    op.drop_index('ix_coverage_rules_program_id', table_name='coverage_rules')
    op.drop_index('ix_coverage_rules_lender_id', table_name='coverage_rules')
    op.drop_table('coverage_rules')

    op.drop_index('ix_metros_state_code', table_name='metros')
    op.drop_table('metros')

    op.drop_index('ix_program_criteria_question_id', table_name='program_criteria')
    op.drop_index('ix_program_criteria_program_id', table_name='program_criteria')
    op.drop_table('program_criteria')

    op.drop_index('ix_questions_code', table_name='questions')
    op.drop_table('questions')

    op.drop_index('ix_programs_program_key', table_name='programs')
    op.drop_index('ix_programs_lender_id', table_name='programs')
    op.drop_table('programs')

    op.drop_index('ix_lenders_active', table_name='lenders')
    op.drop_index('ix_lenders_name', table_name='lenders')
    op.drop_table('lenders')

    # Drop ENUM types
    op.execute("DROP TYPE IF EXISTS scoring_strategy")
    op.execute("DROP TYPE IF EXISTS house_rule_action")
    op.execute("DROP TYPE IF EXISTS grant_status")
    op.execute("DROP TYPE IF EXISTS geo_level")
    op.execute("DROP TYPE IF EXISTS coverage_scope")
    op.execute("DROP TYPE IF EXISTS criterion_data_type")
