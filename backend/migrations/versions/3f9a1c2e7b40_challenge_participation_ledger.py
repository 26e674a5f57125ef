"""challenges, participations, ledger, review policy, notifications, audit

Revision ID: 3f9a1c2e7b40
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3f9a1c2e7b40'
down_revision = None
branch_labels = None
depends_on = None

IN_FLIGHT_WHERE = sa.text("status IN ('pending-analysis', 'pending-review')")


def upgrade():
    op.create_table(
        'challenges',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('category', sa.String(length=32), nullable=False),
        sa.Column('goal', sa.Float(), nullable=True),
        sa.Column('goal_kind', sa.String(length=16), nullable=True),
        sa.Column('reward_amount', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'participations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('challenge_id', sa.Integer(), nullable=False),
        sa.Column('result_value', sa.Float(), nullable=True),
        sa.Column('primary_proof_url', sa.String(length=500), nullable=False),
        sa.Column('secondary_proof_url', sa.String(length=500), nullable=True),
        sa.Column('primary_is_valid', sa.Boolean(), nullable=True),
        sa.Column('primary_confidence', sa.Integer(), nullable=True),
        sa.Column('primary_observed_value', sa.Float(), nullable=True),
        sa.Column('primary_reason', sa.String(length=500), nullable=True),
        sa.Column('primary_is_suspicious', sa.Boolean(), nullable=True),
        sa.Column('primary_analyzed_at', sa.DateTime(), nullable=True),
        sa.Column('secondary_is_valid', sa.Boolean(), nullable=True),
        sa.Column('secondary_confidence', sa.Integer(), nullable=True),
        sa.Column('secondary_observed_value', sa.Float(), nullable=True),
        sa.Column('secondary_reason', sa.String(length=500), nullable=True),
        sa.Column('secondary_is_suspicious', sa.Boolean(), nullable=True),
        sa.Column('secondary_analyzed_at', sa.DateTime(), nullable=True),
        sa.Column('status', sa.String(length=24), nullable=False),
        sa.Column('rejection_reason', sa.String(length=400), nullable=True),
        sa.Column('coins_earned', sa.Integer(), nullable=True),
        sa.Column('effective_confidence', sa.Integer(), nullable=True),
        sa.Column('decided_by', sa.Integer(), nullable=True),
        sa.Column('decided_at', sa.DateTime(), nullable=True),
        sa.Column('reversed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['challenge_id'], ['challenges.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('participations', schema=None) as batch_op:
        batch_op.create_index('ix_participations_user_id', ['user_id'], unique=False)
        batch_op.create_index('ix_participations_challenge_id', ['challenge_id'], unique=False)
        batch_op.create_index('ix_participations_status', ['status'], unique=False)
        batch_op.create_index('ix_participations_created_at', ['created_at'], unique=False)
    op.create_index(
        'uq_participations_in_flight',
        'participations',
        ['user_id', 'challenge_id'],
        unique=True,
        sqlite_where=IN_FLIGHT_WHERE,
        postgresql_where=IN_FLIGHT_WHERE,
    )

    op.create_table(
        'ledger_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('participation_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['participation_id'], ['participations.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('ledger_entries', schema=None) as batch_op:
        batch_op.create_index('ix_ledger_entries_participation_id', ['participation_id'], unique=True)
        batch_op.create_index('ix_ledger_entries_user_id', ['user_id'], unique=False)

    op.create_table(
        'ledger_reversals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('entry_id', sa.Integer(), nullable=False),
        sa.Column('participation_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=400), nullable=False),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['entry_id'], ['ledger_entries.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('ledger_reversals', schema=None) as batch_op:
        batch_op.create_index('ix_ledger_reversals_entry_id', ['entry_id'], unique=False)
        batch_op.create_index('ix_ledger_reversals_participation_id', ['participation_id'], unique=True)
        batch_op.create_index('ix_ledger_reversals_user_id', ['user_id'], unique=False)

    op.create_table(
        'review_policies',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('category', sa.String(length=32), nullable=False),
        sa.Column('auto_approve', sa.Boolean(), nullable=False),
        sa.Column('updated_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('category'),
    )

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=32), nullable=False),
        sa.Column('channel', sa.String(length=32), nullable=False),
        sa.Column('title', sa.String(length=160), nullable=True),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=24), nullable=False),
        sa.Column('provider_ref', sa.String(length=120), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
        sa.Column('meta', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('notifications', schema=None) as batch_op:
        batch_op.create_index('ix_notifications_user_id', ['user_id'], unique=False)

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('actor_user_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('target_type', sa.String(length=64), nullable=True),
        sa.Column('target_id', sa.Integer(), nullable=True),
        sa.Column('meta', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('audit_logs', schema=None) as batch_op:
        batch_op.create_index('ix_audit_logs_action', ['action'], unique=False)
        batch_op.create_index('ix_audit_logs_target', ['target_type', 'target_id'], unique=False)

    op.create_table(
        'idempotency_keys',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('key', sa.String(length=128), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('route', sa.String(length=160), nullable=False),
        sa.Column('request_hash', sa.String(length=64), nullable=False),
        sa.Column('response_json', sa.Text(), nullable=True),
        sa.Column('status_code', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('key'),
    )
    with op.batch_alter_table('idempotency_keys', schema=None) as batch_op:
        batch_op.create_index('ix_idempotency_keys_user_id', ['user_id'], unique=False)


def downgrade():
    with op.batch_alter_table('idempotency_keys', schema=None) as batch_op:
        batch_op.drop_index('ix_idempotency_keys_user_id')
    op.drop_table('idempotency_keys')
    with op.batch_alter_table('audit_logs', schema=None) as batch_op:
        batch_op.drop_index('ix_audit_logs_target')
        batch_op.drop_index('ix_audit_logs_action')
    op.drop_table('audit_logs')
    with op.batch_alter_table('notifications', schema=None) as batch_op:
        batch_op.drop_index('ix_notifications_user_id')
    op.drop_table('notifications')
    op.drop_table('review_policies')
    with op.batch_alter_table('ledger_reversals', schema=None) as batch_op:
        batch_op.drop_index('ix_ledger_reversals_user_id')
        batch_op.drop_index('ix_ledger_reversals_participation_id')
        batch_op.drop_index('ix_ledger_reversals_entry_id')
    op.drop_table('ledger_reversals')
    with op.batch_alter_table('ledger_entries', schema=None) as batch_op:
        batch_op.drop_index('ix_ledger_entries_user_id')
        batch_op.drop_index('ix_ledger_entries_participation_id')
    op.drop_table('ledger_entries')
    op.drop_index('uq_participations_in_flight', table_name='participations')
    with op.batch_alter_table('participations', schema=None) as batch_op:
        batch_op.drop_index('ix_participations_created_at')
        batch_op.drop_index('ix_participations_status')
        batch_op.drop_index('ix_participations_challenge_id')
        batch_op.drop_index('ix_participations_user_id')
    op.drop_table('participations')
    op.drop_table('challenges')
