"""Initial auth schema: accounts, login history, one-time codes, trusted devices, audit log

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('hashed_password', sa.Text(), nullable=True),
        sa.Column('password_history', sa.JSON(), nullable=False, server_default='[]'),
        sa.Column('password_changed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='user'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_otp_user', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('failed_login_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('lock_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('token_version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_login_ip', sa.String(length=64), nullable=True),
        sa.Column('last_login_user_agent', sa.Text(), nullable=True),
        sa.Column('last_login_device_hash', sa.String(length=64), nullable=True),
        sa.Column('last_login_country', sa.String(length=64), nullable=True),
        sa.Column('last_login_city', sa.String(length=128), nullable=True),
        sa.Column('suspicious_login_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_suspicious_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('flagged_for_review', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_email_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('email_verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reset_password_token_hash', sa.String(length=64), nullable=True),
        sa.Column('reset_password_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint('failed_login_attempts >= 0', name='ck_users_failed_attempts_non_negative'),
        sa.CheckConstraint('token_version >= 0', name='ck_users_token_version_non_negative'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
    op.create_index(op.f('ix_users_reset_password_token_hash'), 'users', ['reset_password_token_hash'])

    op.create_table(
        'login_history',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('ip', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('user_agent', sa.Text(), nullable=False, server_default=''),
        sa.Column('device_hash', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('country', sa.String(length=64), nullable=False, server_default='UNKNOWN'),
        sa.Column('city', sa.String(length=128), nullable=False, server_default='UNKNOWN'),
        sa.Column('time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('suspicious', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('reason', sa.Text(), nullable=False, server_default=''),
        sa.Column('risk_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('outcome', sa.String(length=32), nullable=False, server_default='success'),
        sa.CheckConstraint('risk_score BETWEEN 0 AND 100', name='ck_login_history_risk_score_range'),
        sa.ForeignKeyConstraint(['account_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_login_history_account_id'), 'login_history', ['account_id'])

    op.create_table(
        'otp_challenges',
        sa.Column('subject', sa.String(length=255), nullable=False),
        sa.Column('purpose', sa.String(length=32), nullable=False),
        sa.Column('code_hash', sa.String(length=64), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('correlation_id', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint('attempts >= 0', name='ck_otp_challenges_attempts_non_negative'),
        sa.PrimaryKeyConstraint('subject', 'purpose')
    )
    op.create_index(op.f('ix_otp_challenges_expires_at'), 'otp_challenges', ['expires_at'])

    op.create_table(
        'trusted_devices',
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('device_hash', sa.String(length=64), nullable=False),
        sa.Column('first_seen_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_seen_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_ip', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('last_country', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('last_city', sa.String(length=128), nullable=False, server_default=''),
        sa.Column('user_agent', sa.Text(), nullable=False, server_default=''),
        sa.Column('browser', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('os', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('platform', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('accept_language', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.ForeignKeyConstraint(['account_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('account_id', 'device_hash')
    )

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('ip', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('user_agent', sa.Text(), nullable=False, server_default=''),
        sa.Column('metadata', sa.JSON(), nullable=False, server_default='{}'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['account_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_audit_logs_account_id'), 'audit_logs', ['account_id'])
    op.create_index(op.f('ix_audit_logs_action'), 'audit_logs', ['action'])
    op.create_index(op.f('ix_audit_logs_created_at'), 'audit_logs', ['created_at'])


def downgrade() -> None:
    op.drop_index(op.f('ix_audit_logs_created_at'), table_name='audit_logs')
    op.drop_index(op.f('ix_audit_logs_action'), table_name='audit_logs')
    op.drop_index(op.f('ix_audit_logs_account_id'), table_name='audit_logs')
    op.drop_table('audit_logs')
    op.drop_table('trusted_devices')
    op.drop_index(op.f('ix_otp_challenges_expires_at'), table_name='otp_challenges')
    op.drop_table('otp_challenges')
    op.drop_index(op.f('ix_login_history_account_id'), table_name='login_history')
    op.drop_table('login_history')
    op.drop_index(op.f('ix_users_reset_password_token_hash'), table_name='users')
    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_table('users')
