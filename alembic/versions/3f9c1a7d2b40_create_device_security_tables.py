"""create_device_security_tables

Creates the account-security schema:
1. users (local identity provider)
2. devices and device_sessions (device trust)
3. verification_codes (emailed device / step-up codes)
4. mfa_factors and mfa_challenges (authenticator and SMS)
5. backup_codes
6. account_events (append-only audit trail)

Revision ID: 3f9c1a7d2b40
Revises:
Create Date: 2026-10-18 09:12:40.518220

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f9c1a7d2b40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all account-security tables."""

    # 1. Users
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('hashed_password', sa.String(), nullable=True),
        sa.Column('full_name', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('email_verified', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # 2. Devices and device sessions
    op.create_table(
        'devices',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('device_name', sa.String(255), nullable=False),
        sa.Column('browser', sa.String(255), nullable=False),
        sa.Column('os', sa.String(255), nullable=False),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('user_id', 'device_name', 'browser', 'os', name='uq_devices_identity'),
    )
    op.create_index('ix_devices_id', 'devices', ['id'])
    op.create_index('ix_devices_user_id', 'devices', ['user_id'])

    op.create_table(
        'device_sessions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('device_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('devices.id', ondelete='CASCADE'), nullable=False),
        sa.Column('is_trusted', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('needs_verification', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('confidence_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('aal', sa.String(8), nullable=False, server_default='aal1'),
        sa.Column('last_verified', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_sensitive_verification_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_active', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('confidence_score >= 0 AND confidence_score <= 100', name='ck_device_sessions_confidence'),
    )
    op.create_index('ix_device_sessions_id', 'device_sessions', ['id'])
    op.create_index('ix_device_sessions_user_id', 'device_sessions', ['user_id'])
    op.create_index('ix_device_sessions_device_id', 'device_sessions', ['device_id'])
    op.create_index('ix_device_sessions_user_created', 'device_sessions', ['user_id', 'created_at'])

    # 3. Email verification codes
    op.create_table(
        'verification_codes',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            'device_session_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('device_sessions.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('code_hash', sa.String(128), nullable=False),
        sa.Column('salt', sa.String(64), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_verification_codes_id', 'verification_codes', ['id'])
    op.create_index('ix_verification_codes_device_session_id', 'verification_codes', ['device_session_id'])
    op.create_index('ix_verification_codes_session_expires', 'verification_codes', ['device_session_id', 'expires_at'])

    # 4. Second factors and challenges
    op.create_table(
        'mfa_factors',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('factor_type', sa.String(16), nullable=False),
        sa.Column('status', sa.String(16), nullable=False, server_default='unverified'),
        sa.Column('friendly_name', sa.String(255), nullable=True),
        sa.Column('secret_encrypted', sa.String(), nullable=True),
        sa.Column('phone', sa.String(32), nullable=True),
        sa.Column('last_used_timestep', sa.BigInteger(), nullable=True),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_mfa_factors_id', 'mfa_factors', ['id'])
    op.create_index('ix_mfa_factors_user_id', 'mfa_factors', ['user_id'])
    op.create_index('ix_mfa_factors_user_status', 'mfa_factors', ['user_id', 'status'])

    op.create_table(
        'mfa_challenges',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column('factor_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('mfa_factors.id', ondelete='CASCADE'), nullable=False),
        sa.Column('code_hash', sa.String(128), nullable=True),
        sa.Column('salt', sa.String(64), nullable=True),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_mfa_challenges_id', 'mfa_challenges', ['id'])
    op.create_index('ix_mfa_challenges_factor_id', 'mfa_challenges', ['factor_id'])

    # 5. Backup codes
    op.create_table(
        'backup_codes',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('code_hash', sa.String(128), nullable=False),
        sa.Column('salt', sa.String(64), nullable=False),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_backup_codes_id', 'backup_codes', ['id'])
    op.create_index('ix_backup_codes_user_id', 'backup_codes', ['user_id'])
    op.create_index('ix_backup_codes_user_used', 'backup_codes', ['user_id', 'used_at'])

    # 6. Account events (no FK to device_sessions: events outlive sessions)
    op.create_table(
        'account_events',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('event_type', sa.String(64), nullable=False),
        sa.Column('device_session_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('metadata', postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_account_events_id', 'account_events', ['id'])
    op.create_index('ix_account_events_user_id', 'account_events', ['user_id'])
    op.create_index('ix_account_events_event_type', 'account_events', ['event_type'])
    op.create_index('ix_account_events_user_created', 'account_events', ['user_id', 'created_at'])


def downgrade() -> None:
    """Drop all account-security tables."""
    op.drop_table('account_events')
    op.drop_table('backup_codes')
    op.drop_table('mfa_challenges')
    op.drop_table('mfa_factors')
    op.drop_table('verification_codes')
    op.drop_table('device_sessions')
    op.drop_table('devices')
    op.drop_table('users')
