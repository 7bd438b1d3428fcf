"""Initial schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # Accounts table
    op.create_table(
        'accounts',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('display_name', sa.String(100), nullable=False),
        sa.Column('avatar_url', sa.Text, nullable=True),
        sa.Column('hashed_password', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('last_seen_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_accounts_email', 'accounts', ['email'], unique=True)

    # External identities table
    op.create_table(
        'external_identities',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('provider', sa.String(20), nullable=False),
        sa.Column('provider_user_id', sa.String(255), nullable=False),
        sa.Column('account_id', sa.Integer, sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('login', sa.String(255), nullable=True),
        sa.Column('access_token', sa.Text, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('provider', 'provider_user_id', name='uq_external_identity_provider_user'),
        sa.UniqueConstraint('account_id', 'provider', name='uq_external_identity_account_provider'),
    )
    op.create_index('ix_external_identities_account_id', 'external_identities', ['account_id'])

    # Account sessions table
    op.create_table(
        'account_sessions',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('account_id', sa.Integer, sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('session_token', sa.String(64), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('user_agent', sa.Text, nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_account_sessions_session_token', 'account_sessions', ['session_token'], unique=True)
    op.create_index('ix_account_sessions_account_id', 'account_sessions', ['account_id'])

    # Teams table
    op.create_table(
        'teams',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('avatar_url', sa.Text, nullable=True),
        *_timestamps(),
    )

    # Projects table
    op.create_table(
        'projects',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('team_id', sa.Integer, sa.ForeignKey('teams.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='planning'),
        sa.Column('due_date', sa.Date, nullable=True),
        sa.Column('color', sa.String(7), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_projects_team_id', 'projects', ['team_id'])

    # Team memberships table
    op.create_table(
        'team_memberships',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('team_id', sa.Integer, sa.ForeignKey('teams.id', ondelete='CASCADE'), nullable=False),
        sa.Column('account_id', sa.Integer, sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role', sa.String(20), nullable=False, server_default='member'),
        sa.Column('joined_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('invited_by_id', sa.Integer, sa.ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True),
        sa.Column('version', sa.Integer, nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('team_id', 'account_id', name='uq_team_membership_team_account'),
    )
    op.create_index('ix_team_memberships_team_id', 'team_memberships', ['team_id'])
    op.create_index('ix_team_memberships_account_id', 'team_memberships', ['account_id'])
    # At most one owner per team
    op.create_index(
        'uq_team_membership_single_owner',
        'team_memberships',
        ['team_id'],
        unique=True,
        postgresql_where=sa.text("role = 'owner'"),
        sqlite_where=sa.text("role = 'owner'"),
    )

    # Project memberships table
    op.create_table(
        'project_memberships',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('project_id', sa.Integer, sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('account_id', sa.Integer, sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role', sa.String(20), nullable=False, server_default='member'),
        sa.Column('joined_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('added_by_id', sa.Integer, sa.ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True),
        sa.Column('version', sa.Integer, nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('project_id', 'account_id', name='uq_project_membership_project_account'),
    )
    op.create_index('ix_project_memberships_project_id', 'project_memberships', ['project_id'])
    op.create_index('ix_project_memberships_account_id', 'project_memberships', ['account_id'])

    # Invitations table
    op.create_table(
        'invitations',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('team_id', sa.Integer, sa.ForeignKey('teams.id', ondelete='CASCADE'), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('token', sa.String(64), nullable=False, unique=True),
        sa.Column('role', sa.String(20), nullable=False, server_default='member'),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('responded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('invited_by_id', sa.Integer, sa.ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True),
        sa.Column('accepted_by_id', sa.Integer, sa.ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True),
        sa.Column('version', sa.Integer, nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_invitations_team_id', 'invitations', ['team_id'])
    op.create_index('ix_invitations_email', 'invitations', ['email'])


def downgrade() -> None:
    op.drop_table('invitations')
    op.drop_table('project_memberships')
    op.drop_index('uq_team_membership_single_owner', table_name='team_memberships')
    op.drop_table('team_memberships')
    op.drop_table('projects')
    op.drop_table('teams')
    op.drop_table('account_sessions')
    op.drop_table('external_identities')
    op.drop_table('accounts')
