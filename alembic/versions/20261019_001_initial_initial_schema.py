"""Initial schema - users, sessions, projects, API keys, credentials, agents

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# BIGINT on PostgreSQL, INTEGER on SQLite so ROWID autoincrement still works
BigIntId = sa.BigInteger().with_variant(sa.Integer(), 'sqlite')


def _audit_columns():
    return [
        sa.Column('created_by', sa.String(255), nullable=True),
        sa.Column('modified_by', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', BigIntId, primary_key=True, autoincrement=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('hashed_password', sa.String(255), nullable=True),
        sa.Column('first_name', sa.String(100), nullable=True),
        sa.Column('last_name', sa.String(100), nullable=True),
        sa.Column('image', sa.String(500), nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('verification_token', sa.String(64), nullable=True),
        sa.Column('login_ts', sa.DateTime, nullable=True),
        *_audit_columns(),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_verification_token', 'users', ['verification_token'])

    op.create_table(
        'user_sessions',
        sa.Column('id', BigIntId, primary_key=True, autoincrement=True),
        sa.Column('user_id', BigIntId, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('session_token', sa.String(64), nullable=False, unique=True),
        sa.Column('expires', sa.DateTime, nullable=False),
    )
    op.create_index('ix_user_sessions_user_id', 'user_sessions', ['user_id'])

    op.create_table(
        'projects',
        sa.Column('id', BigIntId, primary_key=True, autoincrement=True),
        sa.Column('user_id', BigIntId, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('project_name', sa.String(255), nullable=False),
        sa.Column('db_type', sa.String(30), nullable=False, server_default='postgresql'),
        sa.Column('db_credential', sa.JSON, nullable=False),
        sa.Column('selected_tables', sa.JSON, nullable=True),
        sa.Column('table_relationships', sa.JSON, nullable=True),
        sa.Column('connection_status', sa.String(20), nullable=False, server_default='disconnected'),
        *_audit_columns(),
    )
    op.create_index('ix_projects_user_id', 'projects', ['user_id'])

    op.create_table(
        'api_keys',
        sa.Column('id', BigIntId, primary_key=True, autoincrement=True),
        sa.Column('user_id', BigIntId, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('provider', sa.String(50), nullable=False),
        sa.Column('api_key', sa.Text, nullable=False),
        *_audit_columns(),
        sa.UniqueConstraint('user_id', 'provider', name='uq_api_keys_user_provider'),
    )
    op.create_index('ix_api_keys_user_id', 'api_keys', ['user_id'])

    op.create_table(
        'user_credentials',
        sa.Column('id', BigIntId, primary_key=True, autoincrement=True),
        sa.Column('user_id', BigIntId, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('credential_type', sa.String(20), nullable=False, server_default='email'),
        sa.Column('credentials', sa.JSON, nullable=False),
        *_audit_columns(),
    )
    op.create_index('ix_user_credentials_user_id', 'user_credentials', ['user_id'])

    op.create_table(
        'agents',
        sa.Column('id', BigIntId, primary_key=True, autoincrement=True),
        sa.Column('user_id', BigIntId, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('agent_name', sa.String(255), nullable=False),
        sa.Column('project_id', BigIntId, sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('credential_id', BigIntId, sa.ForeignKey('user_credentials.id', ondelete='CASCADE'), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        *_audit_columns(),
    )
    op.create_index('ix_agents_user_id', 'agents', ['user_id'])


def downgrade() -> None:
    op.drop_table('agents')
    op.drop_table('user_credentials')
    op.drop_table('api_keys')
    op.drop_table('projects')
    op.drop_table('user_sessions')
    op.drop_table('users')
