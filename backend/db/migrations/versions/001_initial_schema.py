"""Initial schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'accounts',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('company_name', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    # Agents
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('account_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('display_name', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], )
    )
    op.create_index('ix_users_account_id', 'users', ['account_id'])
    op.create_index('ix_users_account_email', 'users', ['account_id', 'email'])

    op.create_table(
        'companies',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('account_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('slack_channel_id', sa.String(100), nullable=True),
        sa.Column('slack_channel_name', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], )
    )
    op.create_index('ix_companies_account_id', 'companies', ['account_id'])
    op.create_index(
        'uq_companies_account_slack_channel', 'companies',
        ['account_id', 'slack_channel_id'], unique=True
    )

    op.create_table(
        'customers',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('account_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('time_zone', sa.String(64), nullable=True),
        sa.Column('slack_user_id', sa.String(100), nullable=True),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('account_id', 'email', name='uq_customers_account_email'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ondelete='SET NULL')
    )
    op.create_index('ix_customers_account_id', 'customers', ['account_id'])
    op.create_index('ix_customers_company_id', 'customers', ['company_id'])

    op.create_table(
        'conversations',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('account_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('assignee_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('source', sa.String(20), nullable=False, server_default='chat'),
        sa.Column('status', sa.String(20), nullable=False, server_default='open'),
        sa.Column('read', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.ForeignKeyConstraint(['assignee_id'], ['users.id'], ondelete='SET NULL')
    )
    op.create_index('ix_conversations_account_id', 'conversations', ['account_id'])
    op.create_index('ix_conversations_customer_id', 'conversations', ['customer_id'])
    op.create_index('ix_conversations_assignee_id', 'conversations', ['assignee_id'])

    op.create_table(
        'messages',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('account_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('conversation_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('body', sa.Text(), nullable=False, server_default=''),
        sa.Column('source', sa.String(20), nullable=False, server_default='chat'),
        sa.Column('slack_ts', sa.String(50), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
        sa.ForeignKeyConstraint(['conversation_id'], ['conversations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], )
    )
    op.create_index('ix_messages_account_id', 'messages', ['account_id'])
    op.create_index('ix_messages_conversation_id', 'messages', ['conversation_id'])

    # Channel-scoped Slack credentials
    op.create_table(
        'slack_authorizations',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('account_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('scope', sa.String(20), nullable=False, server_default='support'),
        sa.Column('team_id', sa.String(100), nullable=False),
        sa.Column('team_name', sa.String(255), nullable=True),
        sa.Column('channel', sa.String(255), nullable=True),
        sa.Column('channel_id', sa.String(100), nullable=False),
        sa.Column('bot_user_id', sa.String(100), nullable=True),
        sa.Column('authed_user_id', sa.String(100), nullable=True),
        sa.Column('access_token', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], )
    )
    op.create_index('ix_slack_authorizations_account_id', 'slack_authorizations', ['account_id'])
    op.create_index('ix_slack_authorizations_team', 'slack_authorizations', ['team_id'])
    op.create_index(
        'uq_slack_authorizations_account_primary', 'slack_authorizations',
        ['account_id'], unique=True,
        postgresql_where=sa.text("scope = 'primary'")
    )
    op.create_index(
        'uq_slack_authorizations_account_support_channel', 'slack_authorizations',
        ['account_id', 'channel_id'], unique=True,
        postgresql_where=sa.text("scope = 'support'")
    )

    op.create_table(
        'slack_conversation_threads',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('account_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('conversation_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('slack_channel', sa.String(100), nullable=False),
        sa.Column('slack_thread_ts', sa.String(50), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
        sa.ForeignKeyConstraint(['conversation_id'], ['conversations.id'], ondelete='CASCADE')
    )
    op.create_index(
        'ix_slack_conversation_threads_conversation_id', 'slack_conversation_threads',
        ['conversation_id']
    )
    op.create_index(
        'ix_slack_conversation_threads_channel_ts', 'slack_conversation_threads',
        ['slack_channel', 'slack_thread_ts']
    )
    op.create_index(
        'uq_slack_conversation_threads_account_channel_ts', 'slack_conversation_threads',
        ['account_id', 'slack_channel', 'slack_thread_ts'], unique=True
    )


def downgrade() -> None:
    op.drop_table('slack_conversation_threads')
    op.drop_table('slack_authorizations')
    op.drop_table('messages')
    op.drop_table('conversations')
    op.drop_table('customers')
    op.drop_table('companies')
    op.drop_table('users')
    op.drop_table('accounts')
