"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18 09:00:00

"""
from alembic import op
import sqlalchemy as sa


revision = '0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'chat_threads',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('thread_id', sa.String(), nullable=False),
        sa.Column('remote_conversation_id', sa.String(), nullable=False),
        sa.Column('ticket_key', sa.String(), nullable=True),
        sa.Column('service_id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('last_activity', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_chat_threads_id', 'chat_threads', ['id'])
    op.create_index('ix_chat_threads_thread_id', 'chat_threads', ['thread_id'], unique=True)
    op.create_index('ix_chat_threads_ticket_key', 'chat_threads', ['ticket_key'])
    op.create_index('ix_chat_threads_last_activity', 'chat_threads', ['last_activity'])

    op.create_table(
        'chat_messages',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('thread_id', sa.String(), nullable=False),
        sa.Column('role', sa.String(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_chat_messages_id', 'chat_messages', ['id'])
    op.create_index('ix_chat_messages_thread_id', 'chat_messages', ['thread_id'])

    op.create_table(
        'service_configurations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('service_id', sa.String(), nullable=False),
        sa.Column('service_name', sa.String(), nullable=False),
        sa.Column('assistant_id', sa.String(), nullable=True),
        sa.Column('assistant_name', sa.String(), nullable=True),
        sa.Column('project_key', sa.String(), nullable=True),
        sa.Column('keywords', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('jira_email', sa.String(), nullable=True),
        sa.Column('jira_api_token', sa.String(), nullable=True),
        sa.Column('last_updated', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'service_id', name='uq_service_configurations_user_service'),
    )
    op.create_index('ix_service_configurations_id', 'service_configurations', ['id'])
    op.create_index('ix_service_configurations_user_id', 'service_configurations', ['user_id'])
    op.create_index('ix_service_configurations_service_id', 'service_configurations', ['service_id'])

    op.create_table(
        'disabled_tickets',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('issue_key', sa.String(), nullable=False),
        sa.Column('reason', sa.String(), nullable=True),
        sa.Column('disabled_by', sa.String(), nullable=True),
        sa.Column('disabled_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'issue_key', name='uq_disabled_tickets_user_issue'),
    )
    op.create_index('ix_disabled_tickets_id', 'disabled_tickets', ['id'])
    op.create_index('ix_disabled_tickets_user_id', 'disabled_tickets', ['user_id'])
    op.create_index('ix_disabled_tickets_issue_key', 'disabled_tickets', ['issue_key'])

    op.create_table(
        'whatsapp_mappings',
        sa.Column('phone', sa.String(), nullable=False),
        sa.Column('issue_key', sa.String(), nullable=False),
        sa.Column('service_id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('contact_name', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('phone'),
    )
    op.create_index('ix_whatsapp_mappings_issue_key', 'whatsapp_mappings', ['issue_key'])

    op.create_table(
        'webhook_configs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('service_id', sa.String(), nullable=True),
        sa.Column('url', sa.String(), nullable=False),
        sa.Column('is_enabled', sa.Boolean(), nullable=True),
        sa.Column('filter_enabled', sa.Boolean(), nullable=True),
        sa.Column('filter_condition', sa.String(), nullable=True),
        sa.Column('filter_value', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_webhook_configs_id', 'webhook_configs', ['id'])
    op.create_index('ix_webhook_configs_user_id', 'webhook_configs', ['user_id'])
    op.create_index('ix_webhook_configs_service_id', 'webhook_configs', ['service_id'])

    op.create_table(
        'saved_webhooks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('service_id', sa.String(), nullable=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('url', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_enabled', sa.Boolean(), nullable=True),
        sa.Column('filter_enabled', sa.Boolean(), nullable=True),
        sa.Column('filter_condition', sa.String(), nullable=True),
        sa.Column('filter_value', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_saved_webhooks_id', 'saved_webhooks', ['id'])
    op.create_index('ix_saved_webhooks_user_id', 'saved_webhooks', ['user_id'])


def downgrade() -> None:
    op.drop_table('saved_webhooks')
    op.drop_table('webhook_configs')
    op.drop_table('whatsapp_mappings')
    op.drop_table('disabled_tickets')
    op.drop_table('service_configurations')
    op.drop_table('chat_messages')
    op.drop_table('chat_threads')
