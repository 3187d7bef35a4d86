"""initial_whatsapp_schema

Revision ID: 0001_initial_whatsapp_schema
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001_initial_whatsapp_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_STATUS_CLAUSE = sa.text("status IN ('open', 'pending')")


def upgrade() -> None:
    op.create_table('channel_instances',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=True),
        sa.Column('provider', sa.String(length=20), nullable=False, server_default='waha'),
        sa.Column('session_name', sa.String(length=255), nullable=False),
        sa.Column('base_url', sa.String(length=512), nullable=False),
        sa.Column('api_key', sa.String(length=255), nullable=True),
        sa.Column('webhook_secret', sa.String(length=255), nullable=True),
        sa.Column('phone_number', sa.String(length=50), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_channel_instances_id'), 'channel_instances', ['id'], unique=False)
    op.create_index(op.f('ix_channel_instances_tenant_id'), 'channel_instances', ['tenant_id'], unique=False)
    op.create_index(op.f('ix_channel_instances_session_name'), 'channel_instances', ['session_name'], unique=False)

    op.create_table('leads',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=False),
        sa.Column('country_code', sa.String(length=5), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('whatsapp_name', sa.String(length=255), nullable=True),
        sa.Column('avatar_url', sa.String(length=1024), nullable=True),
        sa.Column('source', sa.String(length=50), nullable=False, server_default='whatsapp'),
        sa.Column('is_privacy_id', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('privacy_id', sa.String(length=64), nullable=True),
        sa.Column('last_interaction_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_leads_id'), 'leads', ['id'], unique=False)
    op.create_index(op.f('ix_leads_tenant_id'), 'leads', ['tenant_id'], unique=False)
    op.create_index(op.f('ix_leads_phone'), 'leads', ['phone'], unique=True)
    op.create_index(op.f('ix_leads_privacy_id'), 'leads', ['privacy_id'], unique=False)

    op.create_table('conversations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=True),
        sa.Column('lead_id', sa.Integer(), nullable=False),
        sa.Column('channel_instance_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='open'),
        sa.Column('unread_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_message_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['lead_id'], ['leads.id'], ),
        sa.ForeignKeyConstraint(['channel_instance_id'], ['channel_instances.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_conversations_id'), 'conversations', ['id'], unique=False)
    op.create_index(op.f('ix_conversations_tenant_id'), 'conversations', ['tenant_id'], unique=False)
    op.create_index(op.f('ix_conversations_lead_id'), 'conversations', ['lead_id'], unique=False)
    op.create_index(
        op.f('ix_conversations_channel_instance_id'), 'conversations', ['channel_instance_id'], unique=False
    )
    # At most one open/pending conversation per (lead, channel instance)
    op.create_index(
        'uq_conversations_active_lead_instance',
        'conversations',
        ['lead_id', 'channel_instance_id'],
        unique=True,
        postgresql_where=ACTIVE_STATUS_CLAUSE,
        sqlite_where=ACTIVE_STATUS_CLAUSE,
    )

    op.create_table('messages',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('conversation_id', sa.Integer(), nullable=False),
        sa.Column('lead_id', sa.Integer(), nullable=False),
        sa.Column('direction', sa.String(length=10), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False, server_default='text'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='sent'),
        sa.Column('content', sa.Text(), nullable=False, server_default=''),
        sa.Column('media_url', sa.String(length=1024), nullable=True),
        sa.Column('provider_message_id', sa.String(length=255), nullable=False),
        sa.Column('external_id', sa.String(length=255), nullable=True),
        sa.Column('provider', sa.String(length=20), nullable=True),
        sa.Column('sender_type', sa.String(length=20), nullable=False, server_default='lead'),
        sa.Column('source', sa.String(length=20), nullable=True),
        sa.Column('quoted_message', sa.JSON(), nullable=True),
        sa.Column('reply_to_external_id', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['conversation_id'], ['conversations.id'], ),
        sa.ForeignKeyConstraint(['lead_id'], ['leads.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_messages_id'), 'messages', ['id'], unique=False)
    op.create_index(op.f('ix_messages_conversation_id'), 'messages', ['conversation_id'], unique=False)
    op.create_index(op.f('ix_messages_lead_id'), 'messages', ['lead_id'], unique=False)
    op.create_index(op.f('ix_messages_provider_message_id'), 'messages', ['provider_message_id'], unique=True)
    op.create_index(op.f('ix_messages_external_id'), 'messages', ['external_id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_messages_external_id'), table_name='messages')
    op.drop_index(op.f('ix_messages_provider_message_id'), table_name='messages')
    op.drop_index(op.f('ix_messages_lead_id'), table_name='messages')
    op.drop_index(op.f('ix_messages_conversation_id'), table_name='messages')
    op.drop_index(op.f('ix_messages_id'), table_name='messages')
    op.drop_table('messages')

    op.drop_index('uq_conversations_active_lead_instance', table_name='conversations')
    op.drop_index(op.f('ix_conversations_channel_instance_id'), table_name='conversations')
    op.drop_index(op.f('ix_conversations_lead_id'), table_name='conversations')
    op.drop_index(op.f('ix_conversations_tenant_id'), table_name='conversations')
    op.drop_index(op.f('ix_conversations_id'), table_name='conversations')
    op.drop_table('conversations')

    op.drop_index(op.f('ix_leads_privacy_id'), table_name='leads')
    op.drop_index(op.f('ix_leads_phone'), table_name='leads')
    op.drop_index(op.f('ix_leads_tenant_id'), table_name='leads')
    op.drop_index(op.f('ix_leads_id'), table_name='leads')
    op.drop_table('leads')

    op.drop_index(op.f('ix_channel_instances_session_name'), table_name='channel_instances')
    op.drop_index(op.f('ix_channel_instances_tenant_id'), table_name='channel_instances')
    op.drop_index(op.f('ix_channel_instances_id'), table_name='channel_instances')
    op.drop_table('channel_instances')
