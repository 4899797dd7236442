"""Create initial mail platform tables

Revision ID: 000_initial_tables
Revises:
Create Date: 2026-10-17

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '000_initial_tables'
down_revision = None
branch_labels = None
depends_on = None


def _delivery_event_columns():
    return [
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('campaign_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    ]


def _delivery_event_indexes(table):
    op.create_index(f'ix_{table}_user_id', table, ['user_id'])
    op.create_index(f'ix_{table}_campaign_id', table, ['campaign_id'])


def upgrade():
    # Accounts
    op.create_table('boundaries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=30), nullable=False),
        sa.Column('stats_retention', sa.Integer(), nullable=True),
        sa.Column('subscribers_limit', sa.Integer(), nullable=True),
        sa.Column('campaigns_limit', sa.Integer(), nullable=True),
        sa.Column('templates_limit', sa.Integer(), nullable=True),
        sa.Column('groups_limit', sa.Integer(), nullable=True),
        sa.Column('schedule_campaigns_enabled', sa.Boolean(), nullable=True),
        sa.Column('saml_enabled', sa.Boolean(), nullable=True),
        sa.Column('team_members_limit', sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('type')
    )

    op.create_table('roles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )

    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uuid', sa.String(length=36), nullable=False),
        sa.Column('username', sa.String(length=191), nullable=False),
        sa.Column('password', sa.String(length=256), nullable=True),
        sa.Column('source', sa.String(length=191), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False),
        sa.Column('verified', sa.Boolean(), nullable=False),
        sa.Column('boundaries_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['boundaries_id'], ['boundaries.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('uuid'),
        sa.UniqueConstraint('username')
    )

    op.create_table('users_roles',
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('role_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('user_id', 'role_id')
    )

    op.create_table('tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token', sa.String(length=191), nullable=False),
        sa.Column('type', sa.String(length=30), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('token')
    )
    op.create_index('ix_tokens_user_id', 'tokens', ['user_id'])

    op.create_table('ses_keys',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('access_key', sa.String(length=191), nullable=False),
        sa.Column('secret_key', sa.String(length=191), nullable=False),
        sa.Column('region', sa.String(length=30), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id')
    )

    # Audience
    op.create_table('subscribers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=191), nullable=True),
        sa.Column('email', sa.String(length=191), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('blacklisted', sa.Boolean(), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'email', name='uq_subscribers_user_email')
    )
    op.create_index('ix_subscribers_user_id', 'subscribers', ['user_id'])
    op.create_index('ix_subscribers_user_created', 'subscribers', ['user_id', 'created_at', 'id'])

    op.create_table('segments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=191), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'name', name='uq_segments_user_name')
    )
    op.create_index('ix_segments_user_id', 'segments', ['user_id'])

    op.create_table('subscribers_segments',
        sa.Column('subscriber_id', sa.Integer(), nullable=False),
        sa.Column('segment_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['subscriber_id'], ['subscribers.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['segment_id'], ['segments.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('subscriber_id', 'segment_id')
    )

    op.create_table('subscriber_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('subscriber_id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_subscriber_events_user_id', 'subscriber_events', ['user_id'])

    op.create_table('subscriber_metrics',
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('datetime', sa.DateTime(), nullable=False),
        sa.Column('created', sa.Integer(), nullable=False),
        sa.Column('unsubscribed', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('user_id', 'datetime')
    )

    # Content and campaigns
    op.create_table('templates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=191), nullable=False),
        sa.Column('subject_part', sa.String(length=191), nullable=False),
        sa.Column('text_part', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'name', name='uq_templates_user_name')
    )
    op.create_index('ix_templates_user_id', 'templates', ['user_id'])

    op.create_table('campaigns',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=191), nullable=False),
        sa.Column('template_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('event_id', sa.String(length=36), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['template_id'], ['templates.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'name', name='uq_campaigns_user_name')
    )
    op.create_index('ix_campaigns_user_id', 'campaigns', ['user_id'])
    op.create_index('ix_campaigns_created_at', 'campaigns', ['created_at'])

    op.create_table('campaign_schedules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('campaign_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('scheduled_at', sa.DateTime(), nullable=False),
        sa.Column('source', sa.String(length=191), nullable=False),
        sa.Column('segment_ids', sa.JSON(), nullable=True),
        sa.Column('template_data', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaigns.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('campaign_id')
    )
    op.create_index('ix_campaign_schedules_user_id', 'campaign_schedules', ['user_id'])
    op.create_index('ix_campaign_schedules_scheduled_at', 'campaign_schedules', ['scheduled_at'])

    op.create_table('campaign_failed_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('campaign_id', sa.Integer(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_campaign_failed_logs_user_id', 'campaign_failed_logs', ['user_id'])
    op.create_index('ix_campaign_failed_logs_campaign_id', 'campaign_failed_logs', ['campaign_id'])

    op.create_table('send_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uuid', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('event_id', sa.String(length=36), nullable=False),
        sa.Column('campaign_id', sa.Integer(), nullable=False),
        sa.Column('subscriber_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('message_id', sa.String(length=191), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('uuid'),
        sa.UniqueConstraint('event_id', 'subscriber_id', name='uq_send_logs_event_subscriber')
    )
    op.create_index('ix_send_logs_user_id', 'send_logs', ['user_id'])
    op.create_index('ix_send_logs_campaign_id', 'send_logs', ['campaign_id'])

    # Provider-reported delivery events
    op.create_table('bounces',
        *_delivery_event_columns(),
        sa.Column('recipient', sa.String(length=191), nullable=True),
        sa.Column('action', sa.String(length=191), nullable=True),
        sa.Column('status', sa.String(length=191), nullable=True),
        sa.Column('diagnostic_code', sa.Text(), nullable=True),
        sa.Column('type', sa.String(length=30), nullable=True),
        sa.Column('sub_type', sa.String(length=30), nullable=True),
        sa.Column('feedback_id', sa.String(length=191), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    _delivery_event_indexes('bounces')

    op.create_table('complaints',
        *_delivery_event_columns(),
        sa.Column('recipient', sa.String(length=191), nullable=True),
        sa.Column('type', sa.String(length=191), nullable=True),
        sa.Column('feedback_id', sa.String(length=191), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    _delivery_event_indexes('complaints')

    op.create_table('deliveries',
        *_delivery_event_columns(),
        sa.Column('recipient', sa.String(length=191), nullable=True),
        sa.Column('processing_time_millis', sa.Integer(), nullable=True),
        sa.Column('reporting_mta', sa.String(length=191), nullable=True),
        sa.Column('remote_mta_ip', sa.String(length=50), nullable=True),
        sa.Column('smtp_response', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    _delivery_event_indexes('deliveries')

    op.create_table('sends',
        *_delivery_event_columns(),
        sa.Column('message_id', sa.String(length=191), nullable=True),
        sa.Column('source', sa.String(length=191), nullable=True),
        sa.Column('sending_account_id', sa.String(length=191), nullable=True),
        sa.Column('destination', sa.String(length=191), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    _delivery_event_indexes('sends')

    op.create_table('opens',
        *_delivery_event_columns(),
        sa.Column('recipient', sa.String(length=191), nullable=True),
        sa.Column('user_agent', sa.String(length=191), nullable=True),
        sa.Column('ip_address', sa.String(length=50), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    _delivery_event_indexes('opens')

    op.create_table('clicks',
        *_delivery_event_columns(),
        sa.Column('recipient', sa.String(length=191), nullable=True),
        sa.Column('link', sa.Text(), nullable=True),
        sa.Column('user_agent', sa.String(length=191), nullable=True),
        sa.Column('ip_address', sa.String(length=50), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    _delivery_event_indexes('clicks')

    op.create_table('notification_receipts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('message_id', sa.String(length=191), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('notification_type', sa.String(length=50), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('message_id')
    )
    op.create_index('ix_notification_receipts_user_id', 'notification_receipts', ['user_id'])


def downgrade():
    op.drop_table('notification_receipts')
    for table in ('clicks', 'opens', 'sends', 'deliveries', 'complaints', 'bounces'):
        op.drop_table(table)
    op.drop_table('send_logs')
    op.drop_table('campaign_failed_logs')
    op.drop_table('campaign_schedules')
    op.drop_table('campaigns')
    op.drop_table('templates')
    op.drop_table('subscriber_metrics')
    op.drop_table('subscriber_events')
    op.drop_table('subscribers_segments')
    op.drop_table('segments')
    op.drop_table('subscribers')
    op.drop_table('ses_keys')
    op.drop_table('tokens')
    op.drop_table('users_roles')
    op.drop_table('users')
    op.drop_table('roles')
    op.drop_table('boundaries')
