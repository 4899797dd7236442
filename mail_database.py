# mail_database.py

import uuid as uuid_lib
from extensions import db
from utils.datetime_utils import utc_now, format_utc_iso


def _new_uuid():
    return str(uuid_lib.uuid4())


# --- Association tables ---
subscribers_segments = db.Table(
    'subscribers_segments',
    db.Column('subscriber_id', db.Integer, db.ForeignKey('subscribers.id', ondelete='CASCADE'), primary_key=True),
    db.Column('segment_id', db.Integer, db.ForeignKey('segments.id', ondelete='CASCADE'), primary_key=True),
)

users_roles = db.Table(
    'users_roles',
    db.Column('user_id', db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
    db.Column('role_id', db.Integer, db.ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True),
)


# --- Accounts ---
class Boundaries(db.Model):
    __tablename__ = 'boundaries'

    TYPE_FREE = 'free'
    TYPE_NO_LIMIT = 'nolimit'

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(30), unique=True, nullable=False)
    stats_retention = db.Column(db.Integer, default=0)
    subscribers_limit = db.Column(db.Integer, default=0)  # 0 means unlimited
    campaigns_limit = db.Column(db.Integer, default=0)
    templates_limit = db.Column(db.Integer, default=0)
    groups_limit = db.Column(db.Integer, default=0)
    schedule_campaigns_enabled = db.Column(db.Boolean, default=False)
    saml_enabled = db.Column(db.Boolean, default=False)
    team_members_limit = db.Column(db.Integer, default=0)

    def to_dict(self):
        return {
            'type': self.type,
            'stats_retention': self.stats_retention,
            'subscribers_limit': self.subscribers_limit,
            'campaigns_limit': self.campaigns_limit,
            'templates_limit': self.templates_limit,
            'groups_limit': self.groups_limit,
            'schedule_campaigns_enabled': self.schedule_campaigns_enabled,
            'saml_enabled': self.saml_enabled,
            'team_members_limit': self.team_members_limit,
        }


class Role(db.Model):
    __tablename__ = 'roles'

    ADMIN = 'admin'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), unique=True, nullable=False)


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), unique=True, nullable=False, default=_new_uuid)
    username = db.Column(db.String(191), unique=True, nullable=False)
    password = db.Column(db.String(256), nullable=True)  # bcrypt hash, empty for accounts without a password
    source = db.Column(db.String(191))
    active = db.Column(db.Boolean, default=True, nullable=False)
    verified = db.Column(db.Boolean, default=False, nullable=False)
    boundaries_id = db.Column(db.Integer, db.ForeignKey('boundaries.id'))
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    boundaries = db.relationship('Boundaries', lazy='joined')
    roles = db.relationship('Role', secondary=users_roles, lazy='selectin')

    # Flask-Login required properties
    @property
    def is_active(self):
        return bool(self.active)

    @property
    def is_authenticated(self):
        return True

    @property
    def is_anonymous(self):
        return False

    def get_id(self):
        return str(self.id)

    @property
    def is_admin(self):
        return any(role.name == Role.ADMIN for role in self.roles)

    def to_dict(self):
        return {
            'id': self.id,
            'uuid': self.uuid,
            'username': self.username,
            'source': self.source,
            'active': self.active,
            'verified': self.verified,
            'boundaries': self.boundaries.to_dict() if self.boundaries else None,
            'roles': [{'id': role.id, 'name': role.name} for role in self.roles],
            'created_at': format_utc_iso(self.created_at),
            'updated_at': format_utc_iso(self.updated_at),
        }


class Token(db.Model):
    __tablename__ = 'tokens'

    TYPE_FORGOT_PASSWORD = 'forgot_password'
    TYPE_VERIFY_EMAIL = 'verify_email'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    token = db.Column(db.String(191), unique=True, nullable=False)
    type = db.Column(db.String(30), nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, default=utc_now)

    user = db.relationship('User')


class SesKeys(db.Model):
    __tablename__ = 'ses_keys'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), unique=True, nullable=False)
    access_key = db.Column(db.String(191), nullable=False)
    secret_key = db.Column(db.String(191), nullable=False)
    region = db.Column(db.String(30), nullable=False)
    created_at = db.Column(db.DateTime, default=utc_now)

    def to_dict(self):
        # The secret key never leaves the server
        return {
            'access_key': self.access_key,
            'region': self.region,
            'created_at': format_utc_iso(self.created_at),
        }

    def to_message(self):
        return {
            'access_key': self.access_key,
            'secret_key': self.secret_key,
            'region': self.region,
        }


# --- Audience ---
class Subscriber(db.Model):
    __tablename__ = 'subscribers'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'email', name='uq_subscribers_user_email'),
        db.Index('ix_subscribers_user_created', 'user_id', 'created_at', 'id'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    name = db.Column(db.String(191), default='')
    email = db.Column(db.String(191), nullable=False)
    # "metadata" is reserved on declarative models
    meta = db.Column('metadata', db.JSON, default=dict)
    blacklisted = db.Column(db.Boolean, default=False, nullable=False)
    active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    segments = db.relationship('Segment', secondary=subscribers_segments, back_populates='subscribers')

    def get_metadata(self):
        """Return a fresh copy of the merge-field metadata."""
        return dict(self.meta or {})

    def to_dict(self, include_segments=False):
        data = {
            'id': self.id,
            'user_id': self.user_id,
            'name': self.name,
            'email': self.email,
            'metadata': self.get_metadata(),
            'blacklisted': self.blacklisted,
            'active': self.active,
            'created_at': format_utc_iso(self.created_at),
            'updated_at': format_utc_iso(self.updated_at),
        }
        if include_segments:
            data['segments'] = [segment.to_dict() for segment in self.segments]
        return data


class Segment(db.Model):
    __tablename__ = 'segments'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'name', name='uq_segments_user_name'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    name = db.Column(db.String(191), nullable=False)
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    subscribers = db.relationship('Subscriber', secondary=subscribers_segments, back_populates='segments', lazy='dynamic')

    def to_dict(self, subscribers_in_segment=None):
        data = {
            'id': self.id,
            'name': self.name,
            'created_at': format_utc_iso(self.created_at),
            'updated_at': format_utc_iso(self.updated_at),
        }
        if subscribers_in_segment is not None:
            data['subscribers_in_segment'] = subscribers_in_segment
        return data


class SubscriberEvent(db.Model):
    __tablename__ = 'subscriber_events'

    TYPE_CREATED = 'created'
    TYPE_UNSUBSCRIBED = 'unsubscribed'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    subscriber_id = db.Column(db.Integer, nullable=False)
    event_type = db.Column(db.String(20), nullable=False)
    created_at = db.Column(db.DateTime, default=utc_now)


class SubscriberMetrics(db.Model):
    """Hourly created/unsubscribed counters, one row per (user, hour)."""
    __tablename__ = 'subscriber_metrics'

    user_id = db.Column(db.Integer, primary_key=True)
    datetime = db.Column(db.DateTime, primary_key=True)
    created = db.Column(db.Integer, default=0, nullable=False)
    unsubscribed = db.Column(db.Integer, default=0, nullable=False)

    def to_dict(self):
        return {
            'datetime': format_utc_iso(self.datetime),
            'created': self.created,
            'unsubscribed': self.unsubscribed,
        }


# --- Content ---
class Template(db.Model):
    """Template metadata. The HTML part lives in object storage."""
    __tablename__ = 'templates'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'name', name='uq_templates_user_name'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    name = db.Column(db.String(191), nullable=False)
    subject_part = db.Column(db.String(191), nullable=False)
    text_part = db.Column(db.Text, default='')
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    # Populated from object storage, never persisted in this table
    html_part = None

    def to_dict(self, include_parts=True):
        data = {
            'id': self.id,
            'user_id': self.user_id,
            'name': self.name,
            'subject_part': self.subject_part,
            'created_at': format_utc_iso(self.created_at),
            'updated_at': format_utc_iso(self.updated_at),
        }
        if include_parts:
            data['text_part'] = self.text_part
            data['html_part'] = self.html_part
        return data


class Campaign(db.Model):
    __tablename__ = 'campaigns'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'name', name='uq_campaigns_user_name'),
    )

    STATUS_DRAFT = 'draft'
    STATUS_SCHEDULED = 'scheduled'
    STATUS_SENDING = 'sending'
    STATUS_SENT = 'sent'
    STATUS_FAILED = 'failed'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    name = db.Column(db.String(191), nullable=False)
    template_id = db.Column(db.Integer, db.ForeignKey('templates.id', ondelete='SET NULL'), nullable=True)
    status = db.Column(db.String(20), default=STATUS_DRAFT, nullable=False)
    event_id = db.Column(db.String(36), nullable=True)
    created_at = db.Column(db.DateTime, default=utc_now, index=True)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)
    started_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    deleted_at = db.Column(db.DateTime, nullable=True)

    template = db.relationship('Template', lazy='joined')
    schedule = db.relationship('CampaignSchedule', uselist=False, back_populates='campaign',
                               cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'name': self.name,
            'status': self.status,
            'event_id': self.event_id,
            'template': self.template.to_dict(include_parts=False) if self.template else None,
            'schedule': self.schedule.to_dict() if self.schedule else None,
            'created_at': format_utc_iso(self.created_at),
            'updated_at': format_utc_iso(self.updated_at),
            'started_at': format_utc_iso(self.started_at),
            'completed_at': format_utc_iso(self.completed_at),
        }


class CampaignSchedule(db.Model):
    __tablename__ = 'campaign_schedules'

    id = db.Column(db.Integer, primary_key=True)
    campaign_id = db.Column(db.Integer, db.ForeignKey('campaigns.id', ondelete='CASCADE'), unique=True, nullable=False)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    scheduled_at = db.Column(db.DateTime, nullable=False, index=True)
    source = db.Column(db.String(191), nullable=False)
    segment_ids = db.Column(db.JSON, default=list)
    template_data = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime, default=utc_now)

    campaign = db.relationship('Campaign', back_populates='schedule')

    def to_dict(self):
        return {
            'scheduled_at': format_utc_iso(self.scheduled_at),
            'source': self.source,
            'segment_ids': list(self.segment_ids or []),
            'template_data': dict(self.template_data or {}),
        }


class CampaignFailedLog(db.Model):
    __tablename__ = 'campaign_failed_logs'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    campaign_id = db.Column(db.Integer, nullable=False, index=True)
    description = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utc_now)


class SendLog(db.Model):
    __tablename__ = 'send_logs'
    __table_args__ = (
        db.UniqueConstraint('event_id', 'subscriber_id', name='uq_send_logs_event_subscriber'),
    )

    STATUS_SUCCESSFUL = 'successful'
    STATUS_FAILED = 'failed'

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), unique=True, nullable=False, default=_new_uuid)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    event_id = db.Column(db.String(36), nullable=False)
    campaign_id = db.Column(db.Integer, nullable=False, index=True)
    subscriber_id = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False)
    message_id = db.Column(db.String(191))
    description = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utc_now)


# --- Delivery events reported by the email provider ---
class DeliveryEventMixin:
    """Columns shared by all provider-reported event records."""
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    campaign_id = db.Column(db.Integer, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=utc_now)

    _fields = ()

    def to_dict(self):
        data = {
            'id': self.id,
            'campaign_id': self.campaign_id,
            'created_at': format_utc_iso(self.created_at),
        }
        for field in self._fields:
            data[field] = getattr(self, field)
        return data


class Bounce(DeliveryEventMixin, db.Model):
    __tablename__ = 'bounces'
    _fields = ('recipient', 'action', 'status', 'diagnostic_code', 'type', 'sub_type', 'feedback_id')

    recipient = db.Column(db.String(191))
    action = db.Column(db.String(191))
    status = db.Column(db.String(191))
    diagnostic_code = db.Column(db.Text)
    type = db.Column(db.String(30))
    sub_type = db.Column(db.String(30))
    feedback_id = db.Column(db.String(191))


class Complaint(DeliveryEventMixin, db.Model):
    __tablename__ = 'complaints'
    _fields = ('recipient', 'type', 'feedback_id')

    recipient = db.Column(db.String(191))
    type = db.Column(db.String(191))
    feedback_id = db.Column(db.String(191))


class Delivery(DeliveryEventMixin, db.Model):
    __tablename__ = 'deliveries'
    _fields = ('recipient', 'processing_time_millis', 'reporting_mta', 'remote_mta_ip', 'smtp_response')

    recipient = db.Column(db.String(191))
    processing_time_millis = db.Column(db.Integer)
    reporting_mta = db.Column(db.String(191))
    remote_mta_ip = db.Column(db.String(50))
    smtp_response = db.Column(db.Text)


class Send(DeliveryEventMixin, db.Model):
    __tablename__ = 'sends'
    _fields = ('message_id', 'source', 'sending_account_id', 'destination')

    message_id = db.Column(db.String(191))
    source = db.Column(db.String(191))
    sending_account_id = db.Column(db.String(191))
    destination = db.Column(db.String(191))


class Open(DeliveryEventMixin, db.Model):
    __tablename__ = 'opens'
    _fields = ('recipient', 'user_agent', 'ip_address')

    recipient = db.Column(db.String(191))
    user_agent = db.Column(db.String(191))
    ip_address = db.Column(db.String(50))


class Click(DeliveryEventMixin, db.Model):
    __tablename__ = 'clicks'
    _fields = ('recipient', 'link', 'user_agent', 'ip_address')

    recipient = db.Column(db.String(191))
    link = db.Column(db.Text)
    user_agent = db.Column(db.String(191))
    ip_address = db.Column(db.String(50))


class NotificationReceipt(db.Model):
    """SNS message ids already ingested, so redelivered notifications are no-ops."""
    __tablename__ = 'notification_receipts'

    id = db.Column(db.Integer, primary_key=True)
    message_id = db.Column(db.String(191), unique=True, nullable=False)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    notification_type = db.Column(db.String(50))
    created_at = db.Column(db.DateTime, default=utc_now)
