"""
Celery tasks for the campaign pipeline
Consumers for the campaigner and sender queues, and the beat task that
starts scheduled campaigns.
"""

import json

from flask import current_app

from celery_worker import celery
from services.campaign_params import CampaignerTopicParams, SenderTopicParams
from utils.datetime_utils import utc_now
from logging_config import get_logger

logger = get_logger(__name__)


def _decode(body, params_cls, task_name):
    """
    Decode a queue message. Malformed messages are logged and dropped,
    since redelivering them can never succeed.
    """
    try:
        return params_cls.from_dict(json.loads(body))
    except (TypeError, ValueError) as e:
        logger.error("Dropping malformed queue message", task=task_name, error=str(e))
        return None


@celery.task(name='tasks.campaign_tasks.process_campaign')
def process_campaign(body):
    """Campaigner consumer: fan a started campaign out into sender messages"""
    params = _decode(body, CampaignerTopicParams, 'process_campaign')
    if params is None:
        return {'success': False, 'error': 'malformed message'}

    campaigner = current_app.services.get('campaigner')
    published = campaigner.process_campaign(params)
    return {
        'success': True,
        'campaign_id': params.campaign_id,
        'published': published,
        'timestamp': utc_now().isoformat()
    }


@celery.task(name='tasks.campaign_tasks.send_campaign_email')
def send_campaign_email(body):
    """Sender consumer: send one personalized email through the user's SES account"""
    params = _decode(body, SenderTopicParams, 'send_campaign_email')
    if params is None:
        return {'success': False, 'error': 'malformed message'}

    send_log = current_app.services.get('sender').send(params)
    return {
        'success': True,
        'duplicate': send_log is None,
        'status': send_log.status if send_log is not None else None
    }


@celery.task(name='tasks.campaign_tasks.start_scheduled_campaigns')
def start_scheduled_campaigns():
    """Start every campaign whose schedule is due"""
    stats = current_app.services.get('campaign').start_due_schedules(utc_now())
    if stats['started'] or stats['failed']:
        logger.info("Scheduled campaigns processed", stats=stats)
    return {
        'success': True,
        'timestamp': utc_now().isoformat(),
        'stats': stats
    }
