"""
Shared Celery configuration for both the Flask app (publishing) and the workers
"""
import os
import ssl
from urllib.parse import urlparse, parse_qs

from celery import Celery
from kombu import Queue

from logging_config import get_logger

logger = get_logger(__name__)

_SSL_OPTIONS = {
    'ssl_cert_reqs': ssl.CERT_NONE,
    'ssl_ca_certs': None,
    'ssl_certfile': None,
    'ssl_keyfile': None,
}


def _add_ssl_params(url):
    """Managed Redis (rediss://) needs ssl_cert_reqs on the URL"""
    if not url.startswith('rediss://'):
        return url
    parsed = urlparse(url)
    if 'ssl_cert_reqs' in parse_qs(parsed.query):
        return url
    separator = '&' if parsed.query else '?'
    return url + f"{separator}ssl_cert_reqs=CERT_NONE"


def create_celery_app(app_name=__name__, config=None):
    """
    Create a Celery app bound to the campaign pipeline queues.

    Args:
        app_name: Celery main name
        config: Optional mapping (Flask config) with broker and queue settings
    """
    config = config or {}
    broker_url = (
        config.get('CELERY_BROKER_URL') or os.environ.get('CELERY_BROKER_URL') or
        os.environ.get('REDIS_URL') or 'redis://redis:6379/0'
    )
    result_backend_url = (
        config.get('CELERY_RESULT_BACKEND') or os.environ.get('CELERY_RESULT_BACKEND') or broker_url
    )
    campaigner_queue = config.get('CAMPAIGNER_QUEUE') or os.environ.get('CAMPAIGNER_QUEUE', 'campaigner')
    sender_queue = config.get('SENDER_QUEUE') or os.environ.get('SENDER_QUEUE', 'sender')

    broker_uses_ssl = broker_url.startswith('rediss://')
    backend_uses_ssl = result_backend_url.startswith('rediss://')

    celery = Celery(
        app_name,
        broker=_add_ssl_params(broker_url),
        backend=_add_ssl_params(result_backend_url),
    )
    if broker_uses_ssl:
        celery.conf.broker_use_ssl = _SSL_OPTIONS
        celery.conf.broker_connection_retry_on_startup = True
        celery.conf.broker_connection_max_retries = 3
        celery.conf.broker_transport_options = {
            'socket_connect_timeout': 30,
            'socket_timeout': 30,
        }
    if backend_uses_ssl:
        celery.conf.redis_backend_use_ssl = _SSL_OPTIONS

    celery.conf.task_queues = (
        Queue(campaigner_queue),
        Queue(sender_queue),
        Queue('celery'),
    )
    celery.conf.task_routes = {
        'tasks.campaign_tasks.process_campaign': {'queue': campaigner_queue},
        'tasks.campaign_tasks.send_campaign_email': {'queue': sender_queue},
    }
    # At-least-once: a message is acknowledged only after its task finishes
    celery.conf.task_acks_late = True
    celery.conf.task_reject_on_worker_lost = True
    celery.conf.worker_prefetch_multiplier = 1
    celery.conf.task_ignore_result = True
    celery.conf.timezone = 'UTC'

    logger.info("Celery configured",
                broker_uses_ssl=broker_uses_ssl,
                backend_uses_ssl=backend_uses_ssl,
                campaigner_queue=campaigner_queue,
                sender_queue=sender_queue)
    return celery
