"""
Queue Publisher
Publishes pipeline messages to named Celery queues. Each message is a single
JSON string argument to the consumer task bound to that queue.
"""

import json
from typing import Any, Dict

from celery.exceptions import CeleryError
from kombu.exceptions import KombuError, OperationalError

from logging_config import get_logger

logger = get_logger(__name__)


class PublishError(Exception):
    """Raised when a message cannot be handed to the broker"""
    pass


class QueuePublisher:
    """Thin wrapper over Celery's send_task for the campaign pipeline"""

    def __init__(self, celery_app, task_names: Dict[str, str]):
        """
        Args:
            celery_app: Celery application used to reach the broker
            task_names: Consumer task name per queue name
        """
        self.celery_app = celery_app
        self.task_names = task_names

    def publish(self, queue: str, params: Any) -> str:
        """
        Serialize params to JSON and send exactly one message. Nothing is retried.

        Args:
            queue: Target queue name
            params: Object with to_dict(), or a plain dict

        Returns:
            The broker message (task) id

        Raises:
            PublishError: If serialization or the broker call fails
        """
        task_name = self.task_names.get(queue)
        if task_name is None:
            raise PublishError(f"No consumer task configured for queue '{queue}'")

        payload = params.to_dict() if hasattr(params, 'to_dict') else params
        try:
            body = json.dumps(payload)
        except (TypeError, ValueError) as e:
            raise PublishError(f"Unable to serialize message for '{queue}'") from e

        try:
            result = self.celery_app.send_task(task_name, args=[body], queue=queue)
        except (KombuError, OperationalError, CeleryError, OSError) as e:
            logger.error("Queue publish failed", queue=queue, error=str(e))
            raise PublishError(f"Unable to publish to '{queue}'") from e

        return result.id
