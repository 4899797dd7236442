"""Tests for QueuePublisher"""

import json

import pytest
from unittest.mock import Mock
from kombu.exceptions import OperationalError

from services.campaign_params import CampaignerTopicParams, SesKeysParams
from services.queue_publisher import QueuePublisher, PublishError

TASK_NAMES = {'campaigner': 'tasks.campaign_tasks.process_campaign', 'sender': 'tasks.campaign_tasks.send_campaign_email'}


class TestQueuePublisher:

    @pytest.fixture
    def celery_app(self):
        app = Mock()
        app.send_task.return_value = Mock(id='task-1')
        return app

    @pytest.fixture
    def publisher(self, celery_app):
        return QueuePublisher(celery_app, TASK_NAMES)

    def test_publish_sends_json_body_to_queue(self, publisher, celery_app):
        params = CampaignerTopicParams(
            campaign_id=5, user_id=1, user_uuid='u', event_id='e', source='a@b.co',
            ses_keys=SesKeysParams('AKIA', 'secret', 'eu-west-1'), segment_ids=[1])

        assert publisher.publish('campaigner', params) == 'task-1'

        name, kwargs = celery_app.send_task.call_args.args[0], celery_app.send_task.call_args.kwargs
        assert name == TASK_NAMES['campaigner']
        assert kwargs['queue'] == 'campaigner'
        body = json.loads(kwargs['args'][0])
        assert body['ses_keys'] == {'access_key': 'AKIA', 'secret_key': 'secret', 'region': 'eu-west-1'}
        assert CampaignerTopicParams.from_dict(body) == params

    def test_publish_plain_dict(self, publisher, celery_app):
        publisher.publish('sender', {'a': 1})
        assert celery_app.send_task.call_args.kwargs['args'] == ['{"a": 1}']

    def test_unknown_queue(self, publisher, celery_app):
        with pytest.raises(PublishError):
            publisher.publish('nowhere', {})
        celery_app.send_task.assert_not_called()

    def test_unserializable_payload(self, publisher):
        with pytest.raises(PublishError):
            publisher.publish('sender', {'when': object()})

    def test_broker_error(self, publisher, celery_app):
        celery_app.send_task.side_effect = OperationalError('connection refused')

        with pytest.raises(PublishError):
            publisher.publish('sender', {'a': 1})
