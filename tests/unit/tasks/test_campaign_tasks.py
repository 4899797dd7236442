"""Tests for the campaign pipeline Celery tasks"""

import json

import pytest
from unittest.mock import Mock

from mail_database import SendLog
from services.campaign_params import CampaignerTopicParams, SenderTopicParams

SES_KEYS = {'access_key': 'AKIA', 'secret_key': 'secret', 'region': 'eu-west-1'}


@pytest.fixture
def tasks(app):
    from tasks import campaign_tasks
    return campaign_tasks


class TestProcessCampaignTask:

    def test_decodes_and_runs_campaigner(self, app, tasks):
        campaigner = Mock()
        campaigner.process_campaign.return_value = 3
        app.services.register('campaigner', service=campaigner)
        body = json.dumps({
            'campaign_id': 5, 'user_id': 1, 'user_uuid': 'u', 'event_id': 'e', 'source': 'a@b.co',
            'ses_keys': SES_KEYS, 'segment_ids': [1], 'template_data': {}, 'configuration_set_exists': False,
        })

        result = tasks.process_campaign.run(body)

        params = campaigner.process_campaign.call_args.args[0]
        assert isinstance(params, CampaignerTopicParams)
        assert params.ses_keys.access_key == 'AKIA'
        assert result['success'] is True
        assert result['published'] == 3

    @pytest.mark.parametrize('body', ['not json', '[1, 2]', '{"campaign_id": 5}'])
    def test_malformed_message_is_dropped(self, app, tasks, body):
        campaigner = Mock()
        app.services.register('campaigner', service=campaigner)

        result = tasks.process_campaign.run(body)

        assert result == {'success': False, 'error': 'malformed message'}
        campaigner.process_campaign.assert_not_called()


class TestSendCampaignEmailTask:

    def _body(self):
        return json.dumps({
            'event_id': 'e', 'subscriber_id': 9, 'subscriber_email': 'reader@example.com',
            'source': 'a@b.co', 'configuration_set_exists': False, 'campaign_id': 5, 'ses_keys': SES_KEYS,
            'html_part': '<p>Hi</p>', 'subject_part': 'Hi', 'text_part': 'Hi', 'user_uuid': 'u', 'user_id': 1,
        })

    def test_sends(self, app, tasks):
        sender = Mock()
        sender.send.return_value = SendLog(status=SendLog.STATUS_SUCCESSFUL)
        app.services.register('sender', service=sender)

        result = tasks.send_campaign_email.run(self._body())

        assert isinstance(sender.send.call_args.args[0], SenderTopicParams)
        assert result == {'success': True, 'duplicate': False, 'status': SendLog.STATUS_SUCCESSFUL}

    def test_duplicate(self, app, tasks):
        sender = Mock()
        sender.send.return_value = None
        app.services.register('sender', service=sender)

        result = tasks.send_campaign_email.run(self._body())

        assert result['duplicate'] is True


class TestStartScheduledCampaignsTask:

    def test_reports_stats(self, app, tasks):
        campaign_service = Mock()
        campaign_service.start_due_schedules.return_value = {'started': 2, 'failed': 0}
        app.services.register('campaign', service=campaign_service)

        result = tasks.start_scheduled_campaigns.run()

        assert result['stats'] == {'started': 2, 'failed': 0}
        campaign_service.start_due_schedules.assert_called_once()
