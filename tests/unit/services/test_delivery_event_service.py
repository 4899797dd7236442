"""Tests for SES event ingestion through the SNS webhook"""

import json
from datetime import datetime, timezone

import pytest
import requests
from unittest.mock import Mock
from sqlalchemy.exc import IntegrityError, OperationalError

from services.delivery_event_service import DeliveryEventService, HookOutcome, WebhookRejectedError
from services.sns_verification import SignatureVerificationError
from services.subscriber_service import SubscriberNotFoundError
from tests.fixtures.aws_fixtures import notification, ses_event

KINDS = ('bounce', 'complaint', 'delivery', 'send', 'open', 'click')


def body(message):
    return json.dumps(message).encode('utf-8')


class TestDeliveryEventService:

    @pytest.fixture
    def user_repository(self):
        repo = Mock()
        repo.get_by_uuid.return_value = Mock(id=1, uuid='user-uuid')
        return repo

    @pytest.fixture
    def event_repositories(self):
        return {kind: Mock() for kind in KINDS}

    @pytest.fixture
    def receipt_repository(self):
        repo = Mock()
        repo.exists.return_value = False
        return repo

    @pytest.fixture
    def subscriber_service(self):
        return Mock()

    @pytest.fixture
    def verifier(self):
        return Mock()

    @pytest.fixture
    def http(self):
        return Mock()

    @pytest.fixture
    def service(self, user_repository, event_repositories, receipt_repository, subscriber_service, verifier, http):
        return DeliveryEventService(
            user_repository=user_repository,
            event_repositories=event_repositories,
            receipt_repository=receipt_repository,
            subscriber_service=subscriber_service,
            verifier=verifier,
            http=http,
        )

    # Rejections

    def test_rejects_undecodable_body(self, service):
        with pytest.raises(WebhookRejectedError):
            service.handle('user-uuid', b'not json')

    def test_rejects_bad_signature(self, service, verifier, receipt_repository):
        verifier.verify.side_effect = SignatureVerificationError("Signature does not match")

        with pytest.raises(WebhookRejectedError) as exc_info:
            service.handle('user-uuid', body(notification(ses_event('Delivery', 5))), '10.0.0.1')
        assert exc_info.value.reason == 'unable to verify SNS payload'
        receipt_repository.commit.assert_not_called()

    def test_rejects_non_json_message(self, service):
        message = notification({})
        message['Message'] = 'plain text'

        with pytest.raises(WebhookRejectedError):
            service.handle('user-uuid', body(message))

    def test_rejects_missing_campaign_tag(self, service, event_repositories):
        event = ses_event('Delivery', 5, delivery={'recipients': ['reader@example.com']})
        event['mail']['tags'] = {}

        with pytest.raises(WebhookRejectedError):
            service.handle('user-uuid', body(notification(event)))
        event_repositories['delivery'].create_many.assert_not_called()

    def test_rejects_scalar_campaign_tag(self, service, event_repositories):
        event = ses_event('Delivery', 5, delivery={'recipients': ['reader@example.com']})
        event['mail']['tags'] = {'campaign_id': '12'}

        with pytest.raises(WebhookRejectedError) as exc_info:
            service.handle('user-uuid', body(notification(event)))
        assert exc_info.value.reason == 'campaign id tag is not a list'
        event_repositories['delivery'].create_many.assert_not_called()

    def test_rejects_tags_that_are_not_an_object(self, service, event_repositories):
        event = ses_event('Delivery', 5, delivery={'recipients': ['reader@example.com']})
        event['mail']['tags'] = ['campaign_id']

        with pytest.raises(WebhookRejectedError) as exc_info:
            service.handle('user-uuid', body(notification(event)))
        assert exc_info.value.reason == 'mail tags are not an object'
        event_repositories['delivery'].create_many.assert_not_called()

    @pytest.mark.parametrize('mail', [None, 'ses-message-id', ['tags']])
    def test_rejects_mail_that_is_not_an_object(self, service, event_repositories, mail):
        event = ses_event('Delivery', 5, delivery={'recipients': ['reader@example.com']})
        event['mail'] = mail

        with pytest.raises(WebhookRejectedError):
            service.handle('user-uuid', body(notification(event)))
        event_repositories['delivery'].create_many.assert_not_called()

    def test_rejects_unknown_user(self, service, user_repository):
        user_repository.get_by_uuid.return_value = None

        with pytest.raises(WebhookRejectedError):
            service.handle('missing', body(notification(ses_event('Send', 5))))

    def test_rejects_missing_event_section(self, service):
        with pytest.raises(WebhookRejectedError):
            service.handle('user-uuid', body(notification(ses_event('Bounce', 5))))

    def test_storage_failure_rolls_back(self, service, event_repositories, receipt_repository):
        event_repositories['send'].create_many.side_effect = OperationalError('INSERT', {}, Exception('down'))

        with pytest.raises(WebhookRejectedError):
            service.handle('user-uuid', body(notification(ses_event('Send', 5))))
        receipt_repository.rollback.assert_called_once()

    # Subscription confirmation

    def test_subscription_confirmation_visits_subscribe_url(self, service, http, event_repositories):
        http.get.return_value = Mock(status_code=200, text='ok')
        payload = {'Type': 'SubscriptionConfirmation', 'SubscribeURL': 'https://sns.example/confirm',
                   'TopicArn': 'arn'}

        assert service.handle('user-uuid', body(payload)) == HookOutcome.SUBSCRIPTION_CONFIRMATION
        http.get.assert_called_once_with('https://sns.example/confirm', timeout=10)

    def test_subscription_confirmation_failure_is_logged(self, service, http):
        http.get.side_effect = requests.ConnectionError('unreachable')
        payload = {'Type': 'SubscriptionConfirmation', 'SubscribeURL': 'https://sns.example/confirm'}

        assert service.handle('user-uuid', body(payload)) == HookOutcome.SUBSCRIPTION_CONFIRMATION

    # Events

    def test_delivery_rows_and_receipt(self, service, event_repositories, receipt_repository):
        event = ses_event('Delivery', 5, delivery={
            'timestamp': '2026-01-05T10:00:01.000Z',
            'recipients': ['a@example.com', 'b@example.com'],
            'processingTimeMillis': 546,
            'reportingMTA': 'a8-70.smtp-out.amazonses.com',
            'smtpResponse': '250 ok',
            'remoteMtaIp': '127.0.2.0',
        })

        outcome = service.handle('user-uuid', body(notification(event, message_id='m-1')))

        assert outcome == HookOutcome.PROCESSED
        rows = event_repositories['delivery'].create_many.call_args.args[0]
        assert [r['recipient'] for r in rows] == ['a@example.com', 'b@example.com']
        assert rows[0]['campaign_id'] == 5
        assert rows[0]['user_id'] == 1
        assert rows[0]['processing_time_millis'] == 546
        assert rows[0]['created_at'] == datetime(2026, 1, 5, 10, 0, 1, tzinfo=timezone.utc)
        receipt_repository.create.assert_called_once_with(message_id='m-1', user_id=1, notification_type='Delivery')
        receipt_repository.commit.assert_called_once()

    def test_legacy_notification_type_key(self, service, event_repositories):
        event = ses_event('Send', 5)
        event['notificationType'] = event.pop('eventType')

        assert service.handle('user-uuid', body(notification(event))) == HookOutcome.PROCESSED
        rows = event_repositories['send'].create_many.call_args.args[0]
        assert rows[0]['destination'] == 'reader@example.com'
        assert rows[0]['message_id'] == 'ses-message-id'

    def test_open_and_click_use_mail_destinations(self, service, event_repositories):
        service.handle('user-uuid', body(notification(
            ses_event('Open', 5, open={'userAgent': 'Mail', 'ipAddress': '1.2.3.4'}), message_id='m-open')))
        service.handle('user-uuid', body(notification(
            ses_event('Click', 5, click={'link': 'https://example.com', 'userAgent': 'Mail',
                                         'ipAddress': '1.2.3.4'}), message_id='m-click')))

        open_row = event_repositories['open'].create_many.call_args.args[0][0]
        click_row = event_repositories['click'].create_many.call_args.args[0][0]
        assert open_row['recipient'] == 'reader@example.com'
        assert open_row['ip_address'] == '1.2.3.4'
        assert click_row['link'] == 'https://example.com'

    def test_complaint(self, service, event_repositories):
        event = ses_event('Complaint', 5, complaint={
            'complainedRecipients': [{'emailAddress': 'reader@example.com'}],
            'complaintFeedbackType': 'abuse',
            'feedbackId': 'fb-1',
        })

        service.handle('user-uuid', body(notification(event)))

        row = event_repositories['complaint'].create_many.call_args.args[0][0]
        assert row['type'] == 'abuse'
        assert row['feedback_id'] == 'fb-1'

    def test_permanent_bounce_deactivates_subscribers(self, service, event_repositories, subscriber_service):
        event = ses_event('Bounce', 5, bounce={
            'bounceType': 'Permanent',
            'bounceSubType': 'General',
            'bouncedRecipients': [
                {'emailAddress': 'gone@example.com', 'action': 'failed', 'status': '5.1.1'},
                {'emailAddress': 'stranger@example.com'},
            ],
        })
        subscriber_service.deactivate_subscriber.side_effect = [True, SubscriberNotFoundError('missing')]

        assert service.handle('user-uuid', body(notification(event))) == HookOutcome.PROCESSED

        rows = event_repositories['bounce'].create_many.call_args.args[0]
        assert rows[0]['type'] == 'Permanent'
        assert rows[0]['status'] == '5.1.1'
        subscriber_service.deactivate_subscriber.assert_any_call(1, 'gone@example.com', commit=False)
        assert subscriber_service.deactivate_subscriber.call_count == 2

    def test_transient_bounce_keeps_subscribers(self, service, subscriber_service):
        event = ses_event('Bounce', 5, bounce={
            'bounceType': 'Transient',
            'bouncedRecipients': [{'emailAddress': 'full@example.com'}],
        })

        service.handle('user-uuid', body(notification(event)))

        subscriber_service.deactivate_subscriber.assert_not_called()

    def test_duplicate_message_id(self, service, receipt_repository, event_repositories):
        receipt_repository.exists.return_value = True

        outcome = service.handle('user-uuid', body(notification(ses_event('Send', 5))))

        assert outcome == HookOutcome.DUPLICATE
        event_repositories['send'].create_many.assert_not_called()

    def test_concurrent_duplicate(self, service, receipt_repository):
        receipt_repository.commit.side_effect = IntegrityError('INSERT', {}, Exception('unique'))

        outcome = service.handle('user-uuid', body(notification(ses_event('Send', 5))))

        assert outcome == HookOutcome.DUPLICATE
        receipt_repository.rollback.assert_called_once()

    @pytest.mark.parametrize('event_type', ['Rendering Failure', 'DeliveryDelay'])
    def test_unrecorded_types_are_ignored(self, service, receipt_repository, event_type):
        event = ses_event(event_type, 5, failure={'errorMessage': 'bad', 'templateName': 't'})

        assert service.handle('user-uuid', body(notification(event))) == HookOutcome.IGNORED
        receipt_repository.create.assert_not_called()
