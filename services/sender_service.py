"""
Sender Service
Consumes one sender message and hands the rendered email to SES with the
user's own keys. Every attempt is recorded in send_logs, which also makes
redelivered messages a no-op.
"""

from typing import Callable, Optional

from botocore.exceptions import BotoCoreError, ClientError
from sqlalchemy.exc import IntegrityError

from mail_database import SendLog
from repositories.send_log_repository import SendLogRepository
from services.campaign_params import SenderTopicParams
from logging_config import get_logger

logger = get_logger(__name__)

CHARSET = 'UTF-8'


class SenderService:
    """Sends personalized campaign emails through SES"""

    def __init__(self, send_log_repository: SendLogRepository, ses_client_factory: Callable,
                 configuration_set_name: str):
        """
        Args:
            send_log_repository: Repository for send attempts
            ses_client_factory: Callable (access_key, secret_key, region) -> SES client
            configuration_set_name: Name of the per-user configuration set
        """
        self.send_log_repository = send_log_repository
        self.ses_client_factory = ses_client_factory
        self.configuration_set_name = configuration_set_name

    def build_request(self, params: SenderTopicParams) -> dict:
        request = {
            'Source': params.source,
            'Destination': {'ToAddresses': [params.subscriber_email]},
            'Message': {
                'Subject': {'Data': params.subject_part, 'Charset': CHARSET},
                'Body': {
                    'Html': {'Data': params.html_part, 'Charset': CHARSET},
                    'Text': {'Data': params.text_part, 'Charset': CHARSET},
                },
            },
            'Tags': [
                {'Name': 'campaign_id', 'Value': str(params.campaign_id)},
                {'Name': 'user_id', 'Value': str(params.user_id)},
            ],
        }
        if params.configuration_set_exists:
            request['ConfigurationSetName'] = self.configuration_set_name
        return request

    def send(self, params: SenderTopicParams) -> Optional[SendLog]:
        """
        Send one email unless this (event, subscriber) pair was already attempted.

        Returns:
            The SendLog written, or None when the message was a duplicate
        """
        log = logger.bind(event_id=params.event_id, campaign_id=params.campaign_id,
                          subscriber_id=params.subscriber_id)

        if self.send_log_repository.exists(event_id=params.event_id, subscriber_id=params.subscriber_id):
            log.info("Email already sent for this event, skipping")
            return None

        keys = params.ses_keys
        client = self.ses_client_factory(keys.access_key, keys.secret_key, keys.region)

        status, message_id, description = SendLog.STATUS_SUCCESSFUL, None, None
        try:
            response = client.send_email(**self.build_request(params))
            message_id = response.get('MessageId')
        except (ClientError, BotoCoreError) as e:
            log.error("SES send_email failed", error=str(e))
            status, description = SendLog.STATUS_FAILED, str(e)

        try:
            send_log = self.send_log_repository.create(
                user_id=params.user_id,
                event_id=params.event_id,
                campaign_id=params.campaign_id,
                subscriber_id=params.subscriber_id,
                status=status,
                message_id=message_id,
                description=description,
            )
            self.send_log_repository.commit()
        except IntegrityError:
            # A concurrent delivery of the same message won the insert
            self.send_log_repository.rollback()
            log.info("Send log already recorded by another worker")
            return None

        log.info("Email processed", status=status, message_id=message_id)
        return send_log
