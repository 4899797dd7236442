"""
Delivery Event Service
Ingests SES event notifications delivered by SNS to /api/hooks/<user_uuid>.

All records produced by one notification, the subscriber deactivations
caused by a permanent bounce, and the notification receipt are committed
together. A notification whose SNS MessageId was already ingested is
acknowledged without writing anything.
"""

import json
from enum import Enum
from typing import Any, Dict, List, Optional

import requests
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from repositories.delivery_event_repository import DeliveryEventRepository
from repositories.send_log_repository import NotificationReceiptRepository
from repositories.user_repository import UserRepository
from services.enums import SnsMessageType, NotificationType, BounceType
from services.sns_verification import SnsMessageVerifier, SignatureVerificationError
from services.subscriber_service import SubscriberService, SubscriberNotFoundError
from utils.datetime_utils import parse_utc_iso
from logging_config import get_logger, security_logger

logger = get_logger(__name__)


class WebhookRejectedError(Exception):
    """The notification was not accepted; the webhook answers 400"""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class HookOutcome(str, Enum):
    PROCESSED = 'processed'
    DUPLICATE = 'duplicate'
    IGNORED = 'ignored'
    SUBSCRIPTION_CONFIRMATION = 'subscription_confirmation'


def _created_at(value: Optional[str]) -> Dict[str, Any]:
    """created_at kwargs from a provider timestamp, empty when absent"""
    if not value:
        return {}
    return {'created_at': parse_utc_iso(value)}


class DeliveryEventService:
    """Verifies SNS deliveries and records the SES events they carry"""

    def __init__(
        self,
        user_repository: UserRepository,
        event_repositories: Dict[str, DeliveryEventRepository],
        receipt_repository: NotificationReceiptRepository,
        subscriber_service: SubscriberService,
        verifier: SnsMessageVerifier,
        http=None,
        timeout: int = 10
    ):
        """
        Args:
            event_repositories: Repositories keyed by 'bounce', 'complaint',
                'delivery', 'send', 'open' and 'click'
            http: Object with a requests-compatible get(), for SubscribeURL
        """
        self.user_repository = user_repository
        self.event_repositories = event_repositories
        self.receipt_repository = receipt_repository
        self.subscriber_service = subscriber_service
        self.verifier = verifier
        self.http = http or requests
        self.timeout = timeout

    def handle(self, user_uuid: str, body: bytes, ip_address: Optional[str] = None) -> HookOutcome:
        """
        Process one SNS HTTP delivery.

        Raises:
            WebhookRejectedError: For anything that must be answered with 400
        """
        try:
            payload = json.loads(body)
        except (TypeError, ValueError) as e:
            raise WebhookRejectedError("cannot decode SNS request") from e

        try:
            self.verifier.verify(payload)
        except SignatureVerificationError as e:
            security_logger.log_webhook_rejected(user_uuid, str(e), ip_address)
            raise WebhookRejectedError("unable to verify SNS payload") from e

        if payload.get('Type') == SnsMessageType.SUBSCRIPTION_CONFIRMATION:
            self.confirm_subscription(payload)
            return HookOutcome.SUBSCRIPTION_CONFIRMATION

        try:
            message = json.loads(payload.get('Message') or '')
        except (TypeError, ValueError) as e:
            raise WebhookRejectedError("cannot decode SES message") from e
        if not isinstance(message, dict):
            raise WebhookRejectedError("SES message is not an object")

        mail = message.get('mail')
        if not isinstance(mail, dict):
            raise WebhookRejectedError("mail is missing from the message")
        campaign_id = self._campaign_id(mail)

        user = self.user_repository.get_by_uuid(user_uuid)
        if user is None:
            raise WebhookRejectedError(f"user {user_uuid} not found")

        message_id = payload.get('MessageId')
        if message_id and self.receipt_repository.exists(message_id=message_id):
            logger.info("Duplicate SNS notification ignored", message_id=message_id, user_id=user.id)
            return HookOutcome.DUPLICATE

        notification_type = message.get('notificationType') or message.get('eventType')
        log = logger.bind(user_id=user.id, campaign_id=campaign_id, notification_type=notification_type)

        try:
            written = self._record(notification_type, message, mail, user.id, campaign_id, log)
            if written and message_id:
                self.receipt_repository.create(
                    message_id=message_id,
                    user_id=user.id,
                    notification_type=notification_type
                )
            self.receipt_repository.commit()
        except IntegrityError:
            self.receipt_repository.rollback()
            log.info("Notification ingested concurrently", message_id=message_id)
            return HookOutcome.DUPLICATE
        except (SQLAlchemyError, KeyError, TypeError, ValueError, AttributeError) as e:
            self.receipt_repository.rollback()
            log.error("Unable to record SES event", error=str(e))
            raise WebhookRejectedError(f"unable to record {notification_type} event") from e

        return HookOutcome.PROCESSED if written else HookOutcome.IGNORED

    def confirm_subscription(self, payload: Dict[str, Any]) -> None:
        """Visit the SubscribeURL; failures are only logged"""
        url = payload.get('SubscribeURL')
        try:
            response = self.http.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("Unable to confirm SNS subscription", topic_arn=payload.get('TopicArn'), error=str(e))
            return
        if response.status_code >= 400:
            logger.error(
                "AWS error while confirming the subscribe URL",
                status_code=response.status_code,
                response=response.text,
            )
        else:
            logger.info("SNS subscription confirmed", topic_arn=payload.get('TopicArn'))

    @staticmethod
    def _campaign_id(mail: Dict[str, Any]) -> int:
        tags = mail.get('tags')
        if not isinstance(tags, dict):
            raise WebhookRejectedError("mail tags are not an object")
        tags = tags.get('campaign_id')
        if not tags:
            logger.error("Campaign id not found in mail tags", message_id=mail.get('messageId'),
                         source=mail.get('source'))
            raise WebhookRejectedError("campaign id not found in mail tags")
        if not isinstance(tags, list):
            raise WebhookRejectedError("campaign id tag is not a list")
        try:
            return int(tags[0])
        except (TypeError, ValueError) as e:
            raise WebhookRejectedError("unable to parse campaign id") from e

    def _require(self, message: Dict[str, Any], key: str) -> Dict[str, Any]:
        section = message.get(key)
        if not section:
            raise WebhookRejectedError(f"{key} is missing from the message")
        return section

    def _record(self, notification_type, message, mail, user_id: int, campaign_id: int, log) -> int:
        """Create the records for one event. Returns how many were written."""
        common = {'user_id': user_id, 'campaign_id': campaign_id}

        if notification_type == NotificationType.BOUNCE:
            bounce = self._require(message, 'bounce')
            return self._record_bounce(bounce, common, log)

        if notification_type == NotificationType.COMPLAINT:
            complaint = self._require(message, 'complaint')
            rows = [
                dict(common,
                     recipient=r.get('emailAddress'),
                     type=complaint.get('complaintFeedbackType'),
                     feedback_id=complaint.get('feedbackId'),
                     **_created_at(complaint.get('timestamp')))
                for r in complaint.get('complainedRecipients') or []
            ]
            return self._create('complaint', rows)

        if notification_type == NotificationType.DELIVERY:
            delivery = self._require(message, 'delivery')
            rows = [
                dict(common,
                     recipient=recipient,
                     processing_time_millis=delivery.get('processingTimeMillis'),
                     reporting_mta=delivery.get('reportingMTA'),
                     remote_mta_ip=delivery.get('remoteMtaIp'),
                     smtp_response=delivery.get('smtpResponse'),
                     **_created_at(delivery.get('timestamp')))
                for recipient in delivery.get('recipients') or []
            ]
            return self._create('delivery', rows)

        if notification_type == NotificationType.SEND:
            rows = [
                dict(common,
                     message_id=mail.get('messageId'),
                     source=mail.get('source'),
                     sending_account_id=mail.get('sendingAccountId'),
                     destination=destination,
                     **_created_at(mail.get('timestamp')))
                for destination in mail.get('destination') or []
            ]
            return self._create('send', rows)

        if notification_type == NotificationType.CLICK:
            click = self._require(message, 'click')
            rows = [
                dict(common,
                     recipient=destination,
                     link=click.get('link'),
                     user_agent=click.get('userAgent'),
                     ip_address=click.get('ipAddress'),
                     **_created_at(click.get('timestamp')))
                for destination in mail.get('destination') or []
            ]
            return self._create('click', rows)

        if notification_type == NotificationType.OPEN:
            opened = self._require(message, 'open')
            rows = [
                dict(common,
                     recipient=destination,
                     user_agent=opened.get('userAgent'),
                     ip_address=opened.get('ipAddress'),
                     **_created_at(opened.get('timestamp')))
                for destination in mail.get('destination') or []
            ]
            return self._create('open', rows)

        if notification_type == NotificationType.RENDERING_FAILURE:
            failure = message.get('failure') or {}
            log.warning("Rendering html template failure",
                        error=failure.get('errorMessage'),
                        template_name=failure.get('templateName'))
            return 0

        log.error("Unknown AWS SES message")
        return 0

    def _record_bounce(self, bounce: Dict[str, Any], common: Dict[str, Any], log) -> int:
        recipients: List[Dict[str, Any]] = bounce.get('bouncedRecipients') or []
        rows = [
            dict(common,
                 recipient=r.get('emailAddress'),
                 action=r.get('action'),
                 status=r.get('status'),
                 diagnostic_code=r.get('diagnosticCode'),
                 type=bounce.get('bounceType'),
                 sub_type=bounce.get('bounceSubType'),
                 feedback_id=bounce.get('feedbackId'),
                 **_created_at(bounce.get('timestamp')))
            for r in recipients
        ]
        written = self._create('bounce', rows)

        if bounce.get('bounceType') == BounceType.PERMANENT:
            for row in rows:
                try:
                    self.subscriber_service.deactivate_subscriber(
                        common['user_id'], row['recipient'], commit=False
                    )
                except SubscriberNotFoundError:
                    log.warning("Bounced recipient is not a subscriber", recipient=row['recipient'])
        return written

    def _create(self, kind: str, rows: List[Dict[str, Any]]) -> int:
        if not rows:
            return 0
        self.event_repositories[kind].create_many(rows)
        return len(rows)
