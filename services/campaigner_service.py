"""
Campaigner Service
Fans a started campaign out into one personalized sender message per
subscriber. Runs in the campaigner queue consumer.
"""

from datetime import datetime, timezone
from typing import Optional

from mail_database import Campaign, Subscriber
from repositories.campaign_repository import CampaignRepository
from repositories.subscriber_repository import SubscriberRepository
from services import merge_fields
from services.campaign_params import CampaignerTopicParams, SenderTopicParams
from services.queue_publisher import QueuePublisher, PublishError
from services.template_service import (
    TemplateService,
    TemplateNotFoundError,
    TemplatePartParseError,
    HTMLPartNotFoundError,
    HTMLPartInvalidStateError,
    TemplateStorageError,
)
from utils.datetime_utils import utc_now
from utils.unsubscribe import unsubscribe_url
from logging_config import get_logger

logger = get_logger(__name__)

# Keyset start: before any subscriber could have been created
KEYSET_START = datetime(1970, 1, 1, tzinfo=timezone.utc)


class RenderError(Exception):
    """Raised when a template part cannot be rendered for a subscriber"""

    def __init__(self, part: str):
        super().__init__(f"failed to render {part}")
        self.part = part


class CampaignerService:
    """Personalizes and publishes campaign emails"""

    def __init__(
        self,
        campaign_repository: CampaignRepository,
        subscriber_repository: SubscriberRepository,
        template_service: TemplateService,
        queue_publisher: QueuePublisher,
        unsubscribe_secret: str,
        app_url: str,
        sender_queue: str,
        batch_size: int = 1000
    ):
        self.campaign_repository = campaign_repository
        self.subscriber_repository = subscriber_repository
        self.template_service = template_service
        self.queue_publisher = queue_publisher
        self.unsubscribe_secret = unsubscribe_secret
        self.app_url = app_url
        self.sender_queue = sender_queue
        self.batch_size = batch_size

    def prepare_subscriber_email_data(
        self,
        subscriber: Subscriber,
        params: CampaignerTopicParams,
        campaign_id: int,
        html,
        subject,
        text
    ) -> SenderTopicParams:
        """
        Render the three compiled parts for one subscriber.

        Merge data is the subscriber's metadata, filled in with campaign
        template_data for keys the subscriber does not have, then the
        reserved name and unsubscribe_url tags.

        Raises:
            RenderError: Naming the first part (html, subject, text) that fails
        """
        data = subscriber.get_metadata()
        for key, value in (params.template_data or {}).items():
            if key not in data:
                data[key] = value

        if subscriber.name:
            data['name'] = subscriber.name

        data['unsubscribe_url'] = unsubscribe_url(
            self.app_url, self.unsubscribe_secret, params.user_uuid, subscriber.email
        )

        rendered = {}
        for part, template in (('html', html), ('subject', subject), ('text', text)):
            try:
                rendered[part] = merge_fields.render(template, data)
            except merge_fields.MergeFieldRenderError as e:
                raise RenderError(part) from e

        return SenderTopicParams(
            event_id=params.event_id,
            subscriber_id=subscriber.id,
            subscriber_email=subscriber.email,
            source=params.source,
            configuration_set_exists=params.configuration_set_exists,
            campaign_id=campaign_id,
            ses_keys=params.ses_keys,
            html_part=rendered['html'],
            subject_part=rendered['subject'],
            text_part=rendered['text'],
            user_uuid=params.user_uuid,
            user_id=params.user_id,
        )

    def publish_subscriber_email_params(self, params: SenderTopicParams, queue: Optional[str] = None) -> str:
        """
        Publish one sender message.

        Raises:
            PublishError: If the message could not be published
        """
        return self.queue_publisher.publish(queue or self.sender_queue, params)

    def process_campaign(self, params: CampaignerTopicParams) -> int:
        """
        Publish a sender message for every distinct active, non-blacklisted
        subscriber of the campaign's segments.

        A subscriber whose content fails to render is skipped. A publish
        failure marks the campaign failed and stops the run.

        Returns:
            Number of messages published
        """
        log = logger.bind(campaign_id=params.campaign_id, user_id=params.user_id, event_id=params.event_id)

        campaign = self.campaign_repository.get_for_user(params.campaign_id, params.user_id)
        if campaign is None:
            log.warning("Campaign not found, skipping")
            return 0

        try:
            template_data = self.template_service.parse_template(campaign.template_id, params.user_id)
        except (TemplateNotFoundError, TemplatePartParseError, HTMLPartNotFoundError,
                HTMLPartInvalidStateError, TemplateStorageError) as e:
            log.error("Unable to parse campaign template", error=str(e))
            self._fail(campaign, f"parse template: {e}")
            return 0

        published = 0
        timestamp, next_id = KEYSET_START, 0
        while True:
            subscribers = self.subscriber_repository.get_distinct_subscribers_by_segment_ids(
                params.segment_ids,
                params.user_id,
                blacklisted=False,
                active=True,
                timestamp=timestamp,
                next_id=next_id,
                limit=self.batch_size,
            )
            if not subscribers:
                break

            for subscriber in subscribers:
                try:
                    message = self.prepare_subscriber_email_data(
                        subscriber,
                        params,
                        campaign.id,
                        template_data.html_part,
                        template_data.subject_part,
                        template_data.text_part,
                    )
                except RenderError as e:
                    log.warning("Unable to render email for subscriber",
                                subscriber_id=subscriber.id, part=e.part)
                    continue

                try:
                    self.publish_subscriber_email_params(message)
                except PublishError as e:
                    log.error("Unable to publish sender message",
                              subscriber_id=subscriber.id, error=str(e))
                    self._fail(campaign, f"publish to sender: {e}")
                    return published
                published += 1

            last = subscribers[-1]
            timestamp, next_id = last.created_at, last.id
            if len(subscribers) < self.batch_size:
                break

        self.campaign_repository.update(campaign, status=Campaign.STATUS_SENT, completed_at=utc_now())
        self.campaign_repository.commit()
        log.info("Campaign processed", published=published)
        return published

    def _fail(self, campaign: Campaign, description: str) -> None:
        self.campaign_repository.log_failed_campaign(campaign, description)
        self.campaign_repository.commit()
