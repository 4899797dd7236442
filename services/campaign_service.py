"""
Campaign Service
Campaign CRUD, statistics, scheduling, and the start operation that hands a
campaign to the campaigner queue.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from mail_database import Campaign
from repositories.base_repository import PaginationParams, PaginatedResult
from repositories.campaign_repository import CampaignRepository
from repositories.delivery_event_repository import CampaignStatsRepository, DeliveryEventRepository
from repositories.segment_repository import SegmentRepository
from repositories.template_repository import TemplateRepository
from repositories.user_repository import UserRepository
from services.boundaries_service import BoundariesService, BoundaryCheckError, LimitExceededError
from services.campaign_params import CampaignerTopicParams, SesKeysParams
from services.queue_publisher import QueuePublisher, PublishError
from services.segment_service import SegmentNotFoundError
from services.ses_service import SesService, SesKeysNotFoundError, SesError
from services.template_service import (
    TemplateService,
    TemplateNotFoundError,
    TemplatePartParseError,
    HTMLPartNotFoundError,
    HTMLPartInvalidStateError,
    TemplateStorageError,
)
from utils.datetime_utils import utc_now, ensure_utc
from logging_config import get_logger

logger = get_logger(__name__)


class CampaignNotFoundError(Exception):
    """Raised when campaign is not found"""
    pass


class CampaignDuplicateError(Exception):
    """Raised when a campaign with the same name already exists for the user"""
    pass


class CampaignStateError(Exception):
    """Raised when the campaign status does not allow the operation"""
    pass


class CampaignValidationError(Exception):
    """Raised when campaign input is invalid"""
    pass


# Errors that stop a start before anything is published
START_ERRORS = (
    LimitExceededError,
    BoundaryCheckError,
    SesKeysNotFoundError,
    SesError,
    CampaignNotFoundError,
    CampaignStateError,
    SegmentNotFoundError,
    TemplateNotFoundError,
    TemplatePartParseError,
    HTMLPartNotFoundError,
    HTMLPartInvalidStateError,
    TemplateStorageError,
    PublishError,
)


class CampaignService:
    """Service for campaign management"""

    EDITABLE_STATUSES = (Campaign.STATUS_DRAFT,)
    STARTABLE_STATUSES = (Campaign.STATUS_DRAFT, Campaign.STATUS_SCHEDULED)

    def __init__(
        self,
        campaign_repository: CampaignRepository,
        template_repository: TemplateRepository,
        segment_repository: SegmentRepository,
        user_repository: UserRepository,
        stats_repository: CampaignStatsRepository,
        event_repositories: Dict[str, DeliveryEventRepository],
        boundaries_service: BoundariesService,
        ses_service: SesService,
        template_service: TemplateService,
        queue_publisher: QueuePublisher,
        campaigner_queue: str
    ):
        """
        Args:
            event_repositories: Repositories keyed by 'opens', 'clicks',
                'bounces' and 'complaints'
        """
        self.campaign_repository = campaign_repository
        self.template_repository = template_repository
        self.segment_repository = segment_repository
        self.user_repository = user_repository
        self.stats_repository = stats_repository
        self.event_repositories = event_repositories
        self.boundaries_service = boundaries_service
        self.ses_service = ses_service
        self.template_service = template_service
        self.queue_publisher = queue_publisher
        self.campaigner_queue = campaigner_queue

    # CRUD

    def get_campaign(self, campaign_id: int, user_id: int) -> Campaign:
        campaign = self.campaign_repository.get_for_user(campaign_id, user_id)
        if campaign is None:
            raise CampaignNotFoundError(f"Campaign {campaign_id} not found")
        return campaign

    def list_campaigns(self, user_id: int, pagination: PaginationParams,
                       name: Optional[str] = None) -> PaginatedResult[Campaign]:
        return self.campaign_repository.list_for_user(user_id, pagination, name=name)

    def _require_template(self, template_id: int, user_id: int) -> None:
        if template_id is None or self.template_repository.get_for_user(template_id, user_id) is None:
            raise TemplateNotFoundError(f"Template {template_id} not found")

    def create_campaign(self, user_id: int, name: str, template_id: int) -> Campaign:
        """
        Raises:
            CampaignDuplicateError: If the name is taken
            TemplateNotFoundError: If the template does not exist for the user
        """
        if self.campaign_repository.get_by_name(name, user_id) is not None:
            raise CampaignDuplicateError(f"Campaign with name '{name}' already exists")
        self._require_template(template_id, user_id)

        campaign = self.campaign_repository.create(
            user_id=user_id,
            name=name,
            template_id=template_id,
            status=Campaign.STATUS_DRAFT
        )
        self.campaign_repository.commit()
        logger.info("Campaign created", campaign_id=campaign.id, user_id=user_id)
        return campaign

    def update_campaign(self, campaign_id: int, user_id: int, name: str, template_id: int) -> Campaign:
        """
        Raises:
            CampaignNotFoundError, CampaignStateError, CampaignDuplicateError,
            TemplateNotFoundError
        """
        campaign = self.get_campaign(campaign_id, user_id)
        if campaign.status not in self.EDITABLE_STATUSES:
            raise CampaignStateError(f"Campaign with status '{campaign.status}' cannot be edited")

        other = self.campaign_repository.get_by_name(name, user_id)
        if other is not None and other.id != campaign.id:
            raise CampaignDuplicateError(f"Campaign with name '{name}' already exists")
        self._require_template(template_id, user_id)

        self.campaign_repository.update(campaign, name=name, template_id=template_id)
        self.campaign_repository.commit()
        return campaign

    def delete_campaign(self, campaign_id: int, user_id: int) -> None:
        """Soft delete. A pending schedule is dropped with it."""
        campaign = self.get_campaign(campaign_id, user_id)
        self.campaign_repository.delete_schedule(campaign)
        self.campaign_repository.soft_delete(campaign)
        self.campaign_repository.commit()

    # Events and stats

    def list_events(self, kind: str, campaign_id: int, user_id: int,
                    pagination: PaginationParams) -> PaginatedResult:
        """
        List a campaign's opens, clicks, bounces or complaints, newest first.

        Raises:
            CampaignNotFoundError: If the campaign does not exist for the user
        """
        self.get_campaign(campaign_id, user_id)
        return self.event_repositories[kind].list_for_campaign(campaign_id, user_id, pagination)

    def get_stats(self, campaign_id: int, user_id: int) -> Dict[str, Any]:
        campaign = self.get_campaign(campaign_id, user_id)
        return self.stats_repository.campaign_stats(campaign.id, user_id)

    # Start and schedule

    def _require_segments(self, segment_ids: List[int], user_id: int) -> None:
        wanted = set(segment_ids or [])
        if not wanted:
            raise SegmentNotFoundError("At least one segment is required")
        found = {segment.id for segment in self.segment_repository.get_by_ids(wanted, user_id)}
        missing = wanted - found
        if missing:
            raise SegmentNotFoundError(f"Segments not found: {sorted(missing)}")

    def start_campaign(self, campaign_id: int, user, segment_ids: List[int], source: str,
                       template_data: Optional[Dict[str, Any]] = None) -> Campaign:
        """
        Validate a campaign and publish it to the campaigner queue.

        Checks run in this order: monthly campaign limit, SES keys, campaign
        status, segments, template. Only when all pass is the message
        published and the campaign moved to 'sending'.

        Raises:
            Any of START_ERRORS
        """
        if self.boundaries_service.campaigns_limit_exceeded(user):
            raise LimitExceededError("You have exceeded your campaigns limit")

        keys = self.ses_service.get_keys(user.id)

        campaign = self.get_campaign(campaign_id, user.id)
        if campaign.status not in self.STARTABLE_STATUSES:
            raise CampaignStateError(f"Campaign with status '{campaign.status}' cannot be started")

        self._require_segments(segment_ids, user.id)
        self.template_service.parse_template(campaign.template_id, user.id)

        params = CampaignerTopicParams(
            campaign_id=campaign.id,
            user_id=user.id,
            user_uuid=user.uuid,
            event_id=str(uuid.uuid4()),
            source=source,
            ses_keys=SesKeysParams(**keys.to_message()),
            segment_ids=list(segment_ids),
            template_data=dict(template_data or {}),
            configuration_set_exists=self.ses_service.configuration_set_exists(keys),
        )
        self.queue_publisher.publish(self.campaigner_queue, params)

        self.campaign_repository.delete_schedule(campaign)
        self.campaign_repository.update(
            campaign,
            status=Campaign.STATUS_SENDING,
            started_at=utc_now(),
            event_id=params.event_id
        )
        self.campaign_repository.commit()
        logger.info("Campaign started", campaign_id=campaign.id, user_id=user.id, event_id=params.event_id)
        return campaign

    def schedule_campaign(self, campaign_id: int, user, scheduled_at: datetime, segment_ids: List[int],
                          source: str, template_data: Optional[Dict[str, Any]] = None) -> Campaign:
        """
        Create or replace the campaign's schedule and mark it 'scheduled'.

        Raises:
            LimitExceededError: If the plan does not allow scheduling
            CampaignValidationError: If scheduled_at is not in the future
            CampaignNotFoundError, CampaignStateError, SegmentNotFoundError
        """
        if not (user.boundaries and user.boundaries.schedule_campaigns_enabled):
            raise LimitExceededError("Scheduling campaigns is not enabled for your plan")

        scheduled_at = ensure_utc(scheduled_at)
        if scheduled_at <= utc_now():
            raise CampaignValidationError("scheduled_at must be in the future")

        campaign = self.get_campaign(campaign_id, user.id)
        if campaign.status not in self.STARTABLE_STATUSES:
            raise CampaignStateError(f"Campaign with status '{campaign.status}' cannot be scheduled")
        self._require_segments(segment_ids, user.id)

        self.campaign_repository.save_schedule(
            campaign,
            scheduled_at=scheduled_at,
            source=source,
            segment_ids=list(segment_ids),
            template_data=dict(template_data or {})
        )
        self.campaign_repository.update(campaign, status=Campaign.STATUS_SCHEDULED)
        self.campaign_repository.commit()
        return campaign

    def unschedule_campaign(self, campaign_id: int, user_id: int) -> Campaign:
        campaign = self.get_campaign(campaign_id, user_id)
        if campaign.status != Campaign.STATUS_SCHEDULED:
            raise CampaignStateError("Campaign is not scheduled")
        self.campaign_repository.delete_schedule(campaign)
        self.campaign_repository.update(campaign, status=Campaign.STATUS_DRAFT)
        self.campaign_repository.commit()
        return campaign

    def start_due_schedules(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Start every campaign whose schedule is due. A schedule that cannot
        start marks its campaign failed; the rest still run.
        """
        stats = {'started': 0, 'failed': 0}
        for schedule in self.campaign_repository.due_schedules(now):
            campaign = schedule.campaign
            user = self.user_repository.get_by_id(schedule.user_id)
            if user is None:
                logger.warning("Schedule owner not found", campaign_id=campaign.id, user_id=schedule.user_id)
                continue
            try:
                self.start_campaign(
                    campaign.id,
                    user,
                    list(schedule.segment_ids or []),
                    schedule.source,
                    dict(schedule.template_data or {})
                )
                stats['started'] += 1
            except START_ERRORS as e:
                logger.error("Unable to start scheduled campaign", campaign_id=campaign.id, error=str(e))
                self.campaign_repository.rollback()
                campaign = self.campaign_repository.get_for_user(schedule.campaign_id, schedule.user_id)
                if campaign is not None:
                    self.campaign_repository.delete_schedule(campaign)
                    self.campaign_repository.log_failed_campaign(campaign, f"start scheduled campaign: {e}")
                    self.campaign_repository.commit()
                stats['failed'] += 1
        return stats
