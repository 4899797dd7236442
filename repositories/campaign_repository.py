"""
CampaignRepository - Data access layer for Campaign entities
Campaigns are soft deleted; every read hides rows with deleted_at set.
"""

from datetime import datetime
from typing import List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query
from repositories.base_repository import BaseRepository, PaginationParams, PaginatedResult
from mail_database import Campaign, CampaignSchedule, CampaignFailedLog
from utils.datetime_utils import utc_now, month_bounds
import logging

logger = logging.getLogger(__name__)


class CampaignRepository(BaseRepository[Campaign]):
    """Repository for Campaign data access"""

    def __init__(self, session):
        super().__init__(session, Campaign)

    def _not_deleted(self, user_id: int) -> Query:
        return self.session.query(Campaign).filter(
            Campaign.user_id == user_id,
            Campaign.deleted_at.is_(None)
        )

    def search(self, query: str, user_id: int) -> List[Campaign]:
        return self._not_deleted(user_id).filter(Campaign.name.like(f'{query}%')).all()

    def get_for_user(self, campaign_id: int, user_id: int) -> Optional[Campaign]:
        return self._not_deleted(user_id).filter(Campaign.id == campaign_id).first()

    def get_by_name(self, name: str, user_id: int) -> Optional[Campaign]:
        return self._not_deleted(user_id).filter(Campaign.name == name).first()

    def list_for_user(self, user_id: int, pagination: PaginationParams,
                      name: Optional[str] = None) -> PaginatedResult[Campaign]:
        """List campaigns newest first, optionally scoped by a name prefix."""
        query = self._not_deleted(user_id)
        if name:
            query = query.filter(Campaign.name.like(f'{name}%'))
        query = query.order_by(Campaign.created_at.desc(), Campaign.id.desc())
        return self.paginate(query, pagination)

    def monthly_total(self, user_id: int, at: Optional[datetime] = None) -> int:
        """Count campaigns created in the current calendar month that are not deleted."""
        start, end = month_bounds(at)
        return self._not_deleted(user_id).filter(
            Campaign.created_at.between(start, end)
        ).count()

    def soft_delete(self, campaign: Campaign) -> Campaign:
        return self.update(campaign, deleted_at=utc_now())

    def log_failed_campaign(self, campaign: Campaign, description: str) -> CampaignFailedLog:
        """
        Mark the campaign as failed and record why.

        Raises:
            SQLAlchemyError: If database operation fails
        """
        try:
            campaign.status = Campaign.STATUS_FAILED
            log = CampaignFailedLog(
                user_id=campaign.user_id,
                campaign_id=campaign.id,
                description=description
            )
            self.session.add(log)
            self.session.flush()
            return log
        except SQLAlchemyError as e:
            logger.error(f"Error logging failed campaign {campaign.id}: {e}")
            self.session.rollback()
            raise

    # Schedules

    def save_schedule(self, campaign: Campaign, **fields) -> CampaignSchedule:
        """Create or replace the schedule attached to a campaign."""
        try:
            schedule = campaign.schedule
            if schedule is None:
                schedule = CampaignSchedule(campaign_id=campaign.id, user_id=campaign.user_id)
                campaign.schedule = schedule
            for field, value in fields.items():
                setattr(schedule, field, value)
            self.session.flush()
            return schedule
        except SQLAlchemyError as e:
            logger.error(f"Error saving schedule for campaign {campaign.id}: {e}")
            self.session.rollback()
            raise

    def delete_schedule(self, campaign: Campaign) -> None:
        if campaign.schedule is None:
            return
        campaign.schedule = None
        self.session.flush()

    def due_schedules(self, now: Optional[datetime] = None) -> List[CampaignSchedule]:
        """Schedules whose time has come and whose campaign is still scheduled."""
        now = now or utc_now()
        return self.session.query(CampaignSchedule).join(
            Campaign, Campaign.id == CampaignSchedule.campaign_id
        ).filter(
            CampaignSchedule.scheduled_at <= now,
            Campaign.status == Campaign.STATUS_SCHEDULED,
            Campaign.deleted_at.is_(None)
        ).order_by(CampaignSchedule.scheduled_at).all()

    def failed_logs(self, campaign_id: int, user_id: int) -> List[CampaignFailedLog]:
        return self.session.query(CampaignFailedLog).filter_by(
            campaign_id=campaign_id, user_id=user_id
        ).order_by(CampaignFailedLog.id).all()
