"""
Boundaries Service
Checks a user's plan limits. A limit of 0 means unlimited.
"""

from typing import Tuple

from sqlalchemy.exc import SQLAlchemyError

from repositories.campaign_repository import CampaignRepository
from repositories.subscriber_repository import SubscriberRepository
from logging_config import get_logger

logger = get_logger(__name__)


class BoundaryCheckError(Exception):
    """The usage count could not be read; callers must treat the limit as exceeded"""
    exceeded = True


class LimitExceededError(Exception):
    """Raised by callers when a plan limit blocks an action"""
    pass


class BoundariesService:
    """Service for plan limit checks"""

    def __init__(self, campaign_repository: CampaignRepository, subscriber_repository: SubscriberRepository):
        self.campaign_repository = campaign_repository
        self.subscriber_repository = subscriber_repository

    def campaigns_limit_exceeded(self, user) -> bool:
        """
        True when the user has created at least campaigns_limit campaigns this month.

        Raises:
            BoundaryCheckError: If the monthly total cannot be read
        """
        limit = user.boundaries.campaigns_limit if user.boundaries else 0
        if not limit or limit <= 0:
            return False
        try:
            count = self.campaign_repository.monthly_total(user.id)
        except SQLAlchemyError as e:
            logger.error("Unable to count monthly campaigns", user_id=user.id, error=str(e))
            raise BoundaryCheckError("get total campaigns") from e
        return count >= limit

    def subscribers_limit_exceeded(self, user) -> Tuple[bool, int]:
        """
        Returns:
            (exceeded, current subscriber count); the count is 0 when unlimited

        Raises:
            BoundaryCheckError: If the total cannot be read
        """
        limit = user.boundaries.subscribers_limit if user.boundaries else 0
        if not limit or limit <= 0:
            return False, 0
        try:
            count = self.subscriber_repository.total_for_user(user.id)
        except SQLAlchemyError as e:
            logger.error("Unable to count subscribers", user_id=user.id, error=str(e))
            raise BoundaryCheckError("get total subscribers") from e
        return count >= limit, count
