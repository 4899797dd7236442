"""
Delivery bookkeeping repositories

SendLogRepository records each attempted send so a redelivered sender message
can be recognised with exists(event_id=..., subscriber_id=...).
NotificationReceiptRepository does the same for SNS notifications accepted by
the webhook, keyed by the SNS MessageId.
"""

from typing import List, Optional
from repositories.base_repository import BaseRepository
from mail_database import SendLog, NotificationReceipt


class SendLogRepository(BaseRepository[SendLog]):
    """Repository for SendLog data access"""

    def __init__(self, session):
        super().__init__(session, SendLog)

    def search(self, query: str, user_id: int) -> List[SendLog]:
        return self.session.query(SendLog).filter_by(user_id=user_id, event_id=query).all()

    def list_for_campaign(self, campaign_id: int, user_id: int,
                          status: Optional[str] = None) -> List[SendLog]:
        query = self.session.query(SendLog).filter_by(campaign_id=campaign_id, user_id=user_id)
        if status:
            query = query.filter(SendLog.status == status)
        return query.order_by(SendLog.id).all()


class NotificationReceiptRepository(BaseRepository[NotificationReceipt]):
    """Repository for ingested SNS notification ids"""

    def __init__(self, session):
        super().__init__(session, NotificationReceipt)

    def search(self, query: str, user_id: int) -> List[NotificationReceipt]:
        return self.session.query(NotificationReceipt).filter_by(user_id=user_id, message_id=query).all()
