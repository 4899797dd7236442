"""
Delivery event repositories - Bounce, Complaint, Delivery, Send, Open and Click
records reported by the email provider, plus the campaign stats queries over them.
"""

from typing import List, Dict, Any
from sqlalchemy import func
from repositories.base_repository import BaseRepository, PaginationParams, PaginatedResult
from mail_database import Bounce, Complaint, Delivery, Send, Open, Click


class DeliveryEventRepository(BaseRepository):
    """Append-only event records scoped to a user's campaign"""

    model = None

    def __init__(self, session):
        super().__init__(session, self.model)

    def search(self, query: str, user_id: int) -> List:
        recipient = getattr(self.model_class, 'recipient', None)
        if recipient is None:
            recipient = self.model_class.destination
        return self.session.query(self.model_class).filter(
            self.model_class.user_id == user_id,
            recipient.like(f'{query}%')
        ).all()

    def _for_campaign(self, campaign_id: int, user_id: int):
        return self.session.query(self.model_class).filter(
            self.model_class.campaign_id == campaign_id,
            self.model_class.user_id == user_id
        )

    def list_for_campaign(self, campaign_id: int, user_id: int,
                          pagination: PaginationParams) -> PaginatedResult:
        query = self._for_campaign(campaign_id, user_id).order_by(
            self.model_class.created_at.desc(), self.model_class.id.desc()
        )
        return self.paginate(query, pagination)

    def total_for_campaign(self, campaign_id: int, user_id: int) -> int:
        return self._for_campaign(campaign_id, user_id).count()


class BounceRepository(DeliveryEventRepository):
    model = Bounce


class ComplaintRepository(DeliveryEventRepository):
    model = Complaint


class DeliveryRepository(DeliveryEventRepository):
    model = Delivery


class SendRepository(DeliveryEventRepository):
    model = Send


class OpenRepository(DeliveryEventRepository):
    model = Open


class ClickRepository(DeliveryEventRepository):
    model = Click


class CampaignStatsRepository:
    """Aggregate counters over a campaign's delivery events"""

    def __init__(self, session):
        self.session = session

    def _unique_and_total(self, model, campaign_id: int, user_id: int) -> Dict[str, int]:
        unique, total = self.session.query(
            func.count(func.distinct(model.recipient)),
            func.count(model.recipient)
        ).filter(
            model.campaign_id == campaign_id,
            model.user_id == user_id
        ).one()
        return {'unique': unique or 0, 'total': total or 0}

    def _total(self, model, campaign_id: int, user_id: int) -> int:
        return self.session.query(func.count(model.id)).filter(
            model.campaign_id == campaign_id,
            model.user_id == user_id
        ).scalar() or 0

    def opens_stats(self, campaign_id: int, user_id: int) -> Dict[str, int]:
        return self._unique_and_total(Open, campaign_id, user_id)

    def clicks_stats(self, campaign_id: int, user_id: int) -> Dict[str, int]:
        return self._unique_and_total(Click, campaign_id, user_id)

    def total_sends(self, campaign_id: int, user_id: int) -> int:
        return self._total(Send, campaign_id, user_id)

    def total_delivered(self, campaign_id: int, user_id: int) -> int:
        return self._total(Delivery, campaign_id, user_id)

    def total_bounces(self, campaign_id: int, user_id: int) -> int:
        return self._total(Bounce, campaign_id, user_id)

    def total_complaints(self, campaign_id: int, user_id: int) -> int:
        return self._total(Complaint, campaign_id, user_id)

    def campaign_stats(self, campaign_id: int, user_id: int) -> Dict[str, Any]:
        return {
            'recipients': self.total_sends(campaign_id, user_id),
            'delivered': self.total_delivered(campaign_id, user_id),
            'opens': self.opens_stats(campaign_id, user_id),
            'clicks': self.clicks_stats(campaign_id, user_id),
            'bounces': self.total_bounces(campaign_id, user_id),
            'complaints': self.total_complaints(campaign_id, user_id),
        }
