"""
Segment Service
Business logic for segments (named groups of subscribers)
"""

from typing import Dict, List, Tuple

from mail_database import Segment, Subscriber
from repositories.base_repository import PaginationParams, PaginatedResult
from repositories.segment_repository import SegmentRepository
from repositories.subscriber_repository import SubscriberRepository
from logging_config import get_logger

logger = get_logger(__name__)


class SegmentNotFoundError(Exception):
    """Raised when segment is not found"""
    pass


class SegmentDuplicateError(Exception):
    """Raised when a segment with the same name already exists for the user"""
    pass


class SegmentService:
    """Service for managing segments"""

    def __init__(self, segment_repository: SegmentRepository, subscriber_repository: SubscriberRepository):
        self.segment_repository = segment_repository
        self.subscriber_repository = subscriber_repository

    def get_segment(self, segment_id: int, user_id: int) -> Segment:
        segment = self.segment_repository.get_for_user(segment_id, user_id)
        if segment is None:
            raise SegmentNotFoundError(f"Segment {segment_id} not found")
        return segment

    def get_segment_with_total(self, segment_id: int, user_id: int) -> Tuple[Segment, int]:
        segment = self.get_segment(segment_id, user_id)
        return segment, self.segment_repository.total_subscribers(segment.id, user_id)

    def list_segments(self, user_id: int, pagination: PaginationParams) -> Tuple[PaginatedResult[Segment], Dict[int, int]]:
        return self.segment_repository.list_with_totals(user_id, pagination)

    def create_segment(self, user_id: int, name: str) -> Segment:
        """
        Raises:
            SegmentDuplicateError: If the name is taken
        """
        if self.segment_repository.get_by_name(name, user_id) is not None:
            raise SegmentDuplicateError(f"Segment with name '{name}' already exists")
        segment = self.segment_repository.create(user_id=user_id, name=name)
        self.segment_repository.commit()
        return segment

    def update_segment(self, segment_id: int, user_id: int, name: str) -> Segment:
        segment = self.get_segment(segment_id, user_id)
        other = self.segment_repository.get_by_name(name, user_id)
        if other is not None and other.id != segment.id:
            raise SegmentDuplicateError(f"Segment with name '{name}' already exists")
        self.segment_repository.update(segment, name=name)
        self.segment_repository.commit()
        return segment

    def delete_segment(self, segment_id: int, user_id: int) -> None:
        if not self.segment_repository.delete_for_user(segment_id, user_id):
            raise SegmentNotFoundError(f"Segment {segment_id} not found")
        self.segment_repository.commit()

    def _own_subscribers(self, subscriber_ids: List[int], user_id: int) -> List[Subscriber]:
        # Ids belonging to other users are silently dropped
        return self.subscriber_repository.get_by_ids(subscriber_ids, user_id)

    def attach_subscribers(self, segment_id: int, user_id: int, subscriber_ids: List[int]) -> int:
        """
        Add the user's subscribers to a segment.

        Returns:
            Number of subscribers matched
        """
        segment = self.get_segment(segment_id, user_id)
        subscribers = self._own_subscribers(subscriber_ids, user_id)
        self.segment_repository.append_subscribers(segment, subscribers)
        self.segment_repository.commit()
        logger.info("Subscribers attached to segment", segment_id=segment.id, count=len(subscribers))
        return len(subscribers)

    def detach_subscribers(self, segment_id: int, user_id: int, subscriber_ids: List[int]) -> int:
        segment = self.get_segment(segment_id, user_id)
        subscribers = self._own_subscribers(subscriber_ids, user_id)
        self.segment_repository.detach_subscribers(segment, subscribers)
        self.segment_repository.commit()
        return len(subscribers)

    def list_subscribers(self, segment_id: int, user_id: int,
                         pagination: PaginationParams) -> PaginatedResult[Subscriber]:
        segment = self.get_segment(segment_id, user_id)
        return self.subscriber_repository.list_by_segment(segment.id, user_id, pagination)
