"""
SegmentRepository - Data access layer for Segment entities
"""

from typing import List, Optional, Tuple, Iterable
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from repositories.base_repository import BaseRepository, PaginationParams, PaginatedResult
from mail_database import Segment, Subscriber, subscribers_segments
import logging

logger = logging.getLogger(__name__)


class SegmentRepository(BaseRepository[Segment]):
    """Repository for Segment data access"""

    def __init__(self, session):
        super().__init__(session, Segment)

    def search(self, query: str, user_id: int) -> List[Segment]:
        return self.session.query(Segment).filter(
            Segment.user_id == user_id,
            Segment.name.like(f'{query}%')
        ).all()

    def get_for_user(self, segment_id: int, user_id: int) -> Optional[Segment]:
        return self.session.query(Segment).filter_by(id=segment_id, user_id=user_id).first()

    def get_by_name(self, name: str, user_id: int) -> Optional[Segment]:
        return self.session.query(Segment).filter_by(name=name, user_id=user_id).first()

    def get_by_ids(self, ids: Iterable[int], user_id: int) -> List[Segment]:
        ids = list(ids or [])
        if not ids:
            return []
        return self.session.query(Segment).filter(
            Segment.user_id == user_id,
            Segment.id.in_(ids)
        ).all()

    def list_with_totals(self, user_id: int,
                         pagination: PaginationParams) -> Tuple[PaginatedResult[Segment], dict]:
        """
        List a user's segments newest first, with subscriber counts per segment.

        Returns:
            (page of segments, {segment_id: total_subscribers})
        """
        query = self.session.query(Segment).filter(Segment.user_id == user_id).order_by(
            Segment.created_at.desc(), Segment.id.desc()
        )
        page = self.paginate(query, pagination)

        ids = [segment.id for segment in page.items]
        totals = {}
        if ids:
            rows = self.session.query(
                subscribers_segments.c.segment_id,
                func.count(subscribers_segments.c.subscriber_id)
            ).filter(
                subscribers_segments.c.segment_id.in_(ids)
            ).group_by(subscribers_segments.c.segment_id).all()
            totals = {segment_id: total for segment_id, total in rows}

        return page, {segment_id: totals.get(segment_id, 0) for segment_id in ids}

    def total_subscribers(self, segment_id: int, user_id: int) -> int:
        return self.session.query(func.count(subscribers_segments.c.subscriber_id)).join(
            Subscriber, Subscriber.id == subscribers_segments.c.subscriber_id
        ).filter(
            subscribers_segments.c.segment_id == segment_id,
            Subscriber.user_id == user_id
        ).scalar() or 0

    def append_subscribers(self, segment: Segment, subscribers: List[Subscriber]) -> Segment:
        """
        Attach subscribers to a segment, skipping ones already attached.

        Raises:
            SQLAlchemyError: If database operation fails
        """
        try:
            for subscriber in subscribers:
                if segment not in subscriber.segments:
                    subscriber.segments.append(segment)
            self.session.flush()
            return segment
        except SQLAlchemyError as e:
            logger.error(f"Error appending subscribers to segment {segment.id}: {e}")
            self.session.rollback()
            raise

    def detach_subscribers(self, segment: Segment, subscribers: List[Subscriber]) -> Segment:
        """
        Remove subscribers from a segment.

        Raises:
            SQLAlchemyError: If database operation fails
        """
        try:
            for subscriber in subscribers:
                if segment in subscriber.segments:
                    subscriber.segments.remove(segment)
            self.session.flush()
            return segment
        except SQLAlchemyError as e:
            logger.error(f"Error detaching subscribers from segment {segment.id}: {e}")
            self.session.rollback()
            raise

    def delete_for_user(self, segment_id: int, user_id: int) -> bool:
        """Delete a segment and its memberships. Returns False when not found."""
        segment = self.get_for_user(segment_id, user_id)
        if segment is None:
            return False
        try:
            self.session.execute(
                subscribers_segments.delete().where(subscribers_segments.c.segment_id == segment.id)
            )
            self.session.delete(segment)
            self.session.flush()
            return True
        except SQLAlchemyError as e:
            logger.error(f"Error deleting segment {segment_id}: {e}")
            self.session.rollback()
            raise
