"""
SubscriberRepository - Data access layer for Subscriber entities
Isolates all database queries related to subscribers and their segments
"""

from datetime import datetime
from typing import List, Optional, Iterable
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query
from repositories.base_repository import BaseRepository, PaginationParams, PaginatedResult
from mail_database import Subscriber, subscribers_segments
from utils.datetime_utils import utc_now
import logging

logger = logging.getLogger(__name__)

DEFAULT_SEGMENT_BATCH = 1000


class SubscriberRepository(BaseRepository[Subscriber]):
    """Repository for Subscriber data access"""

    def __init__(self, session):
        super().__init__(session, Subscriber)

    def search(self, query: str, user_id: int) -> List[Subscriber]:
        """Find a user's subscribers whose email starts with `query`."""
        return self._scoped(user_id, email=query).all()

    def _scoped(self, user_id: int, email: Optional[str] = None) -> Query:
        query = self.session.query(Subscriber).filter(Subscriber.user_id == user_id)
        if email:
            query = query.filter(Subscriber.email.like(f'{email}%'))
        return query

    def get_for_user(self, subscriber_id: int, user_id: int) -> Optional[Subscriber]:
        return self._scoped(user_id).filter(Subscriber.id == subscriber_id).first()

    def get_by_email(self, email: str, user_id: int) -> Optional[Subscriber]:
        return self._scoped(user_id).filter(Subscriber.email == email).first()

    def get_by_ids(self, ids: Iterable[int], user_id: int) -> List[Subscriber]:
        ids = list(ids or [])
        if not ids:
            return []
        return self._scoped(user_id).filter(Subscriber.id.in_(ids)).all()

    def list_for_user(self, user_id: int, pagination: PaginationParams,
                      email: Optional[str] = None) -> PaginatedResult[Subscriber]:
        """List subscribers newest first, optionally scoped by an email prefix."""
        query = self._scoped(user_id, email).order_by(
            Subscriber.created_at.desc(), Subscriber.id.desc()
        )
        return self.paginate(query, pagination)

    def list_by_segment(self, segment_id: int, user_id: int,
                        pagination: PaginationParams) -> PaginatedResult[Subscriber]:
        query = self._scoped(user_id).join(
            subscribers_segments, subscribers_segments.c.subscriber_id == Subscriber.id
        ).filter(
            subscribers_segments.c.segment_id == segment_id
        ).order_by(Subscriber.created_at.desc(), Subscriber.id.desc())
        return self.paginate(query, pagination)

    def total_for_user(self, user_id: int) -> int:
        return self._scoped(user_id).count()

    def get_distinct_subscribers_by_segment_ids(
        self,
        segment_ids: List[int],
        user_id: int,
        blacklisted: bool,
        active: bool,
        timestamp: datetime,
        next_id: int,
        limit: int = 0,
    ) -> List[Subscriber]:
        """
        Fetch one keyset page of the distinct subscribers belonging to any of
        the segments.

        Rows are ordered by (created_at, id) and the page starts strictly
        after (timestamp, next_id). Subscribers created after this call
        started are excluded so a running campaign does not chase new rows.

        Args:
            segment_ids: Segments to read from
            user_id: Owning user
            blacklisted: Required blacklisted flag
            active: Required active flag
            timestamp: created_at of the last row of the previous page
            next_id: id of the last row of the previous page
            limit: Page size, 1000 when 0

        Returns:
            List of subscribers, empty when the iteration is done
        """
        if not segment_ids:
            return []
        limit = limit or DEFAULT_SEGMENT_BATCH

        member_ids = self.session.query(subscribers_segments.c.subscriber_id).filter(
            subscribers_segments.c.segment_id.in_(list(segment_ids))
        )

        return self._scoped(user_id).filter(
            Subscriber.id.in_(member_ids),
            Subscriber.blacklisted == blacklisted,
            Subscriber.active == active,
            (Subscriber.created_at > timestamp) |
            ((Subscriber.created_at == timestamp) & (Subscriber.id > next_id)),
            Subscriber.created_at < utc_now(),
        ).order_by(
            Subscriber.created_at, Subscriber.id
        ).limit(limit).all()

    def seek_by_user(self, user_id: int, next_id: int = 0, limit: int = DEFAULT_SEGMENT_BATCH) -> List[Subscriber]:
        """Keyset page of all of a user's subscribers by id, used by exports."""
        return self._scoped(user_id).filter(
            Subscriber.id > next_id
        ).order_by(Subscriber.id).limit(limit).all()

    def set_active(self, user_id: int, email: str, active: bool) -> int:
        """
        Flip the active flag for a subscriber by email.

        Returns:
            Number of rows updated

        Raises:
            SQLAlchemyError: If database operation fails
        """
        try:
            updated = self._scoped(user_id).filter(Subscriber.email == email).update(
                {Subscriber.active: active, Subscriber.updated_at: utc_now()},
                synchronize_session='fetch'
            )
            self.session.flush()
            return updated
        except SQLAlchemyError as e:
            logger.error(f"Error updating subscriber active flag: {e}")
            self.session.rollback()
            raise

    def delete_for_user(self, ids: Iterable[int], user_id: int) -> List[Subscriber]:
        """
        Delete the user's subscribers with the given ids, detaching their segments.

        Returns:
            The deleted subscribers
        """
        subscribers = self.get_by_ids(ids, user_id)
        try:
            for subscriber in subscribers:
                subscriber.segments = []
                self.session.delete(subscriber)
            self.session.flush()
            return subscribers
        except SQLAlchemyError as e:
            logger.error(f"Error deleting subscribers: {e}")
            self.session.rollback()
            raise
