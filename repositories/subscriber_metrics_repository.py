"""
Subscriber event and metrics repositories

SubscriberMetrics rows are hourly counters keyed by (user_id, datetime). They
are only ever written through increment(), which issues a native
insert-or-increment so concurrent writers never lose an update. Dialects
without one lock the bucket row and update it in the same transaction.
"""

from datetime import datetime
from typing import List, Optional
from sqlalchemy.exc import SQLAlchemyError
from repositories.base_repository import BaseRepository
from mail_database import SubscriberEvent, SubscriberMetrics
from utils.datetime_utils import beginning_of_hour
import logging

logger = logging.getLogger(__name__)


class SubscriberEventRepository(BaseRepository[SubscriberEvent]):
    """Repository for subscriber created/unsubscribed events"""

    def __init__(self, session):
        super().__init__(session, SubscriberEvent)

    def search(self, query: str, user_id: int) -> List[SubscriberEvent]:
        return self.session.query(SubscriberEvent).filter(
            SubscriberEvent.user_id == user_id,
            SubscriberEvent.event_type == query
        ).all()

    def add(self, user_id: int, subscriber_id: int, event_type: str) -> SubscriberEvent:
        return self.create(user_id=user_id, subscriber_id=subscriber_id, event_type=event_type)


class SubscriberMetricsRepository(BaseRepository[SubscriberMetrics]):
    """Repository for hourly subscriber metrics"""

    def __init__(self, session):
        super().__init__(session, SubscriberMetrics)

    def search(self, query: str, user_id: int) -> List[SubscriberMetrics]:
        return self.list_for_user(user_id)

    def _insert_for_dialect(self):
        dialect = self.session.get_bind().dialect.name
        if dialect == 'postgresql':
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == 'sqlite':
            from sqlalchemy.dialects.sqlite import insert
        elif dialect in ('mysql', 'mariadb'):
            from sqlalchemy.dialects.mysql import insert
        else:
            insert = None
        return dialect, insert

    def increment(self, user_id: int, created: int = 0, unsubscribed: int = 0,
                  at: Optional[datetime] = None) -> None:
        """
        Add to the counters of the (user, hour) bucket, creating it when missing.

        Args:
            user_id: Owning user
            created: Amount to add to the created counter
            unsubscribed: Amount to add to the unsubscribed counter
            at: Moment inside the bucket, defaults to now

        Raises:
            SQLAlchemyError: If database operation fails
        """
        bucket = beginning_of_hour(at)
        table = SubscriberMetrics.__table__
        dialect, insert = self._insert_for_dialect()
        if insert is None:
            self._increment_locked(user_id, bucket, created, unsubscribed)
            return

        stmt = insert(table).values(
            user_id=user_id,
            datetime=bucket,
            created=created,
            unsubscribed=unsubscribed
        )
        increments = {
            'created': table.c.created + created,
            'unsubscribed': table.c.unsubscribed + unsubscribed,
        }
        if dialect in ('mysql', 'mariadb'):
            stmt = stmt.on_duplicate_key_update(**increments)
        else:
            stmt = stmt.on_conflict_do_update(
                index_elements=[table.c.user_id, table.c.datetime],
                set_=increments
            )

        try:
            self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(f"Error incrementing subscriber metrics for user {user_id}: {e}")
            self.session.rollback()
            raise

    def _increment_locked(self, user_id: int, bucket: datetime, created: int, unsubscribed: int) -> None:
        """Select the bucket FOR UPDATE and bump it, for dialects without an upsert"""
        try:
            metrics = self.session.query(SubscriberMetrics).filter_by(
                user_id=user_id, datetime=bucket
            ).with_for_update().first()
            if metrics is None:
                self.session.add(SubscriberMetrics(
                    user_id=user_id, datetime=bucket, created=created, unsubscribed=unsubscribed
                ))
            else:
                metrics.created += created
                metrics.unsubscribed += unsubscribed
            self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Error incrementing subscriber metrics for user {user_id}: {e}")
            self.session.rollback()
            raise

    def get_bucket(self, user_id: int, at: Optional[datetime] = None) -> Optional[SubscriberMetrics]:
        return self.session.query(SubscriberMetrics).filter_by(
            user_id=user_id, datetime=beginning_of_hour(at)
        ).first()

    def list_for_user(self, user_id: int, since: Optional[datetime] = None) -> List[SubscriberMetrics]:
        query = self.session.query(SubscriberMetrics).filter(SubscriberMetrics.user_id == user_id)
        if since is not None:
            query = query.filter(SubscriberMetrics.datetime >= since)
        return query.order_by(SubscriberMetrics.datetime).all()
