"""
Subscriber Service
Business logic for subscribers. Creating, deactivating and deleting a
subscriber each write the subscriber row, a subscriber event and the hourly
metrics counter in one transaction.
"""

import csv
import io
import json
from typing import Any, Dict, IO, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from mail_database import Subscriber, SubscriberEvent
from repositories.base_repository import PaginationParams, PaginatedResult
from repositories.segment_repository import SegmentRepository
from repositories.subscriber_metrics_repository import SubscriberEventRepository, SubscriberMetricsRepository
from repositories.subscriber_repository import SubscriberRepository
from repositories.user_repository import UserRepository
from services.boundaries_service import BoundariesService
from utils.datetime_utils import format_utc_iso
from utils.unsubscribe import verify_unsubscribe_token
from utils.validators import is_valid_email, MAX_NAME_LENGTH
from logging_config import get_logger

logger = get_logger(__name__)

EXPORT_COLUMNS = ['email', 'name', 'active', 'blacklisted', 'created_at']


class SubscriberNotFoundError(Exception):
    """Raised when subscriber is not found"""
    pass


class SubscriberDuplicateError(Exception):
    """Raised when the email is already subscribed for the user"""
    pass


class SubscriberImportError(Exception):
    """Raised when an import file cannot be read"""
    pass


class InvalidUnsubscribeTokenError(Exception):
    """Raised when an unsubscribe link does not verify"""
    pass


class SubscriberService:
    """Service for managing subscribers"""

    def __init__(
        self,
        subscriber_repository: SubscriberRepository,
        segment_repository: SegmentRepository,
        event_repository: SubscriberEventRepository,
        metrics_repository: SubscriberMetricsRepository,
        user_repository: UserRepository,
        boundaries_service: BoundariesService,
        unsubscribe_secret: str
    ):
        self.subscriber_repository = subscriber_repository
        self.segment_repository = segment_repository
        self.event_repository = event_repository
        self.metrics_repository = metrics_repository
        self.user_repository = user_repository
        self.boundaries_service = boundaries_service
        self.unsubscribe_secret = unsubscribe_secret

    # Reads

    def get_subscriber(self, subscriber_id: int, user_id: int) -> Subscriber:
        subscriber = self.subscriber_repository.get_for_user(subscriber_id, user_id)
        if subscriber is None:
            raise SubscriberNotFoundError(f"Subscriber {subscriber_id} not found")
        return subscriber

    def list_subscribers(self, user_id: int, pagination: PaginationParams,
                         email: Optional[str] = None) -> PaginatedResult[Subscriber]:
        return self.subscriber_repository.list_for_user(user_id, pagination, email=email)

    # Writes

    def _transaction(self, work, *args, commit: bool = True):
        """Run work() and commit, rolling the whole unit back on store errors"""
        try:
            result = work(*args)
            if commit:
                self.subscriber_repository.commit()
            return result
        except SQLAlchemyError:
            self.subscriber_repository.rollback()
            raise

    def create_subscriber(self, user_id: int, email: str, name: str = '',
                          metadata: Optional[Dict[str, Any]] = None,
                          segment_ids: Optional[List[int]] = None,
                          commit: bool = True) -> Subscriber:
        """
        Create a subscriber, its 'created' event and bump the hourly created counter.

        The subscriber limit is checked by the caller.

        Raises:
            SubscriberDuplicateError: If the email already exists for the user
        """
        if self.subscriber_repository.get_by_email(email, user_id) is not None:
            raise SubscriberDuplicateError(f"Subscriber with email '{email}' already exists")

        segments = self.segment_repository.get_by_ids(segment_ids or [], user_id)

        def work():
            subscriber = self.subscriber_repository.create(
                user_id=user_id,
                email=email,
                name=name or '',
                meta=dict(metadata or {}),
                segments=segments
            )
            self.event_repository.add(user_id, subscriber.id, SubscriberEvent.TYPE_CREATED)
            self.metrics_repository.increment(user_id, created=1)
            return subscriber

        subscriber = self._transaction(work, commit=commit)
        logger.info("Subscriber created", subscriber_id=subscriber.id, user_id=user_id)
        return subscriber

    def update_subscriber(self, subscriber_id: int, user_id: int, name: str,
                          metadata: Optional[Dict[str, Any]] = None,
                          segment_ids: Optional[List[int]] = None) -> Subscriber:
        """Update name and metadata and replace the subscriber's segments."""
        subscriber = self.get_subscriber(subscriber_id, user_id)
        segments = self.segment_repository.get_by_ids(segment_ids or [], user_id)

        def work():
            subscriber.segments = segments
            return self.subscriber_repository.update(
                subscriber,
                name=name or '',
                meta=dict(metadata or {})
            )

        return self._transaction(work)

    def deactivate_subscriber(self, user_id: int, email: str, commit: bool = True) -> bool:
        """
        Mark a subscriber inactive, add an 'unsubscribed' event and bump the
        hourly unsubscribed counter.

        Returns:
            False when the subscriber was already inactive (nothing written)

        Raises:
            SubscriberNotFoundError: If no subscriber has this email
        """
        subscriber = self.subscriber_repository.get_by_email(email, user_id)
        if subscriber is None:
            raise SubscriberNotFoundError(f"Subscriber '{email}' not found")
        if not subscriber.active:
            return False

        def work():
            self.subscriber_repository.set_active(user_id, email, False)
            self.event_repository.add(user_id, subscriber.id, SubscriberEvent.TYPE_UNSUBSCRIBED)
            self.metrics_repository.increment(user_id, unsubscribed=1)
            return True

        result = self._transaction(work, commit=commit)
        logger.info("Subscriber deactivated", subscriber_id=subscriber.id, user_id=user_id)
        return result

    def _delete(self, subscribers: Iterable[Subscriber], user_id: int) -> int:
        subscribers = list(subscribers)
        active = [s for s in subscribers if s.active]
        for subscriber in active:
            self.event_repository.add(user_id, subscriber.id, SubscriberEvent.TYPE_UNSUBSCRIBED)
        if active:
            self.metrics_repository.increment(user_id, unsubscribed=len(active))
        self.subscriber_repository.delete_for_user([s.id for s in subscribers], user_id)
        return len(subscribers)

    def delete_subscriber(self, subscriber_id: int, user_id: int) -> None:
        """
        Delete a subscriber and its segment memberships. An active subscriber
        also counts as unsubscribed.
        """
        subscriber = self.get_subscriber(subscriber_id, user_id)
        self._transaction(self._delete, [subscriber], user_id)

    def delete_subscribers_bulk(self, subscriber_ids: List[int], user_id: int) -> int:
        """Delete the user's subscribers among the ids. Returns the number deleted."""
        subscribers = self.subscriber_repository.get_by_ids(subscriber_ids, user_id)
        if not subscribers:
            return 0
        return self._transaction(self._delete, subscribers, user_id)

    # Unsubscribe links

    def unsubscribe(self, email: str, user_uuid: str, token: str) -> bool:
        """
        Raises:
            InvalidUnsubscribeTokenError: If the token does not match
            SubscriberNotFoundError: If the user or subscriber does not exist
        """
        if not verify_unsubscribe_token(self.unsubscribe_secret, user_uuid, email, token):
            raise InvalidUnsubscribeTokenError("Invalid unsubscribe token")
        user = self.user_repository.get_by_uuid(user_uuid)
        if user is None:
            raise SubscriberNotFoundError("User not found")
        return self.deactivate_subscriber(user.id, email)

    # Import / export

    def import_subscribers(self, user, stream: IO[str], segment_ids: Optional[List[int]] = None) -> Dict[str, int]:
        """
        Import subscribers from CSV text with an 'email' column, an optional
        'name' column and any number of metadata columns.

        Invalid rows and emails that already exist are skipped. Rows past
        the plan's subscriber limit are skipped too.

        Returns:
            Counts: created, invalid, duplicates, over_limit

        Raises:
            SubscriberImportError: If the file has no email column
            BoundaryCheckError: If the subscriber count cannot be read
        """
        reader = csv.DictReader(stream)
        try:
            header = [column.strip().lower() for column in (reader.fieldnames or [])]
        except (UnicodeDecodeError, csv.Error) as e:
            raise SubscriberImportError("The file is not a valid UTF-8 CSV file") from e
        if 'email' not in header:
            raise SubscriberImportError("The file must have an 'email' column")
        reader.fieldnames = header

        exceeded, count = self.boundaries_service.subscribers_limit_exceeded(user)
        limit = user.boundaries.subscribers_limit if user.boundaries else 0
        remaining = (limit - count) if limit and limit > 0 else None
        if exceeded:
            remaining = 0

        try:
            stats = self._import_rows(user, reader, segment_ids, remaining)
            self.subscriber_repository.commit()
        except (UnicodeDecodeError, csv.Error) as e:
            self.subscriber_repository.rollback()
            raise SubscriberImportError("The file is not a valid UTF-8 CSV file") from e
        except SQLAlchemyError:
            self.subscriber_repository.rollback()
            raise

        logger.info("Subscribers imported", user_id=user.id, **stats)
        return stats

    def _import_rows(self, user, reader, segment_ids, remaining) -> Dict[str, int]:
        stats = {'created': 0, 'invalid': 0, 'duplicates': 0, 'over_limit': 0}
        seen = set()
        for row in reader:
            email = (row.get('email') or '').strip()
            name = (row.get('name') or '').strip()
            if not is_valid_email(email) or len(name) > MAX_NAME_LENGTH:
                stats['invalid'] += 1
                continue
            if email in seen:
                stats['duplicates'] += 1
                continue
            seen.add(email)
            if remaining is not None and remaining <= 0:
                stats['over_limit'] += 1
                continue

            metadata = {
                key: value for key, value in row.items()
                if key and key not in ('email', 'name') and value not in (None, '')
            }
            try:
                self.create_subscriber(user.id, email, name, metadata, segment_ids, commit=False)
            except SubscriberDuplicateError:
                stats['duplicates'] += 1
                continue
            stats['created'] += 1
            if remaining is not None:
                remaining -= 1
        return stats

    def export_subscribers(self, user_id: int, batch_size: int = 1000) -> str:
        """Render all of a user's subscribers as CSV, one column per metadata key."""
        rows, meta_keys = [], set()
        next_id = 0
        while True:
            batch = self.subscriber_repository.seek_by_user(user_id, next_id, batch_size)
            if not batch:
                break
            for subscriber in batch:
                metadata = subscriber.get_metadata()
                meta_keys.update(metadata.keys())
                rows.append((subscriber, metadata))
            next_id = batch[-1].id

        columns = EXPORT_COLUMNS + sorted(k for k in meta_keys if k not in EXPORT_COLUMNS)
        output = io.StringIO()
        writer = csv.DictWriter(output, fieldnames=columns, extrasaction='ignore')
        writer.writeheader()
        for subscriber, metadata in rows:
            record = {
                key: (json.dumps(value) if isinstance(value, (dict, list)) else value)
                for key, value in metadata.items()
            }
            record.update({
                'email': subscriber.email,
                'name': subscriber.name,
                'active': subscriber.active,
                'blacklisted': subscriber.blacklisted,
                'created_at': format_utc_iso(subscriber.created_at),
            })
            writer.writerow(record)
        return output.getvalue()
