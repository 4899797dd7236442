"""Subscriber writes against the database: a failed step leaves nothing behind"""

import pytest
from sqlalchemy.exc import OperationalError

from mail_database import Subscriber, SubscriberEvent, SubscriberMetrics
from tests.fixtures.factories import SubscriberFactory


def store_down():
    return OperationalError('INSERT INTO subscriber_metrics', {}, Exception('database is locked'))


@pytest.fixture
def subscriber_service(app):
    return app.services.get('subscriber')


@pytest.fixture
def failing_metrics(subscriber_service, mocker):
    """The hourly counter update fails after the subscriber rows were flushed"""
    return mocker.patch.object(subscriber_service.metrics_repository, 'increment', side_effect=store_down())


class TestSubscriberTransactions:

    def test_create_commits_subscriber_event_and_counter(self, subscriber_service, user, db_session):
        subscriber = subscriber_service.create_subscriber(user.id, 'reader@example.com', 'Ada')

        db_session.expire_all()
        assert db_session.get(Subscriber, subscriber.id).email == 'reader@example.com'
        assert db_session.query(SubscriberEvent).filter_by(
            subscriber_id=subscriber.id, event_type=SubscriberEvent.TYPE_CREATED).count() == 1
        assert db_session.query(SubscriberMetrics).filter_by(user_id=user.id).one().created == 1

    def test_failed_create_writes_nothing(self, subscriber_service, failing_metrics, user, db_session):
        user_id = user.id

        with pytest.raises(OperationalError):
            subscriber_service.create_subscriber(user_id, 'reader@example.com', 'Ada')

        assert db_session.query(Subscriber).filter_by(user_id=user_id).count() == 0
        assert db_session.query(SubscriberEvent).count() == 0
        failing_metrics.assert_called_once()

    def test_failed_deactivate_keeps_subscriber_active(self, subscriber_service, failing_metrics, user,
                                                       db_session):
        subscriber = SubscriberFactory(user_id=user.id, email='reader@example.com')

        with pytest.raises(OperationalError):
            subscriber_service.deactivate_subscriber(user.id, 'reader@example.com')

        db_session.refresh(subscriber)
        assert subscriber.active is True
        assert db_session.query(SubscriberEvent).count() == 0

    def test_failed_delete_keeps_subscriber(self, subscriber_service, failing_metrics, user, db_session):
        subscriber = SubscriberFactory(user_id=user.id)
        subscriber_id = subscriber.id

        with pytest.raises(OperationalError):
            subscriber_service.delete_subscriber(subscriber_id, user.id)

        assert db_session.get(Subscriber, subscriber_id) is not None
        assert db_session.query(SubscriberEvent).count() == 0

    def test_failed_bulk_delete_keeps_every_subscriber(self, subscriber_service, failing_metrics, user,
                                                       db_session):
        ids = [SubscriberFactory(user_id=user.id).id for _ in range(3)]
        user_id = user.id

        with pytest.raises(OperationalError):
            subscriber_service.delete_subscribers_bulk(ids, user_id)

        assert db_session.query(Subscriber).filter(Subscriber.id.in_(ids)).count() == 3
