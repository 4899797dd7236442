# tests/conftest.py
"""
Shared fixtures for the pytest test suite.

Each test gets a fresh application on an in-memory SQLite database. External
systems are replaced in the service registry before any service is built:
- s3_client: InMemoryS3 holding template HTML parts
- ses_client_factory / sns_client_factory: return the ses_client / sns_client mocks
- celery_app: a Mock whose send_task records published messages
- sns_verifier: a Mock that accepts every message (hook tests swap in the real one)
"""
import os

# Must be set before the app is imported so config validation is skipped
os.environ['FLASK_ENV'] = 'testing'

import pytest
from unittest.mock import Mock

from app import create_app
from extensions import db
from tests.fixtures.aws_fixtures import InMemoryS3, make_ses_client, make_sns_client
from tests.fixtures.factories import UserFactory, DEFAULT_PASSWORD


@pytest.fixture
def s3_client():
    return InMemoryS3()


@pytest.fixture
def ses_client():
    return make_ses_client()


@pytest.fixture
def sns_client():
    return make_sns_client()


@pytest.fixture
def celery_app():
    celery = Mock()
    celery.send_task = Mock(side_effect=lambda name, args, queue: Mock(id=f'task-{queue}'))
    return celery


@pytest.fixture
def app(s3_client, ses_client, sns_client, celery_app):
    """
    A new Flask application for each test, with all tables created and the
    external clients swapped for test doubles.
    """
    app = create_app(config_name='testing')

    app.services.register('s3_client', service=s3_client)
    app.services.register('ses_client_factory', service=Mock(return_value=ses_client))
    app.services.register('sns_client_factory', service=Mock(return_value=sns_client))
    app.services.register('celery_app', service=celery_app)
    app.services.register('sns_verifier', service=Mock())

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """A test client for the app."""
    return app.test_client()


@pytest.fixture
def db_session(app):
    """The session the factories and repositories share inside the test's app context."""
    return db.session


@pytest.fixture
def user(app):
    """A verified user on the free plan."""
    return UserFactory()


@pytest.fixture
def unlimited_user(app):
    """A verified user on the plan without limits."""
    return UserFactory(no_limit=True)


def login(client, user, password=DEFAULT_PASSWORD):
    response = client.post('/api/authenticate', json={
        'username': user.username,
        'password': password
    })
    assert response.status_code == 200, response.get_json()
    return client


@pytest.fixture
def auth_client(client, user):
    """A test client logged in as `user`."""
    return login(client, user)


@pytest.fixture
def unlimited_client(app, unlimited_user):
    """A test client logged in as `unlimited_user`."""
    return login(app.test_client(), unlimited_user)


@pytest.fixture
def published(celery_app):
    """The (task name, body, queue) of every message sent to the broker."""
    def messages():
        return [
            (call.args[0], call.kwargs['args'][0], call.kwargs['queue'])
            for call in celery_app.send_task.call_args_list
        ]
    return messages
