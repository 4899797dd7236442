"""Tests for AuthService account flows"""

import pytest
from unittest.mock import Mock
from sqlalchemy.exc import OperationalError

from mail_database import User, Token, Boundaries
from services.auth_service import (
    AuthService,
    AuthenticationError,
    InvalidTokenError,
    SignupDisabledError,
    UserExistsError,
)


class FakeBcrypt:
    """Deterministic stand-in for Flask-Bcrypt hashing"""

    def generate_password_hash(self, password):
        return f"hashed:{password}".encode('utf-8')

    def check_password_hash(self, pw_hash, password):
        return pw_hash == f"hashed:{password}"


def make_user(user_id=1, username='owner@example.com', password='hashed:password123'):
    user = User(username=username, password=password, active=True, verified=False)
    user.id = user_id
    return user


class TestAuthService:

    @pytest.fixture
    def user_repository(self):
        repo = Mock()
        repo.get_by_username.return_value = None
        repo.create.side_effect = lambda **kwargs: make_user(username=kwargs['username'],
                                                             password=kwargs['password'])
        return repo

    @pytest.fixture
    def token_repository(self):
        repo = Mock()
        repo.create.side_effect = lambda **kwargs: Token(**kwargs)
        return repo

    @pytest.fixture
    def email_service(self):
        return Mock()

    @pytest.fixture
    def service(self, user_repository, token_repository, email_service):
        return AuthService(
            user_repository=user_repository,
            token_repository=token_repository,
            email_service=email_service,
            bcrypt=FakeBcrypt(),
            enable_signup=True,
            verify_email=True,
            source='bulkmail-test',
        )

    def test_create_user_on_plan(self, service, user_repository):
        user = service.create_user('new@example.com', 'secret', Boundaries.TYPE_NO_LIMIT, verified=True)

        user_repository.get_or_create_boundaries.assert_called_once_with(Boundaries.TYPE_NO_LIMIT)
        kwargs = user_repository.create.call_args.kwargs
        assert kwargs['password'] == 'hashed:secret'
        assert kwargs['verified'] is True
        assert kwargs['source'] == 'bulkmail-test'
        assert user.username == 'new@example.com'

    def test_create_user_taken(self, service, user_repository):
        user_repository.get_by_username.return_value = make_user()

        with pytest.raises(UserExistsError):
            service.create_user('owner@example.com', 'secret', Boundaries.TYPE_FREE)

    def test_signup_sends_verification(self, service, user_repository, token_repository, email_service):
        user = service.signup('new@example.com', 'secret')

        user_repository.get_or_create_boundaries.assert_called_once_with(Boundaries.TYPE_FREE)
        token = token_repository.create.call_args.kwargs
        assert token['type'] == Token.TYPE_VERIFY_EMAIL
        user_repository.commit.assert_called_once()
        email_service.send_verify_email.assert_called_once_with(user.username, token['token'])

    def test_signup_without_verification(self, service, token_repository, email_service):
        service.verify_email_enabled = False

        service.signup('new@example.com', 'secret')

        token_repository.create.assert_not_called()
        email_service.send_verify_email.assert_not_called()

    def test_signup_disabled(self, service, user_repository):
        service.enable_signup = False

        with pytest.raises(SignupDisabledError):
            service.signup('new@example.com', 'secret')
        user_repository.create.assert_not_called()

    def test_signup_rolls_back_on_database_error(self, service, user_repository, email_service):
        user_repository.commit.side_effect = OperationalError('INSERT', {}, Exception('down'))

        with pytest.raises(OperationalError):
            service.signup('new@example.com', 'secret')
        user_repository.rollback.assert_called_once()
        email_service.send_verify_email.assert_not_called()

    def test_authenticate(self, service, user_repository):
        user_repository.get_active_by_username.return_value = make_user()

        assert service.authenticate('owner@example.com', 'password123').id == 1

    @pytest.mark.parametrize('found, password', [(True, 'wrong'), (False, 'password123')])
    def test_authenticate_failure(self, service, user_repository, found, password):
        user_repository.get_active_by_username.return_value = make_user() if found else None

        with pytest.raises(AuthenticationError):
            service.authenticate('owner@example.com', password)

    def test_change_password(self, service, user_repository):
        user = make_user()

        service.change_password(user, 'password123', 'new-password')

        user_repository.update.assert_called_once_with(user, password='hashed:new-password')
        user_repository.commit.assert_called_once()

    def test_change_password_wrong_current(self, service, user_repository):
        with pytest.raises(AuthenticationError):
            service.change_password(make_user(), 'wrong', 'new-password')
        user_repository.update.assert_not_called()

    def test_forgot_password_replaces_token_and_mails_link(self, service, user_repository, token_repository,
                                                            email_service):
        user_repository.get_active_by_username.return_value = make_user()

        service.forgot_password('owner@example.com')

        token_repository.delete_for_user.assert_called_once_with(1, Token.TYPE_FORGOT_PASSWORD)
        token = token_repository.create.call_args.kwargs['token']
        email_service.send_forgot_password.assert_called_once_with('owner@example.com', token, 1)

    def test_forgot_password_unknown_email(self, service, user_repository, token_repository, email_service):
        user_repository.get_active_by_username.return_value = None

        service.forgot_password('nobody@example.com')

        token_repository.create.assert_not_called()
        email_service.send_forgot_password.assert_not_called()

    def test_reset_password(self, service, user_repository, token_repository):
        user = make_user()
        token_repository.get_valid.return_value = Mock(user=user)

        assert service.reset_password('tok', 'new-password') is user
        user_repository.update.assert_called_once_with(user, password='hashed:new-password')
        token_repository.delete_for_user.assert_called_once_with(1, Token.TYPE_FORGOT_PASSWORD)

    def test_reset_password_invalid_token(self, service, token_repository):
        token_repository.get_valid.return_value = None

        with pytest.raises(InvalidTokenError):
            service.reset_password('tok', 'new-password')

    def test_verify_email(self, service, user_repository, token_repository):
        user = make_user()
        token_repository.get_valid.return_value = Mock(user=user)

        service.verify_email('tok')

        token_repository.get_valid.assert_called_once_with('tok', Token.TYPE_VERIFY_EMAIL)
        user_repository.update.assert_called_once_with(user, verified=True)
