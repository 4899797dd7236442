"""
AuthService - Account sign up, login and password flows
"""

import secrets
from typing import Optional

from flask_bcrypt import Bcrypt
from sqlalchemy.exc import SQLAlchemyError

from mail_database import User, Role, Boundaries, Token
from repositories.token_repository import TokenRepository
from repositories.user_repository import UserRepository
from services.email_service import EmailService
from utils.datetime_utils import utc_hours_from_now
from logging_config import get_logger, security_logger

logger = get_logger(__name__)


class AuthenticationError(Exception):
    """Raised when credentials do not match an active user"""
    pass


class SignupDisabledError(Exception):
    """Raised when sign up is turned off for this deployment"""
    pass


class UserExistsError(Exception):
    """Raised when the username is already taken"""
    pass


class InvalidTokenError(Exception):
    """Raised when a reset or verification token is unknown or expired"""
    pass


class AuthService:
    """Service for authentication and account management"""

    def __init__(
        self,
        user_repository: UserRepository,
        token_repository: TokenRepository,
        email_service: EmailService,
        bcrypt: Bcrypt,
        enable_signup: bool = False,
        verify_email: bool = False,
        source: str = '',
        forgot_password_hours: int = 1,
        verify_email_hours: int = 48
    ):
        self.user_repository = user_repository
        self.token_repository = token_repository
        self.email_service = email_service
        self.bcrypt = bcrypt
        self.enable_signup = enable_signup
        self.verify_email_enabled = verify_email
        self.source = source
        self.forgot_password_hours = forgot_password_hours
        self.verify_email_hours = verify_email_hours

    def hash_password(self, password: str) -> str:
        return self.bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, user: User, password: str) -> bool:
        if not user.password:
            return False
        return self.bcrypt.check_password_hash(user.password, password)

    @staticmethod
    def generate_token() -> str:
        return secrets.token_urlsafe(32)

    def create_user(self, username: str, password: str, boundaries_type: str,
                    verified: bool = False, source: Optional[str] = None) -> User:
        """
        Create an active admin user on the given plan. The caller commits.

        Raises:
            UserExistsError: If the username is taken
        """
        if self.user_repository.get_by_username(username) is not None:
            raise UserExistsError(f"User '{username}' already exists")

        boundaries = self.user_repository.get_or_create_boundaries(boundaries_type)
        role = self.user_repository.get_or_create_role(Role.ADMIN)
        return self.user_repository.create(
            username=username,
            password=self.hash_password(password),
            source=source if source is not None else self.source,
            active=True,
            verified=verified,
            boundaries=boundaries,
            roles=[role]
        )

    def signup(self, email: str, password: str) -> User:
        """
        Register a new account on the free plan.

        Raises:
            SignupDisabledError: If sign up is disabled
            UserExistsError: If the email is already registered
        """
        if not self.enable_signup:
            raise SignupDisabledError("Sign up is disabled")

        try:
            user = self.create_user(email, password, Boundaries.TYPE_FREE)
            token = None
            if self.verify_email_enabled:
                token = self.token_repository.create(
                    user_id=user.id,
                    token=self.generate_token(),
                    type=Token.TYPE_VERIFY_EMAIL,
                    expires_at=utc_hours_from_now(self.verify_email_hours)
                )
            self.user_repository.commit()
        except SQLAlchemyError:
            self.user_repository.rollback()
            raise

        logger.info("User signed up", user_id=user.id)
        if token is not None:
            self.email_service.send_verify_email(user.username, token.token)
        return user

    def authenticate(self, username: str, password: str, ip_address: str = None) -> User:
        """
        Raises:
            AuthenticationError: If no active user matches the credentials
        """
        user = self.user_repository.get_active_by_username(username)
        ok = user is not None and self.check_password(user, password)
        security_logger.log_authentication_attempt(username, ok, ip_address)
        if not ok:
            raise AuthenticationError("Invalid credentials")
        return user

    def change_password(self, user: User, password: str, new_password: str) -> None:
        """
        Raises:
            AuthenticationError: If the current password is wrong
        """
        if not self.check_password(user, password):
            raise AuthenticationError("The password that you entered is incorrect")
        self.user_repository.update(user, password=self.hash_password(new_password))
        self.user_repository.commit()
        logger.info("Password changed", user_id=user.id)

    def forgot_password(self, email: str) -> None:
        """
        Issue a password reset token and mail the link. Unknown emails are
        ignored so the endpoint does not reveal which accounts exist.
        """
        user = self.user_repository.get_active_by_username(email)
        if user is None:
            logger.info("Password reset requested for unknown user")
            return

        try:
            self.token_repository.delete_for_user(user.id, Token.TYPE_FORGOT_PASSWORD)
            token = self.token_repository.create(
                user_id=user.id,
                token=self.generate_token(),
                type=Token.TYPE_FORGOT_PASSWORD,
                expires_at=utc_hours_from_now(self.forgot_password_hours)
            )
            self.token_repository.commit()
        except SQLAlchemyError:
            self.token_repository.rollback()
            raise

        self.email_service.send_forgot_password(user.username, token.token, self.forgot_password_hours)

    def reset_password(self, token: str, password: str) -> User:
        """
        Raises:
            InvalidTokenError: If the token is unknown or expired
        """
        found = self.token_repository.get_valid(token, Token.TYPE_FORGOT_PASSWORD)
        if found is None:
            raise InvalidTokenError("Invalid or expired token")

        user = found.user
        self.user_repository.update(user, password=self.hash_password(password))
        self.token_repository.delete_for_user(user.id, Token.TYPE_FORGOT_PASSWORD)
        self.token_repository.commit()
        logger.info("Password reset", user_id=user.id)
        return user

    def verify_email(self, token: str) -> User:
        """
        Raises:
            InvalidTokenError: If the token is unknown or expired
        """
        found = self.token_repository.get_valid(token, Token.TYPE_VERIFY_EMAIL)
        if found is None:
            raise InvalidTokenError("Invalid or expired token")

        user = found.user
        self.user_repository.update(user, verified=True)
        self.token_repository.delete_for_user(user.id, Token.TYPE_VERIFY_EMAIL)
        self.token_repository.commit()
        logger.info("Email verified", user_id=user.id)
        return user
