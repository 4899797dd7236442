"""
UserRepository - Data access layer for User entities
Isolates all database queries related to users, their roles and boundaries
"""

from typing import List, Optional
from sqlalchemy.exc import SQLAlchemyError
from repositories.base_repository import BaseRepository
from mail_database import User, Role, Boundaries
import logging

logger = logging.getLogger(__name__)


class UserRepository(BaseRepository[User]):
    """Repository for User data access"""

    def __init__(self, session):
        super().__init__(session, User)

    def search(self, query: str, user_id: int = None) -> List[User]:
        """Find users whose username starts with `query`."""
        if not query:
            return []
        return self.session.query(User).filter(User.username.like(f'{query}%')).all()

    def get_by_uuid(self, user_uuid: str) -> Optional[User]:
        if not user_uuid:
            return None
        return self.session.query(User).filter_by(uuid=user_uuid).first()

    def get_by_username(self, username: str) -> Optional[User]:
        return self.session.query(User).filter_by(username=username).first()

    def get_active_by_username(self, username: str) -> Optional[User]:
        return self.session.query(User).filter_by(username=username, active=True).first()

    def get_or_create_role(self, name: str) -> Role:
        """
        Return the role with the given name, creating it if needed.

        Raises:
            SQLAlchemyError: If database operation fails
        """
        role = self.session.query(Role).filter_by(name=name).first()
        if role:
            return role
        try:
            role = Role(name=name)
            self.session.add(role)
            self.session.flush()
            return role
        except SQLAlchemyError as e:
            logger.error(f"Error creating role {name}: {e}")
            self.session.rollback()
            raise

    def get_or_create_boundaries(self, boundaries_type: str) -> Boundaries:
        """
        Return the boundaries row for a plan type, creating it with the
        plan defaults if needed.

        Raises:
            SQLAlchemyError: If database operation fails
        """
        boundaries = self.session.query(Boundaries).filter_by(type=boundaries_type).first()
        if boundaries:
            return boundaries
        try:
            boundaries = Boundaries(type=boundaries_type, **DEFAULT_BOUNDARIES.get(boundaries_type, {}))
            self.session.add(boundaries)
            self.session.flush()
            return boundaries
        except SQLAlchemyError as e:
            logger.error(f"Error creating boundaries {boundaries_type}: {e}")
            self.session.rollback()
            raise


# Plan defaults; a limit of 0 means unlimited
DEFAULT_BOUNDARIES = {
    Boundaries.TYPE_FREE: {
        'stats_retention': 30,
        'subscribers_limit': 2000,
        'campaigns_limit': 10,
        'templates_limit': 0,
        'groups_limit': 0,
        'schedule_campaigns_enabled': False,
        'saml_enabled': False,
        'team_members_limit': 1,
    },
    Boundaries.TYPE_NO_LIMIT: {
        'stats_retention': 0,
        'subscribers_limit': 0,
        'campaigns_limit': 0,
        'templates_limit': 0,
        'groups_limit': 0,
        'schedule_campaigns_enabled': True,
        'saml_enabled': True,
        'team_members_limit': 0,
    },
}
