"""
SesKeysRepository - Data access layer for a user's SES credentials
"""

from typing import List, Optional
from repositories.base_repository import BaseRepository
from mail_database import SesKeys


class SesKeysRepository(BaseRepository[SesKeys]):
    """Repository for SesKeys data access"""

    def __init__(self, session):
        super().__init__(session, SesKeys)

    def search(self, query: str, user_id: int) -> List[SesKeys]:
        return self.session.query(SesKeys).filter_by(user_id=user_id, access_key=query).all()

    def get_for_user(self, user_id: int) -> Optional[SesKeys]:
        return self.session.query(SesKeys).filter_by(user_id=user_id).first()

    def delete_for_user(self, user_id: int) -> int:
        deleted = self.session.query(SesKeys).filter_by(user_id=user_id).delete(synchronize_session=False)
        self.session.flush()
        return deleted
