"""
TokenRepository - Data access layer for password reset and email verification tokens
"""

from typing import List, Optional
from repositories.base_repository import BaseRepository
from mail_database import Token
from utils.datetime_utils import utc_now, ensure_utc


class TokenRepository(BaseRepository[Token]):
    """Repository for Token data access"""

    def __init__(self, session):
        super().__init__(session, Token)

    def search(self, query: str, user_id: int = None) -> List[Token]:
        q = self.session.query(Token).filter(Token.token == query)
        if user_id is not None:
            q = q.filter(Token.user_id == user_id)
        return q.all()

    def get_valid(self, token: str, token_type: str) -> Optional[Token]:
        """
        Return the token if it exists, has the given type and has not expired.

        Args:
            token: Token string
            token_type: Token.TYPE_FORGOT_PASSWORD or Token.TYPE_VERIFY_EMAIL

        Returns:
            Token or None
        """
        if not token:
            return None
        found = self.session.query(Token).filter_by(token=token, type=token_type).first()
        if found is None:
            return None
        if ensure_utc(found.expires_at) <= utc_now():
            return None
        return found

    def delete_for_user(self, user_id: int, token_type: str) -> int:
        """Delete all tokens of a type issued to a user. Returns the count."""
        deleted = self.session.query(Token).filter_by(
            user_id=user_id, type=token_type
        ).delete(synchronize_session=False)
        self.session.flush()
        return deleted
