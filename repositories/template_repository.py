"""
TemplateRepository - Data access layer for Template metadata
The HTML part is kept in object storage by TemplateService.
"""

from typing import List, Optional
from repositories.base_repository import BaseRepository, PaginationParams, PaginatedResult
from mail_database import Template


class TemplateRepository(BaseRepository[Template]):
    """Repository for Template data access"""

    def __init__(self, session):
        super().__init__(session, Template)

    def search(self, query: str, user_id: int) -> List[Template]:
        return self.session.query(Template).filter(
            Template.user_id == user_id,
            Template.name.like(f'{query}%')
        ).all()

    def get_for_user(self, template_id: int, user_id: int) -> Optional[Template]:
        return self.session.query(Template).filter_by(id=template_id, user_id=user_id).first()

    def get_by_name(self, name: str, user_id: int) -> Optional[Template]:
        return self.session.query(Template).filter_by(name=name, user_id=user_id).first()

    def list_for_user(self, user_id: int, pagination: PaginationParams,
                      name: Optional[str] = None) -> PaginatedResult[Template]:
        query = self.session.query(Template).filter(Template.user_id == user_id)
        if name:
            query = query.filter(Template.name.like(f'{name}%'))
        query = query.order_by(Template.created_at.desc(), Template.id.desc())
        return self.paginate(query, pagination)

    def total_for_user(self, user_id: int) -> int:
        return self.session.query(Template).filter(Template.user_id == user_id).count()

    def delete_for_user(self, template_id: int, user_id: int) -> int:
        deleted = self.session.query(Template).filter_by(
            id=template_id, user_id=user_id
        ).delete(synchronize_session=False)
        self.session.flush()
        return deleted
