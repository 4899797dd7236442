"""
Base Repository - Abstract base class for all repositories
Common database operations shared by every tenant-scoped repository
"""

from abc import ABC, abstractmethod
from typing import TypeVar, Generic, List, Optional, Dict, Any, Type
from sqlalchemy.orm import Session, Query
from sqlalchemy.exc import SQLAlchemyError
from dataclasses import dataclass
import logging

logger = logging.getLogger(__name__)

# Type variable for model classes
T = TypeVar('T')


@dataclass
class PaginationParams:
    """Parameters for pagination"""
    page: int = 1
    per_page: int = 20

    MAX_PER_PAGE = 100

    def __post_init__(self):
        self.page = max(int(self.page or 1), 1)
        self.per_page = min(max(int(self.per_page or 20), 1), self.MAX_PER_PAGE)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page

    @property
    def limit(self) -> int:
        return self.per_page


@dataclass
class PaginatedResult(Generic[T]):
    """Result of a paginated query"""
    items: List[T]
    total: int
    page: int
    per_page: int

    @property
    def pages(self) -> int:
        return (self.total + self.per_page - 1) // self.per_page if self.per_page > 0 else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.pages

    def to_dict(self, serializer=None) -> Dict[str, Any]:
        """Serialize the page; `serializer` maps each item to a dict."""
        serializer = serializer or (lambda item: item.to_dict())
        return {
            'collection': [serializer(item) for item in self.items],
            'total': self.total,
            'page': self.page,
            'per_page': self.per_page,
            'pages': self.pages,
        }


class BaseRepository(ABC, Generic[T]):
    """
    Abstract base repository with common CRUD operations.

    Writes only flush; the service that owns the unit of work decides when
    to commit, so multi-step writes land in a single transaction.
    """

    def __init__(self, session: Session, model_class: Type[T]):
        """
        Args:
            session: SQLAlchemy database session
            model_class: The model class this repository manages
        """
        self.session = session
        self.model_class = model_class

    # CREATE Operations

    def create(self, **kwargs) -> T:
        """
        Create a new entity and flush it to obtain its primary key.

        Raises:
            SQLAlchemyError: If database operation fails
        """
        try:
            entity = self.model_class(**kwargs)
            self.session.add(entity)
            self.session.flush()
            logger.debug(f"Created {self.model_class.__name__}")
            return entity
        except SQLAlchemyError as e:
            logger.error(f"Error creating {self.model_class.__name__}: {e}")
            self.session.rollback()
            raise

    def create_many(self, entities_data: List[Dict[str, Any]]) -> List[T]:
        """
        Create multiple entities in a single flush.

        Raises:
            SQLAlchemyError: If database operation fails
        """
        try:
            entities = [self.model_class(**data) for data in entities_data]
            self.session.add_all(entities)
            self.session.flush()
            logger.debug(f"Created {len(entities)} {self.model_class.__name__} entities")
            return entities
        except SQLAlchemyError as e:
            logger.error(f"Error creating multiple {self.model_class.__name__}: {e}")
            self.session.rollback()
            raise

    # READ Operations

    def get_by_id(self, entity_id: int) -> Optional[T]:
        return self.session.get(self.model_class, entity_id)

    def find_by(self, **filters) -> List[T]:
        """Find entities by exact field values."""
        return self._build_query(filters).all()

    def find_one_by(self, **filters) -> Optional[T]:
        return self._build_query(filters).first()

    def exists(self, **filters) -> bool:
        return self._build_query(filters).first() is not None

    def count(self, **filters) -> int:
        return self._build_query(filters).count()

    def paginate(self, query: Query, pagination: PaginationParams) -> PaginatedResult[T]:
        """
        Apply offset pagination to an already filtered and ordered query.

        Args:
            query: Query scoped to the tenant
            pagination: Pagination parameters

        Returns:
            PaginatedResult with items and metadata
        """
        total = query.order_by(None).count()
        items = query.offset(pagination.offset).limit(pagination.limit).all()
        return PaginatedResult(
            items=items,
            total=total,
            page=pagination.page,
            per_page=pagination.per_page
        )

    # UPDATE Operations

    def update(self, entity: T, **updates) -> T:
        """
        Update an entity with new values.

        Raises:
            SQLAlchemyError: If database operation fails
        """
        try:
            for field, value in updates.items():
                if hasattr(entity, field):
                    setattr(entity, field, value)
            self.session.flush()
            return entity
        except SQLAlchemyError as e:
            logger.error(f"Error updating {self.model_class.__name__}: {e}")
            self.session.rollback()
            raise

    # DELETE Operations

    def delete(self, entity: T) -> None:
        """
        Delete an entity.

        Raises:
            SQLAlchemyError: If database operation fails
        """
        try:
            self.session.delete(entity)
            self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Error deleting {self.model_class.__name__}: {e}")
            self.session.rollback()
            raise

    # Transaction Management

    def commit(self) -> None:
        """Commit the current transaction."""
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Error committing transaction: {e}")
            self.session.rollback()
            raise

    def rollback(self) -> None:
        self.session.rollback()

    def flush(self) -> None:
        self.session.flush()

    # Helper Methods

    def _build_query(self, filters: Optional[Dict[str, Any]] = None) -> Query:
        """
        Build a query from field filters. Lists become IN clauses and None
        becomes an IS NULL check.
        """
        query = self.session.query(self.model_class)

        if filters:
            for field, value in filters.items():
                column = getattr(self.model_class, field, None)
                if column is None:
                    continue
                if isinstance(value, (list, tuple, set)):
                    query = query.filter(column.in_(list(value)))
                elif value is None:
                    query = query.filter(column.is_(None))
                else:
                    query = query.filter(column == value)

        return query

    # Abstract Methods (to be implemented by subclasses)

    @abstractmethod
    def search(self, query: str, user_id: int) -> List[T]:
        """
        Search a tenant's entities by a name or email prefix.

        Args:
            query: Prefix to match
            user_id: Owning user

        Returns:
            List of matching entities
        """
        pass
