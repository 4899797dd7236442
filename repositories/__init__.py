"""
Repository layer for the mail models.
Every repository is scoped by user_id; services own commits.
"""

from .base_repository import (
    BaseRepository,
    PaginationParams,
    PaginatedResult
)

__all__ = [
    'BaseRepository',
    'PaginationParams',
    'PaginatedResult'
]
