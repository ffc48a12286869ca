"""Data access layer. Repositories flush; services own commit and rollback."""

from .availability_repository import AvailabilityRepository
from .base_repository import BaseRepository
from .factory import RepositoryFactory
from .session_repository import SessionRepository

__all__ = [
    "AvailabilityRepository",
    "BaseRepository",
    "RepositoryFactory",
    "SessionRepository",
]
