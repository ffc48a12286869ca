# backend/mentorship/repositories/factory.py
"""
Repository factory.

Centralizes repository creation so services receive consistently
initialized instances and tests can swap implementations.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

if TYPE_CHECKING:
    from .availability_repository import AvailabilityRepository
    from .session_repository import SessionRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_availability_repository(db: Session) -> "AvailabilityRepository":
        from .availability_repository import AvailabilityRepository

        return AvailabilityRepository(db)

    @staticmethod
    def create_session_repository(db: Session) -> "SessionRepository":
        from .session_repository import SessionRepository

        return SessionRepository(db)
