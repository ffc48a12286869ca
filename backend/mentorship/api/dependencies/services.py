# backend/mentorship/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

This module provides factory functions that create service instances
with their required dependencies properly injected. Process-wide
collaborators (clock, notifier, user directory) are built once.
"""

from functools import lru_cache
import logging
from typing import Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from ...core.clock import Clock, system_clock
from ...core.config import settings
from ...integrations.user_directory import HttpUserDirectory, UserDirectory
from ...services.availability_service import AvailabilityService
from ...services.booking_validator import BookingValidator
from ...services.notifications import SessionNotifier, build_default_notifier
from ...services.session_service import SessionService
from .database import get_db

logger = logging.getLogger(__name__)


def get_clock() -> Clock:
    return system_clock


@lru_cache(maxsize=1)
def _notifier_singleton() -> SessionNotifier:
    return build_default_notifier()


def get_notifier() -> SessionNotifier:
    """Get the process-wide session notifier."""
    return _notifier_singleton()


@lru_cache(maxsize=1)
def _user_directory_singleton() -> Optional[UserDirectory]:
    if not settings.user_directory_url:
        logger.info("No user directory configured; participant ids are not verified")
        return None
    return HttpUserDirectory(
        base_url=settings.user_directory_url, timeout=settings.user_directory_timeout_seconds
    )


def get_user_directory() -> Optional[UserDirectory]:
    return _user_directory_singleton()


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    """Provide availability service instance for dependency injection."""
    return AvailabilityService(db)


def get_booking_validator(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    user_directory: Optional[UserDirectory] = Depends(get_user_directory),
    notifier: SessionNotifier = Depends(get_notifier),
) -> BookingValidator:
    """
    Get booking validator instance with all dependencies.

    Args:
        db: Database session
        clock: Source of "now" for the past-slot check
        user_directory: Optional participant lookup
        notifier: Post-commit notification publisher

    Returns:
        BookingValidator instance
    """
    return BookingValidator(db, clock=clock, user_directory=user_directory, notifier=notifier)


def get_session_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: SessionNotifier = Depends(get_notifier),
    booking_validator: BookingValidator = Depends(get_booking_validator),
) -> SessionService:
    """Get session service sharing the request's database session with its validator."""
    return SessionService(db, clock=clock, notifier=notifier, booking_validator=booking_validator)
