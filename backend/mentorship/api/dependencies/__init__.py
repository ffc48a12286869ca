# backend/mentorship/api/dependencies/__init__.py
"""
FastAPI dependencies, re-exported for the routers.
"""

from .auth import get_current_user_id
from .database import get_db
from .services import (
    get_availability_service,
    get_booking_validator,
    get_clock,
    get_notifier,
    get_session_service,
    get_user_directory,
)

__all__ = [
    "get_availability_service",
    "get_booking_validator",
    "get_clock",
    "get_current_user_id",
    "get_db",
    "get_notifier",
    "get_session_service",
    "get_user_directory",
]
