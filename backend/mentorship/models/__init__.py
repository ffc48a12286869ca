# backend/mentorship/models/__init__.py
"""
SQLAlchemy models for the scheduling backend.

Importing this package registers every table on ``Base.metadata``.
"""

from .availability import AvailabilityRule
from .session import (
    SLOT_OCCUPYING_STATUSES,
    TERMINAL_STATUSES,
    MentorshipSession,
    SessionStatus,
)

__all__ = [
    "AvailabilityRule",
    "MentorshipSession",
    "SLOT_OCCUPYING_STATUSES",
    "SessionStatus",
    "TERMINAL_STATUSES",
]
