# backend/mentorship/core/enums.py
"""
Core enums for the mentorship scheduling backend.

Session statuses live with the session model; this module holds the
vocabulary shared by the state machine, the services and the API layer.
"""

from enum import Enum


class ActorRole(str, Enum):
    """Who is asking for a session transition."""

    MENTOR = "mentor"
    MENTEE = "mentee"
    SYSTEM = "system"


class SessionAction(str, Enum):
    """Actions the session state machine understands."""

    ACCEPT = "accept"
    DECLINE = "decline"
    RESCHEDULE = "reschedule"
    CONFIRM_ATTENDANCE = "confirm_attendance"
    CANCEL = "cancel"
    START = "start"
    COMPLETE = "complete"
    MARK_MISSED = "mark_missed"


class AvailabilityStatus(str, Enum):
    """Whether a rule opens or closes the mentor's day."""

    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


class SessionType(str, Enum):
    ONE_ON_ONE = "one_on_one"
    VIDEO_CALL = "video_call"
    PHONE_CALL = "phone_call"
    IN_PERSON = "in_person"


class NotificationKind(str, Enum):
    """Kinds of outbound notifications emitted after a committed transition."""

    SESSION_REQUESTED = "session_requested"
    SESSION_CONFIRMED = "session_confirmed"
    SESSION_DECLINED = "session_declined"
    SESSION_RESCHEDULED = "session_rescheduled"
    SESSION_CANCELLED = "session_cancelled"
    SESSION_MISSED = "session_missed"
    SESSION_COMPLETED = "session_completed"
