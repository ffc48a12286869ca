# backend/mentorship/models/session.py
"""
Mentorship session model.

A session is the booking between a mentor and a mentee. It stores the
absolute start instant in UTC plus the IANA timezone it was booked in, so
it stays a commitment even when the mentor's availability later changes.

Exclusivity: at most one session per (mentor_id, scheduled_at) may hold a
slot-occupying status. This is enforced by a partial unique index and is
the final guarantee behind every booking and reschedule.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
import logging
from typing import Any, Optional

from sqlalchemy import Boolean, CheckConstraint, Column, Index, Integer, String, Text

from ..core.enums import SessionType
from ..core.ulid_helper import generate_ulid
from ..database import Base
from .types import UTCDateTime

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStatus(str, Enum):
    """Session lifecycle statuses."""

    SCHEDULED = "scheduled"  # Mentee requested, awaiting mentor
    CONFIRMED = "confirmed"  # Mentor accepted (or mentee accepted a reschedule)
    RESCHEDULED = "rescheduled"  # Mentor proposed a new time
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"  # Declined or withdrawn
    NO_SHOW = "no_show"


SLOT_OCCUPYING_STATUSES = frozenset(
    {
        SessionStatus.SCHEDULED,
        SessionStatus.CONFIRMED,
        SessionStatus.RESCHEDULED,
        SessionStatus.IN_PROGRESS,
    }
)

TERMINAL_STATUSES = frozenset(
    {SessionStatus.COMPLETED, SessionStatus.CANCELLED, SessionStatus.NO_SHOW}
)

_OCCUPYING_VALUES = sorted(s.value for s in SLOT_OCCUPYING_STATUSES)


class MentorshipSession(Base):
    """Booked session between a mentor and a mentee."""

    __tablename__ = "sessions"

    id = Column(String(26), primary_key=True, default=generate_ulid)

    mentor_id = Column(String(26), nullable=False, index=True)
    mentee_id = Column(String(26), nullable=False, index=True)

    scheduled_at = Column(UTCDateTime(), nullable=False, index=True)
    duration_minutes = Column(Integer, nullable=False)
    timezone = Column(String(64), nullable=False, default="UTC")
    status = Column(String(20), nullable=False, default=SessionStatus.SCHEDULED.value, index=True)

    type = Column(String(20), nullable=False, default=SessionType.ONE_ON_ONE.value)
    title = Column(String(200), nullable=True)
    description = Column(Text, nullable=True)
    meeting_link = Column(String(500), nullable=True)
    location = Column(String(255), nullable=True)
    mentee_notes = Column(Text, nullable=True)

    # Reschedule negotiation
    requested_scheduled_at = Column(UTCDateTime(), nullable=False)
    previous_scheduled_at = Column(UTCDateTime(), nullable=True)
    reschedule_reason = Column(Text, nullable=True)
    reschedule_message = Column(Text, nullable=True)
    reschedule_requested_at = Column(UTCDateTime(), nullable=True)

    # Cancellation tracking
    cancellation_reason = Column(Text, nullable=True)
    cancelled_at = Column(UTCDateTime(), nullable=True)
    cancelled_by_id = Column(String(26), nullable=True)

    # Attendance
    mentor_confirmed = Column(Boolean, nullable=False, default=False)
    mentee_confirmed = Column(Boolean, nullable=False, default=False)
    started_at = Column(UTCDateTime(), nullable=True)
    ended_at = Column(UTCDateTime(), nullable=True)

    created_at = Column(UTCDateTime(), nullable=False, default=_utcnow)
    updated_at = Column(UTCDateTime(), nullable=True, onupdate=_utcnow)

    __table_args__ = (
        CheckConstraint(
            "status IN ('scheduled', 'confirmed', 'rescheduled', 'in_progress', "
            "'completed', 'cancelled', 'no_show')",
            name="ck_sessions_status",
        ),
        CheckConstraint(
            "type IN ('one_on_one', 'video_call', 'phone_call', 'in_person')",
            name="ck_sessions_type",
        ),
        CheckConstraint("duration_minutes > 0", name="ck_sessions_duration_positive"),
    )

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if not self.status:
            self.status = SessionStatus.SCHEDULED.value
        if self.requested_scheduled_at is None:
            self.requested_scheduled_at = self.scheduled_at
        if self.mentor_confirmed is None:
            self.mentor_confirmed = False
        if self.mentee_confirmed is None:
            self.mentee_confirmed = False

    def __repr__(self) -> str:
        return (
            f"<MentorshipSession {self.id}: mentor={self.mentor_id}, mentee={self.mentee_id}, "
            f"at={self.scheduled_at}, duration={self.duration_minutes}, status={self.status}>"
        )

    @property
    def status_enum(self) -> SessionStatus:
        return SessionStatus(self.status)

    @property
    def ends_at(self) -> datetime:
        return self.scheduled_at + timedelta(minutes=self.duration_minutes)

    def is_participant(self, user_id: str) -> bool:
        return user_id in (self.mentor_id, self.mentee_id)

    def other_party(self, user_id: str) -> Optional[str]:
        if user_id == self.mentor_id:
            return self.mentee_id
        if user_id == self.mentee_id:
            return self.mentor_id
        return None

    # Mutators. Legality is decided by the session state machine before these run.

    def confirm(self) -> None:
        self.status = SessionStatus.CONFIRMED.value
        logger.info(f"Session {self.id} confirmed")

    def cancel(self, cancelled_by_id: Optional[str], reason: Optional[str], at: datetime) -> None:
        self.status = SessionStatus.CANCELLED.value
        self.cancelled_at = at
        self.cancelled_by_id = cancelled_by_id
        self.cancellation_reason = reason
        logger.info(f"Session {self.id} cancelled by {cancelled_by_id or 'system'}")

    def propose_new_time(
        self,
        new_scheduled_at: datetime,
        reason: Optional[str],
        message: Optional[str],
        at: datetime,
    ) -> None:
        self.previous_scheduled_at = self.scheduled_at
        self.scheduled_at = new_scheduled_at
        self.reschedule_reason = reason
        self.reschedule_message = message
        self.reschedule_requested_at = at
        self.status = SessionStatus.RESCHEDULED.value
        logger.info(f"Session {self.id} rescheduled to {new_scheduled_at.isoformat()}")

    def start(self, at: datetime) -> None:
        self.status = SessionStatus.IN_PROGRESS.value
        self.started_at = at

    def complete(self, at: datetime) -> None:
        self.status = SessionStatus.COMPLETED.value
        self.ended_at = at
        logger.info(f"Session {self.id} marked as completed")

    def mark_no_show(self) -> None:
        self.status = SessionStatus.NO_SHOW.value
        logger.info(f"Session {self.id} marked as no-show")


# Exclusivity: one slot-occupying session per mentor and start instant.
Index(
    "uq_sessions_mentor_scheduled_at_occupying",
    MentorshipSession.mentor_id,
    MentorshipSession.scheduled_at,
    unique=True,
    postgresql_where=MentorshipSession.status.in_(_OCCUPYING_VALUES),
    sqlite_where=MentorshipSession.status.in_(_OCCUPYING_VALUES),
)

Index(
    "ix_sessions_status_scheduled_at",
    MentorshipSession.status,
    MentorshipSession.scheduled_at,
)
