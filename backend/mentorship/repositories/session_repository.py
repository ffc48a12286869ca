# backend/mentorship/repositories/session_repository.py
"""
Session queries, including the atomic claim used by booking and reschedule.

The claim has two layers:
- On PostgreSQL a transaction-scoped advisory lock keyed by mentor and local
  date serializes bookers for the same mentor/day, bounded by lock_timeout.
- On SQLite the engine opens transactions with BEGIN IMMEDIATE, so the
  claim is the database write lock, taken by the first statement.
- On every dialect the partial unique index on (mentor_id, scheduled_at)
  among slot-occupying statuses is the final word; the insert that loses
  raises IntegrityError.
"""

from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import or_, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from ..models.session import SLOT_OCCUPYING_STATUSES, MentorshipSession, SessionStatus
from .base_repository import BaseRepository

# Sessions never run longer than a day, so this bounds the overlap scan.
_OVERLAP_LOOKBACK = timedelta(days=1)

_LOCK_NOT_AVAILABLE = "55P03"


def _values(statuses: Iterable[SessionStatus]) -> List[str]:
    return sorted(s.value for s in statuses)


class SessionRepository(BaseRepository[MentorshipSession]):
    def __init__(self, db: Session):
        super().__init__(db, MentorshipSession)

    def get_for_update(self, session_id: str) -> Optional[MentorshipSession]:
        """Load a session with a row lock (PostgreSQL) so concurrent transitions serialize."""
        query = self._build_query().filter(MentorshipSession.id == session_id)
        if self.dialect_name == "postgresql":
            query = query.with_for_update()
        return query.populate_existing().first()

    def get_occupying_in_window(
        self,
        mentor_id: str,
        window_start: datetime,
        window_end: datetime,
        exclude_session_id: Optional[str] = None,
    ) -> List[MentorshipSession]:
        """
        Slot-occupying sessions of ``mentor_id`` overlapping ``[window_start, window_end)``.

        Ordered by start instant.
        """
        query = self._build_query().filter(
            MentorshipSession.mentor_id == mentor_id,
            MentorshipSession.status.in_(_values(SLOT_OCCUPYING_STATUSES)),
            MentorshipSession.scheduled_at >= window_start - _OVERLAP_LOOKBACK,
            MentorshipSession.scheduled_at < window_end,
        )
        if exclude_session_id:
            query = query.filter(MentorshipSession.id != exclude_session_id)
        candidates = self._execute_query(query.order_by(MentorshipSession.scheduled_at))
        return [s for s in candidates if s.ends_at > window_start]

    def create_session(self, **kwargs) -> MentorshipSession:
        """
        Insert a session and flush so the exclusivity index is checked now.

        Raises:
            IntegrityError: If another slot-occupying session holds the same start
        """
        entity = MentorshipSession(**kwargs)
        self.db.add(entity)
        self.db.flush()
        return entity

    def acquire_claim_lock(self, mentor_id: str, local_day: date, timeout_ms: int) -> bool:
        """
        Take the mentor/day claim for the current transaction.

        Returns False when the lock could not be obtained within ``timeout_ms``
        (the busy timeout on SQLite).
        """
        if self.dialect_name == "sqlite":
            return self._acquire_sqlite_write_lock(mentor_id, local_day)
        if self.dialect_name != "postgresql":
            return True

        key = f"session-claim:{mentor_id}:{local_day.isoformat()}"
        try:
            self.db.execute(text(f"SET LOCAL lock_timeout = '{int(timeout_ms)}ms'"))
            self.db.execute(text("SELECT pg_advisory_xact_lock(hashtext(:key))"), {"key": key})
        except OperationalError as exc:
            if getattr(exc.orig, "pgcode", None) == _LOCK_NOT_AVAILABLE:
                self.logger.warning(
                    "Session claim lock timed out",
                    extra={"mentor_id": mentor_id, "day": local_day.isoformat()},
                )
                return False
            raise
        return True

    def _acquire_sqlite_write_lock(self, mentor_id: str, local_day: date) -> bool:
        try:
            # First statement of the transaction emits BEGIN IMMEDIATE.
            self.db.execute(text("SELECT 1"))
        except OperationalError as exc:
            if is_lock_timeout(exc):
                self.logger.warning(
                    "Session claim lock timed out",
                    extra={"mentor_id": mentor_id, "day": local_day.isoformat()},
                )
                return False
            raise
        return True

    def list_for_user(
        self,
        user_id: str,
        *,
        status: Optional[SessionStatus] = None,
        starts_after: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[MentorshipSession], int]:
        """Sessions where ``user_id`` is mentor or mentee, soonest first."""
        query = self._build_query().filter(
            or_(MentorshipSession.mentor_id == user_id, MentorshipSession.mentee_id == user_id)
        )
        if status is not None:
            query = query.filter(MentorshipSession.status == status.value)
        if starts_after is not None:
            query = query.filter(MentorshipSession.scheduled_at >= starts_after)

        total = query.count()
        items = self._execute_query(
            query.order_by(MentorshipSession.scheduled_at, MentorshipSession.id)
            .offset(offset)
            .limit(limit)
        )
        return items, total

    def get_missed_candidates(self, now: datetime, grace: timedelta) -> List[MentorshipSession]:
        """Scheduled or confirmed sessions whose end is more than ``grace`` in the past."""
        cutoff = now - grace
        query = self._build_query().filter(
            MentorshipSession.status.in_(
                _values({SessionStatus.SCHEDULED, SessionStatus.CONFIRMED})
            ),
            MentorshipSession.scheduled_at < cutoff,
        )
        candidates = self._execute_query(query.order_by(MentorshipSession.scheduled_at))
        return [s for s in candidates if s.ends_at < cutoff]

    def get_elapsed_in_progress(self, now: datetime) -> List[MentorshipSession]:
        """In-progress sessions whose scheduled end has passed."""
        query = self._build_query().filter(
            MentorshipSession.status == SessionStatus.IN_PROGRESS.value,
            MentorshipSession.scheduled_at < now,
        )
        candidates = self._execute_query(query.order_by(MentorshipSession.scheduled_at))
        return [s for s in candidates if s.ends_at <= now]


def is_lock_timeout(exc: OperationalError) -> bool:
    """True when ``exc`` means a lock wait ran out (PostgreSQL lock_timeout, SQLite busy)."""
    if getattr(exc.orig, "pgcode", None) == _LOCK_NOT_AVAILABLE:
        return True
    return "database is locked" in str(exc.orig).lower()
