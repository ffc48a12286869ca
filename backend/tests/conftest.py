# backend/tests/conftest.py
"""
Pytest configuration for the scheduling backend.

Every test gets its own in-memory SQLite database, so nothing leaks between
tests and no fixture has to unwind savepoints. Concurrency tests use a
file-backed database instead, because an in-memory database cannot be
shared across real connections.
"""

import os

# Set testing mode BEFORE any mentorship imports
os.environ["ENVIRONMENT"] = "test"
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ["CI"] = "true"

from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, Iterator, List, Optional, Tuple

from fastapi.testclient import TestClient
import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from mentorship.api.dependencies.database import get_db as api_get_db
from mentorship.api.dependencies.services import get_clock, get_notifier, get_user_directory
from mentorship.core.enums import NotificationKind
from mentorship.core.ulid_helper import generate_ulid
from mentorship.database import build_engine, init_db
from mentorship.integrations.user_directory import UserRecord
from mentorship.models.availability import AvailabilityRule
from mentorship.models.session import MentorshipSession, SessionStatus
from mentorship.services.booking_validator import BookingValidator
from mentorship.services.notifications import SessionNotifier
from mentorship.services.session_service import SessionService

# 2030-01-07 is a Monday (weekday index 1).
MONDAY = date(2030, 1, 7)
TUESDAY = MONDAY + timedelta(days=1)
CLOCK_START = datetime(2030, 1, 6, 12, 0, tzinfo=timezone.utc)


def new_id() -> str:
    return generate_ulid()


# ============================================================================
# Collaborator fakes
# ============================================================================


class FixedClock:
    """Clock that only moves when a test moves it."""

    def __init__(self, current: datetime):
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, **delta: float) -> datetime:
        self.current = self.current + timedelta(**delta)
        return self.current

    def set(self, current: datetime) -> None:
        self.current = current


class FakeUserDirectory:
    """In-memory UserDirectory; unknown ids resolve to None."""

    def __init__(self) -> None:
        self.users: Dict[str, UserRecord] = {}
        self.lookups: List[str] = []

    def add(self, user_id: str, display_name: str = "Test User") -> UserRecord:
        record = UserRecord(id=user_id, display_name=display_name, email=f"{user_id}@example.com")
        self.users[user_id] = record
        return record

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        self.lookups.append(user_id)
        return self.users.get(user_id)


class RecordingNotificationPort:
    """NotificationPort that records every delivery; can be told to fail."""

    def __init__(self) -> None:
        self.sent: List[Tuple[str, NotificationKind, Dict[str, Any]]] = []
        self.fail = False

    def notify(self, user_id: str, kind: NotificationKind, payload: Dict[str, Any]) -> None:
        if self.fail:
            raise ConnectionError("notification backend down")
        self.sent.append((user_id, kind, payload))

    def kinds_for(self, user_id: str) -> List[NotificationKind]:
        return [kind for recipient, kind, _ in self.sent if recipient == user_id]


# ============================================================================
# Database
# ============================================================================


@pytest.fixture
def db_engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine: Engine) -> sessionmaker:
    return sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory: sessionmaker) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def file_engine(tmp_path) -> Iterator[Engine]:
    """File-backed SQLite engine whose connections really contend for the write lock."""
    engine = build_engine(f"sqlite+pysqlite:///{tmp_path / 'concurrency.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


# ============================================================================
# Collaborators and services
# ============================================================================


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(CLOCK_START)


@pytest.fixture
def notification_port() -> RecordingNotificationPort:
    return RecordingNotificationPort()


@pytest.fixture
def notifier(notification_port: RecordingNotificationPort) -> SessionNotifier:
    return SessionNotifier(notification_port, enabled=True)


@pytest.fixture
def user_directory() -> FakeUserDirectory:
    return FakeUserDirectory()


@pytest.fixture
def mentor_id() -> str:
    return new_id()


@pytest.fixture
def mentee_id() -> str:
    return new_id()


@pytest.fixture
def other_mentee_id() -> str:
    return new_id()


@pytest.fixture
def booking_validator(db: Session, clock: FixedClock, notifier: SessionNotifier) -> BookingValidator:
    return BookingValidator(db, clock=clock, notifier=notifier)


@pytest.fixture
def session_service(
    db: Session,
    clock: FixedClock,
    notifier: SessionNotifier,
    booking_validator: BookingValidator,
) -> SessionService:
    return SessionService(db, clock=clock, notifier=notifier, booking_validator=booking_validator)


# ============================================================================
# Data helpers
# ============================================================================


def make_rule(
    db: Session,
    mentor_id: str,
    *,
    day_of_week: Optional[int] = None,
    specific_date: Optional[date] = None,
    start: time = time(9, 0),
    end: time = time(17, 0),
    slot_duration_minutes: int = 30,
    tz: str = "UTC",
    breaks: Optional[List[Dict[str, Any]]] = None,
    status: str = "available",
) -> AvailabilityRule:
    rule = AvailabilityRule(
        mentor_id=mentor_id,
        is_recurring=specific_date is None,
        day_of_week=day_of_week,
        specific_date=specific_date,
        start_time=start,
        end_time=end,
        slot_duration_minutes=slot_duration_minutes,
        timezone=tz,
        breaks=breaks or [],
        status=status,
    )
    db.add(rule)
    db.commit()
    return rule


def make_session(
    db: Session,
    mentor_id: str,
    mentee_id: str,
    scheduled_at: datetime,
    *,
    duration_minutes: int = 30,
    status: SessionStatus = SessionStatus.SCHEDULED,
    tz: str = "UTC",
) -> MentorshipSession:
    session = MentorshipSession(
        mentor_id=mentor_id,
        mentee_id=mentee_id,
        scheduled_at=scheduled_at,
        duration_minutes=duration_minutes,
        timezone=tz,
        status=status.value,
    )
    db.add(session)
    db.commit()
    return session


LUNCH_BREAK = [{"start_time": "12:00", "end_time": "13:00", "reason": "Lunch"}]


@pytest.fixture
def monday_rule(db: Session, mentor_id: str) -> AvailabilityRule:
    """Scenario A: Mondays 09:00-17:00 UTC, 30-minute slots, lunch 12:00-13:00."""
    return make_rule(db, mentor_id, day_of_week=1, breaks=LUNCH_BREAK)


# ============================================================================
# HTTP
# ============================================================================


@pytest.fixture
def client(
    session_factory: sessionmaker,
    clock: FixedClock,
    notifier: SessionNotifier,
) -> Iterator[TestClient]:
    from mentorship.main import app

    def _override_db() -> Iterator[Session]:
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[api_get_db] = _override_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_user_directory] = lambda: None
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def availability_slots(db: Session):
    """Slot availability on MONDAY as ``{"HH:MM": available}``."""
    from mentorship.services.availability_service import AvailabilityService

    def _slots(mentor_id: str, day: date = MONDAY) -> Dict[str, bool]:
        db.expire_all()
        return {slot.time: slot.available for slot in AvailabilityService(db).get_slots(mentor_id, day)}

    return _slots
