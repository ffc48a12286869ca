# backend/mentorship/services/booking_validator.py
"""
Booking validator.

Turns a requested slot into a ``scheduled`` session, or rejects it. The
whole check-and-insert runs in one transaction:

1. Take the mentor/day claim (advisory lock where the database has one).
2. Re-derive availability for the requested interval from the stored rules.
3. Look for an overlapping slot-occupying session.
4. Insert and flush; the partial unique index rejects a concurrent winner.

Step 4 is the guarantee, steps 2-3 only give better error messages. The
same claim is reused by SessionService when a mentor reschedules.
"""

from datetime import date, datetime, time, timedelta
import logging
from typing import Any, Optional, Tuple

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from ..core.clock import Clock, system_clock
from ..core.config import settings
from ..core.enums import NotificationKind
from ..core.exceptions import (
    NotFoundException,
    ServiceException,
    SlotClaimTimeoutException,
    SlotConflictException,
    SlotUnavailableException,
    ValidationException,
)
from ..core.timezone_utils import ensure_utc, local_to_utc, parse_hhmm, utc_to_local
from ..events.session_events import SessionEvent
from ..integrations.user_directory import UserDirectory, UserDirectoryError
from ..models.availability import AvailabilityRule
from ..models.session import MentorshipSession, SessionStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..repositories.session_repository import is_lock_timeout
from .base import BaseService
from .notifications import SessionNotifier
from .slot_generator import booking_window_violation, resolve_rule

logger = logging.getLogger(__name__)

SESSION_DETAIL_FIELDS = ("type", "title", "description", "meeting_link", "location", "mentee_notes")


class BookingValidator(BaseService):
    """Race-safe creation of sessions from requested slots."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        user_directory: Optional[UserDirectory] = None,
        notifier: Optional[SessionNotifier] = None,
    ):
        super().__init__(db)
        self.clock = clock or system_clock
        self.user_directory = user_directory
        self.notifier = notifier
        self.availability_repository = RepositoryFactory.create_availability_repository(db)
        self.session_repository = RepositoryFactory.create_session_repository(db)

    @BaseService.measure_operation("book_slot")
    def book_slot(
        self,
        mentor_id: str,
        mentee_id: str,
        day: date,
        start_time: str,
        duration_minutes: int,
        **details: Any,
    ) -> MentorshipSession:
        """
        Book ``[start_time, start_time + duration)`` on the mentor's local date ``day``.

        Raises:
            ValidationException: Malformed time, duration not offered, self-booking
            NotFoundException: Mentor or mentee unknown to the user directory
            SlotUnavailableException: Outside availability, in a break, or in the past
            SlotConflictException: Another session already holds the slot
            SlotClaimTimeoutException: The claim could not be taken in time
        """
        wall_time = parse_hhmm(start_time, "time")
        self._validate_request(mentor_id, mentee_id, duration_minutes)
        unknown = set(details) - set(SESSION_DETAIL_FIELDS)
        if unknown:
            raise ValidationException(
                "Unknown session fields", details={"fields": sorted(unknown)}
            )

        try:
            with self.transaction():
                rule, starts_at = self.claim_and_verify(mentor_id, day, wall_time, duration_minutes)
                try:
                    session = self.session_repository.create_session(
                        mentor_id=mentor_id,
                        mentee_id=mentee_id,
                        scheduled_at=starts_at,
                        requested_scheduled_at=starts_at,
                        duration_minutes=duration_minutes,
                        timezone=rule.timezone,
                        status=SessionStatus.SCHEDULED.value,
                        **{k: _enum_value(v) for k, v in details.items() if v is not None},
                    )
                except IntegrityError as exc:
                    raise SlotConflictException(
                        details={"mentor_id": mentor_id, "scheduled_at": starts_at.isoformat()}
                    ) from exc
                except OperationalError as exc:
                    if is_lock_timeout(exc):
                        raise SlotClaimTimeoutException(settings.booking_claim_timeout_ms) from exc
                    raise
        except (SlotConflictException, SlotUnavailableException, SlotClaimTimeoutException) as exc:
            prometheus_metrics.record_booking_claim("book", _claim_outcome(exc))
            raise

        prometheus_metrics.record_booking_claim("book", "success")
        self.log_operation(
            "book_slot",
            session_id=session.id,
            mentor_id=mentor_id,
            mentee_id=mentee_id,
            scheduled_at=session.scheduled_at.isoformat(),
        )

        if self.notifier:
            event = SessionEvent.from_session(
                NotificationKind.SESSION_REQUESTED, session, self.clock.now(), actor_id=mentee_id
            )
            self.notifier.publish(event, [mentor_id])
        return session

    def book_at(
        self,
        mentor_id: str,
        mentee_id: str,
        scheduled_at: datetime,
        duration_minutes: int,
        **details: Any,
    ) -> MentorshipSession:
        """Book by absolute instant; the instant is mapped onto the mentor's local calendar."""
        day, wall_time = self.locate_instant(mentor_id, scheduled_at)
        return self.book_slot(
            mentor_id, mentee_id, day, wall_time.strftime("%H:%M"), duration_minutes, **details
        )

    def locate_instant(self, mentor_id: str, instant: datetime) -> Tuple[date, time]:
        """
        Map an absolute instant to ``(local date, local time)`` in the timezone of the
        rule that governs it.

        Raises:
            ValidationException: If the instant is not on a whole minute
            SlotUnavailableException: If no rule of the mentor covers that local date,
                or the local time maps back to a different instant (DST repeat)
        """
        instant = ensure_utc(instant)
        if instant.second or instant.microsecond:
            raise ValidationException(
                "scheduled_at must be on a whole minute",
                details={"scheduled_at": instant.isoformat()},
            )
        for tz_name in self.availability_repository.get_timezones(mentor_id):
            local = utc_to_local(instant, tz_name)
            rules = self.availability_repository.get_rules_for_date(mentor_id, local.date())
            rule = resolve_rule(rules, local.date())
            if rule is None or rule.timezone != tz_name:
                continue
            if local_to_utc(local.date(), local.time(), tz_name) != instant:
                raise SlotUnavailableException(
                    "Requested time is not a slot start in the mentor's timezone",
                    details={"mentor_id": mentor_id, "scheduled_at": instant.isoformat()},
                )
            return local.date(), local.time()
        raise SlotUnavailableException(
            "Mentor has no availability at the requested time",
            details={"mentor_id": mentor_id, "scheduled_at": instant.isoformat()},
        )

    def claim_and_verify(
        self,
        mentor_id: str,
        day: date,
        wall_time: time,
        duration_minutes: int,
        exclude_session_id: Optional[str] = None,
    ) -> Tuple[AvailabilityRule, datetime]:
        """
        Take the claim and re-check the interval. Must run inside a transaction.

        Returns the governing rule and the UTC start instant.
        """
        if not self.session_repository.acquire_claim_lock(
            mentor_id, day, settings.booking_claim_timeout_ms
        ):
            raise SlotClaimTimeoutException(
                settings.booking_claim_timeout_ms, details={"mentor_id": mentor_id}
            )

        rules = self.availability_repository.get_rules_for_date(mentor_id, day)
        rule = resolve_rule(rules, day)
        detail = {
            "mentor_id": mentor_id,
            "date": day.isoformat(),
            "time": wall_time.strftime("%H:%M"),
        }

        violation = booking_window_violation(rule, wall_time, duration_minutes)
        if violation:
            raise SlotUnavailableException(violation, details=detail)

        starts_at = local_to_utc(day, wall_time, rule.timezone)
        if starts_at is None:
            raise SlotUnavailableException(
                "Requested time does not exist in the mentor's timezone", details=detail
            )
        if starts_at <= self.clock.now():
            raise SlotUnavailableException("Requested time is in the past", details=detail)

        ends_at = starts_at + timedelta(minutes=duration_minutes)
        clashes = self.session_repository.get_occupying_in_window(
            mentor_id, starts_at, ends_at, exclude_session_id=exclude_session_id
        )
        if clashes:
            raise SlotConflictException(
                details={**detail, "conflicting_session_id": clashes[0].id}
            )
        return rule, starts_at

    def _validate_request(self, mentor_id: str, mentee_id: str, duration_minutes: int) -> None:
        if duration_minutes not in settings.allowed_session_durations:
            raise ValidationException(
                f"Duration must be one of {settings.allowed_session_durations} minutes",
                details={"duration_minutes": duration_minutes},
            )
        if mentor_id == mentee_id:
            raise ValidationException("Mentors cannot book sessions with themselves")
        if self.user_directory is None:
            return

        for role, user_id in (("mentor", mentor_id), ("mentee", mentee_id)):
            try:
                user = self.user_directory.get_user(user_id)
            except UserDirectoryError as exc:
                raise ServiceException(
                    "User directory unavailable", code="USER_DIRECTORY_UNAVAILABLE"
                ) from exc
            if user is None:
                raise NotFoundException(
                    f"Unknown {role}", details={f"{role}_id": user_id}
                )


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def _claim_outcome(exc: Exception) -> str:
    if isinstance(exc, SlotConflictException):
        return "conflict"
    if isinstance(exc, SlotClaimTimeoutException):
        return "timeout"
    return "unavailable"
