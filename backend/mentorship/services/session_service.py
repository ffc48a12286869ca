# backend/mentorship/services/session_service.py
"""
Session service.

Runs every session transition through the state machine inside one
transaction and publishes notifications only after that transaction has
committed. Rescheduling re-uses the booking validator's claim so the new
time is checked and taken atomically with the status change.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from ..core.clock import Clock, system_clock
from ..core.config import settings
from ..core.enums import ActorRole, NotificationKind, SessionAction
from ..core.exceptions import (
    DomainException,
    NotFoundException,
    SlotClaimTimeoutException,
    SlotConflictException,
    SlotUnavailableException,
    ValidationException,
)
from ..core.timezone_utils import ensure_utc
from ..events.session_events import SessionEvent
from ..models.session import MentorshipSession, SessionStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..repositories.session_repository import is_lock_timeout
from .base import BaseService
from .booking_validator import BookingValidator, _claim_outcome
from .notifications import SessionNotifier
from .session_state_machine import (
    Transition,
    action_for_target,
    actor_role,
    resolve_transition,
)

logger = logging.getLogger(__name__)

Mutator = Callable[[MentorshipSession, ActorRole, datetime], None]


@dataclass
class TransitionResult:
    session: MentorshipSession
    transition: Transition
    role: ActorRole
    occurred_at: datetime


class SessionService(BaseService):
    """Session lookups, negotiation transitions and the missed-session sweep."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        notifier: Optional[SessionNotifier] = None,
        booking_validator: Optional[BookingValidator] = None,
    ):
        super().__init__(db)
        self.clock = clock or system_clock
        self.notifier = notifier
        self.repository = RepositoryFactory.create_session_repository(db)
        self.booking_validator = booking_validator or BookingValidator(
            db, clock=self.clock, notifier=notifier
        )

    # Queries

    def get_session(self, session_id: str, user_id: Optional[str] = None) -> MentorshipSession:
        """
        Fetch a session; when ``user_id`` is given it must be a participant.

        Raises:
            NotFoundException: Unknown session, or not visible to ``user_id``
        """
        session = self.repository.get_by_id(session_id)
        if session is None or (user_id is not None and not session.is_participant(user_id)):
            raise NotFoundException("Session not found", details={"session_id": session_id})
        return session

    def list_sessions(
        self,
        user_id: str,
        *,
        status: Optional[SessionStatus] = None,
        upcoming: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[MentorshipSession], int]:
        starts_after = self.clock.now() if upcoming else None
        return self.repository.list_for_user(
            user_id, status=status, starts_after=starts_after, limit=limit, offset=offset
        )

    # Transitions

    def _transition(
        self,
        session_id: str,
        action: SessionAction,
        actor_id: Optional[str],
        mutate: Optional[Mutator] = None,
    ) -> TransitionResult:
        """
        Apply ``action`` to the session in its own transaction.

        ``actor_id`` None means the system scheduler is acting.
        """
        now = self.clock.now()
        with self.transaction():
            session = self.repository.get_for_update(session_id)
            if session is None or (actor_id is not None and not session.is_participant(actor_id)):
                raise NotFoundException("Session not found", details={"session_id": session_id})

            role = ActorRole.SYSTEM if actor_id is None else actor_role(session, actor_id, action)
            transition = resolve_transition(session.status_enum, action, role)
            if not transition.noop:
                if mutate is not None:
                    mutate(session, role, now)
                session.status = transition.target.value
                self.repository.flush()

        if not transition.noop:
            prometheus_metrics.record_transition(action.value, transition.target.value)
            self.log_operation(
                action.value,
                session_id=session_id,
                actor_id=actor_id,
                actor_role=role.value,
                to_status=transition.target.value,
            )
        return TransitionResult(session=session, transition=transition, role=role, occurred_at=now)

    def _notify(
        self,
        kind: NotificationKind,
        result: TransitionResult,
        recipients: Sequence[Optional[str]],
        *,
        actor_id: Optional[str] = None,
        reason: Optional[str] = None,
        message: Optional[str] = None,
    ) -> None:
        if not self.notifier or result.transition.noop:
            return
        event = SessionEvent.from_session(
            kind,
            result.session,
            result.occurred_at,
            actor_id=actor_id,
            reason=reason,
            message=message,
        )
        self.notifier.publish(event, [r for r in recipients if r])

    @BaseService.measure_operation("accept")
    def accept(self, session_id: str, actor_id: str) -> MentorshipSession:
        """Mentor accepts a request, or mentee accepts a proposed new time."""
        result = self._transition(
            session_id, SessionAction.ACCEPT, actor_id, lambda s, role, now: s.confirm()
        )
        self._notify(
            NotificationKind.SESSION_CONFIRMED,
            result,
            [result.session.other_party(actor_id)],
            actor_id=actor_id,
        )
        return result.session

    @BaseService.measure_operation("decline")
    def decline(
        self, session_id: str, actor_id: str, reason: Optional[str] = None
    ) -> MentorshipSession:
        """Mentor declines a request, or mentee declines a proposed new time."""
        result = self._transition(
            session_id,
            SessionAction.DECLINE,
            actor_id,
            lambda s, role, now: s.cancel(actor_id, reason, now),
        )
        self._notify(
            NotificationKind.SESSION_DECLINED,
            result,
            [result.session.other_party(actor_id)],
            actor_id=actor_id,
            reason=reason,
        )
        return result.session

    @BaseService.measure_operation("cancel")
    def cancel(
        self, session_id: str, actor_id: str, reason: Optional[str] = None
    ) -> MentorshipSession:
        """Either party withdraws a scheduled or confirmed session."""
        result = self._transition(
            session_id,
            SessionAction.CANCEL,
            actor_id,
            lambda s, role, now: s.cancel(actor_id, reason, now),
        )
        self._notify(
            NotificationKind.SESSION_CANCELLED,
            result,
            [result.session.other_party(actor_id)],
            actor_id=actor_id,
            reason=reason,
        )
        return result.session

    @BaseService.measure_operation("confirm_attendance")
    def confirm_attendance(self, session_id: str, actor_id: str) -> MentorshipSession:
        """Set the caller's attendance flag on a confirmed session. Status is unchanged."""

        def _flag(session: MentorshipSession, role: ActorRole, now: datetime) -> None:
            if role == ActorRole.MENTOR:
                session.mentor_confirmed = True
            else:
                session.mentee_confirmed = True

        return self._transition(
            session_id, SessionAction.CONFIRM_ATTENDANCE, actor_id, _flag
        ).session

    @BaseService.measure_operation("start")
    def start(self, session_id: str, actor_id: Optional[str] = None) -> MentorshipSession:
        return self._transition(
            session_id, SessionAction.START, actor_id, lambda s, role, now: s.start(now)
        ).session

    @BaseService.measure_operation("complete")
    def complete(self, session_id: str, actor_id: Optional[str] = None) -> MentorshipSession:
        """Close a session whose window has elapsed. Only the scheduler may do this."""
        result = self._transition(
            session_id, SessionAction.COMPLETE, actor_id, lambda s, role, now: s.complete(now)
        )
        self._notify(
            NotificationKind.SESSION_COMPLETED,
            result,
            [result.session.mentor_id, result.session.mentee_id],
        )
        return result.session

    @BaseService.measure_operation("mark_missed")
    def mark_missed(self, session_id: str, actor_id: Optional[str] = None) -> MentorshipSession:
        """
        Move a scheduled or confirmed session to no_show.

        Idempotent: on a session that is already no_show this changes nothing,
        sends nothing and returns the session as it is.
        """
        result = self._transition(
            session_id, SessionAction.MARK_MISSED, actor_id, lambda s, role, now: s.mark_no_show()
        )
        self._notify(
            NotificationKind.SESSION_MISSED,
            result,
            [result.session.mentor_id, result.session.mentee_id],
        )
        return result.session

    @BaseService.measure_operation("reschedule")
    def reschedule(
        self,
        session_id: str,
        actor_id: str,
        new_scheduled_at: datetime,
        reason: Optional[str] = None,
        message: Optional[str] = None,
    ) -> MentorshipSession:
        """
        Mentor declines the requested time and proposes ``new_scheduled_at``.

        The availability check, the claim on the new time and the status change
        commit together or not at all.

        Raises:
            NotFoundException: Unknown session, or caller is not a participant
            InvalidTransitionException: Not a scheduled session, or caller is not its mentor
            ValidationException: New time not on a whole minute, or equal to the current one
            SlotUnavailableException: New time outside availability, in a break or past
            SlotConflictException: New time already taken
        """
        new_scheduled_at = ensure_utc(new_scheduled_at)
        now = self.clock.now()
        action = SessionAction.RESCHEDULE

        try:
            with self.transaction():
                session = self.repository.get_for_update(session_id)
                if session is None or not session.is_participant(actor_id):
                    raise NotFoundException(
                        "Session not found", details={"session_id": session_id}
                    )
                role = actor_role(session, actor_id, action)
                transition = resolve_transition(session.status_enum, action, role)

                day, wall_time = self.booking_validator.locate_instant(
                    session.mentor_id, new_scheduled_at
                )
                rule, starts_at = self.booking_validator.claim_and_verify(
                    session.mentor_id,
                    day,
                    wall_time,
                    session.duration_minutes,
                    exclude_session_id=session.id,
                )
                if starts_at == session.scheduled_at:
                    raise ValidationException(
                        "New time must differ from the current time",
                        details={"scheduled_at": starts_at.isoformat()},
                    )
                session.propose_new_time(starts_at, reason, message, now)
                session.timezone = rule.timezone
                session.status = transition.target.value
                try:
                    self.repository.flush()
                except IntegrityError as exc:
                    raise SlotConflictException(
                        details={
                            "mentor_id": session.mentor_id,
                            "scheduled_at": starts_at.isoformat(),
                        }
                    ) from exc
                except OperationalError as exc:
                    if is_lock_timeout(exc):
                        raise SlotClaimTimeoutException(settings.booking_claim_timeout_ms) from exc
                    raise
        except (SlotConflictException, SlotUnavailableException, SlotClaimTimeoutException) as exc:
            prometheus_metrics.record_booking_claim("reschedule", _claim_outcome(exc))
            raise

        prometheus_metrics.record_booking_claim("reschedule", "success")
        prometheus_metrics.record_transition(action.value, transition.target.value)
        self.log_operation(
            "reschedule",
            session_id=session_id,
            actor_id=actor_id,
            previous_scheduled_at=session.previous_scheduled_at.isoformat(),
            scheduled_at=session.scheduled_at.isoformat(),
        )
        self._notify(
            NotificationKind.SESSION_RESCHEDULED,
            TransitionResult(session=session, transition=transition, role=role, occurred_at=now),
            [session.mentee_id],
            actor_id=actor_id,
            reason=reason,
            message=message,
        )
        return session

    def respond_to_reschedule(
        self,
        session_id: str,
        actor_id: str,
        accept: bool,
        reason: Optional[str] = None,
    ) -> MentorshipSession:
        """Mentee's answer to a proposed new time."""
        if accept:
            return self.accept(session_id, actor_id)
        return self.decline(session_id, actor_id, reason)

    def update_status(
        self,
        session_id: str,
        actor_id: str,
        target: SessionStatus,
        reason: Optional[str] = None,
    ) -> MentorshipSession:
        """
        Move a session to ``target`` using the action the caller's role allows.

        A move to ``rescheduled`` needs a new time and is rejected here.
        """
        session = self.get_session(session_id, actor_id)
        role = actor_role(session, actor_id, SessionAction.ACCEPT)
        action = action_for_target(session.status_enum, target, role)

        if action == SessionAction.RESCHEDULE:
            raise ValidationException(
                "Rescheduling needs a new time; use the reschedule operation"
            )
        handlers: Dict[SessionAction, Callable[[], MentorshipSession]] = {
            SessionAction.ACCEPT: lambda: self.accept(session_id, actor_id),
            SessionAction.DECLINE: lambda: self.decline(session_id, actor_id, reason),
            SessionAction.CANCEL: lambda: self.cancel(session_id, actor_id, reason),
            SessionAction.START: lambda: self.start(session_id, actor_id),
            SessionAction.COMPLETE: lambda: self.complete(session_id, actor_id),
            SessionAction.MARK_MISSED: lambda: self.mark_missed(session_id, actor_id),
        }
        return handlers[action]()

    # Background sweep

    @BaseService.measure_operation("sweep_missed_sessions")
    def sweep_missed_sessions(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Close out sessions whose time has passed.

        - in_progress sessions whose scheduled end has passed become completed
        - scheduled or confirmed sessions whose end is more than the grace period
          in the past become no_show

        Safe to run repeatedly and concurrently: each session is re-read under
        its own transaction, and a session another sweeper already handled is
        counted as skipped.
        """
        now = ensure_utc(now) if now is not None else self.clock.now()
        grace = timedelta(minutes=settings.missed_session_grace_minutes)
        results = {"completed": 0, "missed": 0, "skipped": 0, "failed": 0}

        for session in self.repository.get_elapsed_in_progress(now):
            self._sweep_one(session.id, self.complete, "completed", results)

        for session in self.repository.get_missed_candidates(now, grace):
            self._sweep_one(session.id, self.mark_missed, "missed", results)

        logger.info(
            "Missed-session sweep finished",
            extra={"sweep_at": now.isoformat(), **results},
        )
        return results

    def _sweep_one(
        self,
        session_id: str,
        action: Callable[[str], MentorshipSession],
        bucket: str,
        results: Dict[str, int],
    ) -> None:
        try:
            action(session_id)
            results[bucket] += 1
        except DomainException as exc:
            results["skipped"] += 1
            logger.info(
                f"Sweep skipped session {session_id}: {exc.message}",
                extra={"session_id": session_id},
            )
        except Exception as exc:
            results["failed"] += 1
            logger.error(
                f"Sweep failed for session {session_id}: {exc}",
                extra={"session_id": session_id},
            )
