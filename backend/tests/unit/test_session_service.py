"""Session negotiation, attendance and sweep tests."""

from datetime import datetime, timedelta, timezone

import pytest

from mentorship.core.enums import NotificationKind
from mentorship.core.exceptions import (
    InvalidTransitionException,
    NotFoundException,
    SlotConflictException,
    SlotUnavailableException,
    ValidationException,
)
from mentorship.models.session import MentorshipSession, SessionStatus

from tests.conftest import MONDAY, make_session

UTC = timezone.utc
NINE = datetime(2030, 1, 7, 9, 0, tzinfo=UTC)
TEN = datetime(2030, 1, 7, 10, 0, tzinfo=UTC)


@pytest.fixture
def requested(booking_validator, monday_rule, mentor_id, mentee_id, notification_port):
    session = booking_validator.book_slot(mentor_id, mentee_id, MONDAY, "09:00", 30)
    notification_port.sent.clear()
    return session


@pytest.fixture
def confirmed(session_service, requested, mentor_id, notification_port):
    session = session_service.accept(requested.id, mentor_id)
    notification_port.sent.clear()
    return session


def _reload(db, session_id):
    db.expire_all()
    return db.get(MentorshipSession, session_id)


class TestAccept:
    def test_mentor_accepts_request(self, session_service, requested, mentor_id, mentee_id, notification_port):
        session = session_service.accept(requested.id, mentor_id)

        assert session.status == SessionStatus.CONFIRMED.value
        assert notification_port.kinds_for(mentee_id) == [NotificationKind.SESSION_CONFIRMED]

    def test_mentee_cannot_accept_own_request(self, db, session_service, requested, mentee_id):
        with pytest.raises(InvalidTransitionException):
            session_service.accept(requested.id, mentee_id)
        assert _reload(db, requested.id).status == SessionStatus.SCHEDULED.value

    def test_stranger_sees_not_found(self, db, session_service, requested, other_mentee_id):
        with pytest.raises(NotFoundException):
            session_service.cancel(requested.id, other_mentee_id)
        with pytest.raises(NotFoundException):
            session_service.accept(requested.id, other_mentee_id)
        with pytest.raises(NotFoundException):
            session_service.reschedule(requested.id, other_mentee_id, TEN)
        assert _reload(db, requested.id).status == SessionStatus.SCHEDULED.value

    def test_unknown_session(self, session_service, mentor_id):
        with pytest.raises(NotFoundException):
            session_service.accept("01HZZZZZZZZZZZZZZZZZZZZZZZ", mentor_id)


class TestDecline:
    def test_mentor_declines_with_reason(
        self, session_service, requested, mentor_id, mentee_id, notification_port, clock
    ):
        session = session_service.decline(requested.id, mentor_id, "Travelling")

        assert session.status == SessionStatus.CANCELLED.value
        assert session.cancellation_reason == "Travelling"
        assert session.cancelled_by_id == mentor_id
        assert session.cancelled_at == clock.now()
        assert notification_port.kinds_for(mentee_id) == [NotificationKind.SESSION_DECLINED]

    def test_declined_slot_can_be_booked_again(
        self, session_service, booking_validator, requested, mentor_id, other_mentee_id
    ):
        session_service.decline(requested.id, mentor_id)

        again = booking_validator.book_slot(mentor_id, other_mentee_id, MONDAY, "09:00", 30)
        assert again.status == SessionStatus.SCHEDULED.value


class TestScenarioC:
    def test_reschedule_then_mentee_accepts(
        self, session_service, requested, mentor_id, mentee_id, notification_port
    ):
        session = session_service.reschedule(
            requested.id, mentor_id, TEN, reason="Clash", message="Does ten work?"
        )

        assert session.status == SessionStatus.RESCHEDULED.value
        assert session.previous_scheduled_at == NINE
        assert session.scheduled_at == TEN
        assert session.requested_scheduled_at == NINE
        assert session.reschedule_reason == "Clash"
        assert session.reschedule_message == "Does ten work?"
        assert notification_port.kinds_for(mentee_id) == [NotificationKind.SESSION_RESCHEDULED]

        accepted = session_service.respond_to_reschedule(requested.id, mentee_id, accept=True)

        assert accepted.status == SessionStatus.CONFIRMED.value
        assert notification_port.kinds_for(mentor_id) == [NotificationKind.SESSION_CONFIRMED]

    def test_reschedule_then_mentee_declines(
        self, session_service, requested, mentor_id, mentee_id, notification_port
    ):
        session_service.reschedule(requested.id, mentor_id, TEN)

        declined = session_service.respond_to_reschedule(
            requested.id, mentee_id, accept=False, reason="Ten is too late"
        )

        assert declined.status == SessionStatus.CANCELLED.value
        assert declined.cancellation_reason == "Ten is too late"
        assert notification_port.kinds_for(mentor_id) == [NotificationKind.SESSION_DECLINED]

    def test_old_slot_is_released_and_new_slot_taken(
        self, session_service, availability_slots, requested, mentor_id
    ):
        session_service.reschedule(requested.id, mentor_id, TEN)

        slots = availability_slots(mentor_id)
        assert slots["09:00"] is True
        assert slots["10:00"] is False

    def test_mentor_cannot_answer_own_proposal(self, session_service, requested, mentor_id):
        session_service.reschedule(requested.id, mentor_id, TEN)

        with pytest.raises(InvalidTransitionException):
            session_service.accept(requested.id, mentor_id)


class TestRescheduleValidation:
    def test_scenario_d_confirmed_cannot_be_rescheduled(self, session_service, confirmed, mentor_id):
        with pytest.raises(InvalidTransitionException) as exc_info:
            session_service.reschedule(confirmed.id, mentor_id, TEN)
        assert exc_info.value.details["current_status"] == "confirmed"

    def test_mentee_cannot_reschedule(self, session_service, requested, mentee_id):
        with pytest.raises(InvalidTransitionException):
            session_service.reschedule(requested.id, mentee_id, TEN)

    def test_new_time_in_break_is_unavailable_and_nothing_changes(
        self, db, session_service, requested, mentor_id, notification_port
    ):
        lunch = datetime(2030, 1, 7, 12, 0, tzinfo=UTC)

        with pytest.raises(SlotUnavailableException):
            session_service.reschedule(requested.id, mentor_id, lunch)

        session = _reload(db, requested.id)
        assert session.status == SessionStatus.SCHEDULED.value
        assert session.scheduled_at == NINE
        assert session.previous_scheduled_at is None
        assert notification_port.sent == []

    def test_new_time_taken_by_another_session_conflicts(
        self, db, session_service, booking_validator, requested, mentor_id, other_mentee_id
    ):
        booking_validator.book_slot(mentor_id, other_mentee_id, MONDAY, "10:00", 30)

        with pytest.raises(SlotConflictException):
            session_service.reschedule(requested.id, mentor_id, TEN)
        assert _reload(db, requested.id).status == SessionStatus.SCHEDULED.value

    def test_new_time_must_differ(self, session_service, requested, mentor_id):
        with pytest.raises(ValidationException):
            session_service.reschedule(requested.id, mentor_id, NINE)

    def test_new_time_off_the_minute_is_rejected(self, db, session_service, requested, mentor_id, notification_port):
        with pytest.raises(ValidationException):
            session_service.reschedule(requested.id, mentor_id, NINE + timedelta(seconds=30))

        session = _reload(db, requested.id)
        assert session.status == SessionStatus.SCHEDULED.value
        assert session.scheduled_at == NINE
        assert session.previous_scheduled_at is None
        assert notification_port.sent == []

    def test_overlap_with_own_old_time_is_allowed(self, db, session_service, booking_validator, mentor_id, mentee_id, monday_rule):
        hour_long = booking_validator.book_slot(mentor_id, mentee_id, MONDAY, "09:00", 60)

        moved = session_service.reschedule(
            hour_long.id, mentor_id, datetime(2030, 1, 7, 9, 30, tzinfo=UTC)
        )
        assert moved.scheduled_at == datetime(2030, 1, 7, 9, 30, tzinfo=UTC)


class TestCancelAndAttendance:
    def test_mentee_cancels_confirmed_session(
        self, session_service, confirmed, mentor_id, mentee_id, notification_port
    ):
        session = session_service.cancel(confirmed.id, mentee_id, "Sick")

        assert session.status == SessionStatus.CANCELLED.value
        assert session.cancelled_by_id == mentee_id
        assert notification_port.kinds_for(mentor_id) == [NotificationKind.SESSION_CANCELLED]

    def test_cancelled_session_is_terminal(self, session_service, confirmed, mentor_id, mentee_id):
        session_service.cancel(confirmed.id, mentee_id)

        with pytest.raises(InvalidTransitionException):
            session_service.cancel(confirmed.id, mentor_id)
        with pytest.raises(InvalidTransitionException):
            session_service.mark_missed(confirmed.id)

    def test_confirm_attendance_sets_only_own_flag(
        self, session_service, confirmed, mentor_id, mentee_id, notification_port
    ):
        session = session_service.confirm_attendance(confirmed.id, mentee_id)

        assert session.status == SessionStatus.CONFIRMED.value
        assert session.mentee_confirmed is True
        assert session.mentor_confirmed is False

        session = session_service.confirm_attendance(confirmed.id, mentor_id)
        assert session.mentor_confirmed is True
        assert notification_port.sent == []

    def test_confirm_attendance_needs_confirmed_session(self, session_service, requested, mentee_id):
        with pytest.raises(InvalidTransitionException):
            session_service.confirm_attendance(requested.id, mentee_id)


class TestStartAndComplete:
    def test_start_records_time(self, session_service, confirmed, mentor_id, clock):
        session = session_service.start(confirmed.id, mentor_id)

        assert session.status == SessionStatus.IN_PROGRESS.value
        assert session.started_at == clock.now()

    def test_participants_cannot_complete(self, session_service, confirmed, mentor_id):
        session_service.start(confirmed.id, mentor_id)

        with pytest.raises(InvalidTransitionException):
            session_service.complete(confirmed.id, mentor_id)

    def test_system_completes(self, session_service, confirmed, mentor_id, mentee_id, notification_port):
        session_service.start(confirmed.id)
        session = session_service.complete(confirmed.id)

        assert session.status == SessionStatus.COMPLETED.value
        assert notification_port.kinds_for(mentor_id) == [NotificationKind.SESSION_COMPLETED]
        assert notification_port.kinds_for(mentee_id) == [NotificationKind.SESSION_COMPLETED]


class TestMarkMissed:
    def test_idempotent(self, db, session_service, confirmed, mentor_id, notification_port):
        first = session_service.mark_missed(confirmed.id)
        updated_at = first.updated_at
        sent = len(notification_port.sent)

        second = session_service.mark_missed(confirmed.id)

        assert second.status == SessionStatus.NO_SHOW.value
        assert second.updated_at == updated_at
        assert len(notification_port.sent) == sent == 2

    def test_participants_cannot_mark_missed(self, session_service, confirmed, mentor_id):
        with pytest.raises(InvalidTransitionException):
            session_service.mark_missed(confirmed.id, mentor_id)

    def test_not_valid_from_rescheduled(self, session_service, requested, mentor_id):
        session_service.reschedule(requested.id, mentor_id, TEN)

        with pytest.raises(InvalidTransitionException):
            session_service.mark_missed(requested.id)


class TestUpdateStatus:
    def test_confirmed_via_status(self, session_service, requested, mentor_id):
        assert session_service.update_status(
            requested.id, mentor_id, SessionStatus.CONFIRMED
        ).status == "confirmed"

    def test_cancelled_by_mentor_on_request_is_a_decline(
        self, session_service, requested, mentor_id, mentee_id, notification_port
    ):
        session_service.update_status(requested.id, mentor_id, SessionStatus.CANCELLED, "Busy")
        assert notification_port.kinds_for(mentee_id) == [NotificationKind.SESSION_DECLINED]

    def test_rescheduled_needs_a_time(self, session_service, requested, mentor_id):
        with pytest.raises(ValidationException):
            session_service.update_status(requested.id, mentor_id, SessionStatus.RESCHEDULED)

    def test_illegal_target(self, session_service, confirmed, mentor_id):
        with pytest.raises(InvalidTransitionException):
            session_service.update_status(confirmed.id, mentor_id, SessionStatus.SCHEDULED)

    def test_non_participant_sees_not_found(self, session_service, requested, other_mentee_id):
        with pytest.raises(NotFoundException):
            session_service.get_session(requested.id, other_mentee_id)

    def test_non_participant_cannot_update_status(self, db, session_service, requested, other_mentee_id):
        with pytest.raises(NotFoundException):
            session_service.update_status(requested.id, other_mentee_id, SessionStatus.CANCELLED)
        assert _reload(db, requested.id).status == SessionStatus.SCHEDULED.value


class TestSweep:
    def test_scenario_e_swept_once(
        self, db, session_service, confirmed, mentor_id, mentee_id, clock, notification_port
    ):
        # Ends 09:30; grace is two hours
        clock.set(datetime(2030, 1, 7, 11, 29, tzinfo=UTC))
        assert session_service.sweep_missed_sessions()["missed"] == 0

        clock.set(datetime(2030, 1, 7, 11, 31, tzinfo=UTC))
        first = session_service.sweep_missed_sessions()
        second = session_service.sweep_missed_sessions()

        assert first == {"completed": 0, "missed": 1, "skipped": 0, "failed": 0}
        assert second == {"completed": 0, "missed": 0, "skipped": 0, "failed": 0}
        assert _reload(db, confirmed.id).status == SessionStatus.NO_SHOW.value
        assert notification_port.kinds_for(mentor_id) == [NotificationKind.SESSION_MISSED]
        assert notification_port.kinds_for(mentee_id) == [NotificationKind.SESSION_MISSED]

    def test_scheduled_is_swept_too(self, db, session_service, requested, clock):
        clock.set(datetime(2030, 1, 8, tzinfo=UTC))

        assert session_service.sweep_missed_sessions()["missed"] == 1
        assert _reload(db, requested.id).status == SessionStatus.NO_SHOW.value

    def test_in_progress_is_completed(self, db, session_service, confirmed, clock):
        session_service.start(confirmed.id)
        clock.set(datetime(2030, 1, 7, 9, 45, tzinfo=UTC))

        results = session_service.sweep_missed_sessions()

        assert results["completed"] == 1
        assert _reload(db, confirmed.id).status == SessionStatus.COMPLETED.value

    def test_terminal_and_rescheduled_are_left_alone(
        self, db, session_service, mentor_id, mentee_id, clock
    ):
        long_ago = datetime(2029, 12, 1, 9, 0, tzinfo=UTC)
        for offset, status in enumerate(
            [SessionStatus.CANCELLED, SessionStatus.COMPLETED, SessionStatus.RESCHEDULED]
        ):
            make_session(db, mentor_id, mentee_id, long_ago + timedelta(hours=offset), status=status)

        assert session_service.sweep_missed_sessions() == {
            "completed": 0,
            "missed": 0,
            "skipped": 0,
            "failed": 0,
        }

    def test_explicit_now_overrides_clock(self, session_service, confirmed):
        results = session_service.sweep_missed_sessions(datetime(2030, 2, 1, tzinfo=UTC))
        assert results["missed"] == 1


class TestListSessions:
    def test_lists_for_both_parties(
        self, session_service, booking_validator, monday_rule, mentor_id, mentee_id, other_mentee_id
    ):
        booking_validator.book_slot(mentor_id, mentee_id, MONDAY, "10:00", 30)
        booking_validator.book_slot(mentor_id, other_mentee_id, MONDAY, "09:00", 30)

        items, total = session_service.list_sessions(mentor_id)
        assert total == 2
        assert [s.mentee_id for s in items] == [other_mentee_id, mentee_id]

        items, total = session_service.list_sessions(mentee_id)
        assert total == 1

    def test_status_filter_and_upcoming(self, db, session_service, mentor_id, mentee_id, clock):
        make_session(db, mentor_id, mentee_id, clock.now() - timedelta(days=1), status=SessionStatus.COMPLETED)
        make_session(db, mentor_id, mentee_id, clock.now() + timedelta(days=1))

        _, total = session_service.list_sessions(mentee_id, status=SessionStatus.COMPLETED)
        assert total == 1
        items, total = session_service.list_sessions(mentee_id, upcoming=True)
        assert total == 1
        assert items[0].status == SessionStatus.SCHEDULED.value
