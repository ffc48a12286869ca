"""Booking validator tests against an in-memory database."""

from datetime import date, datetime, time, timedelta, timezone

import pytest

from mentorship.core.enums import NotificationKind
from mentorship.core.exceptions import (
    NotFoundException,
    ServiceException,
    SlotConflictException,
    SlotUnavailableException,
    ValidationException,
)
from mentorship.integrations.user_directory import UserDirectoryError
from mentorship.models.session import MentorshipSession, SessionStatus
from mentorship.services.availability_service import AvailabilityService
from mentorship.services.booking_validator import BookingValidator
from mentorship.services.notifications import SessionNotifier

from tests.conftest import MONDAY, make_rule, make_session

UTC = timezone.utc


def _count_sessions(db):
    return db.query(MentorshipSession).count()


class TestScenarioB:
    def test_second_booking_of_same_slot_conflicts(
        self, db, booking_validator, monday_rule, mentor_id, mentee_id, other_mentee_id
    ):
        first = booking_validator.book_slot(mentor_id, mentee_id, MONDAY, "09:00", 30)

        with pytest.raises(SlotConflictException) as exc_info:
            booking_validator.book_slot(mentor_id, other_mentee_id, MONDAY, "09:00", 30)

        assert exc_info.value.code == "SLOT_CONFLICT"
        assert exc_info.value.details["conflicting_session_id"] == first.id
        assert _count_sessions(db) == 1

    def test_next_slot_still_books(
        self, db, booking_validator, monday_rule, mentor_id, mentee_id, other_mentee_id
    ):
        booking_validator.book_slot(mentor_id, mentee_id, MONDAY, "09:00", 30)
        second = booking_validator.book_slot(mentor_id, other_mentee_id, MONDAY, "09:30", 30)

        assert second.status == SessionStatus.SCHEDULED.value
        assert second.scheduled_at == datetime(2030, 1, 7, 9, 30, tzinfo=UTC)
        assert _count_sessions(db) == 2


def test_booked_slot_shows_unavailable(db, booking_validator, monday_rule, mentor_id, mentee_id):
    booking_validator.book_slot(mentor_id, mentee_id, MONDAY, "10:00", 60)

    slots = {s.time: s.available for s in AvailabilityService(db).get_slots(mentor_id, MONDAY)}

    assert slots["10:00"] is False
    assert slots["10:30"] is False
    assert slots["09:30"] is True
    assert slots["11:00"] is True


def test_booking_records_requested_time_and_timezone(db, mentor_id, mentee_id, booking_validator):
    make_rule(db, mentor_id, day_of_week=1, tz="Europe/Berlin")

    session = booking_validator.book_slot(mentor_id, mentee_id, MONDAY, "09:00", 30)

    # Berlin is UTC+1 in January
    assert session.scheduled_at == datetime(2030, 1, 7, 8, 0, tzinfo=UTC)
    assert session.requested_scheduled_at == session.scheduled_at
    assert session.timezone == "Europe/Berlin"
    assert session.mentor_confirmed is False
    assert session.mentee_confirmed is False


def test_overlapping_longer_session_conflicts(
    db, booking_validator, monday_rule, mentor_id, mentee_id, other_mentee_id
):
    booking_validator.book_slot(mentor_id, mentee_id, MONDAY, "09:00", 60)

    with pytest.raises(SlotConflictException):
        booking_validator.book_slot(mentor_id, other_mentee_id, MONDAY, "09:30", 30)


def test_cancelled_session_frees_the_slot(
    db, booking_validator, monday_rule, mentor_id, mentee_id, other_mentee_id
):
    make_session(
        db,
        mentor_id,
        mentee_id,
        datetime(2030, 1, 7, 9, 0, tzinfo=UTC),
        status=SessionStatus.CANCELLED,
    )

    session = booking_validator.book_slot(mentor_id, other_mentee_id, MONDAY, "09:00", 30)

    assert session.status == SessionStatus.SCHEDULED.value


class TestUnavailable:
    @pytest.mark.parametrize(
        "start,duration",
        [("12:00", 30), ("11:30", 60), ("08:30", 30), ("16:30", 60), ("09:15", 30)],
    )
    def test_break_hours_and_boundaries(
        self, db, booking_validator, monday_rule, mentor_id, mentee_id, start, duration
    ):
        with pytest.raises(SlotUnavailableException) as exc_info:
            booking_validator.book_slot(mentor_id, mentee_id, MONDAY, start, duration)
        assert exc_info.value.code == "SLOT_UNAVAILABLE"
        assert _count_sessions(db) == 0

    def test_no_rule(self, booking_validator, mentor_id, mentee_id):
        with pytest.raises(SlotUnavailableException):
            booking_validator.book_slot(mentor_id, mentee_id, MONDAY, "09:00", 30)

    def test_unavailable_override(self, db, booking_validator, monday_rule, mentor_id, mentee_id):
        make_rule(db, mentor_id, specific_date=MONDAY, status="unavailable")

        with pytest.raises(SlotUnavailableException):
            booking_validator.book_slot(mentor_id, mentee_id, MONDAY, "09:00", 30)

    def test_past_slot(self, booking_validator, monday_rule, mentor_id, mentee_id, clock):
        clock.set(datetime(2030, 1, 7, 9, 10, tzinfo=UTC))

        with pytest.raises(SlotUnavailableException) as exc_info:
            booking_validator.book_slot(mentor_id, mentee_id, MONDAY, "09:00", 30)
        assert "past" in exc_info.value.message

        assert booking_validator.book_slot(mentor_id, mentee_id, MONDAY, "09:30", 30)

    def test_nonexistent_local_time(self, db, booking_validator, mentor_id, mentee_id):
        sunday = date(2030, 3, 10)
        make_rule(
            db, mentor_id, day_of_week=0, start=time(1, 0), end=time(4, 0), tz="America/New_York"
        )

        with pytest.raises(SlotUnavailableException):
            booking_validator.book_slot(mentor_id, mentee_id, sunday, "02:00", 30)


class TestValidation:
    @pytest.mark.parametrize("value", ["9:00", "25:00", "09:60", "nine", ""])
    def test_malformed_time(self, booking_validator, monday_rule, mentor_id, mentee_id, value):
        with pytest.raises(ValidationException) as exc_info:
            booking_validator.book_slot(mentor_id, mentee_id, MONDAY, value, 30)
        assert exc_info.value.code == "VALIDATION_ERROR"

    @pytest.mark.parametrize("duration", [0, 15, 45, 240])
    def test_duration_outside_allowed_set(
        self, booking_validator, monday_rule, mentor_id, mentee_id, duration
    ):
        with pytest.raises(ValidationException):
            booking_validator.book_slot(mentor_id, mentee_id, MONDAY, "09:00", duration)

    def test_self_booking(self, booking_validator, monday_rule, mentor_id):
        with pytest.raises(ValidationException):
            booking_validator.book_slot(mentor_id, mentor_id, MONDAY, "09:00", 30)

    def test_unknown_detail_field(self, booking_validator, monday_rule, mentor_id, mentee_id):
        with pytest.raises(ValidationException):
            booking_validator.book_slot(mentor_id, mentee_id, MONDAY, "09:00", 30, price=10)

    def test_validation_happens_before_any_write(
        self, db, booking_validator, monday_rule, mentor_id, mentee_id
    ):
        with pytest.raises(ValidationException):
            booking_validator.book_slot(mentor_id, mentee_id, MONDAY, "09:00", 45)
        assert _count_sessions(db) == 0


class TestUserDirectory:
    def test_unknown_mentee_is_not_found(
        self, db, clock, user_directory, monday_rule, mentor_id, mentee_id
    ):
        user_directory.add(mentor_id)
        validator = BookingValidator(db, clock=clock, user_directory=user_directory)

        with pytest.raises(NotFoundException) as exc_info:
            validator.book_slot(mentor_id, mentee_id, MONDAY, "09:00", 30)
        assert exc_info.value.details == {"mentee_id": mentee_id}

    def test_known_users_book(self, db, clock, user_directory, monday_rule, mentor_id, mentee_id):
        user_directory.add(mentor_id)
        user_directory.add(mentee_id)
        validator = BookingValidator(db, clock=clock, user_directory=user_directory)

        assert validator.book_slot(mentor_id, mentee_id, MONDAY, "09:00", 30)
        assert user_directory.lookups == [mentor_id, mentee_id]

    def test_directory_outage_is_a_service_error(
        self, db, clock, monday_rule, mentor_id, mentee_id
    ):
        class BrokenDirectory:
            def get_user(self, user_id):
                raise UserDirectoryError("timeout")

        validator = BookingValidator(db, clock=clock, user_directory=BrokenDirectory())

        with pytest.raises(ServiceException) as exc_info:
            validator.book_slot(mentor_id, mentee_id, MONDAY, "09:00", 30)
        assert exc_info.value.code == "USER_DIRECTORY_UNAVAILABLE"


class TestNotifications:
    def test_mentor_is_notified_of_request(
        self, booking_validator, notification_port, monday_rule, mentor_id, mentee_id
    ):
        session = booking_validator.book_slot(mentor_id, mentee_id, MONDAY, "09:00", 30)

        assert notification_port.kinds_for(mentor_id) == [NotificationKind.SESSION_REQUESTED]
        assert notification_port.kinds_for(mentee_id) == []
        payload = notification_port.sent[0][2]
        assert payload["session_id"] == session.id
        assert payload["kind"] == "session_requested"
        assert payload["scheduled_at"] == "2030-01-07T09:00:00+00:00"

    def test_notification_failure_does_not_fail_booking(
        self, db, clock, notification_port, monday_rule, mentor_id, mentee_id
    ):
        notification_port.fail = True
        validator = BookingValidator(
            db, clock=clock, notifier=SessionNotifier(notification_port)
        )

        session = validator.book_slot(mentor_id, mentee_id, MONDAY, "09:00", 30)

        assert session.id
        assert _count_sessions(db) == 1

    def test_rejected_booking_sends_nothing(
        self, booking_validator, notification_port, monday_rule, mentor_id, mentee_id
    ):
        with pytest.raises(SlotUnavailableException):
            booking_validator.book_slot(mentor_id, mentee_id, MONDAY, "12:00", 30)
        assert notification_port.sent == []


class TestBookAt:
    def test_instant_maps_to_local_slot(self, db, booking_validator, mentor_id, mentee_id):
        make_rule(db, mentor_id, day_of_week=1, tz="America/New_York")

        session = booking_validator.book_at(
            mentor_id, mentee_id, datetime(2030, 1, 7, 14, 0, tzinfo=UTC), 60
        )

        assert session.timezone == "America/New_York"
        assert session.scheduled_at == datetime(2030, 1, 7, 14, 0, tzinfo=UTC)

    def test_naive_instant_is_utc(self, booking_validator, monday_rule, mentor_id, mentee_id):
        session = booking_validator.book_at(mentor_id, mentee_id, datetime(2030, 1, 7, 9, 0), 30)
        assert session.scheduled_at == datetime(2030, 1, 7, 9, 0, tzinfo=UTC)

    def test_instant_without_rule(self, booking_validator, monday_rule, mentor_id, mentee_id):
        tuesday_nine = datetime(2030, 1, 8, 9, 0, tzinfo=UTC)
        with pytest.raises(SlotUnavailableException):
            booking_validator.book_at(mentor_id, mentee_id, tuesday_nine, 30)

    def test_details_are_stored(self, booking_validator, monday_rule, mentor_id, mentee_id):
        session = booking_validator.book_at(
            mentor_id,
            mentee_id,
            datetime(2030, 1, 7, 9, 0, tzinfo=UTC) + timedelta(hours=1),
            30,
            title="Career chat",
            mentee_notes="Resume review",
        )
        assert session.title == "Career chat"
        assert session.mentee_notes == "Resume review"
        assert session.type == "one_on_one"

    @pytest.mark.parametrize(
        "instant",
        [
            datetime(2030, 1, 7, 9, 0, 45, tzinfo=UTC),
            datetime(2030, 1, 7, 9, 0, 0, 500, tzinfo=UTC),
        ],
    )
    def test_instant_off_the_minute_is_rejected(
        self, db, booking_validator, monday_rule, mentor_id, mentee_id, instant
    ):
        with pytest.raises(ValidationException):
            booking_validator.book_at(mentor_id, mentee_id, instant, 30)
        assert _count_sessions(db) == 0

    def test_repeated_dst_hour_only_books_first_occurrence(
        self, db, booking_validator, mentor_id, mentee_id
    ):
        fall_back = date(2030, 11, 3)
        make_rule(
            db, mentor_id, specific_date=fall_back, start=time(0, 0), end=time(4, 0), tz="America/New_York"
        )

        # 01:30 happens twice in New York that night: 05:30 UTC (EDT) and 06:30 UTC (EST).
        with pytest.raises(SlotUnavailableException):
            booking_validator.book_at(mentor_id, mentee_id, datetime(2030, 11, 3, 6, 30, tzinfo=UTC), 30)

        session = booking_validator.book_at(
            mentor_id, mentee_id, datetime(2030, 11, 3, 5, 30, tzinfo=UTC), 30
        )
        assert session.scheduled_at == datetime(2030, 11, 3, 5, 30, tzinfo=UTC)
