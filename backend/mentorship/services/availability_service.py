# backend/mentorship/services/availability_service.py
"""
Availability service.

Owns a mentor's availability rules and answers slot queries. Rule edits
never touch existing sessions: a narrowed window only changes what future
slot listings show.
"""

from datetime import date, time
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import AvailabilityStatus
from ..core.exceptions import NotFoundException, ValidationException
from ..core.timezone_utils import (
    is_valid_timezone,
    local_day_bounds_utc,
    minutes_of_day,
    parse_hhmm,
    weekday_index,
)
from ..models.availability import AvailabilityRule
from ..repositories.factory import RepositoryFactory
from ..schemas.availability import AvailabilityRuleUpsert
from .base import BaseService
from .slot_generator import Slot, generate_slots, resolve_rule

logger = logging.getLogger(__name__)


def validate_rule_window(
    start: time,
    end: time,
    slot_duration_minutes: int,
    breaks: List[dict],
) -> List[dict]:
    """
    Check the structural invariants of a rule and return normalized breaks.

    - start < end
    - slot length within the configured bounds and no longer than the window
    - every break nested in ``[start, end)``, non-empty and pairwise disjoint

    Raises:
        ValidationException: On the first violated invariant
    """
    window_start = minutes_of_day(start)
    window_end = minutes_of_day(end)
    if window_start >= window_end:
        raise ValidationException(
            "start_time must be before end_time",
            details={"start_time": start.strftime("%H:%M"), "end_time": end.strftime("%H:%M")},
        )

    if not (
        settings.min_slot_duration_minutes
        <= slot_duration_minutes
        <= settings.max_slot_duration_minutes
    ):
        raise ValidationException(
            f"slot_duration_minutes must be between {settings.min_slot_duration_minutes} "
            f"and {settings.max_slot_duration_minutes}",
            details={"slot_duration_minutes": slot_duration_minutes},
        )
    if slot_duration_minutes > window_end - window_start:
        raise ValidationException(
            "slot_duration_minutes cannot exceed the availability window",
            details={"slot_duration_minutes": slot_duration_minutes},
        )

    normalized = []
    for entry in breaks:
        b_start = parse_hhmm(entry["start_time"], "break start_time")
        b_end = parse_hhmm(entry["end_time"], "break end_time")
        normalized.append(
            {
                "start_time": b_start.strftime("%H:%M"),
                "end_time": b_end.strftime("%H:%M"),
                "reason": entry.get("reason"),
                "_span": (minutes_of_day(b_start), minutes_of_day(b_end)),
            }
        )
    normalized.sort(key=lambda b: b["_span"])

    previous_end = None
    for entry in normalized:
        b0, b1 = entry["_span"]
        if b0 >= b1:
            raise ValidationException(
                "Break start_time must be before its end_time", details={"break": entry["start_time"]}
            )
        if b0 < window_start or b1 > window_end:
            raise ValidationException(
                "Breaks must fall within the availability window",
                details={"break": entry["start_time"]},
            )
        if previous_end is not None and b0 < previous_end:
            raise ValidationException(
                "Breaks must not overlap", details={"break": entry["start_time"]}
            )
        previous_end = b1

    return [{k: v for k, v in entry.items() if k != "_span"} for entry in normalized]


class AvailabilityService(BaseService):
    """Mentor availability rules and slot generation."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.repository = RepositoryFactory.create_availability_repository(db)
        self.session_repository = RepositoryFactory.create_session_repository(db)

    @BaseService.measure_operation("upsert_rule")
    def upsert_rule(self, mentor_id: str, data: AvailabilityRuleUpsert) -> AvailabilityRule:
        """
        Create the rule for ``data``'s key or replace the existing one in place.

        The key is mentor + weekday for recurring rules and mentor + date for
        overrides.
        """
        if not is_valid_timezone(data.timezone):
            raise ValidationException(
                f"Unknown timezone: {data.timezone}", details={"timezone": data.timezone}
            )
        start = parse_hhmm(data.start_time, "start_time")
        end = parse_hhmm(data.end_time, "end_time")
        breaks = validate_rule_window(
            start, end, data.slot_duration_minutes, [b.model_dump() for b in data.breaks]
        )

        fields = {
            "is_recurring": data.is_recurring,
            "day_of_week": data.day_of_week,
            "specific_date": data.specific_date,
            "start_time": start,
            "end_time": end,
            "slot_duration_minutes": data.slot_duration_minutes,
            "timezone": data.timezone,
            "breaks": breaks,
            "status": data.status,
            "notes": data.notes,
        }

        with self.transaction():
            if data.is_recurring:
                existing = self.repository.get_recurring(mentor_id, data.day_of_week)
            else:
                existing = self.repository.get_override(mentor_id, data.specific_date)

            if existing:
                rule = self.repository.update(existing.id, **fields)
                created = False
            else:
                rule = self.repository.create(mentor_id=mentor_id, **fields)
                created = True

        self.log_operation(
            "upsert_rule",
            mentor_id=mentor_id,
            rule_id=rule.id,
            was_created=created,
            recurring=data.is_recurring,
        )
        return rule

    def list_rules(self, mentor_id: str) -> List[AvailabilityRule]:
        return self.repository.list_for_mentor(mentor_id)

    def _get_owned_rule(self, mentor_id: str, rule_id: str) -> AvailabilityRule:
        rule = self.repository.get_for_mentor(mentor_id, rule_id)
        if not rule:
            raise NotFoundException(
                "Availability rule not found", details={"rule_id": rule_id}
            )
        return rule

    @BaseService.measure_operation("set_rule_status")
    def set_rule_status(
        self, mentor_id: str, rule_id: str, status: AvailabilityStatus
    ) -> AvailabilityRule:
        """Open or close a rule's day without deleting the rule."""
        with self.transaction():
            rule = self._get_owned_rule(mentor_id, rule_id)
            rule.status = AvailabilityStatus(status).value
            self.repository.flush()
        self.log_operation("set_rule_status", mentor_id=mentor_id, rule_id=rule_id, status=rule.status)
        return rule

    @BaseService.measure_operation("delete_rule")
    def delete_rule(self, mentor_id: str, rule_id: str) -> None:
        with self.transaction():
            rule = self._get_owned_rule(mentor_id, rule_id)
            self.repository.delete(rule.id)
        self.log_operation("delete_rule", mentor_id=mentor_id, rule_id=rule_id)

    def get_rule_for_date(self, mentor_id: str, day: date) -> Optional[AvailabilityRule]:
        """The rule governing ``day``: its override if any, else the weekday rule."""
        return resolve_rule(self.repository.get_rules_for_date(mentor_id, day), day)

    @BaseService.measure_operation("get_slots")
    def get_slots(self, mentor_id: str, day: date) -> List[Slot]:
        """
        Candidate slots for ``mentor_id`` on the local date ``day``.

        Recomputed from the stored rules and sessions on every call.
        """
        rule = self.get_rule_for_date(mentor_id, day)
        if rule is None or not rule.is_available:
            logger.debug(
                "No availability",
                extra={"mentor_id": mentor_id, "day": day.isoformat(), "dow": weekday_index(day)},
            )
            return []

        day_start, day_end = local_day_bounds_utc(day, rule.timezone)
        sessions = self.session_repository.get_occupying_in_window(
            mentor_id, day_start, day_end
        )
        occupied = [(s.scheduled_at, s.ends_at) for s in sessions]
        return generate_slots(rule, day, occupied)

    def get_slot_listing(self, mentor_id: str, day: date) -> List[dict]:
        """Slots as ``{"time", "available"}`` dicts for the HTTP layer."""
        return [slot.to_dict() for slot in self.get_slots(mentor_id, day)]

