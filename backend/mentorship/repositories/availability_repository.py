# backend/mentorship/repositories/availability_repository.py
"""
Availability rule queries.

Rules are few per mentor (at most seven recurring plus a handful of
overrides), so lookups load the candidate rows and let the slot generator
choose between them.
"""

from datetime import date
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..core.timezone_utils import weekday_index
from ..models.availability import AvailabilityRule
from .base_repository import BaseRepository


class AvailabilityRepository(BaseRepository[AvailabilityRule]):
    def __init__(self, db: Session):
        super().__init__(db, AvailabilityRule)

    def get_rules_for_date(self, mentor_id: str, day: date) -> List[AvailabilityRule]:
        """Return the override for ``day`` and the recurring rule for its weekday, if any."""
        query = self._build_query().filter(
            AvailabilityRule.mentor_id == mentor_id,
            or_(
                AvailabilityRule.specific_date == day,
                AvailabilityRule.day_of_week == weekday_index(day),
            ),
        )
        return self._execute_query(query)

    def list_for_mentor(self, mentor_id: str) -> List[AvailabilityRule]:
        query = (
            self._build_query()
            .filter(AvailabilityRule.mentor_id == mentor_id)
            .order_by(
                AvailabilityRule.is_recurring.desc(),
                AvailabilityRule.day_of_week,
                AvailabilityRule.specific_date,
                AvailabilityRule.start_time,
            )
        )
        return self._execute_query(query)

    def get_recurring(self, mentor_id: str, day_of_week: int) -> Optional[AvailabilityRule]:
        return self.find_one_by(mentor_id=mentor_id, day_of_week=day_of_week)

    def get_override(self, mentor_id: str, specific_date: date) -> Optional[AvailabilityRule]:
        return self.find_one_by(mentor_id=mentor_id, specific_date=specific_date)

    def get_for_mentor(self, mentor_id: str, rule_id: str) -> Optional[AvailabilityRule]:
        return self.find_one_by(mentor_id=mentor_id, id=rule_id)

    def get_timezones(self, mentor_id: str) -> List[str]:
        """Distinct timezones the mentor has declared availability in."""
        rows = (
            self.db.query(AvailabilityRule.timezone)
            .filter(AvailabilityRule.mentor_id == mentor_id)
            .distinct()
            .all()
        )
        return sorted(row[0] for row in rows)
