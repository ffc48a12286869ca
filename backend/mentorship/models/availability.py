# backend/mentorship/models/availability.py
"""
Availability rule model.

A rule describes one day of a mentor's declared availability in the
mentor's local wall-clock time. Recurring rules are keyed by day of week
(0 = Sunday ... 6 = Saturday); override rules are keyed by a specific
calendar date and fully replace the recurring rule for that date.
"""

from datetime import datetime, timezone
import logging

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    Index,
    Integer,
    String,
    Text,
    Time,
)

from ..core.enums import AvailabilityStatus
from ..core.ulid_helper import generate_ulid
from ..database import Base
from .types import UTCDateTime

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AvailabilityRule(Base):
    """
    One recurring or date-specific availability window for a mentor.

    ``breaks`` is a JSON list of ``{"start_time": "HH:MM", "end_time": "HH:MM",
    "reason": str | None}`` entries ordered by start time.
    """

    __tablename__ = "availability_rules"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    mentor_id = Column(String(26), nullable=False, index=True)

    is_recurring = Column(Boolean, nullable=False, default=True)
    day_of_week = Column(Integer, nullable=True)
    specific_date = Column(Date, nullable=True)

    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    slot_duration_minutes = Column(Integer, nullable=False, default=30)
    timezone = Column(String(64), nullable=False, default="UTC")
    breaks = Column(JSON, nullable=False, default=list)
    status = Column(String(20), nullable=False, default=AvailabilityStatus.AVAILABLE.value)
    notes = Column(Text, nullable=True)

    created_at = Column(UTCDateTime(), nullable=False, default=_utcnow)
    updated_at = Column(UTCDateTime(), nullable=True, onupdate=_utcnow)

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_availability_rules_time_order"),
        CheckConstraint("slot_duration_minutes > 0", name="ck_availability_rules_slot_positive"),
        CheckConstraint(
            "day_of_week IS NULL OR (day_of_week >= 0 AND day_of_week <= 6)",
            name="ck_availability_rules_day_of_week",
        ),
        CheckConstraint(
            "(is_recurring AND day_of_week IS NOT NULL AND specific_date IS NULL) OR "
            "(NOT is_recurring AND specific_date IS NOT NULL AND day_of_week IS NULL)",
            name="ck_availability_rules_key",
        ),
        CheckConstraint(
            "status IN ('available', 'unavailable')",
            name="ck_availability_rules_status",
        ),
    )

    @property
    def is_available(self) -> bool:
        return self.status == AvailabilityStatus.AVAILABLE.value

    def __repr__(self) -> str:
        key = f"dow={self.day_of_week}" if self.is_recurring else f"date={self.specific_date}"
        return (
            f"<AvailabilityRule {self.id}: mentor={self.mentor_id}, {key}, "
            f"{self.start_time}-{self.end_time}, status={self.status}>"
        )


# One recurring rule per weekday and one override per date for each mentor.
Index(
    "uq_availability_rules_mentor_weekday",
    AvailabilityRule.mentor_id,
    AvailabilityRule.day_of_week,
    unique=True,
    postgresql_where=AvailabilityRule.day_of_week.isnot(None),
    sqlite_where=AvailabilityRule.day_of_week.isnot(None),
)

Index(
    "uq_availability_rules_mentor_date",
    AvailabilityRule.mentor_id,
    AvailabilityRule.specific_date,
    unique=True,
    postgresql_where=AvailabilityRule.specific_date.isnot(None),
    sqlite_where=AvailabilityRule.specific_date.isnot(None),
)
