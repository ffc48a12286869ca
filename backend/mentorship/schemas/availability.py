# backend/mentorship/schemas/availability.py
"""
Availability schemas.

Times are local wall-clock ``HH:MM`` strings in the rule's timezone. Format
is checked here; the cross-field invariants (break nesting, overlap, slot
length vs. window) are enforced by the availability service so direct
service callers get the same guarantees.
"""

from datetime import date, time
import re
from typing import List, Literal, Optional

from pydantic import Field, field_validator, model_validator

from ..core.config import settings
from ._strict_base import ORMResponseModel, StrictModel, StrictRequestModel

HHMM_REGEX = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def _check_hhmm(value: str, field_name: str) -> str:
    if not isinstance(value, str) or not HHMM_REGEX.fullmatch(value):
        raise ValueError(f"{field_name} must be an HH:MM time")
    return value


def _time_to_hhmm(value: object) -> object:
    if isinstance(value, time):
        return value.strftime("%H:%M")
    return value


class BreakPeriod(StrictRequestModel):
    """A break inside an availability window."""

    start_time: str = Field(..., description="Break start (HH:MM)")
    end_time: str = Field(..., description="Break end (HH:MM)")
    reason: Optional[str] = Field(None, max_length=200)

    @field_validator("start_time", "end_time")
    @classmethod
    def _validate_time(cls, v: str) -> str:
        return _check_hhmm(v, "break time")


class AvailabilityRuleUpsert(StrictRequestModel):
    """
    Create or replace a mentor's rule for one weekday or one date.

    Exactly one of ``day_of_week`` (0 = Sunday ... 6 = Saturday, recurring) or
    ``specific_date`` (override) must be supplied.
    """

    day_of_week: Optional[int] = Field(None, ge=0, le=6)
    specific_date: Optional[date] = None
    start_time: str = Field(..., description="Window start (HH:MM)")
    end_time: str = Field(..., description="Window end (HH:MM)")
    slot_duration_minutes: int = Field(
        default_factory=lambda: settings.default_slot_duration_minutes,
        description="Slot length in minutes",
    )
    timezone: str = Field("UTC", description="IANA timezone name")
    breaks: List[BreakPeriod] = Field(default_factory=list)
    status: Literal["available", "unavailable"] = "available"
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("start_time", "end_time")
    @classmethod
    def _validate_time(cls, v: str) -> str:
        return _check_hhmm(v, "time")

    @model_validator(mode="after")
    def _validate_key(self) -> "AvailabilityRuleUpsert":
        if (self.day_of_week is None) == (self.specific_date is None):
            raise ValueError("Provide exactly one of day_of_week or specific_date")
        return self

    @property
    def is_recurring(self) -> bool:
        return self.day_of_week is not None


class RuleStatusUpdate(StrictRequestModel):
    status: Literal["available", "unavailable"]


class BreakPeriodResponse(StrictModel):
    start_time: str
    end_time: str
    reason: Optional[str] = None


class AvailabilityRuleResponse(ORMResponseModel):
    id: str
    mentor_id: str
    is_recurring: bool
    day_of_week: Optional[int] = None
    specific_date: Optional[date] = None
    start_time: str
    end_time: str
    slot_duration_minutes: int
    timezone: str
    breaks: List[BreakPeriodResponse]
    status: str
    notes: Optional[str] = None

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _format_time(cls, v: object) -> object:
        return _time_to_hhmm(v)


class SlotResponse(StrictModel):
    """One candidate slot: local wall-clock start and whether it can be booked."""

    time: str
    available: bool
