# backend/mentorship/schemas/session.py
"""
Session schemas.

A booking may name its start either as an absolute instant
(``scheduled_at``) or as a local ``date`` + ``time`` in the mentor's
availability timezone; the latter is what the slot listing returns.
"""

import datetime as dt
from typing import List, Literal, Optional

from pydantic import Field, field_validator, model_validator

from ..core.enums import SessionType
from ..models.session import SessionStatus
from ._strict_base import ORMResponseModel, StrictRequestModel
from .availability import _check_hhmm


class SessionCreate(StrictRequestModel):
    """Mentee's booking request."""

    mentor_id: str = Field(..., min_length=1, max_length=26)
    scheduled_at: Optional[dt.datetime] = Field(None, description="Absolute start instant")
    date: Optional[dt.date] = Field(None, description="Local date of the slot")
    time: Optional[str] = Field(None, description="Local slot start (HH:MM)")
    duration_minutes: int = Field(..., gt=0, description="Requested length in minutes")
    type: SessionType = SessionType.ONE_ON_ONE
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    meeting_link: Optional[str] = Field(None, max_length=500)
    location: Optional[str] = Field(None, max_length=255)
    mentee_notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("time")
    @classmethod
    def _validate_time(cls, v: Optional[str]) -> Optional[str]:
        return _check_hhmm(v, "time") if v is not None else v

    @field_validator("mentee_notes", "title", "description")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v else v

    @model_validator(mode="after")
    def _validate_start(self) -> "SessionCreate":
        has_instant = self.scheduled_at is not None
        has_local = self.date is not None or self.time is not None
        if has_instant == has_local:
            raise ValueError("Provide either scheduled_at or date and time")
        if has_local and (self.date is None or self.time is None):
            raise ValueError("date and time must be provided together")
        return self


class SessionStatusUpdate(StrictRequestModel):
    status: SessionStatus
    reason: Optional[str] = Field(None, max_length=1000)


class SessionReschedule(StrictRequestModel):
    new_scheduled_at: dt.datetime
    reason: Optional[str] = Field(None, max_length=1000)
    message: Optional[str] = Field(None, max_length=2000)


class RescheduleDecision(StrictRequestModel):
    decision: Literal["accept", "decline"]
    reason: Optional[str] = Field(None, max_length=1000)


class SessionCancel(StrictRequestModel):
    reason: Optional[str] = Field(None, max_length=1000)


class SessionResponse(ORMResponseModel):
    id: str
    mentor_id: str
    mentee_id: str
    scheduled_at: dt.datetime
    duration_minutes: int
    timezone: str
    status: SessionStatus
    type: str
    title: Optional[str] = None
    description: Optional[str] = None
    meeting_link: Optional[str] = None
    location: Optional[str] = None
    mentee_notes: Optional[str] = None
    requested_scheduled_at: dt.datetime
    previous_scheduled_at: Optional[dt.datetime] = None
    reschedule_reason: Optional[str] = None
    reschedule_message: Optional[str] = None
    reschedule_requested_at: Optional[dt.datetime] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[dt.datetime] = None
    cancelled_by_id: Optional[str] = None
    mentor_confirmed: bool
    mentee_confirmed: bool
    started_at: Optional[dt.datetime] = None
    ended_at: Optional[dt.datetime] = None
    created_at: dt.datetime
    updated_at: Optional[dt.datetime] = None


class SessionListResponse(ORMResponseModel):
    items: List[SessionResponse]
    total: int
    limit: int
    offset: int
