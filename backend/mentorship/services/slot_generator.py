# backend/mentorship/services/slot_generator.py
"""
Slot generation.

Pure functions: given the rules that could apply to one calendar date and
the mentor's occupied intervals, produce the ordered list of candidate
slots. No database access happens here so the same logic backs the slot
listing and the booking-time re-check.

Rule windows and breaks are wall-clock times in the rule's timezone.
Occupied intervals are absolute UTC instants. Each slot is converted to
UTC before the session overlap test, so a session booked from another
timezone still blocks the right slots.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Iterable, List, Optional, Protocol, Sequence, Tuple

from ..core.enums import AvailabilityStatus
from ..core.timezone_utils import (
    format_hhmm,
    local_to_utc,
    minutes_of_day,
    parse_hhmm,
    weekday_index,
)


class RuleLike(Protocol):
    is_recurring: bool
    day_of_week: Optional[int]
    specific_date: Optional[date]
    start_time: time
    end_time: time
    slot_duration_minutes: int
    timezone: str
    breaks: Any
    status: str


Interval = Tuple[datetime, datetime]


@dataclass(frozen=True)
class Slot:
    """A candidate slot. ``time`` is the local HH:MM start on the requested date."""

    time: str
    available: bool
    starts_at: datetime
    ends_at: datetime

    def to_dict(self) -> dict:
        return {"time": self.time, "available": self.available}


def resolve_rule(rules: Iterable[RuleLike], day: date) -> Optional[RuleLike]:
    """
    Pick the rule governing ``day``.

    An override whose ``specific_date`` equals ``day`` wins outright, even when
    it marks the day unavailable. Otherwise the recurring rule for the weekday
    applies (0 = Sunday ... 6 = Saturday).
    """
    recurring = None
    dow = weekday_index(day)
    for rule in rules:
        if not rule.is_recurring and rule.specific_date == day:
            return rule
        if rule.is_recurring and rule.day_of_week == dow:
            recurring = rule
    return recurring


def break_minutes(rule: RuleLike) -> List[Tuple[int, int]]:
    """Breaks as ``(start, end)`` minute-of-day pairs, ordered by start."""
    spans = []
    for entry in rule.breaks or []:
        start = minutes_of_day(parse_hhmm(entry["start_time"], "break start_time"))
        end = minutes_of_day(parse_hhmm(entry["end_time"], "break end_time"))
        spans.append((start, end))
    return sorted(spans)


def _overlaps(a_start: Any, a_end: Any, b_start: Any, b_end: Any) -> bool:
    return a_start < b_end and b_start < a_end


def generate_slots(
    rule: Optional[RuleLike],
    day: date,
    occupied: Sequence[Interval] = (),
) -> List[Slot]:
    """
    Partition the rule's window on ``day`` into fixed-width slots.

    - No rule, or an unavailable rule, yields an empty list.
    - Trailing time shorter than one slot is dropped; a window shorter than
      one slot yields an empty list.
    - Slots touching a break or an occupied interval stay in the list with
      ``available=False``.
    - Local times that do not exist on ``day`` (spring-forward gap) are skipped.
    """
    if rule is None or rule.status != AvailabilityStatus.AVAILABLE.value:
        return []

    step = rule.slot_duration_minutes
    if step <= 0:
        return []

    window_start = minutes_of_day(rule.start_time)
    window_end = minutes_of_day(rule.end_time)
    breaks = break_minutes(rule)

    slots: List[Slot] = []
    minute = window_start
    while minute + step <= window_end:
        wall = time(minute // 60, minute % 60)
        starts_at = local_to_utc(day, wall, rule.timezone)
        if starts_at is not None:
            ends_at = starts_at + timedelta(minutes=step)
            in_break = any(_overlaps(minute, minute + step, b0, b1) for b0, b1 in breaks)
            booked = any(_overlaps(starts_at, ends_at, s0, s1) for s0, s1 in occupied)
            slots.append(
                Slot(
                    time=format_hhmm(wall),
                    available=not in_break and not booked,
                    starts_at=starts_at,
                    ends_at=ends_at,
                )
            )
        minute += step
    return slots


def booking_window_violation(
    rule: Optional[RuleLike], wall_time: time, duration_minutes: int
) -> Optional[str]:
    """
    Explain why ``[wall_time, wall_time + duration)`` cannot be booked under ``rule``.

    Returns None when the interval starts on a slot boundary, lies inside the
    window and avoids every break. Sessions may span several consecutive slots.
    """
    if rule is None:
        return "Mentor has no availability on this date"
    if rule.status != AvailabilityStatus.AVAILABLE.value:
        return "Mentor is unavailable on this date"

    start = minutes_of_day(wall_time)
    end = start + duration_minutes
    window_start = minutes_of_day(rule.start_time)
    window_end = minutes_of_day(rule.end_time)

    if start < window_start or end > window_end:
        return "Requested time is outside the mentor's availability"
    if (start - window_start) % rule.slot_duration_minutes != 0:
        return "Requested time does not start on a slot boundary"
    for b0, b1 in break_minutes(rule):
        if _overlaps(start, end, b0, b1):
            return "Requested time overlaps a break"
    return None
