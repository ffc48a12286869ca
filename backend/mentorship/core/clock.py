# backend/mentorship/core/clock.py
"""
Injectable time source.

Everything that asks "is this in the past?" or "has the grace period
elapsed?" goes through a Clock so the sweep and past-slot checks are
deterministic under test.
"""

from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        """Return the current instant as a timezone-aware UTC datetime."""
        ...


class SystemClock:
    """Wall-clock implementation used by the running service."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


system_clock = SystemClock()
