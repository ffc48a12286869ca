"""Domain events emitted after session transitions commit."""

from .session_events import SessionEvent

__all__ = ["SessionEvent"]
