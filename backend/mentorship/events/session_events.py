"""Session domain events."""
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Optional

from ..core.enums import NotificationKind

if TYPE_CHECKING:
    from ..models.session import MentorshipSession


@dataclass
class SessionEvent:
    """Snapshot of a session taken right after a committed transition."""

    kind: NotificationKind
    session_id: str
    mentor_id: str
    mentee_id: str
    scheduled_at: datetime
    duration_minutes: int
    timezone: str
    status: str
    occurred_at: datetime
    actor_id: Optional[str] = None
    previous_scheduled_at: Optional[datetime] = None
    reason: Optional[str] = None
    message: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_session(
        cls,
        kind: NotificationKind,
        session: "MentorshipSession",
        occurred_at: datetime,
        *,
        actor_id: Optional[str] = None,
        reason: Optional[str] = None,
        message: Optional[str] = None,
        **extra: Any,
    ) -> "SessionEvent":
        return cls(
            kind=kind,
            session_id=session.id,
            mentor_id=session.mentor_id,
            mentee_id=session.mentee_id,
            scheduled_at=session.scheduled_at,
            duration_minutes=session.duration_minutes,
            timezone=session.timezone,
            status=session.status,
            occurred_at=occurred_at,
            actor_id=actor_id,
            previous_scheduled_at=session.previous_scheduled_at,
            reason=reason,
            message=message,
            extra=dict(extra),
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe payload: enums become values and datetimes ISO strings."""
        payload = asdict(self)
        payload["kind"] = self.kind.value
        for key, value in payload.items():
            if isinstance(value, datetime):
                payload[key] = value.isoformat()
        return payload
