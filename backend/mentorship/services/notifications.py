# backend/mentorship/services/notifications.py
"""
Outbound session notifications.

The state machine never talks to delivery directly. After a transition
commits, the owning service hands a SessionEvent to the SessionNotifier,
which fans it out to the recipients through a NotificationPort. Delivery
problems are logged and counted here and never reach the caller: a booking
that committed stays a success even if every notification fails.
"""

import logging
from typing import Any, Dict, Iterable, Protocol

from ..core.config import settings
from ..core.enums import NotificationKind
from ..events.session_events import SessionEvent
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)


class NotificationPort(Protocol):
    def notify(self, user_id: str, kind: NotificationKind, payload: Dict[str, Any]) -> None:
        """Fire-and-forget delivery of one notification to one user."""
        ...


class LoggingNotificationPort:
    """Writes notifications to the log. Used for local runs without a worker."""

    def notify(self, user_id: str, kind: NotificationKind, payload: Dict[str, Any]) -> None:
        logger.info(
            "Notification %s for user %s",
            kind.value,
            user_id,
            extra={"user_id": user_id, "kind": kind.value, "session_id": payload.get("session_id")},
        )


class CeleryNotificationPort:
    """
    Enqueues a delivery task owned by the notification subsystem.

    The task is sent by name so this service does not import the delivery code.
    """

    def __init__(self, celery_app: Any, task_name: str, queue: str = "notifications"):
        self._app = celery_app
        self._task_name = task_name
        self._queue = queue

    def notify(self, user_id: str, kind: NotificationKind, payload: Dict[str, Any]) -> None:
        self._app.send_task(
            self._task_name,
            kwargs={"user_id": user_id, "kind": kind.value, "payload": payload},
            queue=self._queue,
        )


class SessionNotifier:
    """Post-commit fan-out of session events to their recipients."""

    def __init__(self, port: NotificationPort, enabled: bool = True):
        self.port = port
        self.enabled = enabled

    def publish(self, event: SessionEvent, recipients: Iterable[str]) -> int:
        """
        Deliver ``event`` to each recipient.

        Returns the number of successful dispatches. Never raises.
        """
        kind = event.kind.value
        if not self.enabled:
            prometheus_metrics.record_notification(kind, "disabled")
            return 0

        payload = event.to_dict()
        sent = 0
        for user_id in dict.fromkeys(r for r in recipients if r):
            try:
                self.port.notify(user_id, event.kind, payload)
                sent += 1
                prometheus_metrics.record_notification(kind, "sent")
            except Exception as exc:
                prometheus_metrics.record_notification(kind, "failed")
                logger.error(
                    f"Failed to send {kind} notification for session {event.session_id}: {exc}",
                    extra={"session_id": event.session_id, "user_id": user_id, "kind": kind},
                )
        return sent


def build_default_notifier() -> SessionNotifier:
    """Notifier wired from settings: Celery in deployed environments, logging locally."""
    if settings.environment in ("local", "test"):
        port: NotificationPort = LoggingNotificationPort()
    else:
        from ..tasks.celery_app import celery_app

        port = CeleryNotificationPort(celery_app, settings.notification_task_name)
    return SessionNotifier(port, enabled=settings.notifications_enabled)
