"""Celery tasks for session lifecycle housekeeping."""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Callable, Optional, ParamSpec, Protocol, TypedDict, TypeVar, cast

from sqlalchemy.orm import Session

from mentorship.core.clock import Clock
from mentorship.database import get_db
from mentorship.services.notifications import SessionNotifier, build_default_notifier
from mentorship.services.session_service import SessionService
from mentorship.tasks.beat_schedule import SWEEP_TASK_NAME
from mentorship.tasks.celery_app import BaseTask, celery_app

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R", covariant=True)


class TaskWrapper(Protocol[P, R]):
    def __call__(self, *args: P.args, **kwargs: P.kwargs) -> R:
        ...

    def delay(self, *args: P.args, **kwargs: P.kwargs) -> Any:
        ...

    def apply_async(self, *args: Any, **kwargs: Any) -> Any:
        ...


def typed_task(
    *task_args: Any, **task_kwargs: Any
) -> Callable[[Callable[P, R]], TaskWrapper[P, R]]:
    """Return a typed Celery task decorator for mypy."""
    return cast(
        Callable[[Callable[P, R]], TaskWrapper[P, R]],
        celery_app.task(*task_args, **task_kwargs),
    )


class SweepResults(TypedDict):
    completed: int
    missed: int
    skipped: int
    failed: int
    processed_at: str


def run_missed_session_sweep(
    db: Session,
    *,
    clock: Optional[Clock] = None,
    notifier: Optional[SessionNotifier] = None,
    now: Optional[datetime] = None,
) -> SweepResults:
    """Sweep with an explicit session; the Celery task and tests both go through here."""
    service = SessionService(db, clock=clock, notifier=notifier)
    swept_at = now or service.clock.now()
    counts = service.sweep_missed_sessions(swept_at)
    return {
        "completed": counts["completed"],
        "missed": counts["missed"],
        "skipped": counts["skipped"],
        "failed": counts["failed"],
        "processed_at": swept_at.isoformat(),
    }


@typed_task(base=BaseTask, name=SWEEP_TASK_NAME)
def sweep_missed_sessions() -> SweepResults:
    """
    Periodic sweep: close elapsed in-progress sessions and mark overdue
    scheduled/confirmed sessions as no_show.
    """
    db: Optional[Session] = None
    try:
        db = cast(Session, next(get_db()))
        return run_missed_session_sweep(db, notifier=build_default_notifier())
    finally:
        if db is not None:
            db.close()
