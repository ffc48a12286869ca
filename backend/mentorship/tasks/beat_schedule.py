# backend/mentorship/tasks/beat_schedule.py
"""
Celery Beat schedule.

The missed-session sweep is idempotent, so overlapping runs and a beat
restart that fires an extra run are harmless.
"""

from datetime import timedelta
from typing import Any, Dict

from mentorship.core.config import settings

SWEEP_TASK_NAME = "mentorship.tasks.session_tasks.sweep_missed_sessions"


def get_beat_schedule() -> Dict[str, Dict[str, Any]]:
    interval = timedelta(minutes=settings.missed_session_sweep_interval_minutes)
    return {
        "sweep-missed-sessions": {
            "task": SWEEP_TASK_NAME,
            "schedule": interval,
            "options": {
                "queue": "scheduling",
                # A sweep older than one interval is superseded by the next one
                "expires": int(interval.total_seconds()),
            },
        },
    }
