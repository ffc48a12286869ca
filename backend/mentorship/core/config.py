# backend/mentorship/core/config.py
import logging
import os
from pathlib import Path
from typing import List, Literal

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


class Settings(BaseSettings):
    """Runtime configuration for the scheduling backend."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Literal["local", "development", "test", "staging", "production"] = Field(
        default="local", description="Deployment environment name"
    )
    log_level: str = Field(default="INFO", description="Root log level")

    # Database
    database_url: str = Field(
        default="sqlite+pysqlite:///./mentorship.db",
        description="SQLAlchemy URL (PostgreSQL in deployed environments)",
    )
    db_pool_size: int = Field(default=5, ge=1)
    db_max_overflow: int = Field(default=10, ge=0)
    db_pool_timeout: int = Field(default=5, ge=1, description="Seconds to wait for a connection")
    db_echo: bool = False

    # Booking / scheduling
    booking_claim_timeout_ms: int = Field(
        default=3000,
        description="Upper bound on waiting for the mentor/day claim before failing fast",
    )
    missed_session_grace_minutes: int = Field(
        default=120,
        description="Minutes after a session's scheduled end before it is swept to no_show",
    )
    allowed_session_durations: List[int] = Field(
        default_factory=lambda: [30, 60, 90, 120],
        description="Session lengths (minutes) a mentee may request",
    )
    default_slot_duration_minutes: int = 30
    min_slot_duration_minutes: int = 15
    max_slot_duration_minutes: int = 240

    # Background work
    celery_broker_url: str = Field(default="redis://localhost:6379/0")
    missed_session_sweep_interval_minutes: int = Field(default=15, ge=1)

    # Notifications / collaborators
    notifications_enabled: bool = True
    notification_task_name: str = Field(
        default="notifications.deliver",
        description="Task owned by the delivery subsystem; enqueued by name",
    )
    user_directory_url: str | None = Field(
        default=None, description="Base URL of the user service; unset disables lookups"
    )
    user_directory_timeout_seconds: float = 2.0

    @field_validator("booking_claim_timeout_ms", "missed_session_grace_minutes")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value

    @field_validator("allowed_session_durations")
    @classmethod
    def _durations_not_empty(cls, value: List[int]) -> List[int]:
        if not value:
            raise ValueError("allowed_session_durations cannot be empty")
        if any(v <= 0 for v in value):
            raise ValueError("session durations must be positive")
        return sorted(set(value))


settings = Settings()
