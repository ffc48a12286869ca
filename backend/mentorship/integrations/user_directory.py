"""User directory integration.

Scheduling never owns user records. It asks the user service who a mentor
or mentee is, to reject bookings for unknown users and to address
notifications.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Dict, Optional, Protocol

import httpx

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserRecord:
    id: str
    display_name: str
    email: Optional[str] = None
    push_token: Optional[str] = None
    timezone: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "UserRecord":
        return cls(
            id=str(payload["id"]),
            display_name=payload.get("displayName") or payload.get("display_name") or "",
            email=payload.get("email"),
            push_token=payload.get("pushToken") or payload.get("push_token"),
            timezone=payload.get("timezone"),
        )


class UserDirectory(Protocol):
    def get_user(self, user_id: str) -> Optional[UserRecord]:
        """Return the user, or None if no such user exists."""
        ...


class UserDirectoryError(RuntimeError):
    """Raised when the user service cannot answer."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class HttpUserDirectory:
    """HTTP client for the user service (``GET {base}/users/{id}``)."""

    def __init__(self, *, base_url: str, timeout: float = 2.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        url = f"{self._base_url}/users/{user_id}"
        try:
            with httpx.Client(timeout=self._timeout) as client:
                response = client.get(url, headers={"Accept": "application/json"})
        except httpx.TransportError as exc:
            logger.error("User directory unreachable for %s: %s", user_id, exc)
            raise UserDirectoryError(f"User directory unreachable: {exc}") from exc

        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            logger.error(
                "User directory error %s for %s: %s",
                response.status_code,
                user_id,
                response.text[:500],
            )
            raise UserDirectoryError(
                f"User directory returned {response.status_code}",
                status_code=response.status_code,
            )

        return UserRecord.from_payload(response.json())
