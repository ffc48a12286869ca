# backend/mentorship/api/dependencies/auth.py
"""
Acting-user resolution.

Authentication happens upstream; the gateway forwards the verified user id
in the ``X-User-Id`` header.
"""

from typing import Optional

from fastapi import Header, HTTPException, status


def get_current_user_id(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> str:
    """Return the caller's user id or reject the request with 401."""
    user_id = (x_user_id or "").strip()
    if not user_id or len(user_id) > 26:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "message": "Missing or malformed X-User-Id header",
                "code": "UNAUTHENTICATED",
                "details": {},
            },
        )
    return user_id
