# backend/mentorship/routes/v1/sessions.py
"""
Session routes - API v1

Versioned session endpoints under /api/v1/sessions.
All business logic delegated to BookingValidator and SessionService.

Endpoints:
    POST / - Book a slot (caller is the mentee)
    GET / - List the caller's sessions
    GET /{session_id} - Session details
    PATCH /{session_id}/status - Move a session to a new status
    PATCH /{session_id}/reschedule - Mentor proposes a new time
    POST /{session_id}/reschedule/respond - Mentee accepts or declines the proposal
    PATCH /{session_id}/confirm - Set the caller's attendance flag
    DELETE /{session_id} - Cancel a session
"""

import asyncio
import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from ...api.dependencies import get_booking_validator, get_current_user_id, get_session_service
from ...core.exceptions import DomainException
from ...models.session import MentorshipSession, SessionStatus
from ...schemas.session import (
    RescheduleDecision,
    SessionCancel,
    SessionCreate,
    SessionListResponse,
    SessionReschedule,
    SessionResponse,
    SessionStatusUpdate,
)
from ...services.booking_validator import SESSION_DETAIL_FIELDS, BookingValidator
from ...services.session_service import SessionService

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["sessions-v1"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def _to_response(session: MentorshipSession) -> SessionResponse:
    return SessionResponse.model_validate(session)


# ============================================================================
# SECTION 1: Collection routes
# ============================================================================


@router.post("", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    payload: SessionCreate,
    current_user_id: str = Depends(get_current_user_id),
    booking_validator: BookingValidator = Depends(get_booking_validator),
) -> SessionResponse:
    """
    Book a session with a mentor.

    The start is either an absolute ``scheduled_at`` or a local ``date`` +
    ``time`` as returned by the slot listing.
    """
    details = {field: getattr(payload, field) for field in SESSION_DETAIL_FIELDS}
    try:
        if payload.scheduled_at is not None:
            session = await asyncio.to_thread(
                booking_validator.book_at,
                payload.mentor_id,
                current_user_id,
                payload.scheduled_at,
                payload.duration_minutes,
                **details,
            )
        else:
            session = await asyncio.to_thread(
                booking_validator.book_slot,
                payload.mentor_id,
                current_user_id,
                payload.date,
                payload.time,
                payload.duration_minutes,
                **details,
            )
    except DomainException as e:
        handle_domain_exception(e)
    return _to_response(session)


@router.get("", response_model=SessionListResponse)
async def list_sessions(
    status_filter: Optional[SessionStatus] = Query(None, alias="status"),
    upcoming: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user_id: str = Depends(get_current_user_id),
    session_service: SessionService = Depends(get_session_service),
) -> SessionListResponse:
    """Sessions where the caller is mentor or mentee, soonest first."""
    items, total = await asyncio.to_thread(
        lambda: session_service.list_sessions(
            current_user_id, status=status_filter, upcoming=upcoming, limit=limit, offset=offset
        )
    )
    return SessionListResponse(
        items=[_to_response(s) for s in items], total=total, limit=limit, offset=offset
    )


# ============================================================================
# SECTION 2: Single-session routes
# ============================================================================


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str,
    current_user_id: str = Depends(get_current_user_id),
    session_service: SessionService = Depends(get_session_service),
) -> SessionResponse:
    try:
        session = await asyncio.to_thread(
            session_service.get_session, session_id, current_user_id
        )
    except DomainException as e:
        handle_domain_exception(e)
    return _to_response(session)


@router.patch("/{session_id}/status", response_model=SessionResponse)
async def update_session_status(
    session_id: str,
    payload: SessionStatusUpdate,
    current_user_id: str = Depends(get_current_user_id),
    session_service: SessionService = Depends(get_session_service),
) -> SessionResponse:
    """
    Move a session to ``status``.

    The caller's role decides which transition applies; a move the state
    machine does not allow is rejected with INVALID_TRANSITION.
    """
    try:
        session = await asyncio.to_thread(
            session_service.update_status,
            session_id,
            current_user_id,
            payload.status,
            payload.reason,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return _to_response(session)


@router.patch("/{session_id}/reschedule", response_model=SessionResponse)
async def reschedule_session(
    session_id: str,
    payload: SessionReschedule,
    current_user_id: str = Depends(get_current_user_id),
    session_service: SessionService = Depends(get_session_service),
) -> SessionResponse:
    """Mentor proposes a new time for a requested session."""
    try:
        session = await asyncio.to_thread(
            session_service.reschedule,
            session_id,
            current_user_id,
            payload.new_scheduled_at,
            payload.reason,
            payload.message,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return _to_response(session)


@router.post("/{session_id}/reschedule/respond", response_model=SessionResponse)
async def respond_to_reschedule(
    session_id: str,
    payload: RescheduleDecision,
    current_user_id: str = Depends(get_current_user_id),
    session_service: SessionService = Depends(get_session_service),
) -> SessionResponse:
    try:
        session = await asyncio.to_thread(
            session_service.respond_to_reschedule,
            session_id,
            current_user_id,
            payload.decision == "accept",
            payload.reason,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return _to_response(session)


@router.patch("/{session_id}/confirm", response_model=SessionResponse)
async def confirm_attendance(
    session_id: str,
    current_user_id: str = Depends(get_current_user_id),
    session_service: SessionService = Depends(get_session_service),
) -> SessionResponse:
    """Set the caller's attendance flag. The status does not change."""
    try:
        session = await asyncio.to_thread(
            session_service.confirm_attendance, session_id, current_user_id
        )
    except DomainException as e:
        handle_domain_exception(e)
    return _to_response(session)


@router.delete("/{session_id}", response_model=SessionResponse)
async def cancel_session(
    session_id: str,
    payload: Optional[SessionCancel] = Body(None),
    current_user_id: str = Depends(get_current_user_id),
    session_service: SessionService = Depends(get_session_service),
) -> SessionResponse:
    reason = payload.reason if payload else None
    try:
        session = await asyncio.to_thread(
            session_service.cancel, session_id, current_user_id, reason
        )
    except DomainException as e:
        handle_domain_exception(e)
    return _to_response(session)
