# backend/mentorship/routes/v1/availability.py
"""
Availability routes - API v1

Versioned availability endpoints under /api/v1/availability.
All business logic delegated to AvailabilityService.

Endpoints:
    GET /{mentor_id}/rules - List a mentor's rules
    PUT /{mentor_id}/rules - Create or replace the rule for a weekday or date
    PATCH /{mentor_id}/rules/{rule_id}/status - Open or close a rule's day
    DELETE /{mentor_id}/rules/{rule_id} - Delete a rule
    GET /{mentor_id}/{date} - Candidate slots on a local date
"""

import asyncio
from datetime import date
import logging
from typing import List, NoReturn

from fastapi import APIRouter, Depends, HTTPException, Response, status

from ...api.dependencies import get_availability_service, get_current_user_id
from ...core.exceptions import DomainException
from ...schemas.availability import (
    AvailabilityRuleResponse,
    AvailabilityRuleUpsert,
    RuleStatusUpdate,
    SlotResponse,
)
from ...services.availability_service import AvailabilityService

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["availability-v1"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def _require_owner(mentor_id: str, current_user_id: str) -> None:
    if mentor_id != current_user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "message": "Only the mentor can change their availability",
                "code": "FORBIDDEN",
                "details": {"mentor_id": mentor_id},
            },
        )


# ============================================================================
# Rules
# ============================================================================


@router.get("/{mentor_id}/rules", response_model=List[AvailabilityRuleResponse])
async def list_rules(
    mentor_id: str,
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> List[AvailabilityRuleResponse]:
    """List a mentor's recurring rules and date overrides."""
    rules = await asyncio.to_thread(availability_service.list_rules, mentor_id)
    return [AvailabilityRuleResponse.model_validate(rule) for rule in rules]


@router.put("/{mentor_id}/rules", response_model=AvailabilityRuleResponse)
async def upsert_rule(
    mentor_id: str,
    payload: AvailabilityRuleUpsert,
    current_user_id: str = Depends(get_current_user_id),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityRuleResponse:
    """
    Create or replace the rule for one weekday (recurring) or one date (override).

    Existing sessions are never modified by a rule change.
    """
    _require_owner(mentor_id, current_user_id)
    try:
        rule = await asyncio.to_thread(availability_service.upsert_rule, mentor_id, payload)
    except DomainException as e:
        handle_domain_exception(e)
    return AvailabilityRuleResponse.model_validate(rule)


@router.patch("/{mentor_id}/rules/{rule_id}/status", response_model=AvailabilityRuleResponse)
async def set_rule_status(
    mentor_id: str,
    rule_id: str,
    payload: RuleStatusUpdate,
    current_user_id: str = Depends(get_current_user_id),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityRuleResponse:
    _require_owner(mentor_id, current_user_id)
    try:
        rule = await asyncio.to_thread(
            availability_service.set_rule_status, mentor_id, rule_id, payload.status
        )
    except DomainException as e:
        handle_domain_exception(e)
    return AvailabilityRuleResponse.model_validate(rule)


@router.delete("/{mentor_id}/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rule(
    mentor_id: str,
    rule_id: str,
    current_user_id: str = Depends(get_current_user_id),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> Response:
    _require_owner(mentor_id, current_user_id)
    try:
        await asyncio.to_thread(availability_service.delete_rule, mentor_id, rule_id)
    except DomainException as e:
        handle_domain_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Slots (path parameter route last so /rules is matched first)
# ============================================================================


@router.get("/{mentor_id}/{day}", response_model=List[SlotResponse])
async def get_slots(
    mentor_id: str,
    day: date,
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> List[SlotResponse]:
    """
    Ordered candidate slots for ``mentor_id`` on the local date ``day``.

    Slots inside a break or overlapping an existing session are listed with
    ``available: false``. A date with no rule, or an unavailable override,
    returns an empty list.
    """
    try:
        slots = await asyncio.to_thread(availability_service.get_slot_listing, mentor_id, day)
    except DomainException as e:
        handle_domain_exception(e)
    return [SlotResponse(**slot) for slot in slots]
