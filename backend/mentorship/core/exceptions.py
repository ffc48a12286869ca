# backend/mentorship/core/exceptions.py
"""
Domain-specific exceptions for the mentorship scheduling backend.

Every rejection carries a machine-readable ``code`` so clients can decide
whether to re-fetch slots (SLOT_CONFLICT / SLOT_UNAVAILABLE), retry later
(SLOT_CLAIM_TIMEOUT) or surface a permission error (INVALID_TRANSITION).
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when input is malformed (bad date/time, duration outside the allowed set)."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code or "VALIDATION_ERROR", details=details)


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code or "NOT_FOUND", details=details)


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific scheduling exceptions


class SlotUnavailableException(BusinessRuleException):
    """Requested time is outside the mentor's availability, inside a break, or in the past."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "Requested time is not available",
            code="SLOT_UNAVAILABLE",
            details=details or {},
        )


class SlotConflictException(ConflictException):
    """Another session already occupies the requested instant."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "This time slot was just booked by someone else",
            code="SLOT_CONFLICT",
            details=details or {},
        )


class SlotClaimTimeoutException(DomainException):
    """The atomic claim could not be acquired in time; safe to retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, timeout_ms: int, *, details: Optional[Dict[str, Any]] = None):
        merged = {"timeout_ms": timeout_ms, "retryable": True}
        merged.update(details or {})
        super().__init__(
            message="Could not reserve the slot in time. Please retry.",
            code="SLOT_CLAIM_TIMEOUT",
            details=merged,
        )

    def to_http_exception(self) -> HTTPException:
        exc = super().to_http_exception()
        exc.headers = {"Retry-After": "1"}
        return exc


class InvalidTransitionException(ConflictException):
    """The state machine rejects the move for the current status or actor."""

    def __init__(
        self,
        current_status: str,
        action: str,
        actor_role: Optional[str] = None,
        message: Optional[str] = None,
    ):
        super().__init__(
            message=message or f"Cannot {action} a session that is {current_status}",
            code="INVALID_TRANSITION",
            details={
                "current_status": current_status,
                "action": action,
                "actor_role": actor_role,
            },
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
