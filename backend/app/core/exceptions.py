# backend/app/core/exceptions.py
"""
Domain-specific exceptions for the Classbook booking engine.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
Every exception carries a stable ``code`` so callers can branch on the
reason (offer the waitlist, show a deadline message, ...) instead of
parsing messages.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)
HTTP_423_LOCKED: int = getattr(status, "HTTP_423_LOCKED", 423)


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
        """Convert to an HTTPException using the class status code."""
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class LockedException(DomainException):
    """Raised when a resource can no longer be modified (time window passed)."""

    status_code = HTTP_423_LOCKED


class UnauthorizedException(DomainException):
    """Raised when the caller is not authenticated."""

    status_code = status.HTTP_401_UNAUTHORIZED


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


# Occurrence errors


class OccurrenceNotFoundException(NotFoundException):
    def __init__(self, occurrence_id: str):
        super().__init__(
            message="Class not found",
            code="OCCURRENCE_NOT_FOUND",
            details={"occurrence_id": occurrence_id},
        )


class OccurrenceCancelledException(BusinessRuleException):
    def __init__(self, occurrence_id: str):
        super().__init__(
            message="Cannot book cancelled class",
            code="OCCURRENCE_CANCELLED",
            details={"occurrence_id": occurrence_id},
        )


class OccurrencePastException(BusinessRuleException):
    def __init__(self, occurrence_id: str, starts_at: Optional[str] = None):
        super().__init__(
            message="Class has already started",
            code="OCCURRENCE_PAST",
            details={"occurrence_id": occurrence_id, "starts_at": starts_at},
        )


class ClientNotFoundException(NotFoundException):
    def __init__(self, client_id: str):
        super().__init__(
            message="Client not found",
            code="CLIENT_NOT_FOUND",
            details={"client_id": client_id},
        )


# Registration errors


class AlreadyRegisteredException(ConflictException):
    """Raised when the client already holds a booked or waitlisted seat."""

    def __init__(self, occurrence_id: str, client_id: str):
        super().__init__(
            message="Already registered for this class",
            code="ALREADY_REGISTERED",
            details={"occurrence_id": occurrence_id, "client_id": client_id},
        )


class RegistrationNotFoundException(NotFoundException):
    def __init__(self, registration_id: Optional[str] = None, **details: Any):
        super().__init__(
            message="No booking found for this class",
            code="REGISTRATION_NOT_FOUND",
            details={"registration_id": registration_id, **details},
        )


class NoActiveRegistrationException(ConflictException):
    """Raised when cancelling a registration that is not booked or waitlisted."""

    def __init__(self, registration_id: str, current_status: str):
        super().__init__(
            message="Booking is not active",
            code="NO_ACTIVE_REGISTRATION",
            details={"registration_id": registration_id, "status": current_status},
        )


class InvalidRegistrationTransitionException(BusinessRuleException):
    def __init__(self, registration_id: Optional[str], from_status: Optional[str], to_status: str):
        super().__init__(
            message=f"Cannot move registration from {from_status or 'new'} to {to_status}",
            code="INVALID_REGISTRATION_TRANSITION",
            details={
                "registration_id": registration_id,
                "from_status": from_status,
                "to_status": to_status,
            },
        )


class CancellationWindowPassedException(LockedException):
    """Raised when cancelling inside the lock window before class start."""

    def __init__(self, window_hours: int, deadline: str):
        super().__init__(
            message=f"Cannot cancel within {window_hours} hours of class start",
            code="CANCELLATION_WINDOW_PASSED",
            details={"window_hours": window_hours, "deadline": deadline, "locked": True},
        )


# Capacity / concurrency errors


class ConcurrencyConflictException(ConflictException):
    """
    Raised when a concurrent transaction changed state this one depends on.

    Retried transparently by the booking unit of work; only surfaced as
    ClassFullException / BookingContentionException once attempts run out.
    """

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            message="Concurrent update detected",
            code="CONCURRENCY_CONFLICT",
            details={"resource": resource, "resource_id": resource_id},
        )


class ClassFullException(ConflictException):
    def __init__(self, occurrence_id: str, attempts: int):
        super().__init__(
            message="Class became full, please try again",
            code="CLASS_FULL",
            details={"occurrence_id": occurrence_id, "attempts": attempts},
        )


class BookingContentionException(ConflictException):
    def __init__(self, operation: str, resource_id: str, attempts: int):
        super().__init__(
            message="Booking is busy, please try again",
            code="BOOKING_CONTENTION",
            details={"operation": operation, "resource_id": resource_id, "attempts": attempts},
        )


# Ledger errors


class InsufficientCreditsException(BusinessRuleException):
    def __init__(self, pass_id: str, required: int, available: int):
        super().__init__(
            message="Pass has no remaining credits",
            code="INSUFFICIENT_CREDITS",
            details={"pass_id": pass_id, "required": required, "available": available},
        )


class PaymentRequiredException(BusinessRuleException):
    """Raised when no usable pass exists and unpaid bookings are disabled."""

    def __init__(self, client_id: str, required_credits: int):
        super().__init__(
            message="No active pass with available credits found",
            code="PAYMENT_REQUIRED",
            details={"client_id": client_id, "required_credits": required_credits},
        )


class RefundTargetNotFoundException(ConflictException):
    def __init__(self, client_id: str, credits: int):
        super().__init__(
            message="No pass can take back the refunded credits",
            code="REFUND_TARGET_NOT_FOUND",
            details={"client_id": client_id, "credits": credits},
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
