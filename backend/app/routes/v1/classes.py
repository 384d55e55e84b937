# backend/app/routes/v1/classes.py
"""
Class booking routes - API v1

Versioned endpoints under /api/v1. All business logic is delegated to
ClassBookingService; the authenticated client comes from
get_current_client_id.

Endpoints:
    POST /classes/{occurrence_id}/book - Book a seat (or waitlist place)
    POST /classes/{occurrence_id}/cancel - Cancel my registration for a class
    GET /classes/{occurrence_id}/availability - Seat counts
    POST /registrations/{registration_id}/cancel - Cancel a registration by id
"""

import asyncio
import logging
from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.params import Path

from ...api.dependencies import get_class_booking_service, get_current_client_id
from ...core.constants import ULID_PATH_PATTERN
from ...core.exceptions import DomainException
from ...schemas.class_booking import (
    AvailabilityResponse,
    CancellationResponse,
    RegistrationResponse,
)
from ...services.class_booking_service import ClassBookingService

logger = logging.getLogger(__name__)

# Mounted under /api/v1/classes and /api/v1/registrations in main.py
router = APIRouter(tags=["classes-v1"])
registrations_router = APIRouter(tags=["classes-v1"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.post(
    "/{occurrence_id}/book",
    response_model=RegistrationResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"description": "Class not found"},
        409: {"description": "Already registered, or the class filled up concurrently"},
        422: {"description": "Class cancelled, already started, or payment required"},
    },
)
async def book_class(
    occurrence_id: str = Path(
        ...,
        description="Class occurrence ULID",
        pattern=ULID_PATH_PATTERN,
        examples=["01HF4G12ABCDEF3456789XYZAB"],
    ),
    client_id: str = Depends(get_current_client_id),
    booking_service: ClassBookingService = Depends(get_class_booking_service),
) -> RegistrationResponse:
    """Book a seat; a full class places the client on the waitlist instead."""
    try:
        registration = await asyncio.to_thread(booking_service.book, occurrence_id, client_id)
        return RegistrationResponse.from_registration(registration)
    except DomainException as e:
        handle_domain_exception(e)


@router.post(
    "/{occurrence_id}/cancel",
    response_model=CancellationResponse,
    responses={
        404: {"description": "No booking found for this class"},
        423: {"description": "Cancellation window has passed"},
    },
)
async def cancel_class_booking(
    occurrence_id: str = Path(
        ...,
        description="Class occurrence ULID",
        pattern=ULID_PATH_PATTERN,
        examples=["01HF4G12ABCDEF3456789XYZAB"],
    ),
    client_id: str = Depends(get_current_client_id),
    booking_service: ClassBookingService = Depends(get_class_booking_service),
) -> CancellationResponse:
    """Cancel the caller's booked or waitlisted registration for a class."""
    try:
        result = await asyncio.to_thread(
            booking_service.cancel_for_client, occurrence_id, client_id
        )
        return CancellationResponse.from_result(result)
    except DomainException as e:
        handle_domain_exception(e)


@router.get(
    "/{occurrence_id}/availability",
    response_model=AvailabilityResponse,
    responses={404: {"description": "Class not found"}},
)
async def get_class_availability(
    occurrence_id: str = Path(
        ...,
        description="Class occurrence ULID",
        pattern=ULID_PATH_PATTERN,
        examples=["01HF4G12ABCDEF3456789XYZAB"],
    ),
    booking_service: ClassBookingService = Depends(get_class_booking_service),
) -> AvailabilityResponse:
    """Capacity, booked seats, free seats and waitlist length."""
    try:
        availability = await asyncio.to_thread(booking_service.get_availability, occurrence_id)
        return AvailabilityResponse.from_availability(availability)
    except DomainException as e:
        handle_domain_exception(e)


@registrations_router.post(
    "/{registration_id}/cancel",
    response_model=CancellationResponse,
    responses={
        404: {"description": "Registration not found"},
        409: {"description": "Registration is not active"},
        423: {"description": "Cancellation window has passed"},
    },
)
async def cancel_registration(
    registration_id: str = Path(
        ...,
        description="Registration ULID",
        pattern=ULID_PATH_PATTERN,
        examples=["01HF4G12ABCDEF3456789XYZAB"],
    ),
    client_id: str = Depends(get_current_client_id),
    booking_service: ClassBookingService = Depends(get_class_booking_service),
) -> CancellationResponse:
    """Cancel one of the caller's registrations."""
    try:
        result = await asyncio.to_thread(booking_service.cancel, registration_id, client_id)
        return CancellationResponse.from_result(result)
    except DomainException as e:
        handle_domain_exception(e)
