# backend/app/schemas/class_booking.py
"""Response schemas for the class booking endpoints."""

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from pydantic import Field

from ..core.enums import PaymentStatus, RegistrationStatus
from ._strict_base import StrictModel

if TYPE_CHECKING:
    from ..models.registration import ClassRegistration
    from ..services.capacity_gate import Availability
    from ..services.class_booking_service import CancellationResult


class RegistrationResponse(StrictModel):
    id: str
    occurrence_id: str
    client_id: str
    status: RegistrationStatus
    payment_status: PaymentStatus
    credits_used: int = Field(ge=0)
    charged_amount: int = Field(ge=0, description="Amount added to the unpaid balance (minor units)")
    booked_at: datetime
    promoted_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @classmethod
    def from_registration(cls, registration: "ClassRegistration") -> "RegistrationResponse":
        return cls(
            id=registration.id,
            occurrence_id=registration.occurrence_id,
            client_id=registration.client_id,
            status=registration.status,
            payment_status=registration.payment_status,
            credits_used=registration.credits_used,
            charged_amount=registration.charged_amount,
            booked_at=registration.booked_at,
            promoted_at=registration.promoted_at,
            cancelled_at=registration.cancelled_at,
        )


class CancellationResponse(StrictModel):
    registration: RegistrationResponse
    previous_status: RegistrationStatus
    refunded: bool
    credits_refunded: int = 0
    unpaid_balance_reduced: int = 0
    promoted_registration_id: Optional[str] = None

    @classmethod
    def from_result(cls, result: "CancellationResult") -> "CancellationResponse":
        return cls(
            registration=RegistrationResponse.from_registration(result.registration),
            previous_status=result.previous_status,
            refunded=result.refunded,
            credits_refunded=result.credits_refunded,
            unpaid_balance_reduced=result.unpaid_balance_reduced,
            promoted_registration_id=result.promoted_registration_id,
        )


class AvailabilityResponse(StrictModel):
    occurrence_id: str
    capacity: int
    booked_count: int
    available_spots: int
    waitlist_count: int
    is_full: bool

    @classmethod
    def from_availability(cls, availability: "Availability") -> "AvailabilityResponse":
        return cls(
            occurrence_id=availability.occurrence_id,
            capacity=availability.capacity,
            booked_count=availability.booked_count,
            available_spots=availability.available_spots,
            waitlist_count=availability.waitlist_count,
            is_full=availability.is_full,
        )
