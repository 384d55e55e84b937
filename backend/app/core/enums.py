# backend/app/core/enums.py
"""
Core enums for the booking engine.

Status sets are closed: every status column is written from one of these
enums and every registration transition is checked against
REGISTRATION_TRANSITIONS, so an illegal move fails loudly instead of being
branched on as a free-form string.
"""

from enum import Enum
from typing import Dict, FrozenSet, Optional


class OccurrenceStatus(str, Enum):
    """Lifecycle of a scheduled class occurrence."""

    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class RegistrationStatus(str, Enum):
    """A client's relationship to one occurrence."""

    BOOKED = "booked"
    WAITLIST = "waitlist"
    CANCELLED = "cancelled"
    ATTENDED = "attended"
    NO_SHOW = "no_show"

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_REGISTRATION_STATUSES

    @property
    def holds_seat(self) -> bool:
        return self in SEAT_HOLDING_STATUSES


class PaymentStatus(str, Enum):
    """How a registration's seat was paid for."""

    PAID = "paid"  # debited from a pass
    UNPAID = "unpaid"  # added to the client's unpaid balance
    COMPED = "comped"  # class costs no credits
    PENDING = "pending"  # waitlisted, nothing charged yet


class CreditPassStatus(str, Enum):
    """Stored status of a credit pass. Expiry is also checked lazily by date."""

    ACTIVE = "active"
    EXPIRED = "expired"
    DEPLETED = "depleted"


class SeatPlacement(str, Enum):
    """Capacity gate decision for a new registration."""

    BOOKED = "booked"
    WAITLISTED = "waitlisted"

    @property
    def registration_status(self) -> RegistrationStatus:
        if self is SeatPlacement.BOOKED:
            return RegistrationStatus.BOOKED
        return RegistrationStatus.WAITLIST


ACTIVE_REGISTRATION_STATUSES: FrozenSet[RegistrationStatus] = frozenset(
    {RegistrationStatus.BOOKED, RegistrationStatus.WAITLIST}
)

# Registrations counted against capacity
SEAT_HOLDING_STATUSES: FrozenSet[RegistrationStatus] = frozenset(
    {RegistrationStatus.BOOKED, RegistrationStatus.ATTENDED}
)

# None is the "not yet created" state
REGISTRATION_TRANSITIONS: Dict[Optional[RegistrationStatus], FrozenSet[RegistrationStatus]] = {
    None: frozenset({RegistrationStatus.BOOKED, RegistrationStatus.WAITLIST}),
    RegistrationStatus.WAITLIST: frozenset(
        {RegistrationStatus.BOOKED, RegistrationStatus.CANCELLED}
    ),
    RegistrationStatus.BOOKED: frozenset(
        {
            RegistrationStatus.CANCELLED,
            RegistrationStatus.ATTENDED,
            RegistrationStatus.NO_SHOW,
        }
    ),
    RegistrationStatus.CANCELLED: frozenset(),
    RegistrationStatus.ATTENDED: frozenset(),
    RegistrationStatus.NO_SHOW: frozenset(),
}


def is_transition_allowed(
    current: Optional[RegistrationStatus], target: RegistrationStatus
) -> bool:
    """Check a move against the transition table (None = new registration)."""
    return target in REGISTRATION_TRANSITIONS.get(current, frozenset())
