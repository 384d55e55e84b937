"""Class registration domain events."""
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, ClassVar, Dict, Optional

from app.core.constants import (
    EVENT_REGISTRATION_BOOKED,
    EVENT_REGISTRATION_CANCELLED,
    EVENT_REGISTRATION_PROMOTED,
    EVENT_REGISTRATION_WAITLISTED,
)


@dataclass
class RegistrationBooked:
    """Fired after a client takes a seat directly."""

    event_type: ClassVar[str] = EVENT_REGISTRATION_BOOKED

    registration_id: str
    occurrence_id: str
    client_id: str
    payment_status: str
    credits_used: int
    booked_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RegistrationWaitlisted:
    """Fired when the class was full and the client joined the waitlist."""

    event_type: ClassVar[str] = EVENT_REGISTRATION_WAITLISTED

    registration_id: str
    occurrence_id: str
    client_id: str
    booked_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RegistrationCancelled:
    """Fired after a booked or waitlisted registration is cancelled."""

    event_type: ClassVar[str] = EVENT_REGISTRATION_CANCELLED

    registration_id: str
    occurrence_id: str
    client_id: str
    previous_status: str
    cancelled_at: datetime
    credits_refunded: int = 0
    unpaid_balance_reduced: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RegistrationPromoted:
    """Fired when a waitlisted client is moved into a freed seat."""

    event_type: ClassVar[str] = EVENT_REGISTRATION_PROMOTED

    registration_id: str
    occurrence_id: str
    client_id: str
    payment_status: str
    promoted_at: datetime
    freed_by_registration_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
