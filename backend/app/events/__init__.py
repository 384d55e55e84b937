"""Class registration events and their outbox publisher."""

from app.events.booking_events import (
    RegistrationBooked,
    RegistrationCancelled,
    RegistrationPromoted,
    RegistrationWaitlisted,
)
from app.events.publisher import EventPublisher

__all__ = [
    "EventPublisher",
    "RegistrationBooked",
    "RegistrationCancelled",
    "RegistrationPromoted",
    "RegistrationWaitlisted",
]
