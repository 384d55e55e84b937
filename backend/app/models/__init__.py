"""
Database models for the Classbook booking engine.

- Client: studio client owning passes and an unpaid balance
- ClassTemplate / ClassOccurrence: class definitions and scheduled instances
- ClassRegistration: a client's seat or waitlist entry
- CreditPass: prepaid class credits
- EventOutbox / NotificationDelivery: transactional notification outbox
"""

from .class_occurrence import ClassOccurrence, ClassTemplate
from .client import Client
from .credit_pass import CreditPass
from .event_outbox import EventOutbox, EventOutboxStatus, NotificationDelivery
from .registration import ClassRegistration

__all__ = [
    "ClassOccurrence",
    "ClassRegistration",
    "ClassTemplate",
    "Client",
    "CreditPass",
    "EventOutbox",
    "EventOutboxStatus",
    "NotificationDelivery",
]
