# backend/app/repositories/__init__.py
"""
Repository Pattern Implementation for the booking engine.

Key Components:
- BaseRepository: shared helpers and error translation
- RepositoryFactory: creates repository instances for services
- ClassOccurrenceRepository: occurrence reads, row locks and version claims
- ClassRegistrationRepository: registrations and derived seat counts
- CreditPassRepository: pass selection and guarded debit/refund
- ClientRepository: atomic unpaid balance changes
- EventOutboxRepository / NotificationDeliveryRepository: notification outbox

Usage:
    from app.repositories import RepositoryFactory

    repository = RepositoryFactory.create_credit_pass_repository(db)
    passes = repository.get_usable_passes(client_id=client_id, required=1, at=now)
"""

from .base_repository import BaseRepository
from .class_occurrence_repository import ClassOccurrenceRepository
from .class_registration_repository import ClassRegistrationRepository
from .client_repository import ClientRepository
from .credit_pass_repository import CreditPassRepository
from .event_outbox_repository import EventOutboxRepository
from .factory import RepositoryFactory
from .notification_delivery_repository import NotificationDeliveryRepository

__all__ = [
    "BaseRepository",
    "ClassOccurrenceRepository",
    "ClassRegistrationRepository",
    "ClientRepository",
    "CreditPassRepository",
    "EventOutboxRepository",
    "NotificationDeliveryRepository",
    "RepositoryFactory",
]
