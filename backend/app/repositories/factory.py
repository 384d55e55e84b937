# backend/app/repositories/factory.py
"""
Repository Factory for the booking engine.

Provides centralized creation of repository instances so services never
construct them directly and tests can swap implementations.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

if TYPE_CHECKING:
    from .class_occurrence_repository import ClassOccurrenceRepository
    from .class_registration_repository import ClassRegistrationRepository
    from .client_repository import ClientRepository
    from .credit_pass_repository import CreditPassRepository
    from .event_outbox_repository import EventOutboxRepository
    from .notification_delivery_repository import NotificationDeliveryRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_class_occurrence_repository(db: Session) -> "ClassOccurrenceRepository":
        """Create repository for occurrence reads, row locks and version claims."""
        from .class_occurrence_repository import ClassOccurrenceRepository

        return ClassOccurrenceRepository(db)

    @staticmethod
    def create_class_registration_repository(db: Session) -> "ClassRegistrationRepository":
        """Create repository for registrations and derived seat counts."""
        from .class_registration_repository import ClassRegistrationRepository

        return ClassRegistrationRepository(db)

    @staticmethod
    def create_credit_pass_repository(db: Session) -> "CreditPassRepository":
        """Create repository for credit pass selection and guarded balance updates."""
        from .credit_pass_repository import CreditPassRepository

        return CreditPassRepository(db)

    @staticmethod
    def create_client_repository(db: Session) -> "ClientRepository":
        from .client_repository import ClientRepository

        return ClientRepository(db)

    @staticmethod
    def create_event_outbox_repository(db: Session) -> "EventOutboxRepository":
        from .event_outbox_repository import EventOutboxRepository

        return EventOutboxRepository(db)

    @staticmethod
    def create_notification_delivery_repository(db: Session) -> "NotificationDeliveryRepository":
        from .notification_delivery_repository import NotificationDeliveryRepository

        return NotificationDeliveryRepository(db)
