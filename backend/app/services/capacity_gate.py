# backend/app/services/capacity_gate.py
"""
Capacity gate: decides whether a new registration gets a seat or the waitlist.

Confirmed seats are counted from the registration set every time. The
decision is only valid because the caller holds the occurrence row lock
(PostgreSQL) and claims the occurrence's version token before writing: a
transaction that read a stale count loses the claim and is retried.
"""

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from ..core.enums import OccurrenceStatus, SeatPlacement
from ..core.exceptions import (
    ConcurrencyConflictException,
    OccurrenceCancelledException,
    OccurrenceNotFoundException,
    OccurrencePastException,
)
from ..models.class_occurrence import ClassOccurrence
from ..repositories.factory import RepositoryFactory
from .base import BaseService


@dataclass(frozen=True)
class Availability:
    occurrence_id: str
    capacity: int
    booked_count: int
    available_spots: int
    waitlist_count: int

    @property
    def is_full(self) -> bool:
        return self.available_spots == 0


class CapacityGate(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.occurrence_repository = RepositoryFactory.create_class_occurrence_repository(db)
        self.registration_repository = RepositoryFactory.create_class_registration_repository(db)

    def lock_occurrence(self, occurrence_id: str) -> ClassOccurrence:
        occurrence = self.occurrence_repository.get_for_update(occurrence_id)
        if occurrence is None:
            raise OccurrenceNotFoundException(occurrence_id)
        return occurrence

    def ensure_bookable(self, occurrence: ClassOccurrence, now: datetime) -> None:
        """Reject cancelled, completed and already started occurrences."""
        if occurrence.status == OccurrenceStatus.CANCELLED:
            raise OccurrenceCancelledException(occurrence.id)
        if occurrence.status == OccurrenceStatus.COMPLETED or occurrence.has_started(now):
            raise OccurrencePastException(occurrence.id, occurrence.starts_at.isoformat())

    def has_free_seat(self, occurrence: ClassOccurrence) -> bool:
        return self.registration_repository.count_confirmed(occurrence.id) < occurrence.capacity

    def try_reserve_seat(self, occurrence: ClassOccurrence, now: datetime) -> SeatPlacement:
        """
        Place a new registration and claim the occurrence for this transaction.

        Raises:
            ConcurrencyConflictException: another transaction changed the
                registration set after this one counted it
        """
        placement = SeatPlacement.BOOKED if self.has_free_seat(occurrence) else SeatPlacement.WAITLISTED
        self.claim(occurrence, now)
        return placement

    def claim(self, occurrence: ClassOccurrence, now: datetime) -> None:
        """Claim the occurrence's version token or fail the unit of work."""
        if not self.occurrence_repository.claim_version(occurrence, now):
            raise ConcurrencyConflictException("class_occurrence", occurrence.id)

    def availability(self, occurrence: ClassOccurrence) -> Availability:
        booked = self.registration_repository.count_confirmed(occurrence.id)
        return Availability(
            occurrence_id=occurrence.id,
            capacity=occurrence.capacity,
            booked_count=booked,
            available_spots=max(0, occurrence.capacity - booked),
            waitlist_count=self.registration_repository.count_waitlisted(occurrence.id),
        )
