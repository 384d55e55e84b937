# backend/app/services/waitlist_promoter.py
"""Fill a freed seat with the longest-waiting waitlisted registration."""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..models.class_occurrence import ClassOccurrence
from ..models.registration import ClassRegistration
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .capacity_gate import CapacityGate
from .registration_state_machine import RegistrationStateMachine


class WaitlistPromoter(BaseService):
    """
    Promotes waitlisted registrations in booking order (FIFO).

    Must run in the unit of work that freed the seat, after the occurrence
    has been locked and its version claimed, so nobody else can take the
    seat in between.
    """

    def __init__(self, db: Session, gate: CapacityGate, state_machine: RegistrationStateMachine):
        super().__init__(db)
        self.gate = gate
        self.state_machine = state_machine
        self.registration_repository = RepositoryFactory.create_class_registration_repository(db)

    def promote_next(
        self,
        occurrence: ClassOccurrence,
        now: datetime,
        freed_by_registration_id: Optional[str] = None,
    ) -> Optional[ClassRegistration]:
        if not self.gate.has_free_seat(occurrence):
            return None

        candidate = self.registration_repository.next_waitlisted(occurrence.id)
        if candidate is None:
            return None

        promoted = self.state_machine.promote(
            candidate, occurrence, now, freed_by_registration_id=freed_by_registration_id
        )
        self.logger.info(
            "Promoted waitlisted registration %s on occurrence %s",
            promoted.id,
            occurrence.id,
            extra={
                "registration_id": promoted.id,
                "occurrence_id": occurrence.id,
                "payment_status": promoted.payment_status.value,
            },
        )
        return promoted
