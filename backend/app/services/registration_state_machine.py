# backend/app/services/registration_state_machine.py
"""
Registration state machine.

The only code path that changes a registration's status. Each transition is
checked against REGISTRATION_TRANSITIONS, performs its ledger side effect in
the same session and publishes the matching outbox event. Nothing here
commits; the booking service owns the transaction.

    (new) ──► booked ──► cancelled
      │         │  └───► attended / no_show
      ▼         ▲
    waitlist ───┘ (promotion)
      └──────────────► cancelled
"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..core.enums import (
    PaymentStatus,
    RegistrationStatus,
    SeatPlacement,
    is_transition_allowed,
)
from ..core.exceptions import InvalidRegistrationTransitionException, OccurrencePastException
from ..events import (
    EventPublisher,
    RegistrationBooked,
    RegistrationCancelled,
    RegistrationPromoted,
    RegistrationWaitlisted,
)
from ..models.class_occurrence import ClassOccurrence
from ..models.registration import ClassRegistration
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .credit_ledger_service import CreditLedgerService, PaymentResolution, RefundResult
from .pricing_service import PricingResolver


class RegistrationStateMachine(BaseService):
    def __init__(
        self,
        db: Session,
        ledger: CreditLedgerService,
        pricing: PricingResolver,
        publisher: Optional[EventPublisher] = None,
    ):
        super().__init__(db)
        self.ledger = ledger
        self.pricing = pricing
        self.registration_repository = RepositoryFactory.create_class_registration_repository(db)
        self.publisher = publisher or EventPublisher(
            RepositoryFactory.create_event_outbox_repository(db)
        )

    def create(
        self,
        occurrence: ClassOccurrence,
        client_id: str,
        placement: SeatPlacement,
        now: datetime,
    ) -> ClassRegistration:
        """Insert a booked or waitlisted registration; booked seats are paid immediately."""
        target = placement.registration_status
        self._check(None, target, None)
        self._refuse_started(occurrence, now)

        if target == RegistrationStatus.BOOKED:
            payment = self._pay(occurrence, client_id, now)
        else:
            payment = PaymentResolution(payment_status=PaymentStatus.PENDING)

        registration = self.registration_repository.create_registration(
            occurrence_id=occurrence.id,
            client_id=client_id,
            status=target,
            payment_status=payment.payment_status,
            credits_used=payment.credits_used,
            charged_amount=payment.charged_amount,
            credit_pass_id=payment.pass_id,
            booked_at=now,
            created_at=now,
            updated_at=now,
        )

        if target == RegistrationStatus.BOOKED:
            self.publisher.publish(
                RegistrationBooked(
                    registration_id=registration.id,
                    occurrence_id=occurrence.id,
                    client_id=client_id,
                    payment_status=payment.payment_status.value,
                    credits_used=payment.credits_used,
                    booked_at=now,
                )
            )
        else:
            self.publisher.publish(
                RegistrationWaitlisted(
                    registration_id=registration.id,
                    occurrence_id=occurrence.id,
                    client_id=client_id,
                    booked_at=now,
                )
            )
        return registration

    def cancel(
        self, registration: ClassRegistration, occurrence: ClassOccurrence, now: datetime
    ) -> RefundResult:
        """Cancel an active registration, refunding it if it held a paid or unpaid seat."""
        previous = registration.status
        self._check(previous, RegistrationStatus.CANCELLED, registration.id)
        self._refuse_started(occurrence, now)

        refund = RefundResult()
        if previous == RegistrationStatus.BOOKED:
            refund = self.ledger.refund(
                client_id=registration.client_id,
                payment_status=registration.payment_status,
                credits=registration.credits_used,
                amount=registration.charged_amount,
                now=now,
                pass_hint=registration.credit_pass_id,
            )

        registration.status = RegistrationStatus.CANCELLED
        registration.cancelled_at = now
        registration.updated_at = now
        self.registration_repository.flush()

        self.publisher.publish(
            RegistrationCancelled(
                registration_id=registration.id,
                occurrence_id=occurrence.id,
                client_id=registration.client_id,
                previous_status=previous.value,
                cancelled_at=now,
                credits_refunded=refund.credits_refunded,
                unpaid_balance_reduced=refund.unpaid_balance_reduced,
            )
        )
        return refund

    def promote(
        self,
        registration: ClassRegistration,
        occurrence: ClassOccurrence,
        now: datetime,
        freed_by_registration_id: Optional[str] = None,
    ) -> ClassRegistration:
        """Move a waitlisted registration into a seat and charge it like a fresh booking."""
        self._check(registration.status, RegistrationStatus.BOOKED, registration.id)
        self._refuse_started(occurrence, now)

        # A promotion never fails for lack of credits; it falls back to unpaid
        payment = self._pay(occurrence, registration.client_id, now, allow_unpaid=True)
        registration.status = RegistrationStatus.BOOKED
        registration.payment_status = payment.payment_status
        registration.credits_used = payment.credits_used
        registration.charged_amount = payment.charged_amount
        registration.credit_pass_id = payment.pass_id
        registration.promoted_at = now
        registration.updated_at = now
        self.registration_repository.flush()

        self.publisher.publish(
            RegistrationPromoted(
                registration_id=registration.id,
                occurrence_id=occurrence.id,
                client_id=registration.client_id,
                payment_status=payment.payment_status.value,
                promoted_at=now,
                freed_by_registration_id=freed_by_registration_id,
            )
        )
        return registration

    def record_attendance(
        self, registration: ClassRegistration, attended: bool, now: datetime
    ) -> ClassRegistration:
        """Check-in outcome for a booked registration; no ledger effect."""
        target = RegistrationStatus.ATTENDED if attended else RegistrationStatus.NO_SHOW
        self._check(registration.status, target, registration.id)
        registration.status = target
        registration.updated_at = now
        self.registration_repository.flush()
        return registration

    def _pay(
        self,
        occurrence: ClassOccurrence,
        client_id: str,
        now: datetime,
        allow_unpaid: Optional[bool] = None,
    ) -> PaymentResolution:
        return self.ledger.resolve_payment(
            client_id=client_id,
            required_credits=occurrence.credits_required,
            unit_price=self.pricing.unit_price(occurrence),
            now=now,
            allow_unpaid=allow_unpaid,
        )

    @staticmethod
    def _check(
        current: Optional[RegistrationStatus],
        target: RegistrationStatus,
        registration_id: Optional[str],
    ) -> None:
        if not is_transition_allowed(current, target):
            raise InvalidRegistrationTransitionException(
                registration_id, current.value if current else None, target.value
            )

    @staticmethod
    def _refuse_started(occurrence: ClassOccurrence, now: datetime) -> None:
        if occurrence.has_started(now):
            raise OccurrencePastException(occurrence.id, occurrence.starts_at.isoformat())
