# backend/app/services/class_booking_service.py
"""
Class Booking Service for the Classbook platform.

Public entry point of the booking engine:
- Booking a seat or a waitlist place
- Cancelling with refund and waitlist promotion
- Explicit waitlist promotion and attendance recording
- Availability reads

Each mutating operation is one unit of work: a single transaction that locks
the occurrence, claims its version token, applies every state and ledger
change and enqueues the notification events. A unit of work that loses a
concurrent race is rolled back completely and run again from scratch, up to
``booking_max_attempts`` times.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import time
from typing import Callable, Optional, TypeVar

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import RegistrationStatus
from ..core.exceptions import (
    AlreadyRegisteredException,
    BookingContentionException,
    ClassFullException,
    ClientNotFoundException,
    ConcurrencyConflictException,
    DomainException,
    OccurrenceNotFoundException,
    RegistrationNotFoundException,
    ValidationException,
)
from ..events import EventPublisher
from ..models.registration import ClassRegistration
from ..models.types import utcnow
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .cancellation_policy import CancellationPolicy
from .capacity_gate import Availability, CapacityGate
from .credit_ledger_service import CreditLedgerService
from .pricing_service import PricingResolver, TemplatePricingResolver
from .registration_state_machine import RegistrationStateMachine
from .waitlist_promoter import WaitlistPromoter

T = TypeVar("T")


@dataclass(frozen=True)
class CancellationResult:
    registration: ClassRegistration
    previous_status: RegistrationStatus
    credits_refunded: int = 0
    unpaid_balance_reduced: int = 0
    promoted_registration: Optional[ClassRegistration] = None

    @property
    def promoted_registration_id(self) -> Optional[str]:
        return self.promoted_registration.id if self.promoted_registration is not None else None

    @property
    def refunded(self) -> bool:
        return bool(self.credits_refunded or self.unpaid_balance_reduced)


def _as_utc(now: Optional[datetime]) -> datetime:
    if now is None:
        return utcnow()
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def _require_id(value: Optional[str], field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationException(f"{field} is required", code="INVALID_ID", details={"field": field})
    return str(value).strip()


class ClassBookingService(BaseService):
    """Books, cancels and promotes class registrations."""

    def __init__(
        self,
        db: Session,
        pricing: Optional[PricingResolver] = None,
        publisher: Optional[EventPublisher] = None,
        cancellation_window_hours: Optional[int] = None,
        allow_unpaid: Optional[bool] = None,
        max_attempts: Optional[int] = None,
        retry_backoff_seconds: float = 0.01,
    ):
        """
        Initialize the booking service.

        Args:
            db: Database session; the service commits and rolls it back
            pricing: Unit price source for unpaid seats
            publisher: Outbox publisher (defaults to the session's outbox)
            cancellation_window_hours: Override for the configured window
            allow_unpaid: Override for the configured unpaid-booking policy
            max_attempts: Override for the configured retry bound
            retry_backoff_seconds: Pause before retry N is N times this value
        """
        super().__init__(db)
        self.max_attempts = max(1, max_attempts or settings.booking_max_attempts)
        self.retry_backoff_seconds = retry_backoff_seconds

        self.occurrence_repository = RepositoryFactory.create_class_occurrence_repository(db)
        self.registration_repository = RepositoryFactory.create_class_registration_repository(db)
        self.client_repository = RepositoryFactory.create_client_repository(db)

        self.gate = CapacityGate(db)
        self.ledger = CreditLedgerService(db, allow_unpaid=allow_unpaid)
        self.policy = CancellationPolicy(cancellation_window_hours)
        self.state_machine = RegistrationStateMachine(
            db, ledger=self.ledger, pricing=pricing or TemplatePricingResolver(), publisher=publisher
        )
        self.promoter = WaitlistPromoter(db, gate=self.gate, state_machine=self.state_machine)

    @BaseService.measure_operation("book")
    def book(
        self, occurrence_id: str, client_id: str, now: Optional[datetime] = None
    ) -> ClassRegistration:
        """
        Book a seat, or a waitlist place when the class is full.

        Returns:
            The new registration (status ``booked`` or ``waitlist``)

        Raises:
            OccurrenceNotFoundException, OccurrenceCancelledException,
            OccurrencePastException, AlreadyRegisteredException,
            PaymentRequiredException, ClassFullException (retries exhausted)
        """
        occurrence_id = _require_id(occurrence_id, "occurrence_id")
        client_id = _require_id(client_id, "client_id")
        moment = _as_utc(now)
        self.log_operation("book", occurrence_id=occurrence_id, client_id=client_id)

        def unit_of_work() -> ClassRegistration:
            occurrence = self.gate.lock_occurrence(occurrence_id)
            self.gate.ensure_bookable(occurrence, moment)
            if self.client_repository.get_by_id(client_id) is None:
                raise ClientNotFoundException(client_id)
            if self.registration_repository.find_active(occurrence_id, client_id) is not None:
                raise AlreadyRegisteredException(occurrence_id, client_id)

            placement = self.gate.try_reserve_seat(occurrence, moment)
            return self.state_machine.create(occurrence, client_id, placement, moment)

        registration = self._run_unit_of_work(
            "book",
            unit_of_work,
            lambda attempts: ClassFullException(occurrence_id, attempts),
        )

        prometheus_metrics.record_booking(
            registration.status.value, registration.payment_status.value
        )
        self.logger.info(
            "Registration %s created as %s",
            registration.id,
            registration.status.value,
            extra={
                "registration_id": registration.id,
                "occurrence_id": occurrence_id,
                "client_id": client_id,
                "payment_status": registration.payment_status.value,
            },
        )
        return registration

    @BaseService.measure_operation("cancel")
    def cancel(
        self,
        registration_id: str,
        client_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> CancellationResult:
        """
        Cancel a booked or waitlisted registration.

        When ``client_id`` is given the registration must belong to that
        client. A cancelled seat is refunded and offered to the waitlist in
        the same transaction.

        Raises:
            RegistrationNotFoundException, NoActiveRegistrationException,
            CancellationWindowPassedException, BookingContentionException
        """
        registration_id = _require_id(registration_id, "registration_id")
        moment = _as_utc(now)

        def unit_of_work() -> CancellationResult:
            registration = self.registration_repository.get_with_occurrence(registration_id)
            if registration is None or (client_id and registration.client_id != client_id):
                raise RegistrationNotFoundException(registration_id)
            return self._cancel_registration(registration, moment)

        result = self._run_unit_of_work(
            "cancel",
            unit_of_work,
            lambda attempts: BookingContentionException("cancel", registration_id, attempts),
        )
        self._log_cancellation(result)
        return result

    @BaseService.measure_operation("cancel_for_client")
    def cancel_for_client(
        self, occurrence_id: str, client_id: str, now: Optional[datetime] = None
    ) -> CancellationResult:
        """Cancel the client's active registration for an occurrence."""
        occurrence_id = _require_id(occurrence_id, "occurrence_id")
        client_id = _require_id(client_id, "client_id")
        moment = _as_utc(now)

        def unit_of_work() -> CancellationResult:
            registration = self.registration_repository.find_active(occurrence_id, client_id)
            if registration is None:
                raise RegistrationNotFoundException(
                    occurrence_id=occurrence_id, client_id=client_id
                )
            return self._cancel_registration(registration, moment)

        result = self._run_unit_of_work(
            "cancel",
            unit_of_work,
            lambda attempts: BookingContentionException("cancel", occurrence_id, attempts),
        )
        self._log_cancellation(result)
        return result

    @BaseService.measure_operation("promote")
    def promote(
        self, occurrence_id: str, now: Optional[datetime] = None
    ) -> Optional[ClassRegistration]:
        """
        Fill a free seat from the waitlist, if there is both.

        Used when capacity frees up outside a cancellation (staff removing a
        participant, capacity raised).
        """
        occurrence_id = _require_id(occurrence_id, "occurrence_id")
        moment = _as_utc(now)

        def unit_of_work() -> Optional[ClassRegistration]:
            occurrence = self.gate.lock_occurrence(occurrence_id)
            self.gate.ensure_bookable(occurrence, moment)
            self.gate.claim(occurrence, moment)
            return self.promoter.promote_next(occurrence, moment)

        promoted = self._run_unit_of_work(
            "promote",
            unit_of_work,
            lambda attempts: BookingContentionException("promote", occurrence_id, attempts),
        )
        if promoted is not None:
            prometheus_metrics.record_promotion(promoted.payment_status.value)
        return promoted

    @BaseService.measure_operation("record_attendance")
    def record_attendance(
        self, registration_id: str, attended: bool = True, now: Optional[datetime] = None
    ) -> ClassRegistration:
        """Mark a booked registration attended or no-show (check-in)."""
        registration_id = _require_id(registration_id, "registration_id")
        moment = _as_utc(now)

        def unit_of_work() -> ClassRegistration:
            registration = self.registration_repository.get_with_occurrence(registration_id)
            if registration is None:
                raise RegistrationNotFoundException(registration_id)
            occurrence = self.gate.lock_occurrence(registration.occurrence_id)
            # Re-read under the occurrence lock so a concurrent cancel is observed
            self.registration_repository.refresh(registration)
            self.gate.claim(occurrence, moment)
            return self.state_machine.record_attendance(registration, attended, moment)

        return self._run_unit_of_work(
            "record_attendance",
            unit_of_work,
            lambda attempts: BookingContentionException(
                "record_attendance", registration_id, attempts
            ),
        )

    @BaseService.measure_operation("get_availability")
    def get_availability(self, occurrence_id: str) -> Availability:
        """Read-only seat counts; no locks taken."""
        occurrence_id = _require_id(occurrence_id, "occurrence_id")
        occurrence = self.occurrence_repository.get_with_template(occurrence_id)
        if occurrence is None:
            raise OccurrenceNotFoundException(occurrence_id)
        return self.gate.availability(occurrence)

    def _cancel_registration(
        self, registration: ClassRegistration, now: datetime
    ) -> CancellationResult:
        occurrence = self.gate.lock_occurrence(registration.occurrence_id)
        # Re-read under the occurrence lock so a concurrent cancel is observed
        self.registration_repository.refresh(registration)
        self.policy.assert_can_cancel(registration, occurrence, now)
        self.gate.claim(occurrence, now)

        previous_status = registration.status
        freed_seat = registration.holds_seat
        refund = self.state_machine.cancel(registration, occurrence, now)

        promoted = None
        if freed_seat:
            promoted = self.promoter.promote_next(
                occurrence, now, freed_by_registration_id=registration.id
            )

        return CancellationResult(
            registration=registration,
            previous_status=previous_status,
            credits_refunded=refund.credits_refunded,
            unpaid_balance_reduced=refund.unpaid_balance_reduced,
            promoted_registration=promoted,
        )

    def _log_cancellation(self, result: CancellationResult) -> None:
        prometheus_metrics.record_cancellation(result.previous_status.value)
        if result.promoted_registration is not None:
            prometheus_metrics.record_promotion(result.promoted_registration.payment_status.value)
        self.logger.info(
            "Registration %s cancelled",
            result.registration.id,
            extra={
                "registration_id": result.registration.id,
                "credits_refunded": result.credits_refunded,
                "unpaid_balance_reduced": result.unpaid_balance_reduced,
                "promoted_registration_id": result.promoted_registration_id,
            },
        )

    def _run_unit_of_work(
        self,
        operation: str,
        work: Callable[[], T],
        on_exhausted: Callable[[int], DomainException],
    ) -> T:
        """Run ``work`` in a fresh transaction, retrying lost concurrency races."""
        last_conflict: Optional[ConcurrencyConflictException] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                with self.transaction():
                    return work()
            except ConcurrencyConflictException as exc:
                last_conflict = exc
                prometheus_metrics.record_concurrency_retry(operation)
                self.logger.info(
                    "%s attempt %s/%s lost a concurrent update on %s",
                    operation,
                    attempt,
                    self.max_attempts,
                    exc.details.get("resource"),
                )
                if attempt < self.max_attempts and self.retry_backoff_seconds:
                    time.sleep(self.retry_backoff_seconds * attempt)

        self.logger.warning("%s gave up after %s attempts", operation, self.max_attempts)
        raise on_exhausted(self.max_attempts) from last_conflict
