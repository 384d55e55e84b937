"""
Tests for ClassBookingService.

Each test drives the public operations end to end against a real SQLite
database: booking, waitlisting, cancellation with refund and promotion, and
the retry bound on lost concurrency races.
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import func, select

from app.core.enums import OccurrenceStatus, PaymentStatus, RegistrationStatus
from app.core.exceptions import (
    AlreadyRegisteredException,
    CancellationWindowPassedException,
    ClassFullException,
    ClientNotFoundException,
    ConcurrencyConflictException,
    NoActiveRegistrationException,
    OccurrenceCancelledException,
    OccurrenceNotFoundException,
    OccurrencePastException,
    PaymentRequiredException,
    RegistrationNotFoundException,
    ValidationException,
)
from app.models.event_outbox import EventOutbox
from app.models.registration import ClassRegistration
from app.services.class_booking_service import ClassBookingService
from tests.factories.class_booking import (
    create_client,
    create_credit_pass,
    create_occurrence,
    create_registration,
    create_template,
)


@pytest.fixture
def booking_service(db):
    return ClassBookingService(db, retry_backoff_seconds=0)


def _registration_count(db, occurrence_id):
    return db.execute(
        select(func.count(ClassRegistration.id)).where(
            ClassRegistration.occurrence_id == occurrence_id
        )
    ).scalar_one()


class TestBook:
    def test_book_with_pass(self, db, booking_service, occurrence, test_client_record, ten_class_pass, now):
        registration = booking_service.book(occurrence.id, test_client_record.id, now=now)

        assert registration.status == RegistrationStatus.BOOKED
        assert registration.payment_status == PaymentStatus.PAID
        assert registration.credit_pass_id == ten_class_pass.id
        db.refresh(ten_class_pass)
        assert ten_class_pass.credits_left == 9
        db.refresh(occurrence)
        assert occurrence.version == 1

    def test_full_class_puts_client_on_waitlist(self, db, booking_service, occurrence, now):
        booking_service.book(occurrence.id, create_client(db).id, now=now)
        booking_service.book(occurrence.id, create_client(db).id, now=now)

        third = booking_service.book(occurrence.id, create_client(db).id, now=now)

        assert third.status == RegistrationStatus.WAITLIST
        assert third.payment_status == PaymentStatus.PENDING
        availability = booking_service.get_availability(occurrence.id)
        assert availability.booked_count == 2
        assert availability.waitlist_count == 1
        assert availability.is_full

    def test_second_booking_for_same_client_rejected(
        self, db, booking_service, occurrence, test_client_record, now
    ):
        booking_service.book(occurrence.id, test_client_record.id, now=now)

        with pytest.raises(AlreadyRegisteredException):
            booking_service.book(occurrence.id, test_client_record.id, now=now)

        assert _registration_count(db, occurrence.id) == 1

    def test_waitlisted_client_cannot_book_again(self, db, booking_service, occurrence, now):
        booking_service.book(occurrence.id, create_client(db).id, now=now)
        booking_service.book(occurrence.id, create_client(db).id, now=now)
        waiting_client = create_client(db)
        booking_service.book(occurrence.id, waiting_client.id, now=now)

        with pytest.raises(AlreadyRegisteredException):
            booking_service.book(occurrence.id, waiting_client.id, now=now)

    def test_rebooking_after_cancel_is_allowed(
        self, db, booking_service, occurrence, test_client_record, now
    ):
        first = booking_service.book(occurrence.id, test_client_record.id, now=now)
        booking_service.cancel(first.id, test_client_record.id, now=now)

        second = booking_service.book(occurrence.id, test_client_record.id, now=now)

        assert second.id != first.id
        assert second.status == RegistrationStatus.BOOKED

    def test_no_pass_books_unpaid(self, db, booking_service, occurrence, test_client_record, now):
        registration = booking_service.book(occurrence.id, test_client_record.id, now=now)

        assert registration.payment_status == PaymentStatus.UNPAID
        assert registration.charged_amount == 1000
        assert registration.credits_used == 0
        db.refresh(test_client_record)
        assert test_client_record.unpaid_balance == 1000

    def test_payment_required_rolls_back_everything(
        self, db, occurrence, test_client_record, now
    ):
        service = ClassBookingService(db, allow_unpaid=False, retry_backoff_seconds=0)

        with pytest.raises(PaymentRequiredException):
            service.book(occurrence.id, test_client_record.id, now=now)

        assert _registration_count(db, occurrence.id) == 0
        assert db.execute(select(func.count(EventOutbox.id))).scalar_one() == 0
        db.refresh(occurrence)
        assert occurrence.version == 0

    def test_template_price_used_for_unpaid(self, db, booking_service, test_client_record, now):
        template = create_template(db, title="Reformer", credits_required=2, base_price=1800)
        occurrence = create_occurrence(db, starts_at=now + timedelta(days=2), template=template)

        registration = booking_service.book(occurrence.id, test_client_record.id, now=now)

        assert registration.payment_status == PaymentStatus.UNPAID
        assert registration.credits_used == 0
        assert registration.charged_amount == 3600

    def test_free_template_is_comped(self, db, booking_service, test_client_record, ten_class_pass, now):
        template = create_template(db, title="Open House", credits_required=0)
        occurrence = create_occurrence(db, starts_at=now + timedelta(days=2), template=template)

        registration = booking_service.book(occurrence.id, test_client_record.id, now=now)

        assert registration.payment_status == PaymentStatus.COMPED
        db.refresh(ten_class_pass)
        assert ten_class_pass.credits_left == 10

    def test_cancelled_class_cannot_be_booked(self, db, booking_service, test_client_record, now):
        occurrence = create_occurrence(
            db, starts_at=now + timedelta(days=1), status=OccurrenceStatus.CANCELLED
        )

        with pytest.raises(OccurrenceCancelledException):
            booking_service.book(occurrence.id, test_client_record.id, now=now)

    def test_started_class_cannot_be_booked(self, db, booking_service, test_client_record, now):
        occurrence = create_occurrence(db, starts_at=now - timedelta(minutes=10))

        with pytest.raises(OccurrencePastException):
            booking_service.book(occurrence.id, test_client_record.id, now=now)

    def test_unknown_occurrence(self, booking_service, test_client_record, now):
        with pytest.raises(OccurrenceNotFoundException):
            booking_service.book("01HZZZZZZZZZZZZZZZZZZZZZZZ", test_client_record.id, now=now)

    def test_unknown_client(self, booking_service, occurrence, now):
        with pytest.raises(ClientNotFoundException):
            booking_service.book(occurrence.id, "01HZZZZZZZZZZZZZZZZZZZZZZZ", now=now)

    def test_blank_ids_rejected(self, booking_service, occurrence):
        with pytest.raises(ValidationException):
            booking_service.book(occurrence.id, "  ")

    def test_booking_enqueues_one_event(self, db, booking_service, occurrence, test_client_record, now):
        registration = booking_service.book(occurrence.id, test_client_record.id, now=now)

        events = db.execute(select(EventOutbox)).scalars().all()
        assert len(events) == 1
        assert events[0].aggregate_id == registration.id
        assert events[0].payload["occurrence_id"] == occurrence.id

    def test_exhausted_retries_surface_class_full(self, db, occurrence, test_client_record, now):
        service = ClassBookingService(db, max_attempts=3, retry_backoff_seconds=0)
        conflict = ConcurrencyConflictException("class_occurrence", occurrence.id)

        with patch.object(service.gate, "try_reserve_seat", side_effect=conflict) as reserve:
            with pytest.raises(ClassFullException) as exc_info:
                service.book(occurrence.id, test_client_record.id, now=now)

        assert reserve.call_count == 3
        assert exc_info.value.code == "CLASS_FULL"
        assert _registration_count(db, occurrence.id) == 0

    def test_conflict_then_success_retries_from_scratch(
        self, db, occurrence, test_client_record, now
    ):
        service = ClassBookingService(db, max_attempts=3, retry_backoff_seconds=0)
        real_reserve = service.gate.try_reserve_seat
        calls = []

        def flaky(occ, moment):
            calls.append(occ.id)
            if len(calls) == 1:
                raise ConcurrencyConflictException("class_occurrence", occ.id)
            return real_reserve(occ, moment)

        with patch.object(service.gate, "try_reserve_seat", side_effect=flaky):
            registration = service.book(occurrence.id, test_client_record.id, now=now)

        assert len(calls) == 2
        assert registration.status == RegistrationStatus.BOOKED
        assert _registration_count(db, occurrence.id) == 1


class TestCancel:
    def test_cancel_refunds_and_promotes_waitlist(self, db, booking_service, occurrence, now):
        alex = create_client(db, name="Alex")
        blair = create_client(db, name="Blair")
        casey = create_client(db, name="Casey")
        alex_pass = create_credit_pass(db, alex, credits=5, expires_at=now + timedelta(days=30))
        create_credit_pass(db, casey, credits=5, expires_at=now + timedelta(days=30))

        alex_booking = booking_service.book(occurrence.id, alex.id, now=now)
        booking_service.book(occurrence.id, blair.id, now=now)
        casey_waiting = booking_service.book(occurrence.id, casey.id, now=now + timedelta(minutes=1))
        assert casey_waiting.status == RegistrationStatus.WAITLIST

        result = booking_service.cancel(alex_booking.id, alex.id, now=now + timedelta(hours=1))

        assert result.previous_status == RegistrationStatus.BOOKED
        assert result.registration.status == RegistrationStatus.CANCELLED
        assert result.credits_refunded == 1
        assert result.refunded
        assert result.promoted_registration_id == casey_waiting.id
        db.refresh(alex_pass)
        assert alex_pass.credits_left == 5
        db.refresh(casey_waiting)
        assert casey_waiting.status == RegistrationStatus.BOOKED
        assert casey_waiting.payment_status == PaymentStatus.PAID
        availability = booking_service.get_availability(occurrence.id)
        assert availability.booked_count == 2
        assert availability.waitlist_count == 0

    def test_cancel_unpaid_booking_reduces_balance(
        self, db, booking_service, occurrence, test_client_record, now
    ):
        registration = booking_service.book(occurrence.id, test_client_record.id, now=now)

        result = booking_service.cancel(registration.id, now=now)

        assert result.unpaid_balance_reduced == 1000
        db.refresh(test_client_record)
        assert test_client_record.unpaid_balance == 0

    def test_promotion_without_pass_goes_unpaid_when_unpaid_booking_disabled(
        self, db, occurrence, now
    ):
        service = ClassBookingService(db, allow_unpaid=False, retry_backoff_seconds=0)
        alex = create_client(db, name="Alex")
        blair = create_client(db, name="Blair")
        casey = create_client(db, name="Casey")
        create_credit_pass(db, alex, credits=5, expires_at=now + timedelta(days=30))
        create_credit_pass(db, blair, credits=5, expires_at=now + timedelta(days=30))
        alex_booking = service.book(occurrence.id, alex.id, now=now)
        service.book(occurrence.id, blair.id, now=now)
        casey_waiting = service.book(occurrence.id, casey.id, now=now)
        assert casey_waiting.status == RegistrationStatus.WAITLIST

        result = service.cancel(alex_booking.id, alex.id, now=now + timedelta(hours=1))

        assert result.registration.status == RegistrationStatus.CANCELLED
        assert result.promoted_registration_id == casey_waiting.id
        db.refresh(casey_waiting)
        assert casey_waiting.status == RegistrationStatus.BOOKED
        assert casey_waiting.payment_status == PaymentStatus.UNPAID
        assert casey_waiting.credits_used == 0
        db.refresh(casey)
        assert casey.unpaid_balance == 1000

    def test_cancel_waitlisted_frees_nothing(self, db, booking_service, occurrence, now):
        booking_service.book(occurrence.id, create_client(db).id, now=now)
        booking_service.book(occurrence.id, create_client(db).id, now=now)
        first_waiting = create_client(db)
        second_waiting = create_client(db)
        waiting = booking_service.book(occurrence.id, first_waiting.id, now=now)
        other = booking_service.book(
            occurrence.id, second_waiting.id, now=now + timedelta(minutes=1)
        )

        result = booking_service.cancel(waiting.id, first_waiting.id, now=now)

        assert result.previous_status == RegistrationStatus.WAITLIST
        assert not result.refunded
        assert result.promoted_registration is None
        db.refresh(other)
        assert other.status == RegistrationStatus.WAITLIST

    def test_cancel_inside_window_is_locked(
        self, db, booking_service, occurrence, test_client_record, now
    ):
        registration = booking_service.book(occurrence.id, test_client_record.id, now=now)
        too_late = occurrence.starts_at - timedelta(hours=23)

        with pytest.raises(CancellationWindowPassedException):
            booking_service.cancel(registration.id, test_client_record.id, now=too_late)

        db.refresh(registration)
        assert registration.status == RegistrationStatus.BOOKED

    def test_cancel_someone_elses_registration(
        self, db, booking_service, occurrence, test_client_record, other_client_record, now
    ):
        registration = booking_service.book(occurrence.id, test_client_record.id, now=now)

        with pytest.raises(RegistrationNotFoundException):
            booking_service.cancel(registration.id, other_client_record.id, now=now)

    def test_double_cancel(self, db, booking_service, occurrence, test_client_record, now):
        registration = booking_service.book(occurrence.id, test_client_record.id, now=now)
        booking_service.cancel(registration.id, test_client_record.id, now=now)

        with pytest.raises(NoActiveRegistrationException):
            booking_service.cancel(registration.id, test_client_record.id, now=now)

    def test_cancel_for_client_by_occurrence(
        self, db, booking_service, occurrence, test_client_record, now
    ):
        registration = booking_service.book(occurrence.id, test_client_record.id, now=now)

        result = booking_service.cancel_for_client(occurrence.id, test_client_record.id, now=now)

        assert result.registration.id == registration.id
        with pytest.raises(RegistrationNotFoundException):
            booking_service.cancel_for_client(occurrence.id, test_client_record.id, now=now)


class TestPromoteAndAttendance:
    def test_explicit_promote_fills_free_seat(self, db, booking_service, occurrence, now):
        create_registration(db, occurrence, create_client(db))
        waiting = create_registration(
            db,
            occurrence,
            create_client(db),
            status=RegistrationStatus.WAITLIST,
            payment_status=PaymentStatus.PENDING,
        )

        promoted = booking_service.promote(occurrence.id, now=now)

        assert promoted is not None
        assert promoted.id == waiting.id
        assert booking_service.promote(occurrence.id, now=now) is None

    def test_record_attendance(self, db, booking_service, occurrence, test_client_record, now):
        registration = booking_service.book(occurrence.id, test_client_record.id, now=now)

        attended = booking_service.record_attendance(
            registration.id, attended=True, now=occurrence.ends_at
        )

        assert attended.status == RegistrationStatus.ATTENDED
        availability = booking_service.get_availability(occurrence.id)
        assert availability.booked_count == 1
