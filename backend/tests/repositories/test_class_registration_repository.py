# backend/tests/repositories/test_class_registration_repository.py
"""
Tests for ClassRegistrationRepository.

Tests cover:
- Duplicate active registrations mapped to AlreadyRegisteredException
- Other integrity errors propagated unchanged
- Seat and waitlist counts
"""

import pytest
from sqlalchemy.exc import IntegrityError

from app.core.enums import PaymentStatus, RegistrationStatus
from app.core.exceptions import AlreadyRegisteredException
from app.repositories.class_registration_repository import ClassRegistrationRepository
from tests.factories.class_booking import create_client, create_registration


def _values(occurrence, client, **overrides):
    values = {
        "occurrence_id": occurrence.id,
        "client_id": client.id,
        "status": RegistrationStatus.BOOKED,
        "payment_status": PaymentStatus.COMPED,
    }
    values.update(overrides)
    return values


class TestCreateRegistration:
    """Tests for create_registration."""

    def test_second_active_registration_is_already_registered(
        self, db, occurrence, test_client_record
    ):
        repo = ClassRegistrationRepository(db)
        repo.create_registration(**_values(occurrence, test_client_record))
        db.commit()

        with pytest.raises(AlreadyRegisteredException):
            repo.create_registration(
                **_values(occurrence, test_client_record, status=RegistrationStatus.WAITLIST)
            )
        db.rollback()

    def test_cancelled_registration_does_not_block_a_new_one(
        self, db, occurrence, test_client_record
    ):
        create_registration(
            db, occurrence, test_client_record, status=RegistrationStatus.CANCELLED
        )
        repo = ClassRegistrationRepository(db)

        registration = repo.create_registration(**_values(occurrence, test_client_record))
        db.commit()

        assert registration.status == RegistrationStatus.BOOKED

    def test_other_unique_violation_is_not_already_registered(
        self, db, occurrence, test_client_record, other_client_record
    ):
        existing = create_registration(db, occurrence, test_client_record)
        existing_id = existing.id
        db.expunge_all()
        repo = ClassRegistrationRepository(db)

        with pytest.raises(IntegrityError):
            repo.create_registration(**_values(occurrence, other_client_record, id=existing_id))
        db.rollback()

        assert repo.count_confirmed(occurrence.id) == 1


def test_counts_split_seats_and_waitlist(db, occurrence):
    create_registration(db, occurrence, create_client(db))
    create_registration(db, occurrence, create_client(db), status=RegistrationStatus.ATTENDED)
    create_registration(db, occurrence, create_client(db), status=RegistrationStatus.WAITLIST)
    create_registration(db, occurrence, create_client(db), status=RegistrationStatus.CANCELLED)
    repo = ClassRegistrationRepository(db)

    assert repo.count_confirmed(occurrence.id) == 2
    assert repo.count_waitlisted(occurrence.id) == 1
