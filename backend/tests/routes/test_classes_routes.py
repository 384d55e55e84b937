# backend/tests/routes/test_classes_routes.py
"""
Route tests for the v1 class booking endpoints.

The routes call the booking service with the real clock, so every class used
here starts well after today.
"""

from datetime import timedelta

from fastapi import status

from app.core.enums import RegistrationStatus
from app.models.types import utcnow
from tests.factories.class_booking import create_client, create_occurrence, create_registration

MISSING_ID = "01HZZZZZZZZZZZZZZZZZZZZZZZ"


def _headers(client_record):
    return {"X-Client-ID": client_record.id}


class TestBookRoute:
    def test_book_returns_created_registration(
        self, client, occurrence, test_client_record, ten_class_pass
    ):
        response = client.post(
            f"/api/v1/classes/{occurrence.id}/book", headers=_headers(test_client_record)
        )

        assert response.status_code == status.HTTP_201_CREATED
        body = response.json()
        assert body["occurrence_id"] == occurrence.id
        assert body["client_id"] == test_client_record.id
        assert body["status"] == "booked"
        assert body["payment_status"] == "paid"
        assert body["credits_used"] == 1

    def test_full_class_returns_waitlisted(self, client, db, occurrence, test_client_record):
        create_registration(db, occurrence, create_client(db))
        create_registration(db, occurrence, create_client(db))

        response = client.post(
            f"/api/v1/classes/{occurrence.id}/book", headers=_headers(test_client_record)
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["status"] == "waitlist"
        assert response.json()["payment_status"] == "pending"

    def test_missing_client_header_is_unauthorized(self, client, occurrence):
        response = client.post(f"/api/v1/classes/{occurrence.id}/book")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["code"] == "NOT_AUTHENTICATED"

    def test_malformed_client_header_is_unauthorized(self, client, occurrence):
        response = client.post(
            f"/api/v1/classes/{occurrence.id}/book", headers={"X-Client-ID": "not-a-ulid"}
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["code"] == "INVALID_CLIENT_ID"

    def test_unknown_class_is_not_found(self, client, test_client_record):
        response = client.post(
            f"/api/v1/classes/{MISSING_ID}/book", headers=_headers(test_client_record)
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        body = response.json()
        assert body["code"] == "OCCURRENCE_NOT_FOUND"
        assert body["instance"] == f"/api/v1/classes/{MISSING_ID}/book"

    def test_duplicate_booking_conflicts(self, client, occurrence, test_client_record):
        url = f"/api/v1/classes/{occurrence.id}/book"
        assert client.post(url, headers=_headers(test_client_record)).status_code == 201

        response = client.post(url, headers=_headers(test_client_record))

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["code"] == "ALREADY_REGISTERED"

    def test_malformed_class_id_fails_validation(self, client, test_client_record):
        response = client.post("/api/v1/classes/abc/book", headers=_headers(test_client_record))

        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"


class TestCancelRoutes:
    def test_cancel_by_registration_promotes_waitlist(self, client, db, occurrence):
        alex = create_client(db, name="Alex")
        blair = create_client(db, name="Blair")
        casey = create_client(db, name="Casey")
        alex_booking = create_registration(db, occurrence, alex)
        create_registration(db, occurrence, blair)
        waiting = create_registration(db, occurrence, casey, status=RegistrationStatus.WAITLIST)

        response = client.post(
            f"/api/v1/registrations/{alex_booking.id}/cancel", headers=_headers(alex)
        )

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["previous_status"] == "booked"
        assert body["registration"]["status"] == "cancelled"
        assert body["promoted_registration_id"] == waiting.id

    def test_cancel_by_class(self, client, occurrence, test_client_record):
        booked = client.post(
            f"/api/v1/classes/{occurrence.id}/book", headers=_headers(test_client_record)
        ).json()

        response = client.post(
            f"/api/v1/classes/{occurrence.id}/cancel", headers=_headers(test_client_record)
        )

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["registration"]["id"] == booked["id"]
        assert body["refunded"] is True
        assert body["unpaid_balance_reduced"] == 1000

    def test_cancel_inside_window_is_locked(self, client, db, test_client_record):
        soon = create_occurrence(db, starts_at=utcnow() + timedelta(hours=3))
        registration = create_registration(db, soon, test_client_record)

        response = client.post(
            f"/api/v1/registrations/{registration.id}/cancel",
            headers=_headers(test_client_record),
        )

        assert response.status_code == status.HTTP_423_LOCKED
        body = response.json()
        assert body["code"] == "CANCELLATION_WINDOW_PASSED"
        assert body["errors"]["locked"] is True

    def test_cancel_other_clients_registration_is_not_found(
        self, client, db, occurrence, test_client_record, other_client_record
    ):
        registration = create_registration(db, occurrence, test_client_record)

        response = client.post(
            f"/api/v1/registrations/{registration.id}/cancel",
            headers=_headers(other_client_record),
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["code"] == "REGISTRATION_NOT_FOUND"

    def test_cancel_twice_conflicts(self, client, db, occurrence, test_client_record):
        registration = create_registration(db, occurrence, test_client_record)
        url = f"/api/v1/registrations/{registration.id}/cancel"
        assert client.post(url, headers=_headers(test_client_record)).status_code == 200

        response = client.post(url, headers=_headers(test_client_record))

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["code"] == "NO_ACTIVE_REGISTRATION"


class TestAvailabilityRoute:
    def test_availability_counts(self, client, db, occurrence):
        create_registration(db, occurrence, create_client(db))
        create_registration(db, occurrence, create_client(db), status=RegistrationStatus.WAITLIST)

        response = client.get(f"/api/v1/classes/{occurrence.id}/availability")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {
            "occurrence_id": occurrence.id,
            "capacity": 2,
            "booked_count": 1,
            "available_spots": 1,
            "waitlist_count": 1,
            "is_full": False,
        }

    def test_availability_unknown_class(self, client):
        response = client.get(f"/api/v1/classes/{MISSING_ID}/availability")

        assert response.status_code == status.HTTP_404_NOT_FOUND


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_metrics_exposes_booking_counters(client, occurrence, test_client_record):
    client.post(f"/api/v1/classes/{occurrence.id}/book", headers=_headers(test_client_record))

    response = client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "classbook_bookings_total" in response.text
    assert "classbook_service_operations_total" in response.text
