# backend/app/repositories/class_registration_repository.py
"""
Class registration repository.

Seat and waitlist counts are always computed here from the registration set;
nothing caches them.
"""

from typing import Any, Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from app.core.enums import (
    ACTIVE_REGISTRATION_STATUSES,
    SEAT_HOLDING_STATUSES,
    RegistrationStatus,
)
from app.core.exceptions import AlreadyRegisteredException
from app.models.registration import ClassRegistration

from .base_repository import BaseRepository

_ACTIVE_INDEX_NAME = "uq_class_registrations_active"
# SQLite names the columns of a violated unique index instead of the index
_ACTIVE_INDEX_COLUMNS = "class_registrations.occurrence_id, class_registrations.client_id"


def _ordered(statuses: Iterable[RegistrationStatus]) -> List[RegistrationStatus]:
    return sorted(statuses, key=lambda status: status.value)


class ClassRegistrationRepository(BaseRepository[ClassRegistration]):
    """Data access for class registrations."""

    def __init__(self, db: Session):
        super().__init__(db, ClassRegistration)

    def get_with_occurrence(self, registration_id: str) -> Optional[ClassRegistration]:
        stmt = (
            select(ClassRegistration)
            .options(joinedload(ClassRegistration.occurrence))
            .where(ClassRegistration.id == registration_id)
            .execution_options(populate_existing=True)
        )
        try:
            return self.db.execute(stmt).unique().scalar_one_or_none()
        except SQLAlchemyError as e:
            self._raise_db_error(e, f"Failed to load registration {registration_id}", registration_id)

    def find_active(self, occurrence_id: str, client_id: str) -> Optional[ClassRegistration]:
        """Return the client's booked or waitlisted registration for an occurrence."""
        stmt = (
            select(ClassRegistration)
            .where(ClassRegistration.occurrence_id == occurrence_id)
            .where(ClassRegistration.client_id == client_id)
            .where(ClassRegistration.status.in_(_ordered(ACTIVE_REGISTRATION_STATUSES)))
            .execution_options(populate_existing=True)
        )
        try:
            return self.db.execute(stmt).scalars().first()
        except SQLAlchemyError as e:
            self._raise_db_error(e, "Failed to look up active registration", occurrence_id)

    def create_registration(self, **values: Any) -> ClassRegistration:
        """
        Insert a registration.

        A violation of the active-registration unique index means a concurrent
        request registered the same client first.
        """
        try:
            return self.create(**values)
        except IntegrityError as e:
            message = str(e.orig)
            if _ACTIVE_INDEX_NAME not in message and _ACTIVE_INDEX_COLUMNS not in message:
                self.logger.error("Integrity error creating registration: %s", e)
                raise
            self.logger.info(
                "Duplicate active registration for client %s on occurrence %s",
                values.get("client_id"),
                values.get("occurrence_id"),
            )
            raise AlreadyRegisteredException(
                str(values.get("occurrence_id")), str(values.get("client_id"))
            ) from e

    def count_confirmed(self, occurrence_id: str) -> int:
        """Registrations holding a seat (booked or attended)."""
        return self._count_in(occurrence_id, SEAT_HOLDING_STATUSES)

    def count_waitlisted(self, occurrence_id: str) -> int:
        return self._count_in(occurrence_id, {RegistrationStatus.WAITLIST})

    def next_waitlisted(self, occurrence_id: str) -> Optional[ClassRegistration]:
        """Oldest waitlist entry, ties broken by id."""
        stmt = (
            select(ClassRegistration)
            .where(ClassRegistration.occurrence_id == occurrence_id)
            .where(ClassRegistration.status == RegistrationStatus.WAITLIST)
            .order_by(ClassRegistration.booked_at.asc(), ClassRegistration.id.asc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        if self.uses_row_locks:
            stmt = stmt.with_for_update()
        try:
            return self.db.execute(stmt).scalars().first()
        except SQLAlchemyError as e:
            self._raise_db_error(e, "Failed to load next waitlisted registration", occurrence_id)

    def _count_in(self, occurrence_id: str, statuses: Any) -> int:
        stmt = (
            select(func.count(ClassRegistration.id))
            .where(ClassRegistration.occurrence_id == occurrence_id)
            .where(ClassRegistration.status.in_(_ordered(statuses)))
        )
        return int(self._execute_scalar(stmt) or 0)
