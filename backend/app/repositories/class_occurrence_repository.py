# backend/app/repositories/class_occurrence_repository.py
"""
Class occurrence repository.

Besides plain reads this repository owns the two locking primitives the
booking engine relies on: the pessimistic row lock (PostgreSQL only) and the
optimistic version claim (every dialect).
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.orm.attributes import set_committed_value

from app.models.class_occurrence import ClassOccurrence
from app.models.types import utcnow

from .base_repository import BaseRepository


class ClassOccurrenceRepository(BaseRepository[ClassOccurrence]):
    """Data access for class occurrences."""

    def __init__(self, db: Session):
        super().__init__(db, ClassOccurrence)

    def get_with_template(self, occurrence_id: str) -> Optional[ClassOccurrence]:
        stmt = (
            select(ClassOccurrence)
            .options(joinedload(ClassOccurrence.template))
            .where(ClassOccurrence.id == occurrence_id)
        )
        try:
            return self.db.execute(stmt).unique().scalar_one_or_none()
        except SQLAlchemyError as e:
            self._raise_db_error(e, f"Failed to load occurrence {occurrence_id}", occurrence_id)

    def get_for_update(self, occurrence_id: str) -> Optional[ClassOccurrence]:
        """
        Load the occurrence and lock its row until the transaction ends.

        On SQLite the lock clause is skipped; callers must still claim the
        version token before writing.
        """
        stmt = (
            select(ClassOccurrence)
            .where(ClassOccurrence.id == occurrence_id)
            .execution_options(populate_existing=True)
        )
        if self.uses_row_locks:
            stmt = stmt.with_for_update(of=ClassOccurrence)
        try:
            occurrence = self.db.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as e:
            self._raise_db_error(e, f"Failed to lock occurrence {occurrence_id}", occurrence_id)
        return occurrence

    def claim_version(self, occurrence: ClassOccurrence, now: Optional[datetime] = None) -> bool:
        """
        Bump the version token if nobody else did since ``occurrence`` was read.

        Returns False when a concurrent transaction already changed the
        occurrence's registration set.
        """
        seen = occurrence.version
        stmt = (
            update(ClassOccurrence)
            .where(ClassOccurrence.id == occurrence.id)
            .where(ClassOccurrence.version == seen)
            .values(version=seen + 1, updated_at=now or utcnow())
        )
        claimed = self._execute_rowcount(stmt, occurrence.id) == 1
        if claimed:
            set_committed_value(occurrence, "version", seen + 1)
        else:
            self.logger.info(
                "Version claim lost for occurrence %s (seen version %s)", occurrence.id, seen
            )
        return claimed
