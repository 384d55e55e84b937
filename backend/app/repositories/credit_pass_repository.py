# backend/app/repositories/credit_pass_repository.py
"""
Credit Pass Repository for the booking engine.

Balance changes are single guarded UPDATE statements. There is no
read-modify-write of ``credits_left`` anywhere in the application, so two
debits racing for the last credit cannot both succeed.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import List, Optional, cast

from sqlalchemy import and_, case, func, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.enums import CreditPassStatus
from app.models.credit_pass import CreditPass

from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


def _usable_at(moment: datetime, required: int):
    return and_(
        CreditPass.status == CreditPassStatus.ACTIVE,
        CreditPass.credits_left >= required,
        or_(CreditPass.valid_from.is_(None), CreditPass.valid_from <= moment),
        or_(CreditPass.expires_at.is_(None), CreditPass.expires_at > moment),
    )


class CreditPassRepository(BaseRepository[CreditPass]):
    """Repository for credit pass selection and balance updates."""

    def __init__(self, db: Session):
        super().__init__(db, CreditPass)

    def get_usable_passes(
        self, *, client_id: str, required: int, at: datetime, for_update: bool = False
    ) -> List[CreditPass]:
        """
        Return passes able to cover ``required`` credits at ``at``.

        Ordered soonest expiry first (open-ended passes last), then oldest
        purchase, then id.
        """
        try:
            query = (
                self.db.query(CreditPass)
                .filter(CreditPass.client_id == client_id, _usable_at(at, required))
                .order_by(
                    CreditPass.expires_at.asc().nullslast(),
                    CreditPass.purchased_at.asc(),
                    CreditPass.id.asc(),
                )
                .populate_existing()
            )
            if for_update and self.uses_row_locks:
                query = query.with_for_update()
            return cast(List[CreditPass], query.all())
        except SQLAlchemyError as exc:
            self._raise_db_error(exc, "Failed to get usable passes", client_id)

    def debit(self, pass_id: str, credits: int, now: datetime) -> bool:
        """
        Take ``credits`` from a pass if it still holds them.

        Marks the pass depleted when the debit empties it. Returns False when
        the guard matched no row (drained, expired or deactivated meanwhile).
        """
        remaining = CreditPass.credits_left - credits
        stmt = (
            update(CreditPass)
            .where(
                CreditPass.id == pass_id,
                CreditPass.status == CreditPassStatus.ACTIVE,
                CreditPass.credits_left >= credits,
            )
            .values(
                credits_left=remaining,
                status=case(
                    (remaining == 0, CreditPassStatus.DEPLETED.value),
                    else_=CreditPass.status,
                ),
                updated_at=now,
            )
        )
        return self._execute_rowcount(stmt, pass_id) == 1

    def find_refund_target(self, *, client_id: str, credits: int) -> Optional[CreditPass]:
        """Most recently debited pass that can take ``credits`` back."""
        try:
            query = (
                self.db.query(CreditPass)
                .filter(
                    CreditPass.client_id == client_id,
                    CreditPass.status.in_([CreditPassStatus.ACTIVE, CreditPassStatus.DEPLETED]),
                    CreditPass.credits_left + credits <= CreditPass.total_credits,
                )
                .order_by(CreditPass.updated_at.desc().nullslast(), CreditPass.id.desc())
            )
            if self.uses_row_locks:
                query = query.with_for_update()
            return cast(Optional[CreditPass], query.first())
        except SQLAlchemyError as exc:
            self._raise_db_error(exc, "Failed to find refund target", client_id)

    def refund(self, pass_id: str, credits: int, now: datetime) -> bool:
        """
        Give ``credits`` back to a pass, reactivating it if it was depleted.

        Returns False if the pass would exceed its total or was expired.
        """
        stmt = (
            update(CreditPass)
            .where(
                CreditPass.id == pass_id,
                CreditPass.status.in_([CreditPassStatus.ACTIVE, CreditPassStatus.DEPLETED]),
                CreditPass.credits_left + credits <= CreditPass.total_credits,
            )
            .values(
                credits_left=CreditPass.credits_left + credits,
                status=CreditPassStatus.ACTIVE,
                updated_at=now,
            )
        )
        return self._execute_rowcount(stmt, pass_id) == 1

    def sum_usable_credits(self, *, client_id: str, at: datetime) -> tuple[int, int]:
        """Return (total usable credits, number of usable passes)."""
        try:
            row = (
                self.db.query(
                    func.coalesce(func.sum(CreditPass.credits_left), 0),
                    func.count(CreditPass.id),
                )
                .filter(CreditPass.client_id == client_id, _usable_at(at, 1))
                .one()
            )
            return int(row[0]), int(row[1])
        except SQLAlchemyError as exc:
            self._raise_db_error(exc, "Failed to sum usable credits", client_id)
