# backend/app/repositories/notification_delivery_repository.py
"""
Repository for downstream notification delivery tracking.

The provider records every send here first; a second delivery of the same
outbox event only bumps the attempt counter.
"""

from __future__ import annotations

from typing import Any, Optional, cast

from sqlalchemy import Select, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session
import ulid

from app.database.session_utils import get_dialect_name
from app.models.event_outbox import NotificationDelivery
from app.models.types import utcnow


class NotificationDeliveryRepository:
    """Data access helper for notification_delivery rows."""

    def __init__(self, db: Session):
        self.db = db
        self._dialect = get_dialect_name(db, default="postgresql").lower()

    def record_delivery(
        self,
        event_type: str,
        idempotency_key: str,
        payload: Optional[dict[str, Any]] = None,
    ) -> tuple[NotificationDelivery, bool]:
        """
        Persist the delivery and report whether it is the first one.

        Returns ``(row, created)``; ``created`` is False for a repeat send of
        the same idempotency key.
        """
        payload = payload or {}
        now = utcnow()
        values = dict(
            id=str(ulid.ULID()),
            event_type=event_type,
            idempotency_key=idempotency_key,
            payload=payload,
            attempt_count=1,
            delivered_at=now,
            created_at=now,
        )

        if self._dialect == "postgresql":
            stmt = pg_insert(NotificationDelivery).values(**values)
        elif self._dialect == "sqlite":
            stmt = sqlite_insert(NotificationDelivery).values(**values)
        else:
            raise NotImplementedError(f"Unsupported dialect for deliveries: {self._dialect}")

        result = self.db.execute(stmt.on_conflict_do_nothing(index_elements=["idempotency_key"]))
        created = bool(getattr(result, "rowcount", 0))
        self.db.flush()

        row = self.get_by_idempotency_key(idempotency_key)
        if row is None:
            raise RuntimeError("Failed to load notification delivery after insert")
        if not created:
            row.record_duplicate(payload)
            self.db.flush()
        return row, created

    def get_by_idempotency_key(self, idempotency_key: str) -> Optional[NotificationDelivery]:
        stmt: Select[Any] = select(NotificationDelivery).where(
            NotificationDelivery.idempotency_key == idempotency_key
        )
        return cast(Optional[NotificationDelivery], self.db.execute(stmt).scalar_one_or_none())
