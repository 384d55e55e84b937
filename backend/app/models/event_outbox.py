# backend/app/models/event_outbox.py
"""
Event outbox persistence models.

Booking events are written to ``event_outbox`` in the same transaction as the
registration change that caused them. A worker drains the table later, so a
notification is sent only for committed changes and never blocks a booking.
``notification_delivery`` records what the provider already sent, keyed by
the event's idempotency key.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict

from sqlalchemy import Column, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import JSON
import ulid

from app.database import Base

from .types import UTCDateTime, utcnow

_JSON_PAYLOAD = JSONB(astext_type=Text()).with_variant(JSON(), "sqlite")


class EventOutboxStatus(str, Enum):
    """Lifecycle states for an outbox event."""

    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class EventOutbox(Base):
    """Booking event awaiting delivery to the notification provider."""

    __tablename__ = "event_outbox"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    event_type = Column(String(100), nullable=False, index=True)
    aggregate_id = Column(String(64), nullable=False, index=True)
    idempotency_key = Column(String(255), nullable=False)
    payload = Column(_JSON_PAYLOAD, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default=EventOutboxStatus.PENDING.value, index=True)
    attempt_count = Column(Integer, nullable=False, default=0)
    next_attempt_at = Column(UTCDateTime(), nullable=True, index=True, default=utcnow)
    last_error = Column(Text, nullable=True)
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime(), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (UniqueConstraint("idempotency_key", name="uq_event_outbox_idempotency_key"),)


class NotificationDelivery(Base):
    """One notification handed to the provider, unique per idempotency key."""

    __tablename__ = "notification_delivery"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    event_type = Column(String(100), nullable=False, index=True)
    idempotency_key = Column(String(255), nullable=False)
    payload = Column(_JSON_PAYLOAD, nullable=False, default=dict)
    attempt_count = Column(Integer, nullable=False, default=1)
    delivered_at = Column(UTCDateTime(), nullable=False, default=utcnow)
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_notification_delivery_idempotency"),
    )

    def record_duplicate(self, payload: Dict[str, Any] | None = None) -> None:
        self.attempt_count += 1
        self.delivered_at = utcnow()
        if payload is not None:
            self.payload = payload
