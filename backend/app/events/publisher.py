"""Event publisher - writes registration events to the notification outbox."""
from datetime import datetime
from typing import Any, ClassVar, Dict, Protocol

from app.repositories.event_outbox_repository import EventOutboxRepository


class Event(Protocol):
    """Protocol for event types."""

    event_type: ClassVar[str]
    registration_id: str

    def to_dict(self) -> Dict[str, Any]:
        ...


class EventPublisher:
    """Publishes domain events into the outbox inside the caller's transaction."""

    def __init__(self, outbox_repository: EventOutboxRepository):
        self.outbox_repo = outbox_repository

    def publish(self, event: Event) -> None:
        """
        Queue an event for delivery after the surrounding transaction commits.

        One event per (type, registration): a unit of work retried after a
        conflict re-publishes the same key and the outbox keeps a single row.
        """
        payload = event.to_dict()

        # Convert datetime objects to ISO strings for JSON serialization
        for key, value in payload.items():
            if isinstance(value, datetime):
                payload[key] = value.isoformat()

        self.outbox_repo.enqueue(
            event_type=event.event_type,
            aggregate_id=event.registration_id,
            payload=payload,
            idempotency_key=f"{event.event_type}:{event.registration_id}",
        )
