# backend/app/services/notification_provider.py
"""
Notification provider used by the outbox dispatcher.

Stands in for the downstream channel (email/SMS/push, calendar sync) and
keeps delivery idempotent through the notification_delivery table: the same
outbox event delivered twice is recorded once. The environment flag
`NOTIFICATION_PROVIDER_RAISE_ON` (comma separated event types, keys or `*`)
makes sends fail transiently, which the retry tests rely on.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
import json
import logging
import os
from typing import Any, Callable, Dict, Generator, Optional

from sqlalchemy.orm import Session

from app.database import SessionLocal
from app.repositories.notification_delivery_repository import NotificationDeliveryRepository

logger = logging.getLogger(__name__)


class NotificationProviderTemporaryError(RuntimeError):
    """Transient provider failure; the outbox retries the event later."""


def _should_raise(event_type: str, idempotency_key: str) -> bool:
    raw = os.getenv("NOTIFICATION_PROVIDER_RAISE_ON")
    if not raw:
        return False

    tokens = {token.strip() for token in raw.split(",") if token.strip()}
    return "*" in tokens or event_type in tokens or idempotency_key in tokens


@contextmanager
def _managed_session(session_factory: Callable[[], Session]) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@dataclass(slots=True)
class NotificationDispatchResult:
    """What the provider recorded for one send."""

    idempotency_key: str
    event_type: str
    attempt_count: int
    duplicate: bool
    stored_payload: Dict[str, Any]


class NotificationProvider:
    """
    Records registration notifications in notification_delivery.

    Usage:
        provider = NotificationProvider()
        provider.send(
            event_type="class_registration.booked",
            payload={...},
            idempotency_key="class_registration.booked:01H...",
        )
    """

    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        self._session_factory = session_factory or SessionLocal

    def send(
        self,
        event_type: str,
        payload: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> NotificationDispatchResult:
        if not idempotency_key:
            raise ValueError("idempotency_key is required for notification dispatch")

        if _should_raise(event_type, idempotency_key):
            logger.warning("Simulating provider failure for %s (%s)", event_type, idempotency_key)
            raise NotificationProviderTemporaryError(
                f"Simulated transient failure for {event_type}"
            )

        payload = payload or {}
        logger.info(
            "Dispatching notification %s key=%s payload=%s",
            event_type,
            idempotency_key,
            json.dumps(payload, sort_keys=True, default=str)[:500],
        )

        with _managed_session(self._session_factory) as session:
            repo = NotificationDeliveryRepository(session)
            record, created = repo.record_delivery(event_type, idempotency_key, payload)
            if not created:
                logger.info(
                    "Notification %s already delivered; attempts=%s",
                    idempotency_key,
                    record.attempt_count,
                )
            return NotificationDispatchResult(
                idempotency_key=idempotency_key,
                event_type=event_type,
                attempt_count=record.attempt_count,
                duplicate=not created,
                stored_payload=dict(record.payload or {}),
            )
