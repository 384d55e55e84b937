# backend/app/services/outbox_dispatcher.py
"""
Outbox dispatcher: delivers committed booking events to the provider.

Runs outside any booking transaction. Each delivery attempt uses its own
session; a failed send is rescheduled with the configured backoff until the
attempt budget is spent, after which the event is parked as FAILED.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
import logging
from time import monotonic
from typing import Callable, Iterator, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.constants import OUTBOX_BACKOFF_SECONDS
from app.database import SessionLocal
from app.monitoring.prometheus_metrics import PrometheusMetrics
from app.repositories.event_outbox_repository import EventOutboxRepository
from app.services.notification_provider import NotificationProvider

logger = logging.getLogger(__name__)

SENT = "sent"
RETRY = "retry"
FAILED = "failed"
MISSING = "missing"


def next_backoff(attempt_number: int) -> int:
    """Return backoff delay for the given attempt (1-indexed)."""
    index = max(0, min(attempt_number - 1, len(OUTBOX_BACKOFF_SECONDS) - 1))
    return OUTBOX_BACKOFF_SECONDS[index]


@dataclass
class DeliveryOutcome:
    event_id: str
    status: str
    attempt_number: int = 0
    backoff_seconds: int = 0
    error: Optional[Exception] = None

    @property
    def delivered(self) -> bool:
        return self.status == SENT


class OutboxDispatcher:
    def __init__(
        self,
        session_factory: Callable[[], Session] | None = None,
        provider: Optional[NotificationProvider] = None,
        max_attempts: Optional[int] = None,
    ) -> None:
        self._session_factory = session_factory or SessionLocal
        self.provider = provider or NotificationProvider(self._session_factory)
        self.max_attempts = max_attempts or settings.outbox_max_delivery_attempts

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def due_event_ids(self, limit: Optional[int] = None, now: Optional[datetime] = None) -> list[str]:
        """Ids of pending events whose next attempt time has passed."""
        with self._session_scope() as session:
            repo = EventOutboxRepository(session)
            pending = repo.fetch_pending(limit=limit or settings.outbox_batch_size, now=now)
            return [event.id for event in pending]

    def deliver(self, event_id: str) -> DeliveryOutcome:
        """
        Send one outbox event and record the result on its row.

        Provider errors are not raised; they come back on the outcome so the
        caller decides how to retry.
        """
        session = self._session_factory()
        start = 0.0
        try:
            repo = EventOutboxRepository(session)
            event = repo.get_by_id(event_id, for_update=False)
            if event is None:
                logger.warning("Outbox event %s missing; skipping", event_id)
                session.commit()
                return DeliveryOutcome(event_id=event_id, status=MISSING)

            attempt_number = event.attempt_count + 1
            event_type = event.event_type
            PrometheusMetrics.record_notification_attempt(event_type)

            try:
                start = monotonic()
                self.provider.send(
                    event_type=event_type,
                    payload=event.payload,
                    idempotency_key=event.idempotency_key,
                )
            except Exception as exc:
                PrometheusMetrics.observe_notification_dispatch(event_type, monotonic() - start)
                backoff = next_backoff(attempt_number)
                terminal = attempt_number >= self.max_attempts
                repo.mark_failed(
                    event_id,
                    attempt_count=attempt_number,
                    backoff_seconds=backoff,
                    error=str(exc),
                    terminal=terminal,
                )
                session.commit()
                if terminal:
                    PrometheusMetrics.record_notification_outcome(event_type, "failed")
                    logger.error(
                        "Outbox event %s failed after %s attempts: %s",
                        event_id,
                        attempt_number,
                        exc,
                    )
                    return DeliveryOutcome(event_id, FAILED, attempt_number, 0, exc)
                logger.warning(
                    "Retrying outbox event %s attempt=%s backoff=%ss",
                    event_id,
                    attempt_number,
                    backoff,
                )
                return DeliveryOutcome(event_id, RETRY, attempt_number, backoff, exc)

            PrometheusMetrics.observe_notification_dispatch(event_type, monotonic() - start)
            repo.mark_sent(event_id, attempt_number)
            session.commit()
            PrometheusMetrics.record_notification_outcome(event_type, "sent")
            logger.info(
                "Delivered outbox event %s type=%s attempts=%s",
                event_id,
                event_type,
                attempt_number,
            )
            return DeliveryOutcome(event_id, SENT, attempt_number)
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def drain(self, now: Optional[datetime] = None) -> list[DeliveryOutcome]:
        """Deliver every due event in-process (one batch)."""
        return [self.deliver(event_id) for event_id in self.due_event_ids(now=now)]
