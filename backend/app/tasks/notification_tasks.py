# backend/app/tasks/notification_tasks.py
"""
Celery tasks for delivering the booking notification outbox.

Two-step workflow:
1. `outbox.dispatch_pending` periodically enqueues delivery tasks.
2. `outbox.deliver_event` performs one delivery, retrying with backoff.
"""

from __future__ import annotations

from typing import Any, Optional

from celery.app.task import Task  # noqa: F401 - used for type hints
from celery.utils.log import get_task_logger

from app.core.config import settings
from app.services.notification_provider import NotificationProvider
from app.services.outbox_dispatcher import FAILED, MISSING, RETRY, OutboxDispatcher
from app.tasks.celery_app import celery_app

logger = get_task_logger(__name__)

MAX_DELIVERY_ATTEMPTS = settings.outbox_max_delivery_attempts


def _dispatcher() -> OutboxDispatcher:
    return OutboxDispatcher(provider=NotificationProvider(), max_attempts=MAX_DELIVERY_ATTEMPTS)


@celery_app.task(name="outbox.dispatch_pending", max_retries=0, queue="notifications")
def dispatch_pending() -> int:
    """
    Fetch due outbox events and enqueue a delivery task for each.

    Returns the number of events scheduled.
    """
    event_ids = _dispatcher().due_event_ids(limit=settings.outbox_batch_size)
    for event_id in event_ids:
        deliver_event.apply_async((event_id,), queue="notifications")
    if event_ids:
        logger.info("Scheduled %s outbox events for delivery", len(event_ids))
    return len(event_ids)


@celery_app.task(
    name="outbox.deliver_event",
    bind=True,
    max_retries=MAX_DELIVERY_ATTEMPTS,
    default_retry_delay=30,
    queue="notifications",
)
def deliver_event(self: "Task[Any, Any]", event_id: str) -> Optional[str]:
    """Deliver a single outbox event."""
    outcome = _dispatcher().deliver(event_id)
    if outcome.status == MISSING:
        return None
    if outcome.status == FAILED and outcome.error is not None:
        raise outcome.error
    if outcome.status == RETRY and outcome.error is not None:
        raise self.retry(countdown=outcome.backoff_seconds, exc=outcome.error)
    return event_id
