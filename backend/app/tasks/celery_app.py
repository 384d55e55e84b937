# backend/app/tasks/celery_app.py
"""
Celery application configuration for Classbook.

Redis is the broker and result backend. The worker only runs the outbox
tasks; `outbox.dispatch_pending` is scheduled by beat.
"""

import os
from typing import Any, Dict, Type, cast

from celery import Celery, Task
from celery.signals import setup_logging

from app.core.config import settings


def create_celery_app() -> Celery:
    """
    Create and configure the Celery application.

    Returns:
        Celery: Configured Celery application instance
    """
    # Priority: CELERY_BROKER_URL -> REDIS_URL -> settings
    broker_url = (
        os.getenv("CELERY_BROKER_URL")
        or os.getenv("REDIS_URL")
        or settings.get_celery_broker_url()
    )
    result_backend = os.getenv("CELERY_RESULT_BACKEND") or broker_url

    celery_app = Celery(
        "classbook",
        broker=broker_url,
        backend=result_backend,
    )

    base_config: Dict[str, Any] = {
        "task_serializer": "json",
        "accept_content": ["json"],
        "result_serializer": "json",
        "timezone": "UTC",
        "enable_utc": True,
        # Worker settings
        "worker_prefetch_multiplier": 4,
        "worker_max_tasks_per_child": 1000,
        # Task execution settings
        "task_soft_time_limit": 60,
        "task_time_limit": 120,
        "task_acks_late": True,
        "task_reject_on_worker_lost": True,
        "task_default_retry_delay": 30,
        "worker_hijack_root_logger": False,
        "worker_redirect_stdouts": True,
        "worker_redirect_stdouts_level": "INFO",
        "broker_transport_options": {
            "visibility_timeout": 3600,
            "polling_interval": 10.0,
        },
    }
    celery_app.conf.update(base_config)

    celery_app.conf.imports = ("app.tasks.notification_tasks",)
    celery_app.conf.task_routes = {
        "outbox.*": {"queue": "notifications"},
    }
    celery_app.conf.beat_schedule = {
        "dispatch-notification-outbox": {
            "task": "outbox.dispatch_pending",
            "schedule": 30.0,
            "options": {"queue": "notifications"},
        },
    }

    return celery_app


# Disable Celery's default logging configuration
@setup_logging.connect  # type: ignore[misc]
def config_loggers(*args: Any, **kwargs: Any) -> None:
    """Configure logging to integrate with the application's logging setup."""
    import logging

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


celery_app = create_celery_app()


class BaseTask(Task):  # type: ignore[misc]
    """Base task that logs failures and retries."""

    def on_failure(self, exc: Exception, task_id: str, args: Any, kwargs: Any, einfo: Any) -> None:
        import logging

        logger = logging.getLogger(__name__)
        logger.error(
            "Task %s[%s] failed with exception: %s",
            self.name,
            task_id,
            exc,
            exc_info=True,
            extra={"task_id": task_id, "task_name": self.name, "task_args": str(args)},
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_retry(self, exc: Exception, task_id: str, args: Any, kwargs: Any, einfo: Any) -> None:
        import logging

        logger = logging.getLogger(__name__)
        logger.warning(
            "Task %s[%s] retry %s due to: %s",
            self.name,
            task_id,
            self.request.retries,
            exc,
            extra={"task_id": task_id, "task_name": self.name, "retry_count": self.request.retries},
        )
        super().on_retry(exc, task_id, args, kwargs, einfo)


celery_app.Task = cast(Type[Task], BaseTask)
