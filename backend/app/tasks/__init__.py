# backend/app/tasks/__init__.py
"""
Celery tasks package for Classbook.

Run the worker with: celery -A app.tasks worker -Q notifications
"""

from app.tasks.celery_app import BaseTask, celery_app
from app.tasks.notification_tasks import deliver_event, dispatch_pending

__all__ = [
    "celery_app",
    "BaseTask",
    "deliver_event",
    "dispatch_pending",
]
