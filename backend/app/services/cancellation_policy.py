# backend/app/services/cancellation_policy.py
"""Cancellation window rule: no cancelling within N hours of class start."""

from datetime import datetime, timedelta
from typing import Optional

from ..core.config import settings
from ..core.exceptions import CancellationWindowPassedException, NoActiveRegistrationException
from ..models.class_occurrence import ClassOccurrence
from ..models.registration import ClassRegistration


class CancellationPolicy:
    def __init__(self, window_hours: Optional[int] = None):
        self.window_hours = (
            settings.booking_cancellation_window_hours if window_hours is None else window_hours
        )

    @property
    def window(self) -> timedelta:
        return timedelta(hours=self.window_hours)

    def deadline(self, occurrence: ClassOccurrence) -> datetime:
        """Last moment (exclusive) a registration for ``occurrence`` can be cancelled."""
        return occurrence.starts_at - self.window

    def can_cancel(
        self, registration: ClassRegistration, occurrence: ClassOccurrence, now: datetime
    ) -> bool:
        return registration.is_active and now < self.deadline(occurrence)

    def assert_can_cancel(
        self, registration: ClassRegistration, occurrence: ClassOccurrence, now: datetime
    ) -> None:
        if not registration.is_active:
            raise NoActiveRegistrationException(registration.id, registration.status.value)
        deadline = self.deadline(occurrence)
        if now >= deadline:
            raise CancellationWindowPassedException(self.window_hours, deadline.isoformat())
