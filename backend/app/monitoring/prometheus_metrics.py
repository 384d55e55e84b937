"""
Prometheus metrics module for Classbook.

Service timings come from the @measure_operation decorator; the booking
counters are incremented by ClassBookingService and the notification
counters by the outbox tasks.
"""

from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Custom registry so repeated app construction in tests never re-registers
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "classbook_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "classbook_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "classbook_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

bookings_total = Counter(
    "classbook_bookings_total",
    "Registrations created by placement and payment outcome",
    ["placement", "payment_status"],
    registry=REGISTRY,
)

cancellations_total = Counter(
    "classbook_cancellations_total",
    "Cancelled registrations by prior status",
    ["previous_status"],
    registry=REGISTRY,
)

waitlist_promotions_total = Counter(
    "classbook_waitlist_promotions_total",
    "Waitlisted registrations promoted to booked",
    ["payment_status"],
    registry=REGISTRY,
)

concurrency_retries_total = Counter(
    "classbook_concurrency_retries_total",
    "Booking units of work retried after losing a concurrent race",
    ["operation"],
    registry=REGISTRY,
)

notifications_outbox_total = Counter(
    "classbook_notifications_outbox_total",
    "Total notification outbox events by terminal status",
    ["status", "event_type"],
    registry=REGISTRY,
)

notifications_outbox_attempt_total = Counter(
    "classbook_notifications_outbox_attempt_total",
    "Number of notification outbox delivery attempts",
    ["event_type"],
    registry=REGISTRY,
)

notifications_dispatch_seconds = Histogram(
    "classbook_notifications_dispatch_seconds",
    "Notification provider dispatch duration in seconds",
    ["event_type"],
    registry=REGISTRY,
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from @measure_operation decorator.

        Args:
            service: Service name (e.g., 'ClassBookingService')
            operation: Operation name (e.g., 'book')
            duration: Operation duration in seconds
            status: Operation status ('success' or 'error')
            error_type: Exception class name if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()

    @staticmethod
    def record_booking(placement: str, payment_status: str) -> None:
        bookings_total.labels(placement=placement, payment_status=payment_status).inc()

    @staticmethod
    def record_cancellation(previous_status: str) -> None:
        cancellations_total.labels(previous_status=previous_status).inc()

    @staticmethod
    def record_promotion(payment_status: str) -> None:
        waitlist_promotions_total.labels(payment_status=payment_status).inc()

    @staticmethod
    def record_concurrency_retry(operation: str) -> None:
        concurrency_retries_total.labels(operation=operation).inc()

    @staticmethod
    def record_notification_attempt(event_type: str) -> None:
        """Increment attempt counter for notification outbox delivery."""
        notifications_outbox_attempt_total.labels(event_type=event_type).inc()

    @staticmethod
    def record_notification_outcome(event_type: str, status: str) -> None:
        """Record terminal outcome for notification outbox delivery."""
        notifications_outbox_total.labels(status=status, event_type=event_type).inc()

    @staticmethod
    def observe_notification_dispatch(event_type: str, duration: float) -> None:
        notifications_dispatch_seconds.labels(event_type=event_type).observe(max(duration, 0.0))

    @staticmethod
    def get_metrics() -> bytes:
        """Generate Prometheus metrics in exposition format."""
        return cast(bytes, generate_latest(REGISTRY))

    @staticmethod
    def get_content_type() -> str:
        return cast(str, CONTENT_TYPE_LATEST)


# Singleton instance
prometheus_metrics = PrometheusMetrics()
