"""
Prometheus metrics for the scheduling backend.

Service timings come from the @measure_operation decorator; booking claim
and notification counters are recorded by the booking validator and the
session notifier.
"""

from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Custom registry so test runs and multiple app instances don't collide
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "mentorship_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "mentorship_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "mentorship_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

booking_claims_total = Counter(
    "mentorship_booking_claims_total",
    "Booking and reschedule claim attempts by outcome",
    ["operation", "outcome"],  # outcome: success | conflict | unavailable | timeout
    registry=REGISTRY,
)

session_transitions_total = Counter(
    "mentorship_session_transitions_total",
    "Committed session state transitions",
    ["action", "to_status"],
    registry=REGISTRY,
)

notifications_total = Counter(
    "mentorship_notifications_total",
    "Notification dispatch attempts by kind and outcome",
    ["kind", "outcome"],  # outcome: sent | failed | disabled
    registry=REGISTRY,
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
            service: Service name (e.g., 'BookingValidator')
            operation: Operation name (e.g., 'book_slot')
            duration: Operation duration in seconds
            status: 'success' or 'error'
            error_type: Exception class name if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()

    @staticmethod
    def record_booking_claim(operation: str, outcome: str) -> None:
        booking_claims_total.labels(operation=operation, outcome=outcome).inc()

    @staticmethod
    def record_transition(action: str, to_status: str) -> None:
        session_transitions_total.labels(action=action, to_status=to_status).inc()

    @staticmethod
    def record_notification(kind: str, outcome: str) -> None:
        notifications_total.labels(kind=kind, outcome=outcome).inc()

    @staticmethod
    def get_metrics() -> bytes:
        """Generate Prometheus metrics in exposition format."""
        return cast(bytes, generate_latest(REGISTRY))

    @staticmethod
    def get_content_type() -> str:
        return cast(str, CONTENT_TYPE_LATEST)


prometheus_metrics = PrometheusMetrics()
