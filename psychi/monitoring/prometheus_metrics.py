"""
Prometheus metrics for the booking engine.

Metrics live on a private registry so embedding applications can expose them
next to their own without name clashes.
"""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "psychi_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "psychi_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "psychi_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

booking_conflicts_total = Counter(
    "psychi_booking_conflicts_total",
    "Booking attempts rejected because the slot was gone",
    ["stage"],
    registry=REGISTRY,
)

refund_issuance_failures_total = Counter(
    "psychi_refund_issuance_failures_total",
    "Refunds that need manual reconciliation",
    ["context"],
    registry=REGISTRY,
)

reminders_total = Counter(
    "psychi_reminders_total",
    "Reminder scheduling actions",
    ["action"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Thin recording facade used by services."""

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()

    @staticmethod
    def record_booking_conflict(stage: str) -> None:
        """``stage`` is ``advisory`` (slot list) or ``write`` (store conflict)."""
        booking_conflicts_total.labels(stage=stage).inc()

    @staticmethod
    def record_refund_failure(context: str) -> None:
        refund_issuance_failures_total.labels(context=context).inc()

    @staticmethod
    def record_reminders(action: str, count: int = 1) -> None:
        if count:
            reminders_total.labels(action=action).inc(count)

    @staticmethod
    def render() -> bytes:
        return generate_latest(REGISTRY)


prometheus_metrics = PrometheusMetrics()
