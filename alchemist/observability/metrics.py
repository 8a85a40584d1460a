"""
Metrics Collection with Prometheus.

Exposes business and system metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Histogram, Info

from alchemist.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    OUTCOME = "outcome"
    PLAN = "plan"
    ERROR_TYPE = "error_type"


class AlchemistMetrics:
    """
    Centralized metrics for the Keyword Alchemist API.

    Covers:
    - HTTP requests (rate, duration)
    - Credit authorizations and settlements
    - Keyword generation attempts
    - Unbilled credits and overspend detections (reconciliation signals)
    - Access keys minted and webhook events
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "alchemist_service",
            "Service information",
        )
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "alchemist_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT.value, MetricLabels.METHOD.value, MetricLabels.STATUS_CODE.value],
        )

        self.http_request_duration_seconds = Histogram(
            "alchemist_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT.value, MetricLabels.METHOD.value],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
        )

        # ====================================================================
        # Ledger Metrics
        # ====================================================================
        self.authorizations_total = Counter(
            "alchemist_authorizations_total",
            "Total credit authorizations",
            [MetricLabels.OUTCOME.value],  # full, partial, empty, invalid_key
        )

        self.settlements_total = Counter(
            "alchemist_settlements_total",
            "Total credit settlements",
            ["success"],
        )

        self.credits_settled_total = Counter(
            "alchemist_credits_settled_total",
            "Total credits debited from access keys",
        )

        self.unbilled_credits_total = Counter(
            "alchemist_unbilled_credits_total",
            "Credits consumed by generation whose settlement failed",
        )

        self.overspend_detections_total = Counter(
            "alchemist_overspend_detections_total",
            "Settlements that left credits_used above credits_total",
        )

        # ====================================================================
        # Generation Metrics
        # ====================================================================
        self.generation_attempts_total = Counter(
            "alchemist_generation_attempts_total",
            "Total keyword generation attempts",
            [MetricLabels.OUTCOME.value],
        )

        self.generation_duration_seconds = Histogram(
            "alchemist_generation_duration_seconds",
            "Content provider call duration in seconds",
            buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0),
        )

        # ====================================================================
        # Key and Payment Metrics
        # ====================================================================
        self.keys_minted_total = Counter(
            "alchemist_keys_minted_total",
            "Total access keys created",
            [MetricLabels.PLAN.value, "source"],  # source: payment or admin
        )

        self.webhook_events_total = Counter(
            "alchemist_webhook_events_total",
            "Total payment webhook events",
            ["event_type", MetricLabels.OUTCOME.value],
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "alchemist_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE.value, MetricLabels.OPERATION.value],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_authorization(self, outcome: str) -> None:
        """Record an authorization outcome."""
        self.authorizations_total.labels(outcome=outcome).inc()

    def record_settlement(self, success: bool, credits: int) -> None:
        """Record settlement metrics."""
        self.settlements_total.labels(success=str(success)).inc()
        if success:
            self.credits_settled_total.inc(credits)

    def record_unbilled_credits(self, credits: int) -> None:
        """Record credits that were consumed but could not be debited."""
        self.unbilled_credits_total.inc(credits)

    def record_overspend(self) -> None:
        """Record a detected overspend."""
        self.overspend_detections_total.inc()

    def record_generation(self, success: bool, duration: float) -> None:
        """Record one keyword generation attempt."""
        self.generation_attempts_total.labels(outcome="success" if success else "failed").inc()
        self.generation_duration_seconds.observe(duration)

    def record_key_minted(self, plan: str, source: str) -> None:
        """Record an access key creation."""
        self.keys_minted_total.labels(plan=plan, source=source).inc()

    def record_webhook_event(self, event_type: str, outcome: str) -> None:
        """Record a webhook event."""
        self.webhook_events_total.labels(event_type=event_type, outcome=outcome).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = AlchemistMetrics()
