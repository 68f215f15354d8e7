"""
Shared metrics configuration for the eSawitKu API.
"""

from typing import Dict, Any, Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, Info


class MetricsCollector:
    """Centralized metrics collector for a service.

    Each collector owns its registry so several service instances (tests,
    workers) can coexist in one process.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # HTTP metrics
        self._metrics["http_requests_total"] = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )

        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        self._metrics["business_events_total"] = Counter(
            "business_events_total",
            "Total business events",
            ["event_type", "service"],
            registry=self.registry
        )

        # Gate metrics
        self._metrics["rate_limit_decisions_total"] = Counter(
            "rate_limit_decisions_total",
            "Rate limit decisions by endpoint and outcome",
            ["endpoint", "outcome"],
            registry=self.registry
        )

        self._metrics["rate_limit_store_errors_total"] = Counter(
            "rate_limit_store_errors_total",
            "Rate limit checks that failed open because the store was unavailable",
            ["endpoint"],
            registry=self.registry
        )

        self._metrics["gate_rejections_total"] = Counter(
            "gate_rejections_total",
            "Requests rejected by the request gate",
            ["endpoint", "reason"],
            registry=self.registry
        )

        self._metrics["audit_entries_total"] = Counter(
            "audit_entries_total",
            "Audit entries by outcome",
            ["outcome"],
            registry=self.registry
        )

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self._metrics["http_request_duration_seconds"].labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

    def record_health_check(self, status: str):
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_error(self, error_type: str):
        self._metrics["errors_total"].labels(
            error_type=error_type,
            service=self.service_name
        ).inc()

    def record_business_event(self, event_type: str):
        self._metrics["business_events_total"].labels(
            event_type=event_type,
            service=self.service_name
        ).inc()

    def record_rate_limit_decision(self, endpoint: str, allowed: bool):
        outcome = "allowed" if allowed else "rejected"
        self._metrics["rate_limit_decisions_total"].labels(endpoint=endpoint, outcome=outcome).inc()

    def record_rate_limit_store_error(self, endpoint: str):
        self._metrics["rate_limit_store_errors_total"].labels(endpoint=endpoint).inc()

    def record_gate_rejection(self, endpoint: str, reason: str):
        self._metrics["gate_rejections_total"].labels(endpoint=endpoint, reason=reason).inc()

    def record_audit(self, outcome: str):
        """Record an audit outcome: written, dropped or failed."""
        self._metrics["audit_entries_total"].labels(outcome=outcome).inc()

    def get_metric(self, name: str) -> Any:
        return self._metrics.get(name)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
