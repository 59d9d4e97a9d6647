"""
Shared metrics configuration for the rules worker.
"""

from typing import Dict, Any, Optional
import time
from contextlib import contextmanager

from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry


class MetricsCollector:
    """Centralized metrics collector for the worker and its service."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        # Service info
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

        # Health check metrics
        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        # Error metrics
        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        self._setup_rules_metrics()

    def _setup_rules_metrics(self):
        """Set up rules-worker-specific metrics."""
        self._metrics["rules_descriptors_published_total"] = Counter(
            "rules_descriptors_published_total",
            "Total action/condition descriptors published",
            ["kind"],
            registry=self.registry
        )

        self._metrics["rules_transitions_total"] = Counter(
            "rules_transitions_total",
            "Total rule enable/disable transitions applied",
            ["state"],
            registry=self.registry
        )

        self._metrics["rules_items_total"] = Counter(
            "rules_items_total",
            "Total work items seen by outcome",
            ["action", "outcome"],
            registry=self.registry
        )

        self._metrics["rules_work_units_active"] = Gauge(
            "rules_work_units_active",
            "Number of tracked work units",
            registry=self.registry
        )

        self._metrics["rules_handler_duration_seconds"] = Histogram(
            "rules_handler_duration_seconds",
            "Action handler duration in seconds",
            ["action"],
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

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
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    def record_descriptor_published(self, kind: str):
        """Record a published descriptor."""
        self._metrics["rules_descriptors_published_total"].labels(kind=kind).inc()

    def record_transition(self, enabled: bool):
        """Record an applied rule transition."""
        state = "enabled" if enabled else "disabled"
        self._metrics["rules_transitions_total"].labels(state=state).inc()

    def record_item(self, action: str, outcome: str):
        """Record a work item outcome (processed, rejected, failed)."""
        self._metrics["rules_items_total"].labels(action=action, outcome=outcome).inc()

    def set_active_work_units(self, count: int):
        """Set the number of tracked work units."""
        self._metrics["rules_work_units_active"].set(count)

    @contextmanager
    def time_operation(self, operation_name: str, **labels):
        """Context manager to time an operation."""
        start_time = time.time()
        try:
            yield
        finally:
            duration = time.time() - start_time
            if operation_name in self._metrics:
                self._metrics[operation_name].labels(**labels).observe(duration)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
