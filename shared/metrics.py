"""
Prometheus metrics for the decision engine.
"""

import time
from contextlib import contextmanager
from typing import Any, Dict, Optional

from prometheus_client import Counter, Histogram, CollectorRegistry


class DecisionMetrics:
    """Metrics collector for flag evaluations and collaborator failures.

    Pass a registry to expose the collectors; with ``registry=None`` the
    collectors are created unregistered, which keeps repeated
    construction (tests, multiple engines) free of name clashes.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up decision engine metrics."""
        self._metrics["flag_evaluations_total"] = Counter(
            "flag_evaluations_total",
            "Total flag evaluations",
            ["enabled"],
            registry=self.registry
        )

        self._metrics["flag_evaluation_duration_seconds"] = Histogram(
            "flag_evaluation_duration_seconds",
            "Flag evaluation duration in seconds",
            registry=self.registry
        )

        self._metrics["exposure_events_total"] = Counter(
            "exposure_events_total",
            "Total exposure events emitted",
            ["event_name"],
            registry=self.registry
        )

        self._metrics["storage_errors_total"] = Counter(
            "storage_errors_total",
            "Total storage connector failures",
            ["operation"],
            registry=self.registry
        )

        self._metrics["gateway_errors_total"] = Counter(
            "gateway_errors_total",
            "Total gateway enrichment failures",
            ["endpoint"],
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def record_evaluation(self, enabled: bool, duration: float):
        """Record one get-flag evaluation."""
        self._metrics["flag_evaluations_total"].labels(enabled=str(enabled).lower()).inc()
        self._metrics["flag_evaluation_duration_seconds"].observe(duration)

    def record_event(self, event_name: str):
        self._metrics["exposure_events_total"].labels(event_name=event_name).inc()

    def record_storage_error(self, operation: str):
        self._metrics["storage_errors_total"].labels(operation=operation).inc()

    def record_gateway_error(self, endpoint: str):
        self._metrics["gateway_errors_total"].labels(endpoint=endpoint).inc()

    @contextmanager
    def time_evaluation(self):
        """Context manager yielding a dict; set ``enabled`` on it before exit."""
        start_time = time.perf_counter()
        outcome = {"enabled": False}
        try:
            yield outcome
        finally:
            self.record_evaluation(outcome["enabled"], time.perf_counter() - start_time)
