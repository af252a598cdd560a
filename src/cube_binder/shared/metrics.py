"""Prometheus metrics for dimension binding and cube assembly."""
import time

from prometheus_client import REGISTRY, Counter, Gauge, Histogram


def _get_or_create_metric(metric_class, name: str, doc: str, labelnames=None, **kwargs):
    """Get existing metric or create new one to avoid duplication errors in tests."""
    for collector in list(REGISTRY._collector_to_names.keys()):
        if hasattr(collector, "_name") and collector._name == name:
            return collector
    try:
        if labelnames is not None:
            kwargs["labelnames"] = labelnames
        return metric_class(name, doc, registry=REGISTRY, **kwargs)
    except ValueError as e:
        if "Duplicated timeseries" in str(e):
            for collector in list(REGISTRY._collector_to_names.keys()):
                if hasattr(collector, "_name") and collector._name == name:
                    return collector
        raise


# Binding metrics
binding_attempts_total = _get_or_create_metric(
    Counter,
    "binding_attempts_total",
    "Total number of dimension binding attempts",
    ["dimension_type"],
)

binding_failures_total = _get_or_create_metric(
    Counter,
    "binding_failures_total",
    "Total number of failed dimension binding attempts",
    ["dimension_type", "error_code"],
)

binding_duration_seconds = _get_or_create_metric(
    Histogram,
    "binding_duration_seconds",
    "Time taken to validate and bind a dimension",
    ["dimension_type"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

# Cube metrics
cube_builds_total = _get_or_create_metric(
    Counter,
    "cube_builds_total",
    "Total number of cube builds by outcome",
    ["status"],
)

cube_build_duration_seconds = _get_or_create_metric(
    Histogram,
    "cube_build_duration_seconds",
    "Time taken to assemble a cube for one revision",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
)

cube_builds_in_progress = _get_or_create_metric(
    Gauge, "cube_builds_in_progress", "Number of cube builds currently running"
)


class MetricsCollector:
    """Helper class for collecting and updating metrics."""

    def record_binding_attempt(self, dimension_type: str):
        binding_attempts_total.labels(dimension_type=dimension_type).inc()

    def record_binding_failure(self, dimension_type: str, error_code: str):
        binding_failures_total.labels(
            dimension_type=dimension_type, error_code=error_code
        ).inc()

    def record_binding_duration(self, dimension_type: str, duration: float):
        binding_duration_seconds.labels(dimension_type=dimension_type).observe(duration)

    def cube_build_started(self) -> float:
        """Mark a cube build as started and return its start time."""
        cube_builds_in_progress.inc()
        return time.perf_counter()

    def cube_build_finished(self, started: float, status: str):
        """Record the outcome of a cube build started at ``started``."""
        cube_builds_in_progress.dec()
        cube_builds_total.labels(status=status).inc()
        cube_build_duration_seconds.observe(time.perf_counter() - started)


# Global metrics collector instance
metrics_collector = MetricsCollector()
