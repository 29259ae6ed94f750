"""
Collector-run metrics collection and monitoring.
"""

import time
from typing import Any, Dict

from prometheus_client import Counter, Gauge, Histogram

# === Run Metrics ===

collector_runs_total = Counter(
    "audit_collector_runs_total", "Total number of collector runs", ["status"]
)

collector_run_duration_seconds = Histogram(
    "audit_collector_run_duration_seconds",
    "Wall-clock duration of a collector run",
    buckets=[1, 5, 15, 30, 60, 300, 900, 1800, 3600],
)

collector_run_entity_count = Gauge(
    "audit_collector_run_entity_count",
    "Number of dashboards in the most recent run snapshot",
)

collector_last_success_timestamp = Gauge(
    "audit_collector_last_success_timestamp_seconds",
    "Unix time at which the last collector run completed",
)

# === Per-Dashboard Metrics ===

dashboard_processing_duration_seconds = Histogram(
    "audit_collector_dashboard_duration_seconds",
    "Time spent evaluating and refreshing one dashboard",
    buckets=[0.05, 0.1, 0.5, 1, 2.5, 5, 10, 30, 60, 120],
)

dashboard_outcomes_total = Counter(
    "audit_collector_dashboard_outcomes_total",
    "Per-dashboard processing outcomes",
    ["status"],
)

audit_results_written_total = Counter(
    "audit_collector_results_written_total",
    "Stored audit results written by refreshes",
    ["audit_type"],
)

# === Error Metrics ===

collector_errors_total = Counter(
    "audit_collector_errors_total",
    "Errors handled by the collector",
    ["category", "severity"],
)


class CollectorMetrics:
    """
    Collector metrics collection and management.

    Thin facade over the module-level Prometheus collectors so callers never
    touch label names directly.
    """

    # === Run Metrics ===

    def record_run(self, elapsed_seconds: float, entity_count: int):
        """Record a completed run"""
        collector_runs_total.labels(status="completed").inc()
        collector_run_duration_seconds.observe(elapsed_seconds)
        collector_run_entity_count.set(entity_count)
        collector_last_success_timestamp.set(time.time())

    def record_run_aborted(self):
        """Record a run that could not iterate dashboards"""
        collector_runs_total.labels(status="aborted").inc()

    # === Per-Dashboard Metrics ===

    def record_dashboard(self, status: str, duration_ms: float):
        """Record one dashboard's processing outcome and duration"""
        dashboard_outcomes_total.labels(status=status).inc()
        dashboard_processing_duration_seconds.observe(duration_ms / 1000)

    def increment_results_written(self, audit_type: str, count: int = 1):
        audit_results_written_total.labels(audit_type=audit_type).inc(count)

    # === Error Metrics ===

    def increment_error(self, category: str, severity: str):
        collector_errors_total.labels(category=category, severity=severity).inc()

    # === Summary Methods ===

    def get_run_summary(self) -> Dict[str, Any]:
        """Get summary of collector metrics"""
        return {
            "runs_completed": collector_runs_total.labels(status="completed")._value.get(),
            "runs_aborted": collector_runs_total.labels(status="aborted")._value.get(),
            "last_entity_count": collector_run_entity_count._value.get(),
        }


# Global metrics instance
metrics = CollectorMetrics()


def get_collector_metrics() -> CollectorMetrics:
    """Get the global collector metrics instance"""
    return metrics
